"""Best-effort heuristics for labelling raw error text.

None of these take part in identity: a wrong guess only affects which
category/severity/tags a new record starts with.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Pattern, Set, Tuple

# First match wins, checked top to bottom.
ERROR_TYPE_PATTERNS: List[Tuple[str, str]] = [
    (r"typeerror", "TypeError"),
    (r"referenceerror", "ReferenceError"),
    (r"syntaxerror", "SyntaxError"),
    (r"rangeerror", "RangeError"),
    (r"urierror", "URIError"),
    (r"evalerror", "EvalError"),
    (r"enoent", "FileNotFound"),
    (r"eacces", "PermissionDenied"),
    (r"econnrefused", "ConnectionRefused"),
    (r"etimedout", "Timeout"),
    (r"enotfound", "NotFound"),
    (r"assertionerror", "AssertionError"),
    (r"validationerror", "ValidationError"),
    (r"authenticationerror", "AuthenticationError"),
    (r"authorizationerror", "AuthorizationError"),
    (r"networkerror", "NetworkError"),
    (r"databaseerror", "DatabaseError"),
    (r"parseerror", "ParseError"),
    (r"\beslint\b", "LintError"),
    (r"\btypescript\b.*error", "TypeScriptError"),
    (r"compilation failed", "CompilationError"),
    (r"test failed", "TestFailure"),
    (r"assertion failed", "AssertionError"),
]

# Severity tiers, most urgent first.
SEVERITY_PATTERNS: List[Tuple[str, List[str]]] = [
    (
        "critical",
        [
            r"security|vulnerability|injection|xss|csrf|breach|leak|expose",
            r"data loss|corruption|critical|fatal|unrecoverable",
        ],
    ),
    (
        "high",
        [
            r"crash|panic|segfault|out of memory|heap|stack overflow",
            r"authentication|authorization|permission denied|access denied",
            r"database|connection failed|service unavailable",
        ],
    ),
    (
        "medium",
        [
            r"error|exception|failed|failure|invalid|unexpected",
            r"timeout|retry|not found|missing",
        ],
    ),
]

TECHNOLOGY_PATTERNS: List[Tuple[str, str]] = [
    (r"\breact\b", "react"),
    (r"\bvue\b", "vue"),
    (r"\bangular\b", "angular"),
    (r"\bnode(?:js)?\b", "nodejs"),
    (r"\btypescript\b", "typescript"),
    (r"\bjavascript\b", "javascript"),
    (r"\bpython\b", "python"),
    (r"\brust\b", "rust"),
    (r"\bgo(?:lang)?\b", "golang"),
    (r"\bwebpack\b", "webpack"),
    (r"\bvite\b", "vite"),
    (r"\besbuild\b", "esbuild"),
    (r"\bnpm\b", "npm"),
    (r"\byarn\b", "yarn"),
    (r"\bpnpm\b", "pnpm"),
    (r"\bgit\b", "git"),
    (r"\bdocker\b", "docker"),
    (r"\bkubernetes\b|\bk8s\b", "kubernetes"),
    (r"\baws\b", "aws"),
    (r"\bpostgres(?:ql)?\b", "postgresql"),
    (r"\bmysql\b", "mysql"),
    (r"\bmongodb\b", "mongodb"),
    (r"\bredis\b", "redis"),
    (r"\bsqlite\b", "sqlite"),
    (r"\bhttp\b", "http"),
    (r"\bapi\b", "api"),
    (r"\brest\b", "rest"),
    (r"\bgraphql\b", "graphql"),
    (r"\bwebsocket\b", "websocket"),
]

DOMAIN_PATTERNS: List[Tuple[str, str]] = [
    (r"\bauth(?:entication|orization)?\b", "authentication"),
    (r"\bvalidation\b", "validation"),
    (r"\bparsing\b|\bparse\b", "parsing"),
    (r"\bnetwork\b", "network"),
    (r"\bfile\b|\bfilesystem\b", "filesystem"),
    (r"\bdatabase\b|\bdb\b", "database"),
    (r"\bcache\b|\bcaching\b", "caching"),
    (r"\basync\b|\bpromise\b", "async"),
    (r"\btype\b|\btyping\b", "types"),
    (r"\bimport\b|\bexport\b|\bmodule\b", "modules"),
    (r"\bbuild\b|\bcompile\b", "build"),
    (r"\btest\b|\btesting\b", "testing"),
    (r"\bdeploy\b|\bdeployment\b", "deployment"),
]


def _compile(table: Iterable[Tuple[str, str]]) -> List[Tuple[Pattern[str], str]]:
    return [(re.compile(pattern, re.IGNORECASE), label) for pattern, label in table]


_ERROR_TYPES = _compile(ERROR_TYPE_PATTERNS)
_TECHNOLOGIES = _compile(TECHNOLOGY_PATTERNS)
_DOMAINS = _compile(DOMAIN_PATTERNS)
_SEVERITIES = [
    (severity, [re.compile(p, re.IGNORECASE) for p in patterns])
    for severity, patterns in SEVERITY_PATTERNS
]


def classify_error(message: str, default: str = "unknown") -> str:
    """Guess an error category from common error vocabularies."""
    for pattern, error_type in _ERROR_TYPES:
        if pattern.search(message or ""):
            return error_type
    return default


def suggest_severity(message: str) -> str:
    """Suggest a severity; the first matching tier wins, else ``low``."""
    text = message or ""
    for severity, patterns in _SEVERITIES:
        if any(p.search(text) for p in patterns):
            return severity
    return "low"


def derive_tags(message: str, category: str) -> Set[str]:
    """Union of the lowercased category and technology/domain vocabulary hits."""
    tags: Set[str] = set()
    if category and category.strip():
        tags.add(category.strip().lower())
    text = message or ""
    for pattern, tag in _TECHNOLOGIES + _DOMAINS:
        if pattern.search(text):
            tags.add(tag)
    return tags


def tag_category_for(tag: str, error_type: str | None = None) -> str | None:
    """Return the closed-vocabulary category a derived tag belongs to, if any."""
    if error_type and tag == error_type.strip().lower():
        return "error_type"
    if tag in {label for _, label in TECHNOLOGY_PATTERNS}:
        return "technology"
    if tag in {label for _, label in DOMAIN_PATTERNS}:
        return "domain"
    return None
