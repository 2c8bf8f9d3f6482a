"""Error message normalization and identity hashing.

Two reports of the same failure rarely match byte for byte: paths, line
numbers, addresses and timestamps differ between runs. ``normalize`` swaps
those instance details for fixed placeholders, and ``fingerprint`` hashes the
result together with the error category. The fingerprint is the only
deduplication key used by the store.
"""

from __future__ import annotations

import hashlib
import re
from typing import List, Pattern, Tuple

# Applied in order to the lowercased message. Timestamps run first so their
# hh:mm:ss part is not read as a file:line:col locator, and every pattern that
# contains digit runs precedes the generic long-number rule.
NORMALIZATION_PATTERNS: List[Tuple[Pattern[str], str]] = [
    # ISO-8601 timestamps
    (
        re.compile(r"\d{4}-\d{2}-\d{2}[t ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:z|[+-]\d{2}:?\d{2})?"),
        "<timestamp>",
    ),
    # POSIX file paths
    (re.compile(r"(?:/[\w.-]+)+\.\w+"), "<file_path>"),
    # Windows file paths
    (re.compile(r"\b[a-z]:\\[\w\\.-]+"), "<file_path>"),
    # Line locators
    (re.compile(r"\b(?:line|ln|l)\s*:?\s*\d+"), "line <line>"),
    (re.compile(r":\d+:\d+"), ":<line>:<col>"),
    # Memory addresses
    (re.compile(r"\b0x[0-9a-f]+\b"), "<addr>"),
    # UUIDs
    (re.compile(r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b"), "<uuid>"),
    # Generated ids (5+ digits)
    (re.compile(r"\b\d{5,}\b"), "<id>"),
    # IPv4 addresses
    (re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "<ip>"),
    # Port suffixes
    (re.compile(r":\d{2,5}(?=\s|$|/)"), ":<port>"),
    # Long quoted literals
    (re.compile(r'"[^"]{50,}"'), '"<long_string>"'),
    (re.compile(r"'[^']{50,}'"), "'<long_string>'"),
]

_WHITESPACE = re.compile(r"\s+")

# A placeholder can open a word boundary that exposes a new match, so passes
# repeat until the text is stable.
_MAX_PASSES = 8


def _normalize_pass(text: str) -> str:
    for pattern, replacement in NORMALIZATION_PATTERNS:
        text = pattern.sub(replacement, text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize(message: str) -> str:
    """Normalize an error message for comparison.

    Deterministic, idempotent and case-insensitive.
    """
    normalized = (message or "").strip().lower()
    for _ in range(_MAX_PASSES):
        updated = _normalize_pass(normalized)
        if updated == normalized:
            break
        normalized = updated
    return normalized


def fingerprint(message: str, category: str) -> str:
    """Return the SHA-256 hex digest of ``category:normalize(message)``."""
    content = f"{category}:{normalize(message)}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
