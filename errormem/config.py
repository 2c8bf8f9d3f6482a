from __future__ import annotations

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables before configuring the application.
load_dotenv()
load_dotenv(Path.home() / ".config" / "errormem" / ".env")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def default_data_dir() -> Path:
    """Return the per-user data directory for the memory database."""
    if sys.platform == "win32":
        app_data = os.getenv("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(app_data) / "errormem"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "errormem"
    data_home = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(data_home) / "errormem"


# Storage
DATA_DIR = Path(os.getenv("ERRORMEM_DATA_DIR") or default_data_dir())
DB_FILENAME = os.getenv("ERRORMEM_DB_FILENAME", "memory.db")

# Embedding configuration
ENABLE_EMBEDDINGS = _env_flag("ERRORMEM_ENABLE_EMBEDDINGS", "false")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
VECTOR_SIZE = int(os.getenv("VECTOR_SIZE", "1536"))

# Search defaults
SEARCH_DEFAULT_LIMIT = int(os.getenv("SEARCH_DEFAULT_LIMIT", "10"))
SEMANTIC_MIN_SIMILARITY = float(os.getenv("SEMANTIC_MIN_SIMILARITY", "0.7"))
LEXICAL_MIN_SIMILARITY = float(os.getenv("LEXICAL_MIN_SIMILARITY", "0.3"))
# Candidate oversampling for the lexical scan (multiplier on the requested limit)
LEXICAL_OVERSAMPLE = int(os.getenv("LEXICAL_OVERSAMPLE", "5"))
SIMILARITY_WEIGHT_TOKEN = float(os.getenv("SIMILARITY_WEIGHT_TOKEN", "0.6"))
SIMILARITY_WEIGHT_EDIT = float(os.getenv("SIMILARITY_WEIGHT_EDIT", "0.4"))

# Relevance weighting for task-context retrieval (points, not fractions)
RELEVANCE_WEIGHT_SIMILARITY = float(os.getenv("RELEVANCE_WEIGHT_SIMILARITY", "40"))
RELEVANCE_WEIGHT_HAS_SOLUTION = float(os.getenv("RELEVANCE_WEIGHT_HAS_SOLUTION", "20"))
RELEVANCE_WEIGHT_SUCCESS_RATE = float(os.getenv("RELEVANCE_WEIGHT_SUCCESS_RATE", "30"))
RELEVANCE_POINTS_PER_ATTEMPT = float(os.getenv("RELEVANCE_POINTS_PER_ATTEMPT", "2"))
RELEVANCE_ATTEMPT_CAP = float(os.getenv("RELEVANCE_ATTEMPT_CAP", "10"))

# Task-context retrieval
RELEVANT_ERROR_LIMIT = int(os.getenv("RELEVANT_ERROR_LIMIT", "5"))
RELEVANT_MIN_SIMILARITY = float(os.getenv("RELEVANT_MIN_SIMILARITY", "0.5"))
RELEVANT_TAG_LIMIT = int(os.getenv("RELEVANT_TAG_LIMIT", "3"))
RELEVANT_KEYWORD_TAGS = int(os.getenv("RELEVANT_KEYWORD_TAGS", "5"))
RELEVANT_MAX_RESULTS = int(os.getenv("RELEVANT_MAX_RESULTS", "5"))

# Closed enumerations
SEVERITIES = ("low", "medium", "high", "critical")
SEVERITY_RANK = {name: index for index, name in enumerate(SEVERITIES)}
SOLUTION_SOURCES = {"auto_mode", "agent", "manual"}
TAG_CATEGORIES = {"error_type", "technology", "framework", "domain", "custom"}

# Aliases accepted on input (hyphenated / legacy spellings -> canonical)
TAG_CATEGORY_ALIASES: dict[str, str] = {
    "error-type": "error_type",
    "errortype": "error_type",
    "tech": "technology",
}
SOLUTION_SOURCE_ALIASES: dict[str, str] = {
    "auto-mode": "auto_mode",
    "auto": "auto_mode",
    "human": "manual",
}


def normalize_severity(raw: str | None) -> str | None:
    """Map a severity in any case to its canonical name, or None if unknown."""
    if not raw:
        return None
    candidate = raw.strip().lower()
    return candidate if candidate in SEVERITY_RANK else None


def normalize_tag_category(raw: str | None) -> tuple[str | None, bool]:
    """Normalize a tag category.

    Returns:
        tuple of (category, valid)
        - category: canonical category or None when not provided
        - valid: False when a value was supplied but is not recognised
    """
    if raw is None or not str(raw).strip():
        return None, True
    candidate = str(raw).strip().lower()
    if candidate in TAG_CATEGORIES:
        return candidate, True
    if candidate in TAG_CATEGORY_ALIASES:
        return TAG_CATEGORY_ALIASES[candidate], True
    return None, False


def normalize_solution_source(raw: str | None) -> str | None:
    if not raw:
        return None
    candidate = raw.strip().lower()
    if candidate in SOLUTION_SOURCES:
        return candidate
    return SOLUTION_SOURCE_ALIASES.get(candidate)
