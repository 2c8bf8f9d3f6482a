from __future__ import annotations

import re
from typing import Iterable, List, Optional

# Common words dropped when extracting keywords from task descriptions
CONTEXT_STOPWORDS = {
    "a",
    "an",
    "the",
    "and",
    "or",
    "but",
    "in",
    "on",
    "at",
    "to",
    "for",
    "of",
    "with",
    "by",
    "is",
    "it",
    "this",
    "that",
    "be",
    "as",
    "are",
    "was",
    "were",
    "been",
    "being",
    "have",
    "has",
    "had",
    "do",
    "does",
    "did",
    "will",
    "would",
    "could",
    "should",
    "may",
    "might",
    "must",
    "shall",
    "can",
    "need",
}

_NON_KEYWORD_CHARS = re.compile(r"[^a-z0-9\s-]")


def _extract_keywords(parts: Iterable[Optional[str]]) -> List[str]:
    """Convert free-text fields into unique keyword tokens, first-seen order."""
    text = " ".join(part for part in parts if part)
    if not text:
        return []

    cleaned = _NON_KEYWORD_CHARS.sub(" ", text.lower())
    keywords: List[str] = []
    seen: set[str] = set()
    for word in cleaned.split():
        if len(word) <= 2 or word in CONTEXT_STOPWORDS:
            continue
        if word in seen:
            continue
        seen.add(word)
        keywords.append(word)
    return keywords


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix
