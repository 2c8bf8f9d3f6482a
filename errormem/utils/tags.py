from __future__ import annotations

from typing import Any, List, Optional


def _normalize_tag_list(raw: Any) -> List[str]:
    """Accept a comma separated string or an iterable of strings."""
    if raw is None:
        return []
    if isinstance(raw, str):
        if not raw.strip():
            return []
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(raw, (list, tuple, set, frozenset)):
        tags: List[str] = []
        for item in raw:
            if isinstance(item, str) and item.strip():
                tags.append(item.strip())
        return tags
    return []


def _prepare_tag_filters(tag_filters: Optional[List[str]]) -> List[str]:
    """Lowercase, trim and de-duplicate tag names, preserving first-seen order."""
    seen: set[str] = set()
    prepared: List[str] = []
    for tag in tag_filters or []:
        if not isinstance(tag, str):
            continue
        normalized = tag.strip().lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            prepared.append(normalized)
    return prepared
