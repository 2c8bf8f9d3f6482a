from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> str:
    """Return an ISO formatted UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def _parse_iso_datetime(value: Optional[Any]) -> Optional[datetime]:
    """Parse ISO strings into timezone-aware datetimes (UTC fallback for naive)."""
    if not isinstance(value, str):
        return None

    candidate = value.strip()
    if not candidate:
        return None

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[str]) -> str:
    """Render a stored timestamp as ``YYYY-MM-DD HH:MM UTC`` for display."""
    parsed = _parse_iso_datetime(value)
    if parsed is None:
        return value or "unknown"
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
