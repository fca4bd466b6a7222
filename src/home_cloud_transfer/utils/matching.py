"""Duplicate-detection key helpers."""

from __future__ import annotations

from datetime import UTC, datetime

type MatchKey = tuple[str, ...]


def _normalize_part(value: object) -> str:
    """Normalize one key component.

    Strings are compared case-insensitively with surrounding whitespace
    ignored; datetimes are compared as UTC instants.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        dt = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return dt.astimezone(UTC).isoformat()
    return " ".join(str(value).split()).casefold()


def match_key(*parts: object) -> MatchKey:
    """Build a case-insensitive duplicate-detection key.

    Args:
        *parts: Distinguishing fields of an entity.

    Returns:
        Normalized key tuple.
    """
    return tuple(_normalize_part(part) for part in parts)


def is_blank_key(key: MatchKey) -> bool:
    """Return True if every component of ``key`` is empty."""
    return not any(key)
