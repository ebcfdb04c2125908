"""Time helpers shared across the dispatcher."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def ensure_aware(value: dt.datetime) -> bool:
    """Return True when ``value`` carries timezone information."""
    return value.tzinfo is not None and value.utcoffset() is not None
