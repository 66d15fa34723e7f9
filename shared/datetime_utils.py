"""
Date/time helpers — framework-agnostic.

All stored timestamps are timezone-aware UTC. MongoDB may hand back naive
datetimes depending on client options, so comparisons go through
``ensure_aware`` first.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as UTC-aware; naive datetimes are assumed to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """True when *now* is at or past *expires_at*. A missing expiry counts as expired."""
    aware = ensure_aware(expires_at)
    return aware is None or now >= aware


def is_future(value: Optional[datetime], now: datetime) -> bool:
    aware = ensure_aware(value)
    return aware is not None and aware > now
