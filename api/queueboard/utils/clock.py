"""Time helpers shared by the engine and analytics."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def minutes_between(start: datetime, end: datetime) -> int:
    """Return whole minutes elapsed from ``start`` to ``end``, never negative."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(round_half_up(seconds / 60), 0)
