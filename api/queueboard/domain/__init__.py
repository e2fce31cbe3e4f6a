"""Domain models and helpers."""

from .token_status import (
    STATUS_EVENTS,
    STATUS_TIMESTAMPS,
    TERMINAL,
    TRANSITIONS,
    EventType,
    TokenStatus,
    can_transition,
)

__all__ = [
    "EventType",
    "STATUS_EVENTS",
    "STATUS_TIMESTAMPS",
    "TERMINAL",
    "TRANSITIONS",
    "TokenStatus",
    "can_transition",
]
