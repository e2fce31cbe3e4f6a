"""Token status enumeration, event types and allowed transitions."""

from __future__ import annotations

from enum import Enum


class TokenStatus(str, Enum):
    """Enumerate the lifecycle states for a token."""

    WAITING = "waiting"
    SERVING = "serving"
    SERVED = "served"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class EventType(str, Enum):
    """Event types recorded in the queue event log."""

    ADDED = "added"
    SERVING = "serving"
    SERVED = "served"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    REORDERED = "reordered"


TRANSITIONS: dict[TokenStatus, list[TokenStatus]] = {
    TokenStatus.WAITING: [
        TokenStatus.SERVING,
        TokenStatus.SERVED,
        TokenStatus.CANCELLED,
        TokenStatus.NO_SHOW,
    ],
    TokenStatus.SERVING: [
        TokenStatus.SERVED,
        TokenStatus.CANCELLED,
        TokenStatus.NO_SHOW,
    ],
    TokenStatus.SERVED: [],
    TokenStatus.CANCELLED: [],
    TokenStatus.NO_SHOW: [],
}

TERMINAL: frozenset[TokenStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# Timestamp column stamped when a token enters the status
STATUS_TIMESTAMPS: dict[TokenStatus, str] = {
    TokenStatus.SERVING: "serving_at",
    TokenStatus.SERVED: "served_at",
    TokenStatus.CANCELLED: "cancelled_at",
    TokenStatus.NO_SHOW: "no_show_at",
}

# Event appended for each status a token can move into
STATUS_EVENTS: dict[TokenStatus, EventType] = {
    TokenStatus.SERVING: EventType.SERVING,
    TokenStatus.SERVED: EventType.SERVED,
    TokenStatus.CANCELLED: EventType.CANCELLED,
    TokenStatus.NO_SHOW: EventType.NO_SHOW,
}


def can_transition(src: TokenStatus, dst: TokenStatus) -> bool:
    """Return ``True`` if a token can move from ``src`` to ``dst``."""

    return dst in TRANSITIONS.get(src, [])
