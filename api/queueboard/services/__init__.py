"""Service layer for the queue API."""

from .analytics import AnalyticsService, AnalyticsSnapshot, compute
from .event_log import EventLog
from .lookup import PublicLookup
from .notifications import LoggingNotifier, Notifier, OutboxNotifier
from .ordering import TokenOrderingEngine
from .queues import QueueStore

__all__ = [
    "AnalyticsService",
    "AnalyticsSnapshot",
    "EventLog",
    "LoggingNotifier",
    "Notifier",
    "OutboxNotifier",
    "PublicLookup",
    "QueueStore",
    "TokenOrderingEngine",
    "compute",
]
