"""Read access to the queue event log.

Writes happen only inside the ordering engine's transactions; this service
exposes range reads for the HTTP surface and the analytics loader.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import EventType
from ..errors import NotFoundError, Result, ValidationError
from ..models import QueueEvent
from ..repos_sqlalchemy import events_repo_sql, queues_repo_sql
from ..utils.clock import as_utc
from .guard import guarded


class EventLog:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        timeout: float | None = 10.0,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._timeout = timeout

    async def list_range(
        self,
        queue_id: str,
        since: datetime,
        until: datetime | None = None,
        event_types: Iterable[EventType] | None = None,
    ) -> Result[List[QueueEvent]]:
        """Return events of ``queue_id`` between ``since`` and ``until``."""
        return await guarded(
            "list_events",
            self._list_range(queue_id, since, until, event_types),
            self._timeout,
            queue=queue_id,
        )

    async def for_token(self, token_id: str) -> Result[List[QueueEvent]]:
        return await guarded(
            "token_events", self._for_token(token_id), self._timeout, token=token_id
        )

    async def _list_range(self, queue_id, since, until, event_types) -> List[QueueEvent]:
        since = as_utc(since)
        until = as_utc(until) if until is not None else None
        if until is not None and until < since:
            raise ValidationError("until must not be earlier than since")
        async with self._sessionmaker() as session:
            if await queues_repo_sql.get_queue(session, queue_id) is None:
                raise NotFoundError("queue not found", queue_id=queue_id)
            return await events_repo_sql.list_range(
                session, queue_id, since, until, event_types
            )

    async def _for_token(self, token_id: str) -> List[QueueEvent]:
        async with self._sessionmaker() as session:
            return await events_repo_sql.list_for_token(session, token_id)


def parse_event_types(raw: str | None) -> List[EventType] | None:
    """Parse a comma separated ``event_type`` filter."""
    if not raw:
        return None
    try:
        return [EventType(part.strip()) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise ValidationError("unknown event type", value=raw) from exc


__all__ = ["EventLog", "parse_event_types"]
