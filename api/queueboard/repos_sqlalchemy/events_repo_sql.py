"""Append-only access to the ``queue_events`` log.

Only inserts and range reads are exposed; events are never updated or
deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import EventType
from ..models import QueueEvent
from ..utils.clock import utcnow


async def append(
    session: AsyncSession,
    queue_id: str,
    token_id: str | None,
    event_type: EventType,
    wait_time_minutes: int | None = None,
    service_duration_minutes: int | None = None,
    at: datetime | None = None,
) -> QueueEvent:
    event = QueueEvent(
        queue_id=queue_id,
        token_id=token_id,
        event_type=event_type.value,
        wait_time_minutes=wait_time_minutes,
        service_duration_minutes=service_duration_minutes,
        created_at=at or utcnow(),
    )
    session.add(event)
    await session.flush()
    return event


async def list_range(
    session: AsyncSession,
    queue_id: str,
    since: datetime,
    until: datetime | None = None,
    event_types: Iterable[EventType] | None = None,
) -> List[QueueEvent]:
    """Return events of ``queue_id`` created in ``[since, until]``."""
    stmt = select(QueueEvent).where(
        QueueEvent.queue_id == queue_id, QueueEvent.created_at >= since
    )
    if until is not None:
        stmt = stmt.where(QueueEvent.created_at <= until)
    if event_types is not None:
        stmt = stmt.where(QueueEvent.event_type.in_([t.value for t in event_types]))
    result = await session.scalars(stmt.order_by(QueueEvent.created_at, QueueEvent.id))
    return list(result.all())


async def list_for_token(session: AsyncSession, token_id: str) -> List[QueueEvent]:
    result = await session.scalars(
        select(QueueEvent)
        .where(QueueEvent.token_id == token_id)
        .order_by(QueueEvent.created_at, QueueEvent.id)
    )
    return list(result.all())


async def latest_id(session: AsyncSession, queue_id: str) -> int:
    """Return the id of the newest event of ``queue_id`` (0 when none)."""
    result = await session.scalar(
        select(func.max(QueueEvent.id)).where(QueueEvent.queue_id == queue_id)
    )
    return int(result or 0)


async def last_event_at(
    session: AsyncSession, queue_id: str, event_type: EventType
) -> datetime | None:
    return await session.scalar(
        select(func.max(QueueEvent.created_at)).where(
            QueueEvent.queue_id == queue_id,
            QueueEvent.event_type == event_type.value,
        )
    )


async def mean_service_minutes(
    session: AsyncSession, queue_id: str, since: datetime
) -> float | None:
    """Return the mean recorded service duration of served events since ``since``."""
    result = await session.scalar(
        select(func.avg(QueueEvent.service_duration_minutes)).where(
            QueueEvent.queue_id == queue_id,
            QueueEvent.event_type == EventType.SERVED.value,
            QueueEvent.created_at >= since,
            QueueEvent.service_duration_minutes.is_not(None),
        )
    )
    return float(result) if result is not None else None
