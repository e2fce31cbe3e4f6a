"""Background auto-serve for queues that enable it.

A queue with ``auto_serve_enabled`` that is not paused gets its next token
served once ``auto_serve_minutes`` have passed since the last ``served``
event, or since its settings were last changed when nothing was served yet.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import EventType
from ..repos_sqlalchemy import events_repo_sql, queues_repo_sql, settings_repo_sql
from ..routes_metrics import auto_serve_total
from ..utils.clock import as_utc, utcnow
from .ordering import TokenOrderingEngine

logger = logging.getLogger("api.autoserve")


async def _due_queues(
    sessionmaker: async_sessionmaker[AsyncSession], now: datetime
) -> list[str]:
    due = []
    async with sessionmaker() as session:
        for settings in await settings_repo_sql.list_auto_serve(session):
            queue = await queues_repo_sql.get_queue(session, settings.queue_id)
            if queue is None or queue.status != "active":
                continue
            last = await events_repo_sql.last_event_at(
                session, settings.queue_id, EventType.SERVED
            )
            reference = as_utc(last or settings.updated_at)
            if now - reference >= timedelta(minutes=settings.auto_serve_minutes):
                due.append(settings.queue_id)
    return due


async def sweep(
    engine: TokenOrderingEngine,
    sessionmaker: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> int:
    """Serve one token in every due queue and return how many were served."""
    now = as_utc(now or utcnow())
    served = 0
    for queue_id in await _due_queues(sessionmaker, now):
        result = await engine.serve_next(queue_id)
        if result.ok:
            served += 1
            auto_serve_total.inc()
            logger.info("auto-served token", extra={"queue": queue_id, "token": result.data.id})
    return served


async def monitor(
    engine: TokenOrderingEngine,
    sessionmaker: async_sessionmaker[AsyncSession],
    interval: float = 30,
) -> None:
    """Run :func:`sweep` every ``interval`` seconds until cancelled."""
    while True:
        try:
            await sweep(engine, sessionmaker)
        except Exception:
            logger.exception("auto-serve sweep failed")
        await asyncio.sleep(interval)


__all__ = ["monitor", "sweep"]
