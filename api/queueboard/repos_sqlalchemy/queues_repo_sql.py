"""Queue persistence helpers."""

from __future__ import annotations

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Queue


async def create_queue(
    session: AsyncSession, manager_id: str, name: str, description: str | None = None
) -> Queue:
    queue = Queue(manager_id=manager_id, name=name, description=description)
    session.add(queue)
    await session.flush()
    return queue


async def get_queue(session: AsyncSession, queue_id: str) -> Queue | None:
    return await session.get(Queue, queue_id)


async def list_for_manager(session: AsyncSession, manager_id: str) -> List[Queue]:
    """Return queues owned by ``manager_id``, newest first."""
    result = await session.scalars(
        select(Queue)
        .where(Queue.manager_id == manager_id)
        .order_by(Queue.created_at.desc())
    )
    return list(result.all())


async def set_status(session: AsyncSession, queue: Queue, status: str) -> Queue:
    queue.status = status
    await session.flush()
    return queue
