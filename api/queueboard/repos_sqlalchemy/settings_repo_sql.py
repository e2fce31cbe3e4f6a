"""Queue settings persistence helpers."""

from __future__ import annotations

from typing import Any, List, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import QueueSettings
from ..utils.clock import utcnow

EDITABLE_FIELDS = frozenset(
    {
        "is_paused",
        "pause_reason",
        "auto_serve_enabled",
        "auto_serve_minutes",
        "priority_enabled",
        "max_tokens_per_day",
    }
)


async def get_or_create(session: AsyncSession, queue_id: str) -> QueueSettings:
    """Return the settings row for ``queue_id``, creating defaults if missing."""
    settings = await session.scalar(
        select(QueueSettings).where(QueueSettings.queue_id == queue_id)
    )
    if settings is None:
        settings = QueueSettings(queue_id=queue_id)
        session.add(settings)
        await session.flush()
    return settings


async def update(
    session: AsyncSession, settings: QueueSettings, values: Mapping[str, Any]
) -> QueueSettings:
    """Apply ``values`` restricted to :data:`EDITABLE_FIELDS`."""
    for key, value in values.items():
        if key in EDITABLE_FIELDS:
            setattr(settings, key, value)
    settings.updated_at = utcnow()
    await session.flush()
    return settings


async def list_auto_serve(session: AsyncSession) -> List[QueueSettings]:
    """Return settings of unpaused queues with auto-serve enabled."""
    result = await session.scalars(
        select(QueueSettings).where(
            QueueSettings.auto_serve_enabled.is_(True),
            QueueSettings.is_paused.is_(False),
        )
    )
    return list(result.all())
