"""Service type persistence helpers."""

from __future__ import annotations

from typing import Any, List, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ServiceType

EDITABLE_FIELDS = frozenset({"name", "description", "estimated_duration_minutes", "is_active"})


async def create(
    session: AsyncSession,
    queue_id: str,
    name: str,
    estimated_duration_minutes: int,
    description: str | None = None,
) -> ServiceType:
    service_type = ServiceType(
        queue_id=queue_id,
        name=name,
        description=description,
        estimated_duration_minutes=estimated_duration_minutes,
    )
    session.add(service_type)
    await session.flush()
    return service_type


async def get(session: AsyncSession, service_type_id: str) -> ServiceType | None:
    return await session.get(ServiceType, service_type_id)


async def list_active(session: AsyncSession, queue_id: str) -> List[ServiceType]:
    result = await session.scalars(
        select(ServiceType)
        .where(ServiceType.queue_id == queue_id, ServiceType.is_active.is_(True))
        .order_by(ServiceType.name)
    )
    return list(result.all())


async def update(
    session: AsyncSession, service_type: ServiceType, values: Mapping[str, Any]
) -> ServiceType:
    for key, value in values.items():
        if key in EDITABLE_FIELDS:
            setattr(service_type, key, value)
    await session.flush()
    return service_type
