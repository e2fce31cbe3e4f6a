"""Queue store: queues, their settings and service types.

Every mutation publishes a change notice on the table it touched so that
dashboards subscribed to the queue re-fetch.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import NotFoundError, Result, ValidationError
from ..events import ChangeBus
from ..models import Queue, QueueSettings, ServiceType
from ..repos_sqlalchemy import (
    queues_repo_sql,
    service_types_repo_sql,
    settings_repo_sql,
)
from .guard import guarded

logger = logging.getLogger("api.queues")

def _clean_name(name: str | None, what: str) -> str:
    value = (name or "").strip()
    if not value:
        raise ValidationError(f"{what} name is required")
    return value


def _check_settings(values: Mapping[str, Any]) -> None:
    minutes = values.get("auto_serve_minutes")
    if minutes is not None and minutes < 1:
        raise ValidationError("auto_serve_minutes must be at least 1")
    limit = values.get("max_tokens_per_day")
    if limit is not None and limit < 1:
        raise ValidationError("max_tokens_per_day must be at least 1")


class QueueStore:
    """Create and read queues and manage their settings and service types."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        bus: ChangeBus | None = None,
        timeout: float | None = 10.0,
    ) -> None:
        self._sessionmaker = sessionmaker
        self.bus = bus or ChangeBus()
        self._timeout = timeout

    # queues ------------------------------------------------------------

    async def create_queue(
        self, manager_id: str, name: str, description: str | None = None
    ) -> Result[Queue]:
        return await guarded(
            "create_queue",
            self._create_queue(manager_id, name, description),
            self._timeout,
            manager=manager_id,
        )

    async def list_queues(self, manager_id: str) -> Result[List[Queue]]:
        """Return queues owned by ``manager_id``, newest first."""
        return await guarded(
            "list_queues", self._list_queues(manager_id), self._timeout, manager=manager_id
        )

    async def get_queue(self, queue_id: str) -> Result[Queue]:
        return await guarded(
            "get_queue", self._get_queue(queue_id), self._timeout, queue=queue_id
        )

    async def _create_queue(self, manager_id, name, description) -> Queue:
        if not manager_id:
            raise ValidationError("manager id is required")
        name = _clean_name(name, "queue")
        async with self._sessionmaker() as session:
            async with session.begin():
                queue = await queues_repo_sql.create_queue(
                    session, manager_id, name, (description or "").strip() or None
                )
                await settings_repo_sql.get_or_create(session, queue.id)
        logger.info("queue created", extra={"queue": queue.id, "manager": manager_id})
        await self.bus.publish(queue.id, "queues")
        return queue

    async def _list_queues(self, manager_id: str) -> List[Queue]:
        async with self._sessionmaker() as session:
            return await queues_repo_sql.list_for_manager(session, manager_id)

    async def _get_queue(self, queue_id: str) -> Queue:
        async with self._sessionmaker() as session:
            queue = await queues_repo_sql.get_queue(session, queue_id)
        if queue is None:
            raise NotFoundError("queue not found", queue_id=queue_id)
        return queue

    # settings ----------------------------------------------------------

    async def get_settings(self, queue_id: str) -> Result[QueueSettings]:
        """Return the settings of ``queue_id``, creating defaults on first read."""
        return await guarded(
            "get_settings", self._update_settings(queue_id, {}), self._timeout, queue=queue_id
        )

    async def update_settings(
        self, queue_id: str, values: Mapping[str, Any]
    ) -> Result[QueueSettings]:
        return await guarded(
            "update_settings",
            self._update_settings(queue_id, values),
            self._timeout,
            queue=queue_id,
        )

    async def pause(self, queue_id: str, reason: str | None = None) -> Result[QueueSettings]:
        """Stop accepting new tokens until :meth:`resume`."""
        return await guarded(
            "pause_queue",
            self._update_settings(
                queue_id, {"is_paused": True, "pause_reason": (reason or "").strip() or None}
            ),
            self._timeout,
            queue=queue_id,
        )

    async def resume(self, queue_id: str) -> Result[QueueSettings]:
        return await guarded(
            "resume_queue",
            self._update_settings(queue_id, {"is_paused": False, "pause_reason": None}),
            self._timeout,
            queue=queue_id,
        )

    async def close_queue(self, queue_id: str) -> Result[Queue]:
        """Stop the queue for good; waiting tokens can still be served."""
        return await guarded(
            "close_queue", self._set_closed(queue_id, True), self._timeout, queue=queue_id
        )

    async def reopen_queue(self, queue_id: str) -> Result[Queue]:
        return await guarded(
            "reopen_queue", self._set_closed(queue_id, False), self._timeout, queue=queue_id
        )

    async def _set_closed(self, queue_id: str, closed: bool) -> Queue:
        async with self._sessionmaker() as session:
            async with session.begin():
                queue = await queues_repo_sql.get_queue(session, queue_id)
                if queue is None:
                    raise NotFoundError("queue not found", queue_id=queue_id)
                if closed:
                    status = "closed"
                else:
                    settings = await settings_repo_sql.get_or_create(session, queue_id)
                    status = "paused" if settings.is_paused else "active"
                if queue.status != status:
                    await queues_repo_sql.set_status(session, queue, status)
        logger.info("queue %s", status, extra={"queue": queue_id})
        await self.bus.publish(queue_id, "queues")
        return queue

    async def _update_settings(
        self, queue_id: str, values: Mapping[str, Any]
    ) -> QueueSettings:
        _check_settings(values)
        async with self._sessionmaker() as session:
            async with session.begin():
                queue = await queues_repo_sql.get_queue(session, queue_id)
                if queue is None:
                    raise NotFoundError("queue not found", queue_id=queue_id)
                settings = await settings_repo_sql.get_or_create(session, queue_id)
                if not values:
                    return settings
                settings = await settings_repo_sql.update(session, settings, values)
                if "is_paused" in values and queue.status != "closed":
                    await queues_repo_sql.set_status(
                        session, queue, "paused" if settings.is_paused else "active"
                    )
        logger.info(
            "settings updated: %s", ",".join(sorted(values)), extra={"queue": queue_id}
        )
        await self.bus.publish(queue_id, "queue_settings")
        if "is_paused" in values:
            await self.bus.publish(queue_id, "queues")
        return settings

    # service types -----------------------------------------------------

    async def create_service_type(
        self,
        queue_id: str,
        name: str,
        estimated_duration_minutes: int = 15,
        description: str | None = None,
    ) -> Result[ServiceType]:
        return await guarded(
            "create_service_type",
            self._create_service_type(
                queue_id, name, estimated_duration_minutes, description
            ),
            self._timeout,
            queue=queue_id,
        )

    async def list_service_types(self, queue_id: str) -> Result[List[ServiceType]]:
        """Return active service types of ``queue_id`` ordered by name."""
        return await guarded(
            "list_service_types",
            self._list_service_types(queue_id),
            self._timeout,
            queue=queue_id,
        )

    async def update_service_type(
        self, service_type_id: str, values: Mapping[str, Any]
    ) -> Result[ServiceType]:
        return await guarded(
            "update_service_type",
            self._update_service_type(service_type_id, values),
            self._timeout,
        )

    async def deactivate_service_type(self, service_type_id: str) -> Result[ServiceType]:
        return await guarded(
            "deactivate_service_type",
            self._update_service_type(service_type_id, {"is_active": False}),
            self._timeout,
        )

    async def _create_service_type(
        self, queue_id, name, estimated_duration_minutes, description
    ) -> ServiceType:
        name = _clean_name(name, "service type")
        if estimated_duration_minutes < 1:
            raise ValidationError("estimated duration must be at least 1 minute")
        async with self._sessionmaker() as session:
            async with session.begin():
                if await queues_repo_sql.get_queue(session, queue_id) is None:
                    raise NotFoundError("queue not found", queue_id=queue_id)
                service_type = await service_types_repo_sql.create(
                    session,
                    queue_id,
                    name,
                    estimated_duration_minutes,
                    (description or "").strip() or None,
                )
        await self.bus.publish(queue_id, "service_types")
        return service_type

    async def _list_service_types(self, queue_id: str) -> List[ServiceType]:
        async with self._sessionmaker() as session:
            if await queues_repo_sql.get_queue(session, queue_id) is None:
                raise NotFoundError("queue not found", queue_id=queue_id)
            return await service_types_repo_sql.list_active(session, queue_id)

    async def _update_service_type(
        self, service_type_id: str, values: Mapping[str, Any]
    ) -> ServiceType:
        if "name" in values:
            values = {**values, "name": _clean_name(values["name"], "service type")}
        duration = values.get("estimated_duration_minutes")
        if duration is not None and duration < 1:
            raise ValidationError("estimated duration must be at least 1 minute")
        async with self._sessionmaker() as session:
            async with session.begin():
                service_type = await service_types_repo_sql.get(session, service_type_id)
                if service_type is None:
                    raise NotFoundError(
                        "service type not found", service_type_id=service_type_id
                    )
                service_type = await service_types_repo_sql.update(
                    session, service_type, values
                )
        await self.bus.publish(service_type.queue_id, "service_types")
        return service_type


__all__ = ["QueueStore"]
