"""Public, read-only views: self-service token lookup and the queue display.

Contact numbers never leave this module.
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import TokenStatus
from ..errors import NotFoundError, Result
from ..models import Token
from ..repos_sqlalchemy import queues_repo_sql, service_types_repo_sql, tokens_repo_sql
from ..utils.clock import round_half_up
from .guard import guarded
from .ordering import TokenOrderingEngine

STATUS_LABELS = {
    TokenStatus.WAITING.value: "Waiting in Queue",
    TokenStatus.SERVING.value: "Being Served",
    TokenStatus.SERVED.value: "Served",
    TokenStatus.CANCELLED.value: "Cancelled",
    TokenStatus.NO_SHOW.value: "No Show",
}


def guidance(position: int) -> str:
    if position == 1:
        return "You're next! Please be ready to be served."
    if position <= 3:
        return "You're coming up soon. Please stay nearby."
    return "Please wait for your turn. We'll serve you as soon as possible."


def public_token(token: Token) -> Dict[str, Any]:
    return {
        "id": token.id,
        "person_name": token.person_name,
        "position": token.position,
        "status": token.status,
        "priority_level": token.priority_level,
        "created_at": token.created_at.isoformat() if token.created_at else None,
    }


class PublicLookup:
    def __init__(
        self,
        engine: TokenOrderingEngine,
        sessionmaker: async_sessionmaker[AsyncSession],
        timeout: float | None = 10.0,
        display_size: int = 10,
    ) -> None:
        self._engine = engine
        self._sessionmaker = sessionmaker
        self._timeout = timeout
        self._display_size = display_size

    async def lookup(self, token_id: str) -> Result[Dict[str, Any]]:
        """Describe ``token_id`` for the person holding it."""
        return await guarded(
            "lookup_token", self._lookup(token_id), self._timeout, token=token_id
        )

    async def display(self, queue_id: str) -> Result[Dict[str, Any]]:
        """Return what the public screen of ``queue_id`` shows."""
        return await guarded(
            "public_display", self._display(queue_id), self._timeout, queue=queue_id
        )

    async def _lookup(self, token_id: str) -> Dict[str, Any]:
        async with self._sessionmaker() as session:
            token = await tokens_repo_sql.get_token(session, token_id)
            if token is None:
                raise NotFoundError("token not found", token_id=token_id)
            queue = await queues_repo_sql.get_queue(session, token.queue_id)
            service_type = None
            if token.service_type_id:
                service_type = await service_types_repo_sql.get(session, token.service_type_id)
        data = public_token(token)
        data.update(
            status_label=STATUS_LABELS.get(token.status, token.status),
            queue_name=queue.name if queue else None,
            service_type=service_type.name if service_type else None,
            estimated_wait_minutes=None,
            message=None,
        )
        if token.status == TokenStatus.WAITING.value:
            per_token = await self._engine.recent_service_minutes(token.queue_id)
            data["estimated_wait_minutes"] = round_half_up(token.position * per_token)
            data["message"] = guidance(token.position)
        return data

    async def _display(self, queue_id: str) -> Dict[str, Any]:
        async with self._sessionmaker() as session:
            queue = await queues_repo_sql.get_queue(session, queue_id)
            if queue is None:
                raise NotFoundError("queue not found", queue_id=queue_id)
            serving = await tokens_repo_sql.current_serving(session, queue_id)
            waiting = await tokens_repo_sql.list_waiting(session, queue_id)
        shown = waiting[: self._display_size]
        estimated = None
        if shown:
            per_token = await self._engine.recent_service_minutes(queue_id)
            estimated = round_half_up(shown[-1].position * per_token)
        return {
            "queue": {"id": queue.id, "name": queue.name, "status": queue.status},
            "serving": public_token(serving) if serving else None,
            "waiting": [public_token(token) for token in shown],
            "waiting_count": len(waiting),
            "estimated_wait_minutes": estimated,
        }


__all__ = ["PublicLookup", "STATUS_LABELS", "guidance", "public_token"]
