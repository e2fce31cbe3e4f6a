"""Token notifications recorded in the ``notifications`` outbox.

Delivery to SMS or email gateways happens elsewhere; this module only decides
who gets told what and queues the message with status ``pending``.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import Notification, Token

logger = logging.getLogger("api.notifications")


def near_front_message(person_name: str, position: int) -> str:
    if position == 1:
        return f"{person_name}, you're next! Please be ready to be served."
    return f"{person_name}, you are #{position} in the queue. Please stay nearby."


def served_message(person_name: str) -> str:
    return f"{person_name}, you have been served. Thank you for waiting."


class Notifier(Protocol):
    """Collaborator told about near-front and served tokens."""

    async def near_front(self, token: Token, position: int) -> None: ...

    async def served(self, token: Token) -> None: ...


class OutboxNotifier:
    """Queue notifications as ``pending`` rows in the outbox table."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def _enqueue(self, token: Token, message: str) -> None:
        channel = "sms" if token.contact_number else "system"
        recipient = token.contact_number or token.id
        try:
            async with self._sessionmaker() as session:
                session.add(
                    Notification(
                        queue_id=token.queue_id,
                        token_id=token.id,
                        type=channel,
                        recipient=recipient,
                        message=message,
                    )
                )
                await session.commit()
        except SQLAlchemyError:
            logger.exception(
                "notification enqueue failed",
                extra={"queue": token.queue_id, "token": token.id},
            )

    async def near_front(self, token: Token, position: int) -> None:
        await self._enqueue(token, near_front_message(token.person_name, position))

    async def served(self, token: Token) -> None:
        await self._enqueue(token, served_message(token.person_name))


class LoggingNotifier:
    """Notifier that only logs, used when no outbox is wanted."""

    async def near_front(self, token: Token, position: int) -> None:
        logger.info(
            "token #%d near front", position, extra={"queue": token.queue_id, "token": token.id}
        )

    async def served(self, token: Token) -> None:
        logger.info("token served", extra={"queue": token.queue_id, "token": token.id})


async def list_pending(session: AsyncSession, queue_id: str) -> list[Notification]:
    """Return pending outbox rows for ``queue_id`` in creation order."""
    result = await session.scalars(
        select(Notification)
        .where(Notification.queue_id == queue_id, Notification.status == "pending")
        .order_by(Notification.created_at)
    )
    return list(result.all())


__all__ = [
    "LoggingNotifier",
    "Notifier",
    "OutboxNotifier",
    "list_pending",
    "near_front_message",
    "served_message",
]
