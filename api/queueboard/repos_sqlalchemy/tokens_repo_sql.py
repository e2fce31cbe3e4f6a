"""Token persistence helpers.

Positions are only meaningful for ``waiting`` tokens. Every helper that moves
a token out of the waiting list is paired with :func:`close_gap` by the
ordering engine so that waiting positions stay ``1..N``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import STATUS_TIMESTAMPS, TokenStatus
from ..models import Token
from ..utils.clock import utcnow


async def get_token(session: AsyncSession, token_id: str) -> Token | None:
    return await session.get(Token, token_id, populate_existing=True)


async def max_waiting_position(session: AsyncSession, queue_id: str) -> int:
    """Return the highest waiting position in ``queue_id`` or 0 when empty."""
    result = await session.scalar(
        select(func.max(Token.position)).where(
            Token.queue_id == queue_id, Token.status == TokenStatus.WAITING.value
        )
    )
    return int(result or 0)


async def insert_token(
    session: AsyncSession,
    queue_id: str,
    person_name: str,
    position: int,
    contact_number: str | None = None,
    service_type_id: str | None = None,
    priority_level: int = 1,
    created_at: datetime | None = None,
) -> Token:
    token = Token(
        queue_id=queue_id,
        person_name=person_name,
        contact_number=contact_number,
        service_type_id=service_type_id,
        priority_level=priority_level,
        position=position,
        status=TokenStatus.WAITING.value,
        created_at=created_at or utcnow(),
    )
    session.add(token)
    await session.flush()
    return token


async def list_waiting(session: AsyncSession, queue_id: str) -> List[Token]:
    """Return the waiting list of ``queue_id`` ordered by position."""
    result = await session.scalars(
        select(Token)
        .where(Token.queue_id == queue_id, Token.status == TokenStatus.WAITING.value)
        .order_by(Token.position)
        .execution_options(populate_existing=True)
    )
    return list(result.all())


async def list_tokens(
    session: AsyncSession, queue_id: str, since: datetime | None = None
) -> List[Token]:
    """Return every token of ``queue_id`` regardless of status."""
    stmt = select(Token).where(Token.queue_id == queue_id)
    if since is not None:
        stmt = stmt.where(Token.created_at >= since)
    result = await session.scalars(
        stmt.order_by(Token.position, Token.created_at).execution_options(
            populate_existing=True
        )
    )
    return list(result.all())


async def current_serving(session: AsyncSession, queue_id: str) -> Token | None:
    return await session.scalar(
        select(Token)
        .where(Token.queue_id == queue_id, Token.status == TokenStatus.SERVING.value)
        .order_by(Token.serving_at)
        .limit(1)
        .execution_options(populate_existing=True)
    )


async def waiting_positions(session: AsyncSession, queue_id: str) -> List[int]:
    result = await session.scalars(
        select(Token.position)
        .where(Token.queue_id == queue_id, Token.status == TokenStatus.WAITING.value)
        .order_by(Token.position)
    )
    return list(result.all())


async def count_added_since(session: AsyncSession, queue_id: str, since: datetime) -> int:
    result = await session.scalar(
        select(func.count(Token.id)).where(
            Token.queue_id == queue_id, Token.created_at >= since
        )
    )
    return int(result or 0)


async def transition(
    session: AsyncSession,
    token: Token,
    expected: TokenStatus,
    target: TokenStatus,
    at: datetime,
) -> bool:
    """Move ``token`` from ``expected`` to ``target`` stamping its timestamp.

    The update is conditional on the stored status so that a concurrent
    writer cannot be overwritten. Returns ``False`` when no row matched.
    """
    values = {"status": target.value, STATUS_TIMESTAMPS[target]: at}
    result = await session.execute(
        update(Token)
        .where(Token.id == token.id, Token.status == expected.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await session.refresh(token)
    return True


async def close_gap(session: AsyncSession, queue_id: str, position: int) -> None:
    """Shift waiting tokens behind ``position`` one place forward."""
    await session.execute(
        update(Token)
        .where(
            Token.queue_id == queue_id,
            Token.status == TokenStatus.WAITING.value,
            Token.position > position,
        )
        .values(position=Token.position - 1)
        .execution_options(synchronize_session=False)
    )


async def set_positions(session: AsyncSession, positions: Dict[str, int]) -> None:
    """Write ``positions`` (token id to position) for the given tokens."""
    for token_id, position in positions.items():
        await session.execute(
            update(Token)
            .where(Token.id == token_id)
            .values(position=position)
            .execution_options(synchronize_session=False)
        )
