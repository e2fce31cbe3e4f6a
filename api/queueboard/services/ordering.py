"""Token ordering engine.

The engine owns the waiting list of every queue: it assigns positions, moves
tokens through their status lifecycle, rewrites the order on request and
derives wait and service times from the token timestamps.

Invariants kept here:

* waiting positions of a queue are always ``1..N`` without gaps or duplicates;
* a status change and the event log entry describing it commit in the same
  transaction;
* position-mutating operations on one queue never interleave inside this
  process (a per-queue :class:`asyncio.Lock`), and every transaction re-checks
  the position sequence before commit so that a race with another process
  surfaces as :class:`ConflictError` instead of corrupting the order.

All public operations return a :class:`Result` and never raise.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import STATUS_EVENTS, EventType, TokenStatus, can_transition
from ..errors import ConflictError, NotFoundError, Result, ValidationError
from ..events import ChangeBus, Subscription
from ..models import Token
from ..repos_sqlalchemy import (
    events_repo_sql,
    queues_repo_sql,
    service_types_repo_sql,
    settings_repo_sql,
    tokens_repo_sql,
)
from ..routes_metrics import (
    token_transitions_total,
    tokens_added_total,
    tokens_reordered_total,
    wait_time_minutes,
)
from ..utils.clock import as_utc, minutes_between, utcnow
from .guard import guarded
from .notifications import LoggingNotifier, Notifier

logger = logging.getLogger("api.engine")

PRIORITY_LEVELS = (1, 2, 3)

_NOT_ELIGIBLE = {
    TokenStatus.SERVING: "token is not waiting",
    TokenStatus.SERVED: "token is not in a servable state",
    TokenStatus.CANCELLED: "token can no longer be cancelled",
    TokenStatus.NO_SHOW: "token can no longer be marked as no-show",
}


@dataclass
class _Outcome:
    """A committed transition plus what must happen after commit."""

    token: Token
    near_front: List[Token] = field(default_factory=list)


class TokenOrderingEngine:
    """Queue ordering and status transitions over the token tables."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        bus: ChangeBus | None = None,
        notifier: Notifier | None = None,
        *,
        timeout: float | None = 10.0,
        near_front_threshold: int = 3,
        default_service_minutes: int = 15,
        tz: str = "UTC",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessionmaker = sessionmaker
        self.bus = bus or ChangeBus()
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._timeout = timeout
        self._near_front = near_front_threshold
        self._default_service_minutes = default_service_minutes
        self._tz = ZoneInfo(tz)
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _lock(self, queue_id: str) -> asyncio.Lock:
        return self._locks[queue_id]

    # ------------------------------------------------------------------
    # Commands

    async def add_token(
        self,
        queue_id: str,
        person_name: str,
        contact_number: str | None = None,
        service_type_id: str | None = None,
        priority_level: int = 1,
    ) -> Result[Token]:
        """Append a person to the end of the waiting list."""
        return await guarded(
            "add_token",
            self._add_token(
                queue_id, person_name, contact_number, service_type_id, priority_level
            ),
            self._timeout,
            queue=queue_id,
        )

    async def start_serving(self, token_id: str) -> Result[Token]:
        """Call a waiting token to the counter (``waiting -> serving``)."""
        return await guarded(
            "start_serving",
            self._finish(token_id, TokenStatus.SERVING),
            self._timeout,
            token=token_id,
        )

    async def serve_token(self, token_id: str) -> Result[Token]:
        """Complete service for a waiting or serving token."""
        return await guarded(
            "serve_token",
            self._finish(token_id, TokenStatus.SERVED),
            self._timeout,
            token=token_id,
        )

    async def serve_next(self, queue_id: str) -> Result[Token]:
        """Serve the token at the counter, or the head of the waiting list."""
        return await guarded(
            "serve_next", self._serve_next(queue_id), self._timeout, queue=queue_id
        )

    async def cancel_token(self, token_id: str) -> Result[Token]:
        return await guarded(
            "cancel_token",
            self._finish(token_id, TokenStatus.CANCELLED),
            self._timeout,
            token=token_id,
        )

    async def mark_no_show(self, token_id: str) -> Result[Token]:
        return await guarded(
            "mark_no_show",
            self._finish(token_id, TokenStatus.NO_SHOW),
            self._timeout,
            token=token_id,
        )

    async def reorder_tokens(
        self, queue_id: str, ordered_token_ids: Sequence[str]
    ) -> Result[List[Token]]:
        """Rewrite waiting positions to follow ``ordered_token_ids``.

        The list must name exactly the tokens currently waiting; a list built
        from a stale view is rejected with :class:`ConflictError`.
        """
        return await guarded(
            "reorder_tokens",
            self._reorder(queue_id, list(ordered_token_ids)),
            self._timeout,
            queue=queue_id,
        )

    async def move_token(self, token_id: str, new_position: int) -> Result[List[Token]]:
        """Move one waiting token to ``new_position`` (clamped to ``1..N``)."""
        return await guarded(
            "move_token",
            self._move(token_id, new_position),
            self._timeout,
            token=token_id,
        )

    # ------------------------------------------------------------------
    # Views

    async def list_waiting(self, queue_id: str) -> Result[List[Token]]:
        """Return the waiting tokens of ``queue_id`` in position order."""
        return await guarded(
            "list_waiting", self._read_waiting(queue_id), self._timeout, queue=queue_id
        )

    async def list_tokens(
        self, queue_id: str, since: datetime | None = None
    ) -> Result[List[Token]]:
        """Return every token of ``queue_id`` regardless of status."""
        return await guarded(
            "list_tokens", self._read_all(queue_id, since), self._timeout, queue=queue_id
        )

    async def next_token(self, queue_id: str) -> Result[Optional[Token]]:
        """Return the token at position 1 or ``None`` for an empty queue."""
        return await guarded(
            "next_token", self._read_next(queue_id), self._timeout, queue=queue_id
        )

    async def current_serving(self, queue_id: str) -> Result[Optional[Token]]:
        return await guarded(
            "current_serving",
            self._read_serving(queue_id),
            self._timeout,
            queue=queue_id,
        )

    async def get_token(self, token_id: str) -> Result[Token]:
        return await guarded(
            "get_token", self._read_token(token_id), self._timeout, token=token_id
        )

    def subscribe(self, queue_id: str) -> Subscription:
        """Return a cancellable handle receiving change notices for ``queue_id``."""
        return self.bus.subscribe(queue_id)

    # ------------------------------------------------------------------
    # Implementation

    async def _require_queue(self, session: AsyncSession, queue_id: str):
        queue = await queues_repo_sql.get_queue(session, queue_id)
        if queue is None:
            raise NotFoundError("queue not found", queue_id=queue_id)
        return queue

    async def _verify_positions(self, session: AsyncSession, queue_id: str) -> None:
        positions = await tokens_repo_sql.waiting_positions(session, queue_id)
        if positions != list(range(1, len(positions) + 1)):
            logger.warning(
                "waiting positions out of sequence: %s", positions, extra={"queue": queue_id}
            )
            raise ConflictError("queue was modified concurrently; retry", queue_id=queue_id)

    def _start_of_day(self, now: datetime) -> datetime:
        local = as_utc(now).astimezone(self._tz)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return as_utc(midnight)

    async def _add_token(
        self,
        queue_id: str,
        person_name: str,
        contact_number: str | None,
        service_type_id: str | None,
        priority_level: int,
    ) -> Token:
        name = (person_name or "").strip()
        if not name:
            raise ValidationError("person name is required")
        if priority_level not in PRIORITY_LEVELS:
            raise ValidationError(
                "priority level must be 1, 2 or 3", priority_level=priority_level
            )
        contact = (contact_number or "").strip() or None

        async with self._lock(queue_id):
            async with self._sessionmaker() as session:
                async with session.begin():
                    queue = await self._require_queue(session, queue_id)
                    if queue.status == "closed":
                        raise ConflictError("queue is closed", queue_id=queue_id)
                    settings = await settings_repo_sql.get_or_create(session, queue_id)
                    if settings.is_paused:
                        raise ConflictError(
                            "queue is paused",
                            queue_id=queue_id,
                            reason=settings.pause_reason,
                        )
                    now = self._clock()
                    if settings.max_tokens_per_day is not None:
                        added_today = await tokens_repo_sql.count_added_since(
                            session, queue_id, self._start_of_day(now)
                        )
                        if added_today >= settings.max_tokens_per_day:
                            raise ConflictError(
                                "daily token limit reached",
                                limit=settings.max_tokens_per_day,
                            )
                    if service_type_id:
                        service_type = await service_types_repo_sql.get(
                            session, service_type_id
                        )
                        if (
                            service_type is None
                            or service_type.queue_id != queue_id
                            or not service_type.is_active
                        ):
                            raise NotFoundError(
                                "service type not found", service_type_id=service_type_id
                            )
                    position = (
                        await tokens_repo_sql.max_waiting_position(session, queue_id) + 1
                    )
                    token = await tokens_repo_sql.insert_token(
                        session,
                        queue_id=queue_id,
                        person_name=name,
                        position=position,
                        contact_number=contact,
                        service_type_id=service_type_id or None,
                        priority_level=priority_level,
                        created_at=now,
                    )
                    await events_repo_sql.append(
                        session, queue_id, token.id, EventType.ADDED, at=now
                    )
                    await self._verify_positions(session, queue_id)

        tokens_added_total.inc()
        logger.info(
            "token added at position %d", token.position, extra={"queue": queue_id, "token": token.id}
        )
        await self.bus.publish(queue_id, "tokens")
        if token.position <= self._near_front:
            await self._notify_near_front([token])
        return token

    async def _queue_of(self, token_id: str) -> str:
        async with self._sessionmaker() as session:
            token = await tokens_repo_sql.get_token(session, token_id)
        if token is None:
            raise NotFoundError("token not found", token_id=token_id)
        return token.queue_id

    async def _finish(self, token_id: str, target: TokenStatus) -> Token:
        queue_id = await self._queue_of(token_id)
        async with self._lock(queue_id):
            async with self._sessionmaker() as session:
                async with session.begin():
                    token = await tokens_repo_sql.get_token(session, token_id)
                    if token is None:
                        raise NotFoundError("token not found", token_id=token_id)
                    outcome = await self._transition(session, token, target)
        return await self._after_transition(outcome, target)

    async def _serve_next(self, queue_id: str) -> Token:
        async with self._lock(queue_id):
            async with self._sessionmaker() as session:
                async with session.begin():
                    await self._require_queue(session, queue_id)
                    token = await tokens_repo_sql.current_serving(session, queue_id)
                    if token is None:
                        waiting = await tokens_repo_sql.list_waiting(session, queue_id)
                        if not waiting:
                            raise NotFoundError("no tokens waiting", queue_id=queue_id)
                        token = waiting[0]
                    outcome = await self._transition(session, token, TokenStatus.SERVED)
        return await self._after_transition(outcome, TokenStatus.SERVED)

    async def _service_estimate(self, session: AsyncSession, token: Token) -> int:
        if token.service_type_id:
            service_type = await service_types_repo_sql.get(session, token.service_type_id)
            if service_type is not None:
                return int(service_type.estimated_duration_minutes)
        return self._default_service_minutes

    async def _transition(
        self, session: AsyncSession, token: Token, target: TokenStatus
    ) -> _Outcome:
        """Apply ``target`` to ``token`` inside the caller's transaction."""
        current = TokenStatus(token.status)
        if not can_transition(current, target):
            raise NotFoundError(_NOT_ELIGIBLE[target], token_id=token.id, status=current.value)
        queue_id = token.queue_id
        if target is TokenStatus.SERVING:
            serving = await tokens_repo_sql.current_serving(session, queue_id)
            if serving is not None:
                raise ConflictError(
                    "another token is being served", serving_token_id=serving.id
                )

        now = self._clock()
        left_waiting_at = token.serving_at or now
        waited = minutes_between(token.created_at, left_waiting_at)
        duration = None
        if target is TokenStatus.SERVED:
            if token.serving_at is not None:
                duration = minutes_between(token.serving_at, now)
            else:
                duration = await self._service_estimate(session, token)

        vacated = token.position if current is TokenStatus.WAITING else None
        if not await tokens_repo_sql.transition(session, token, current, target, now):
            raise NotFoundError(_NOT_ELIGIBLE[target], token_id=token.id)
        if vacated is not None:
            await tokens_repo_sql.close_gap(session, queue_id, vacated)
        await events_repo_sql.append(
            session,
            queue_id,
            token.id,
            STATUS_EVENTS[target],
            wait_time_minutes=waited,
            service_duration_minutes=duration,
            at=now,
        )
        await self._verify_positions(session, queue_id)

        outcome = _Outcome(token=token)
        if target is TokenStatus.SERVED:
            waiting = await tokens_repo_sql.list_waiting(session, queue_id)
            outcome.near_front = waiting[: self._near_front]
            wait_time_minutes.observe(waited)
        return outcome

    async def _after_transition(self, outcome: _Outcome, target: TokenStatus) -> Token:
        token = outcome.token
        token_transitions_total.labels(status=target.value).inc()
        logger.info(
            "token %s", target.value, extra={"queue": token.queue_id, "token": token.id}
        )
        await self.bus.publish(token.queue_id, "tokens")
        if target is TokenStatus.SERVED:
            await self._notify(self._notifier.served(token), token)
            await self._notify_near_front(outcome.near_front)
        return token

    async def _notify(self, awaitable, token: Token) -> None:
        try:
            await awaitable
        except Exception:  # pragma: no cover
            logger.exception(
                "notification failed", extra={"queue": token.queue_id, "token": token.id}
            )

    async def _notify_near_front(self, tokens: List[Token]) -> None:
        for token in tokens:
            await self._notify(self._notifier.near_front(token, token.position), token)

    async def _apply_order(
        self, session: AsyncSession, queue_id: str, ordered_ids: List[str]
    ) -> tuple[List[Token], bool]:
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("token ids must be unique")
        waiting = await tokens_repo_sql.list_waiting(session, queue_id)
        current = {token.id: token.position for token in waiting}
        if set(ordered_ids) != set(current):
            raise ConflictError(
                "token list does not match the waiting list",
                expected=len(current),
                received=len(ordered_ids),
            )
        changes = {
            token_id: index
            for index, token_id in enumerate(ordered_ids, start=1)
            if current[token_id] != index
        }
        if not changes:
            return waiting, False
        await tokens_repo_sql.set_positions(session, changes)
        first_moved = next(token_id for token_id in ordered_ids if token_id in changes)
        await events_repo_sql.append(
            session, queue_id, first_moved, EventType.REORDERED, at=self._clock()
        )
        await self._verify_positions(session, queue_id)
        return await tokens_repo_sql.list_waiting(session, queue_id), True

    async def _reorder(self, queue_id: str, ordered_ids: List[str]) -> List[Token]:
        async with self._lock(queue_id):
            async with self._sessionmaker() as session:
                async with session.begin():
                    await self._require_queue(session, queue_id)
                    tokens, changed = await self._apply_order(
                        session, queue_id, ordered_ids
                    )
        if changed:
            tokens_reordered_total.inc()
            logger.info("waiting list reordered", extra={"queue": queue_id})
            await self.bus.publish(queue_id, "tokens")
        return tokens

    async def _move(self, token_id: str, new_position: int) -> List[Token]:
        queue_id = await self._queue_of(token_id)
        async with self._sessionmaker() as session:
            waiting = await tokens_repo_sql.list_waiting(session, queue_id)
        ids = [token.id for token in waiting]
        if token_id not in ids:
            raise NotFoundError("token is not waiting", token_id=token_id)
        ids.remove(token_id)
        index = min(max(int(new_position), 1), len(ids) + 1) - 1
        ids.insert(index, token_id)
        return await self._reorder(queue_id, ids)

    async def _read_waiting(self, queue_id: str) -> List[Token]:
        async with self._sessionmaker() as session:
            await self._require_queue(session, queue_id)
            return await tokens_repo_sql.list_waiting(session, queue_id)

    async def _read_all(self, queue_id: str, since: datetime | None) -> List[Token]:
        async with self._sessionmaker() as session:
            await self._require_queue(session, queue_id)
            return await tokens_repo_sql.list_tokens(session, queue_id, since)

    async def _read_next(self, queue_id: str) -> Optional[Token]:
        waiting = await self._read_waiting(queue_id)
        return waiting[0] if waiting else None

    async def _read_serving(self, queue_id: str) -> Optional[Token]:
        async with self._sessionmaker() as session:
            await self._require_queue(session, queue_id)
            return await tokens_repo_sql.current_serving(session, queue_id)

    async def _read_token(self, token_id: str) -> Token:
        async with self._sessionmaker() as session:
            token = await tokens_repo_sql.get_token(session, token_id)
        if token is None:
            raise NotFoundError("token not found", token_id=token_id)
        return token

    async def recent_service_minutes(self, queue_id: str, days: int = 7) -> float:
        """Mean recorded service minutes over ``days`` or the configured default."""
        since = self._clock() - timedelta(days=days)
        async with self._sessionmaker() as session:
            mean = await events_repo_sql.mean_service_minutes(session, queue_id, since)
        return mean if mean else float(self._default_service_minutes)


__all__ = ["PRIORITY_LEVELS", "TokenOrderingEngine"]
