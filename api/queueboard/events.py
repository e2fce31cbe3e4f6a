# events.py

"""Per-queue change notifications.

Subscribers receive :class:`ChangeNotice` objects meaning "something in table
X of queue Y changed; re-fetch". Delivery is at-least-once and notices carry no
delta, so a subscriber that falls behind loses nothing by having notices
coalesced: when its queue is full the oldest pending notice is dropped.

Notices are optionally mirrored to Redis pub/sub on ``rt:queue:{queue_id}`` so
that other processes can relay them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .utils.clock import utcnow

logger = logging.getLogger("api.events")

CHANNEL_PREFIX = "rt:queue:"


@dataclass(frozen=True)
class ChangeNotice:
    """A change signal for ``table`` within ``queue_id``."""

    queue_id: str
    table: str
    ts: float = field(default_factory=lambda: utcnow().timestamp())

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class Subscription:
    """Cancellable handle returned by :meth:`ChangeBus.subscribe`."""

    def __init__(self, bus: "ChangeBus", queue_id: str, maxsize: int) -> None:
        self.queue_id = queue_id
        self._bus = bus
        self._queue: asyncio.Queue[Optional[ChangeNotice]] = asyncio.Queue(maxsize=maxsize)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _offer(self, notice: ChangeNotice) -> None:
        if self._cancelled:
            return
        try:
            self._queue.put_nowait(notice)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(notice)

    async def get(self, timeout: float | None = None) -> Optional[ChangeNotice]:
        """Wait for the next notice.

        Returns ``None`` when ``timeout`` elapses or the subscription is
        cancelled.
        """
        if self._cancelled and self._queue.empty():
            return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def cancel(self) -> None:
        """Stop receiving notices and wake any pending :meth:`get`."""
        if self._cancelled:
            return
        self._cancelled = True
        self._bus._unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeNotice:
        notice = await self.get()
        if notice is None:
            raise StopAsyncIteration
        return notice


class ChangeBus:
    """Dispatch change notices to per-queue subscribers."""

    def __init__(self, redis: Any = None, maxsize: int = 100) -> None:
        self._subs: Dict[str, List[Subscription]] = defaultdict(list)
        self._redis = redis
        self._maxsize = maxsize

    def subscribe(self, queue_id: str) -> Subscription:
        """Register interest in changes to ``queue_id``."""
        sub = Subscription(self, queue_id, self._maxsize)
        self._subs[queue_id].append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        subs = self._subs.get(sub.queue_id, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subs.pop(sub.queue_id, None)

    def subscriber_count(self, queue_id: str) -> int:
        return len(self._subs.get(queue_id, []))

    async def publish(self, queue_id: str, table: str) -> ChangeNotice:
        """Broadcast a change in ``table`` for ``queue_id``."""
        notice = ChangeNotice(queue_id=queue_id, table=table)
        for sub in list(self._subs.get(queue_id, [])):
            sub._offer(notice)
        if self._redis is not None:
            try:
                await self._redis.publish(CHANNEL_PREFIX + queue_id, notice.to_json())
            except Exception:  # pragma: no cover - best effort
                logger.warning("redis mirror failed", extra={"queue": queue_id})
        return notice


__all__ = ["CHANNEL_PREFIX", "ChangeBus", "ChangeNotice", "Subscription"]
