"""Rolling-window queue analytics.

:func:`compute` is a pure function over already loaded events and tokens.
:class:`AnalyticsService` loads the window from the database and caches the
serialised snapshot in Redis, keyed by the newest event id of the queue so
that any new event invalidates the entry.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import EventType, TokenStatus
from ..errors import NotFoundError, Result, ValidationError
from ..models import QueueEvent, Token
from ..repos_sqlalchemy import events_repo_sql, queues_repo_sql, tokens_repo_sql
from ..routes_metrics import analytics_cache_hits_total
from ..utils.clock import as_utc, round_half_up, utcnow
from .guard import guarded

logger = logging.getLogger("api.analytics")

WINDOWS = (7, 30)
PEAK_HOURS = 5
TREND_DAYS = 7


@dataclass
class AnalyticsSnapshot:
    window_days: int
    average_wait_time: int = 0
    total_served: int = 0
    total_cancelled: int = 0
    total_no_shows: int = 0
    average_service_time: int = 0
    cancellation_rate: int = 0
    no_show_rate: int = 0
    peak_hours: List[Dict[str, int]] = field(default_factory=list)
    hourly_wait_times: List[Dict[str, Any]] = field(default_factory=list)
    daily_wait_times: List[Dict[str, Any]] = field(default_factory=list)
    weekly_wait_times: List[Dict[str, Any]] = field(default_factory=list)
    queue_length_trend: List[Dict[str, Any]] = field(default_factory=list)
    wait_time_trend: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _mean(values: Sequence[int | float]) -> int:
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def _percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(part * 100 / total)


def _classify(event: QueueEvent, token_status: Dict[str, str]) -> Optional[str]:
    """Return the terminal outcome an event records, if any.

    Older logs wrote ``cancelled`` for no-shows as well; those are recognised
    through the token's stored status.
    """
    if event.event_type == EventType.CANCELLED.value and (
        token_status.get(event.token_id or "") == TokenStatus.NO_SHOW.value
    ):
        return EventType.NO_SHOW.value
    if event.event_type in (
        EventType.SERVED.value,
        EventType.CANCELLED.value,
        EventType.NO_SHOW.value,
    ):
        return event.event_type
    return None


def compute(
    events: Iterable[QueueEvent],
    tokens: Iterable[Token],
    window_days: int,
    now: datetime | None = None,
    tz: str = "UTC",
    default_service_minutes: int = 15,
) -> AnalyticsSnapshot:
    """Derive an :class:`AnalyticsSnapshot` for the ``window_days`` ending at ``now``.

    Events outside the window are ignored. Hours, days and weeks are bucketed
    in ``tz``; weeks start on Sunday. Every average and rate is rounded half
    up and is 0 when there is nothing to divide by.
    """
    if window_days not in WINDOWS:
        raise ValidationError("window must be 7 or 30 days", window=window_days)
    zone = ZoneInfo(tz)
    now = as_utc(now or utcnow())
    start = now - timedelta(days=window_days)
    token_status = {token.id: token.status for token in tokens}

    in_window = []
    for event in events:
        at = as_utc(event.created_at)
        if start <= at <= now:
            in_window.append((at.astimezone(zone), event))

    outcomes = Counter()
    served: List[tuple[datetime, QueueEvent]] = []
    for local, event in in_window:
        outcome = _classify(event, token_status)
        if outcome is not None:
            outcomes[outcome] += 1
        if outcome == EventType.SERVED.value:
            served.append((local, event))

    def waits(rows) -> List[int]:
        return [event.wait_time_minutes or 0 for _, event in rows]

    processed = sum(outcomes.values())
    snapshot = AnalyticsSnapshot(
        window_days=window_days,
        average_wait_time=_mean(waits(served)),
        total_served=outcomes[EventType.SERVED.value],
        total_cancelled=outcomes[EventType.CANCELLED.value],
        total_no_shows=outcomes[EventType.NO_SHOW.value],
        average_service_time=_mean(
            [
                event.service_duration_minutes
                if event.service_duration_minutes is not None
                else default_service_minutes
                for _, event in served
            ]
        ),
        cancellation_rate=_percent(outcomes[EventType.CANCELLED.value], processed),
        no_show_rate=_percent(outcomes[EventType.NO_SHOW.value], processed),
    )

    hour_counts = Counter(local.hour for local, _ in in_window)
    ranked = sorted(hour_counts.items(), key=lambda item: (-item[1], item[0]))
    snapshot.peak_hours = [
        {"hour": hour, "count": count} for hour, count in ranked[:PEAK_HOURS]
    ]

    snapshot.hourly_wait_times = [
        {
            "hour": f"{hour:02d}:00",
            "avg_wait_time": _mean(waits([r for r in served if r[0].hour == hour])),
        }
        for hour in range(24)
    ]

    today = now.astimezone(zone).date()

    def by_day(day: date) -> List[tuple[datetime, QueueEvent]]:
        return [row for row in served if row[0].date() == day]

    days = [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]
    snapshot.daily_wait_times = [
        {"date": day.isoformat(), "avg_wait_time": _mean(waits(by_day(day)))}
        for day in days
    ]

    # Python weekday(): Monday is 0, so Sunday-based offset is (weekday + 1) % 7
    first_week = days[0] - timedelta(days=(days[0].weekday() + 1) % 7)
    weeks = []
    week_start = first_week
    while week_start <= today:
        week_end = week_start + timedelta(days=6)
        rows = [row for row in served if week_start <= row[0].date() <= week_end]
        weeks.append({"week": week_start.isoformat(), "avg_wait_time": _mean(waits(rows))})
        week_start += timedelta(days=7)
    snapshot.weekly_wait_times = weeks

    trend_days = days[-TREND_DAYS:]
    snapshot.queue_length_trend = [
        {
            "date": day.isoformat(),
            "length": sum(
                1
                for local, event in in_window
                if local.date() == day and event.event_type == EventType.ADDED.value
            ),
        }
        for day in trend_days
    ]
    snapshot.wait_time_trend = [
        {"date": day.isoformat(), "avg_wait_time": _mean(waits(by_day(day)))}
        for day in trend_days
    ]
    return snapshot


class AnalyticsService:
    """Load a queue's window from the database and cache computed snapshots."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        redis: Any = None,
        *,
        timeout: float | None = 10.0,
        cache_secs: int = 300,
        tz: str = "UTC",
        default_service_minutes: int = 15,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._redis = redis
        self._timeout = timeout
        self._cache_secs = cache_secs
        self._tz = tz
        self._default_service_minutes = default_service_minutes

    async def snapshot(
        self, queue_id: str, window_days: int, now: datetime | None = None
    ) -> Result[Dict[str, Any]]:
        return await guarded(
            "analytics",
            self._snapshot(queue_id, window_days, now),
            self._timeout,
            queue=queue_id,
        )

    async def _cached(self, key: str) -> Optional[Dict[str, Any]]:
        if self._redis is None:
            return None
        try:
            cached = await self._redis.get(key)
        except Exception:  # pragma: no cover - cache outage falls through
            logger.warning("analytics cache read failed", exc_info=True)
            return None
        if not cached:
            return None
        analytics_cache_hits_total.inc()
        return json.loads(cached)

    async def _store(self, key: str, data: Dict[str, Any]) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(key, json.dumps(data), ex=self._cache_secs)
        except Exception:  # pragma: no cover
            logger.warning("analytics cache write failed", exc_info=True)

    async def _snapshot(
        self, queue_id: str, window_days: int, now: datetime | None
    ) -> Dict[str, Any]:
        if window_days not in WINDOWS:
            raise ValidationError("window must be 7 or 30 days", window=window_days)
        now = as_utc(now or utcnow())
        since = now - timedelta(days=window_days)
        async with self._sessionmaker() as session:
            if await queues_repo_sql.get_queue(session, queue_id) is None:
                raise NotFoundError("queue not found", queue_id=queue_id)
            version = await events_repo_sql.latest_id(session, queue_id)
            key = f"analytics:{queue_id}:{window_days}:{version}"
            cached = await self._cached(key)
            if cached is not None:
                return cached
            events = await events_repo_sql.list_range(session, queue_id, since, now)
            tokens = await tokens_repo_sql.list_tokens(session, queue_id)
        data = compute(
            events,
            tokens,
            window_days,
            now=now,
            tz=self._tz,
            default_service_minutes=self._default_service_minutes,
        ).to_dict()
        await self._store(key, data)
        return data


__all__ = ["AnalyticsService", "AnalyticsSnapshot", "WINDOWS", "compute"]
