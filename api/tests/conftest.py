"""Test configuration for API tests."""

import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.db import create_test_session  # noqa: E402
from api.queueboard.events import ChangeBus  # noqa: E402
from api.queueboard.services import (  # noqa: E402
    OutboxNotifier,
    QueueStore,
    TokenOrderingEngine,
)


class FakeClock:
    """Manually advanced clock handed to the engine."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
async def sessionmaker():
    maker, engine = await create_test_session()
    try:
        yield maker
    finally:
        await engine.dispose()


@pytest.fixture
def bus() -> ChangeBus:
    return ChangeBus(maxsize=10)


@pytest.fixture
def engine(sessionmaker, bus, clock) -> TokenOrderingEngine:
    return TokenOrderingEngine(
        sessionmaker, bus, OutboxNotifier(sessionmaker), timeout=5, clock=clock
    )


@pytest.fixture
def store(sessionmaker, bus) -> QueueStore:
    return QueueStore(sessionmaker, bus, timeout=5)


@pytest.fixture
async def queue(store):
    return (await store.create_queue("mgr-1", "Front desk")).unwrap()
