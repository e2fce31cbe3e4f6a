import asyncio
import contextlib
import pathlib
import sys
from datetime import timedelta

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.services import autoserve  # noqa: E402
from api.queueboard.services.autoserve import sweep  # noqa: E402
from api.queueboard.utils.clock import utcnow  # noqa: E402


async def _enable(store, queue_id, minutes=5):
    (
        await store.update_settings(
            queue_id, {"auto_serve_enabled": True, "auto_serve_minutes": minutes}
        )
    ).unwrap()


@pytest.mark.anyio
async def test_sweep_serves_head_once_due(engine, store, sessionmaker, queue):
    first = (await engine.add_token(queue.id, "Ann")).unwrap()
    (await engine.add_token(queue.id, "Ben")).unwrap()
    await _enable(store, queue.id)

    assert await sweep(engine, sessionmaker, now=utcnow() + timedelta(minutes=1)) == 0
    assert await sweep(engine, sessionmaker, now=utcnow() + timedelta(minutes=6)) == 1
    assert (await engine.get_token(first.id)).unwrap().status == "served"
    assert [t.person_name for t in (await engine.list_waiting(queue.id)).unwrap()] == ["Ben"]


@pytest.mark.anyio
async def test_sweep_waits_from_last_served_event(engine, store, sessionmaker, clock, queue):
    await _enable(store, queue.id, minutes=10)
    first = (await engine.add_token(queue.id, "Ann")).unwrap()
    (await engine.add_token(queue.id, "Ben")).unwrap()
    (await engine.serve_token(first.id)).unwrap()
    served_at = clock()
    assert await sweep(engine, sessionmaker, now=served_at + timedelta(minutes=9)) == 0
    assert await sweep(engine, sessionmaker, now=served_at + timedelta(minutes=10)) == 1


@pytest.mark.anyio
async def test_sweep_skips_paused_and_disabled_queues(engine, store, sessionmaker, queue):
    (await engine.add_token(queue.id, "Ann")).unwrap()
    later = utcnow() + timedelta(hours=1)
    assert await sweep(engine, sessionmaker, now=later) == 0
    await _enable(store, queue.id)
    (await store.pause(queue.id)).unwrap()
    assert await sweep(engine, sessionmaker, now=later) == 0


@pytest.mark.anyio
async def test_sweep_on_empty_queue_serves_nothing(engine, store, sessionmaker, queue):
    await _enable(store, queue.id)
    assert await sweep(engine, sessionmaker, now=utcnow() + timedelta(hours=1)) == 0


@pytest.mark.anyio
async def test_monitor_keeps_running_after_a_failed_sweep(
    engine, sessionmaker, monkeypatch, caplog
):
    calls = []
    done = asyncio.Event()

    async def flaky_sweep(*args):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("boom")
        done.set()
        return 0

    monkeypatch.setattr(autoserve, "sweep", flaky_sweep)
    task = asyncio.create_task(autoserve.monitor(engine, sessionmaker, interval=0))
    try:
        await asyncio.wait_for(done.wait(), timeout=1)
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    assert len(calls) >= 2
    assert "auto-serve sweep failed" in caplog.messages
