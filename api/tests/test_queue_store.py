import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.errors import ConflictError, NotFoundError, ValidationError  # noqa: E402


@pytest.mark.anyio
async def test_create_queue_creates_default_settings(store, queue):
    assert queue.status == "active"
    settings = (await store.get_settings(queue.id)).unwrap()
    assert settings.is_paused is False
    assert settings.auto_serve_minutes == 5
    assert settings.max_tokens_per_day is None


@pytest.mark.anyio
async def test_list_queues_newest_first(store):
    (await store.create_queue("m", "first")).unwrap()
    (await store.create_queue("m", "second")).unwrap()
    names = [q.name for q in (await store.list_queues("m")).unwrap()]
    assert names == ["second", "first"]


@pytest.mark.anyio
async def test_invalid_input(store, queue):
    assert isinstance((await store.create_queue("m", "  ")).error, ValidationError)
    assert isinstance((await store.get_queue("nope")).error, NotFoundError)
    result = await store.update_settings(queue.id, {"auto_serve_minutes": 0})
    assert isinstance(result.error, ValidationError)


@pytest.mark.anyio
async def test_pause_and_resume_publish_changes(store, bus, queue):
    sub = bus.subscribe(queue.id)
    settings = (await store.pause(queue.id, " lunch ")).unwrap()
    assert settings.is_paused is True
    assert settings.pause_reason == "lunch"
    assert (await store.get_queue(queue.id)).unwrap().status == "paused"
    tables = {(await sub.get(timeout=1)).table for _ in range(2)}
    assert tables == {"queue_settings", "queues"}

    settings = (await store.resume(queue.id)).unwrap()
    assert settings.is_paused is False
    assert settings.pause_reason is None
    assert (await store.get_queue(queue.id)).unwrap().status == "active"


@pytest.mark.anyio
async def test_service_type_catalogue(store, queue):
    b = (await store.create_service_type(queue.id, "B service", 10)).unwrap()
    (await store.create_service_type(queue.id, "A service", 30)).unwrap()
    names = [s.name for s in (await store.list_service_types(queue.id)).unwrap()]
    assert names == ["A service", "B service"]

    updated = (
        await store.update_service_type(b.id, {"estimated_duration_minutes": 12})
    ).unwrap()
    assert updated.estimated_duration_minutes == 12

    (await store.deactivate_service_type(b.id)).unwrap()
    names = [s.name for s in (await store.list_service_types(queue.id)).unwrap()]
    assert names == ["A service"]
    result = await store.create_service_type(queue.id, "C", 0)
    assert isinstance(result.error, ValidationError)


@pytest.mark.anyio
async def test_closed_queue_rejects_tokens_until_reopened(store, engine, bus, queue):
    sub = bus.subscribe(queue.id)
    closed = (await store.close_queue(queue.id)).unwrap()
    assert closed.status == "closed"
    assert (await sub.get(timeout=1)).table == "queues"

    result = await engine.add_token(queue.id, "Ann")
    assert isinstance(result.error, ConflictError)
    assert result.error.message == "queue is closed"

    # pausing a closed queue leaves it closed
    (await store.pause(queue.id, "lunch")).unwrap()
    assert (await store.get_queue(queue.id)).unwrap().status == "closed"

    reopened = (await store.reopen_queue(queue.id)).unwrap()
    assert reopened.status == "paused"
    (await store.resume(queue.id)).unwrap()
    assert (await engine.add_token(queue.id, "Ann")).unwrap().position == 1

    missing = await store.close_queue("nope")
    assert isinstance(missing.error, NotFoundError)
