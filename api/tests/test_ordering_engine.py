import asyncio
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.errors import (  # noqa: E402
    ConflictError,
    NotFoundError,
    OperationTimeout,
    ValidationError,
)
from api.queueboard.repos_sqlalchemy import events_repo_sql, tokens_repo_sql  # noqa: E402
from api.queueboard.services import TokenOrderingEngine  # noqa: E402


async def _add(engine, queue_id, *names):
    tokens = []
    for name in names:
        tokens.append((await engine.add_token(queue_id, name)).unwrap())
    return tokens


async def _positions(engine, queue_id):
    waiting = (await engine.list_waiting(queue_id)).unwrap()
    return {token.person_name: token.position for token in waiting}


async def _events(sessionmaker, token_id):
    async with sessionmaker() as session:
        return await events_repo_sql.list_for_token(session, token_id)


@pytest.mark.anyio
async def test_add_assigns_next_position(engine, queue):
    first, second, third = await _add(engine, queue.id, "Ann", "Ben", "Cat")
    assert (first.position, second.position, third.position) == (1, 2, 3)
    assert first.status == "waiting"


@pytest.mark.anyio
async def test_add_validates_input(engine, queue):
    result = await engine.add_token(queue.id, "   ")
    assert isinstance(result.error, ValidationError)
    result = await engine.add_token(queue.id, "Ann", priority_level=5)
    assert isinstance(result.error, ValidationError)
    result = await engine.add_token("missing", "Ann")
    assert isinstance(result.error, NotFoundError)


@pytest.mark.anyio
async def test_serving_head_compacts_positions(engine, queue):
    first, _, _ = await _add(engine, queue.id, "Ann", "Ben", "Cat")
    served = (await engine.serve_token(first.id)).unwrap()
    assert served.status == "served"
    assert served.served_at is not None
    assert await _positions(engine, queue.id) == {"Ben": 1, "Cat": 2}


@pytest.mark.anyio
async def test_cancel_middle_token_closes_gap(engine, queue):
    _, middle, _ = await _add(engine, queue.id, "Ann", "Ben", "Cat")
    (await engine.cancel_token(middle.id)).unwrap()
    assert await _positions(engine, queue.id) == {"Ann": 1, "Cat": 2}
    added = (await engine.add_token(queue.id, "Dan")).unwrap()
    assert added.position == 3


@pytest.mark.anyio
async def test_terminal_token_cannot_transition_again(engine, sessionmaker, queue):
    (token,) = await _add(engine, queue.id, "Ann")
    (await engine.serve_token(token.id)).unwrap()
    for op in (engine.serve_token, engine.cancel_token, engine.mark_no_show):
        result = await op(token.id)
        assert isinstance(result.error, NotFoundError)
    events = await _events(sessionmaker, token.id)
    assert [event.event_type for event in events] == ["added", "served"]


@pytest.mark.anyio
async def test_each_transition_appends_one_matching_event(engine, sessionmaker, queue):
    served, cancelled, no_show = await _add(engine, queue.id, "Ann", "Ben", "Cat")
    (await engine.serve_token(served.id)).unwrap()
    (await engine.cancel_token(cancelled.id)).unwrap()
    (await engine.mark_no_show(no_show.id)).unwrap()
    for token, kind in ((served, "served"), (cancelled, "cancelled"), (no_show, "no_show")):
        events = await _events(sessionmaker, token.id)
        assert [event.event_type for event in events] == ["added", kind]
        assert events[-1].queue_id == queue.id
        assert events[-1].token_id == token.id


@pytest.mark.anyio
async def test_no_show_stamps_its_own_timestamp(engine, queue):
    (token,) = await _add(engine, queue.id, "Ann")
    marked = (await engine.mark_no_show(token.id)).unwrap()
    assert marked.status == "no_show"
    assert marked.no_show_at is not None
    assert marked.cancelled_at is None and marked.served_at is None


@pytest.mark.anyio
async def test_wait_and_default_service_minutes(engine, sessionmaker, clock, queue):
    (token,) = await _add(engine, queue.id, "Ann")
    clock.advance(minutes=10, seconds=20)
    (await engine.serve_token(token.id)).unwrap()
    served = (await _events(sessionmaker, token.id))[-1]
    assert served.wait_time_minutes == 10
    assert served.service_duration_minutes == 15


@pytest.mark.anyio
async def test_service_type_estimate_used_without_serving_phase(
    engine, store, sessionmaker, queue
):
    service = (await store.create_service_type(queue.id, "Passport", 25)).unwrap()
    token = (
        await engine.add_token(queue.id, "Ann", service_type_id=service.id)
    ).unwrap()
    (await engine.serve_token(token.id)).unwrap()
    served = (await _events(sessionmaker, token.id))[-1]
    assert served.service_duration_minutes == 25


@pytest.mark.anyio
async def test_serving_phase_measures_duration(engine, sessionmaker, clock, queue):
    first, second = await _add(engine, queue.id, "Ann", "Ben")
    clock.advance(minutes=4)
    serving = (await engine.start_serving(first.id)).unwrap()
    assert serving.status == "serving"
    assert await _positions(engine, queue.id) == {"Ben": 1}

    conflict = await engine.start_serving(second.id)
    assert isinstance(conflict.error, ConflictError)

    clock.advance(minutes=6)
    (await engine.serve_token(first.id)).unwrap()
    events = await _events(sessionmaker, first.id)
    assert [event.event_type for event in events] == ["added", "serving", "served"]
    assert events[-1].wait_time_minutes == 4
    assert events[-1].service_duration_minutes == 6


@pytest.mark.anyio
async def test_serve_next_prefers_token_at_counter(engine, queue):
    first, second = await _add(engine, queue.id, "Ann", "Ben")
    (await engine.start_serving(second.id)).unwrap()
    assert (await engine.current_serving(queue.id)).unwrap().id == second.id
    served = (await engine.serve_next(queue.id)).unwrap()
    assert served.id == second.id
    served = (await engine.serve_next(queue.id)).unwrap()
    assert served.id == first.id
    result = await engine.serve_next(queue.id)
    assert isinstance(result.error, NotFoundError)


@pytest.mark.anyio
async def test_next_token_views(engine, queue):
    assert (await engine.next_token(queue.id)).unwrap() is None
    first, _ = await _add(engine, queue.id, "Ann", "Ben")
    assert (await engine.next_token(queue.id)).unwrap().id == first.id
    (await engine.cancel_token(first.id)).unwrap()
    everything = (await engine.list_tokens(queue.id)).unwrap()
    assert {token.status for token in everything} == {"waiting", "cancelled"}


@pytest.mark.anyio
async def test_reorder_rewrites_positions(engine, sessionmaker, queue):
    t1, t2, t3 = await _add(engine, queue.id, "t1", "t2", "t3")
    tokens = (await engine.reorder_tokens(queue.id, [t3.id, t1.id, t2.id])).unwrap()
    assert [(token.person_name, token.position) for token in tokens] == [
        ("t3", 1),
        ("t1", 2),
        ("t2", 3),
    ]
    async with sessionmaker() as session:
        events = await events_repo_sql.list_range(
            session, queue.id, t1.created_at
        )
    reordered = [event for event in events if event.event_type == "reordered"]
    assert len(reordered) == 1
    assert reordered[0].token_id == t3.id


@pytest.mark.anyio
async def test_reorder_same_order_writes_nothing(engine, sessionmaker, bus, queue):
    t1, t2 = await _add(engine, queue.id, "t1", "t2")
    sub = bus.subscribe(queue.id)
    (await engine.reorder_tokens(queue.id, [t1.id, t2.id])).unwrap()
    assert sub.pending() == 0
    async with sessionmaker() as session:
        events = await events_repo_sql.list_range(session, queue.id, t1.created_at)
    assert "reordered" not in {event.event_type for event in events}


@pytest.mark.anyio
async def test_reorder_rejects_stale_or_duplicate_lists(engine, queue):
    t1, t2, t3 = await _add(engine, queue.id, "t1", "t2", "t3")
    stale = await engine.reorder_tokens(queue.id, [t2.id, t1.id])
    assert isinstance(stale.error, ConflictError)
    duplicate = await engine.reorder_tokens(queue.id, [t1.id, t1.id, t2.id])
    assert isinstance(duplicate.error, ValidationError)
    assert await _positions(engine, queue.id) == {"t1": 1, "t2": 2, "t3": 3}


@pytest.mark.anyio
async def test_move_token_is_clamped(engine, queue):
    t1, _, _ = await _add(engine, queue.id, "t1", "t2", "t3")
    (await engine.move_token(t1.id, 99)).unwrap()
    assert await _positions(engine, queue.id) == {"t2": 1, "t3": 2, "t1": 3}
    (await engine.move_token(t1.id, 0)).unwrap()
    assert await _positions(engine, queue.id) == {"t1": 1, "t2": 2, "t3": 3}


@pytest.mark.anyio
async def test_paused_queue_rejects_new_tokens(engine, store, queue):
    (await store.pause(queue.id, "lunch")).unwrap()
    result = await engine.add_token(queue.id, "Ann")
    assert isinstance(result.error, ConflictError)
    (await store.resume(queue.id)).unwrap()
    assert (await engine.add_token(queue.id, "Ann")).unwrap().position == 1


@pytest.mark.anyio
async def test_daily_limit(engine, store, clock, queue):
    (await store.update_settings(queue.id, {"max_tokens_per_day": 2})).unwrap()
    await _add(engine, queue.id, "Ann", "Ben")
    result = await engine.add_token(queue.id, "Cat")
    assert isinstance(result.error, ConflictError)
    clock.advance(days=1)
    assert (await engine.add_token(queue.id, "Cat")).ok


@pytest.mark.anyio
async def test_operation_timeout(sessionmaker, clock, queue, monkeypatch):
    async def slow(*args, **kwargs):
        await asyncio.sleep(1)
        return 0

    monkeypatch.setattr(tokens_repo_sql, "max_waiting_position", slow)
    engine = TokenOrderingEngine(sessionmaker, timeout=0.05, clock=clock)
    result = await engine.add_token(queue.id, "Ann")
    assert isinstance(result.error, OperationTimeout)
    monkeypatch.undo()
    assert (await engine.add_token(queue.id, "Ann")).unwrap().position == 1


@pytest.mark.anyio
async def test_concurrent_adds_keep_positions_dense(engine, queue):
    results = await asyncio.gather(
        *(engine.add_token(queue.id, f"p{i}") for i in range(8))
    )
    assert all(result.ok for result in results)
    positions = sorted((await _positions(engine, queue.id)).values())
    assert positions == list(range(1, 9))


@pytest.mark.anyio
async def test_subscribers_are_told_about_token_changes(engine, queue):
    sub = engine.subscribe(queue.id)
    (token,) = await _add(engine, queue.id, "Ann")
    notice = await sub.get(timeout=1)
    assert notice.queue_id == queue.id
    assert notice.table == "tokens"
    sub.cancel()
    (await engine.serve_token(token.id)).unwrap()
    assert await sub.get(timeout=0.05) is None
