import asyncio
import pathlib
import sys

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.db import create_test_session  # noqa: E402
from api.queueboard.events import ChangeBus  # noqa: E402
from api.queueboard.services import QueueStore, TokenOrderingEngine  # noqa: E402

OPERATIONS = [
    "add",
    "start",
    "serve",
    "serve_next",
    "cancel",
    "no_show",
    "reorder",
    "move",
]

TERMINAL_STAMPS = {
    "served": "served_at",
    "cancelled": "cancelled_at",
    "no_show": "no_show_at",
}


async def _apply(engine, queue_id, op, data):
    waiting = (await engine.list_waiting(queue_id)).unwrap()
    ids = [token.id for token in waiting]
    if op == "add" or not ids:
        await engine.add_token(queue_id, "person")
    elif op == "start":
        await engine.start_serving(data.draw(st.sampled_from(ids)))
    elif op == "serve":
        await engine.serve_token(data.draw(st.sampled_from(ids)))
    elif op == "serve_next":
        await engine.serve_next(queue_id)
    elif op == "cancel":
        await engine.cancel_token(data.draw(st.sampled_from(ids)))
    elif op == "no_show":
        await engine.mark_no_show(data.draw(st.sampled_from(ids)))
    elif op == "reorder":
        order = data.draw(st.permutations(ids))
        (await engine.reorder_tokens(queue_id, list(order))).unwrap()
    else:
        token_id = data.draw(st.sampled_from(ids))
        target = data.draw(st.integers(min_value=-2, max_value=len(ids) + 2))
        (await engine.move_token(token_id, target)).unwrap()


def _check(tokens):
    positions = sorted(t.position for t in tokens if t.status == "waiting")
    assert positions == list(range(1, len(positions) + 1))
    assert sum(1 for t in tokens if t.status == "serving") <= 1
    for token in tokens:
        stamps = [
            name for name in TERMINAL_STAMPS.values() if getattr(token, name) is not None
        ]
        expected = [TERMINAL_STAMPS[token.status]] if token.status in TERMINAL_STAMPS else []
        assert stamps == expected


async def _run(ops, data):
    sessionmaker, db_engine = await create_test_session()
    try:
        bus = ChangeBus(maxsize=10)
        store = QueueStore(sessionmaker, bus, timeout=5)
        engine = TokenOrderingEngine(sessionmaker, bus, timeout=5)
        queue = (await store.create_queue("mgr-1", "Front desk")).unwrap()
        for op in ops:
            await _apply(engine, queue.id, op, data)
            _check((await engine.list_tokens(queue.id)).unwrap())
    finally:
        await db_engine.dispose()


@settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
@given(
    ops=st.lists(st.sampled_from(OPERATIONS), min_size=1, max_size=25),
    data=st.data(),
)
def test_positions_stay_dense_for_any_operation_sequence(ops, data):
    """Waiting positions are 1..N and terminal stamps are exclusive after every step."""
    asyncio.run(_run(ops, data))
