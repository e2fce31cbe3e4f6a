import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.services.notifications import (  # noqa: E402
    list_pending,
    near_front_message,
    served_message,
)


def test_messages():
    assert near_front_message("Ann", 1) == "Ann, you're next! Please be ready to be served."
    assert "#3" in near_front_message("Ann", 3)
    assert served_message("Ann").startswith("Ann, you have been served")


@pytest.mark.anyio
async def test_near_front_tokens_are_notified_on_add(engine, sessionmaker, queue):
    for i in range(5):
        contact = "5550001111" if i == 0 else None
        (await engine.add_token(queue.id, f"p{i}", contact_number=contact)).unwrap()
    async with sessionmaker() as session:
        pending = await list_pending(session, queue.id)
    assert len(pending) == 3
    assert pending[0].type == "sms"
    assert pending[0].recipient == "5550001111"
    assert {n.type for n in pending[1:]} == {"system"}


@pytest.mark.anyio
async def test_serving_notifies_token_and_new_front(engine, sessionmaker, queue):
    tokens = [(await engine.add_token(queue.id, f"p{i}")).unwrap() for i in range(4)]
    async with sessionmaker() as session:
        before = len(await list_pending(session, queue.id))
    (await engine.serve_token(tokens[0].id)).unwrap()
    async with sessionmaker() as session:
        pending = await list_pending(session, queue.id)
    new = pending[before:]
    assert new[0].token_id == tokens[0].id
    assert new[0].message == served_message("p0")
    assert [n.token_id for n in new[1:]] == [t.id for t in tokens[1:4]]
    assert new[1].message == near_front_message("p1", 1)


@pytest.mark.anyio
async def test_cancel_sends_nothing(engine, sessionmaker, queue):
    token = (await engine.add_token(queue.id, "Ann")).unwrap()
    (await engine.cancel_token(token.id)).unwrap()
    async with sessionmaker() as session:
        pending = await list_pending(session, queue.id)
    assert len(pending) == 1
