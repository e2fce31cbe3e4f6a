"""Manager routes for tokens and the event log of a queue."""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends

from .deps.services import get_engine, get_event_log
from .schemas import EventOut, MoveIn, ReorderIn, TokenIn, TokenOut, dump, dump_all
from .services import EventLog, TokenOrderingEngine
from .services.event_log import parse_event_types
from .utils.clock import utcnow
from .utils.responses import ok

router = APIRouter(prefix="/api", tags=["tokens"])


@router.post("/queues/{queue_id}/tokens", status_code=201)
async def add_token(
    queue_id: str,
    payload: TokenIn,
    engine: TokenOrderingEngine = Depends(get_engine),
):
    token = (
        await engine.add_token(
            queue_id,
            payload.person_name,
            payload.contact_number,
            payload.service_type_id,
            payload.priority_level,
        )
    ).unwrap()
    return ok(dump(TokenOut, token))


@router.get("/queues/{queue_id}/tokens")
async def list_tokens(
    queue_id: str,
    status: str | None = None,
    engine: TokenOrderingEngine = Depends(get_engine),
):
    """List tokens; ``?status=waiting`` returns the ordered waiting list."""
    if status == "waiting":
        tokens = (await engine.list_waiting(queue_id)).unwrap()
    else:
        tokens = (await engine.list_tokens(queue_id)).unwrap()
        if status:
            tokens = [token for token in tokens if token.status == status]
    return ok(dump_all(TokenOut, tokens))


@router.get("/queues/{queue_id}/next")
async def next_token(queue_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    token = (await engine.next_token(queue_id)).unwrap()
    return ok(dump(TokenOut, token) if token else None)


@router.get("/queues/{queue_id}/serving")
async def current_serving(
    queue_id: str, engine: TokenOrderingEngine = Depends(get_engine)
):
    token = (await engine.current_serving(queue_id)).unwrap()
    return ok(dump(TokenOut, token) if token else None)


@router.post("/queues/{queue_id}/serve-next")
async def serve_next(queue_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    return ok(dump(TokenOut, (await engine.serve_next(queue_id)).unwrap()))


@router.put("/queues/{queue_id}/order")
async def reorder_tokens(
    queue_id: str,
    payload: ReorderIn,
    engine: TokenOrderingEngine = Depends(get_engine),
):
    tokens = (await engine.reorder_tokens(queue_id, payload.token_ids)).unwrap()
    return ok(dump_all(TokenOut, tokens))


@router.get("/queues/{queue_id}/events")
async def list_events(
    queue_id: str,
    since: datetime | None = None,
    until: datetime | None = None,
    event_type: str | None = None,
    log: EventLog = Depends(get_event_log),
):
    """Return the event log of ``queue_id``; defaults to the last 7 days."""
    since = since or utcnow() - timedelta(days=7)
    events = (
        await log.list_range(queue_id, since, until, parse_event_types(event_type))
    ).unwrap()
    return ok(dump_all(EventOut, events))


@router.get("/tokens/{token_id}")
async def get_token(token_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    return ok(dump(TokenOut, (await engine.get_token(token_id)).unwrap()))


@router.get("/tokens/{token_id}/events")
async def token_events(token_id: str, log: EventLog = Depends(get_event_log)):
    return ok(dump_all(EventOut, (await log.for_token(token_id)).unwrap()))


@router.post("/tokens/{token_id}/start")
async def start_serving(token_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    return ok(dump(TokenOut, (await engine.start_serving(token_id)).unwrap()))


@router.post("/tokens/{token_id}/serve")
async def serve_token(token_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    return ok(dump(TokenOut, (await engine.serve_token(token_id)).unwrap()))


@router.post("/tokens/{token_id}/cancel")
async def cancel_token(token_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    return ok(dump(TokenOut, (await engine.cancel_token(token_id)).unwrap()))


@router.post("/tokens/{token_id}/no-show")
async def mark_no_show(token_id: str, engine: TokenOrderingEngine = Depends(get_engine)):
    return ok(dump(TokenOut, (await engine.mark_no_show(token_id)).unwrap()))


@router.post("/tokens/{token_id}/move")
async def move_token(
    token_id: str,
    payload: MoveIn,
    engine: TokenOrderingEngine = Depends(get_engine),
):
    tokens = (await engine.move_token(token_id, payload.position)).unwrap()
    return ok(dump_all(TokenOut, tokens))
