"""Server-Sent Events stream of queue change notices.

Each notice is emitted as ``event: change`` with a monotonically increasing
``id`` and a JSON body naming the table that changed. Notices carry no
payload; clients re-fetch the affected resource. A ``:keepalive`` comment is
sent whenever nothing happened for ``sse_keepalive_secs``.
"""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from config import get_settings

from .deps.services import get_store
from .events import Subscription
from .routes_metrics import sse_clients_gauge
from .services import QueueStore

router = APIRouter()


async def event_stream(
    subscribe: Callable[[str], Subscription],
    queue_id: str,
    keepalive: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for ``queue_id`` until cancelled or the client leaves.

    The subscription is taken when the body starts streaming, so a response
    that is never iterated leaves nothing registered on the bus.
    """
    seq = 1
    sub = subscribe(queue_id)
    sse_clients_gauge.inc()
    try:
        yield f"event: ready\nid: {seq}\ndata: {{\"queue_id\": \"{queue_id}\"}}\n\n"
        while not sub.cancelled:
            notice = await sub.get(timeout=keepalive)
            if is_disconnected is not None and await is_disconnected():
                break
            if notice is None:
                if sub.cancelled:
                    break
                yield ":keepalive\n\n"
                continue
            seq += 1
            yield f"event: change\nid: {seq}\ndata: {notice.to_json()}\n\n"
    finally:
        sub.cancel()
        sse_clients_gauge.dec()


@router.get(
    "/api/queues/{queue_id}/stream",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_queue(
    queue_id: str, request: Request, store: QueueStore = Depends(get_store)
) -> StreamingResponse:
    """Stream change notices for ``queue_id`` via SSE."""
    (await store.get_queue(queue_id)).unwrap()
    keepalive = get_settings().sse_keepalive_secs
    return StreamingResponse(
        event_stream(
            request.app.state.engine.subscribe,
            queue_id,
            keepalive,
            request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
