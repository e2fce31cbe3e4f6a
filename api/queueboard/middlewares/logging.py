"""Request and response logging.

Each sampled request produces two JSON lines on the ``api`` logger: the
inbound request (query and body with PII keys masked) and the outbound
status with latency. Non-2xx responses are always logged.
"""

import json
import logging
import os
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..utils.responses import err
from .request_id import request_id_ctx, resolve_request_id

PII_KEYS = {"person_name", "contact_number", "recipient"}
LOG_SAMPLE_2XX = float(os.getenv("LOG_SAMPLE_2XX", "0.1"))
# Change streams never finish a body; logging them would buffer forever
SKIP_SUFFIXES = ("/stream",)

logger = logging.getLogger("api")


def mask_pii(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: "***" if key.lower() in PII_KEYS else mask_pii(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [mask_pii(item) for item in value]
    return value


def _line(level: str, req_id: str, request: Request, **fields: Any) -> str:
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "req_id": req_id,
        "manager": request.headers.get("X-Manager-ID"),
    }
    record.update({key: value for key, value in fields.items() if value is not None})
    return json.dumps(record, default=str)


def _sampled(status: int) -> bool:
    if not 200 <= status < 300:
        return True
    return random.random() < LOG_SAMPLE_2XX


async def _replay_body(request: Request) -> Any:
    """Read the JSON body and make it readable again for the endpoint."""
    raw = await request.body()

    async def receive() -> dict:
        return {"type": "http.request", "body": raw, "more_body": False}

    request._receive = receive
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path.endswith(SKIP_SUFFIXES):
            return await call_next(request)

        ctx_token = None
        req_id = getattr(request.state, "request_id", None)
        if not req_id:
            # RequestIdMiddleware not installed
            req_id = resolve_request_id(request.headers.get("X-Request-ID"))
            request.state.request_id = req_id
            ctx_token = request_id_ctx.set(req_id)

        try:
            body = await _replay_body(request)
            inbound = _line(
                "INFO",
                req_id,
                request,
                method=request.method,
                path=request.url.path,
                ip=request.client.host if request.client else None,
                query=mask_pii(dict(request.query_params)) or None,
                body=mask_pii(body),
            )

            started = time.perf_counter()
            error_id = None
            try:
                response = await call_next(request)
            except Exception:
                error_id = uuid.uuid4().hex
                logger.exception("unhandled error %s", error_id)
                payload = err(500, "Internal Server Error")
                payload["error_id"] = error_id
                response = JSONResponse(payload, status_code=500)
            latency_ms = int((time.perf_counter() - started) * 1000)

            status = response.status_code
            if _sampled(status):
                failed = status >= 500
                logger.info(inbound)
                (logger.error if failed else logger.info)(
                    _line(
                        "ERROR" if failed else "INFO",
                        req_id,
                        request,
                        route=request.url.path,
                        status=status,
                        latency_ms=latency_ms,
                        error_id=error_id,
                    )
                )
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            if ctx_token is not None:
                request_id_ctx.reset(ctx_token)
