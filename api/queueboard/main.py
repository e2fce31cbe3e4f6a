# main.py

"""FastAPI application for the queue management service.

The ordering engine, queue store and read services are created once per
application and stored on ``app.state``; routers resolve them through the
helpers in :mod:`deps.services`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import from_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings

from . import db as app_db
from .errors import QueueError
from .events import ChangeBus
from .middlewares import LoggingMiddleware, RequestIdMiddleware
from .obs import capture_exception, init_sentry
from .obs.logging import configure_logging
from .routes_analytics import router as analytics_router
from .routes_metrics import router as metrics_router
from .routes_public import router as public_router
from .routes_queues import router as queues_router
from .routes_stream import router as stream_router
from .routes_tokens import router as tokens_router
from .services import (
    AnalyticsService,
    EventLog,
    OutboxNotifier,
    PublicLookup,
    QueueStore,
    TokenOrderingEngine,
)
from .services import autoserve
from .utils.responses import err, ok

logger = logging.getLogger("api")


def _headers_extra(request: Request, status: int) -> dict[str, Any]:
    return {
        "status": status,
        "route": request.url.path,
        "manager": request.headers.get("X-Manager-ID"),
    }


async def queue_error_handler(request: Request, exc: QueueError):
    logger.info(exc.message, extra=_headers_extra(request, exc.status))
    return JSONResponse(
        err(exc.code, exc.message, jsonable_encoder(exc.details) or None),
        status_code=exc.status,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("request validation failed", extra=_headers_extra(request, 422))
    return JSONResponse(
        err("VALIDATION", "Invalid request", {"errors": jsonable_encoder(exc.errors())}),
        status_code=422,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(exc.detail, extra=_headers_extra(request, exc.status_code))
    return JSONResponse(err(exc.status_code, exc.detail), status_code=exc.status_code)


async def general_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", extra=_headers_extra(request, 500))
    capture_exception(exc)
    return JSONResponse(err(500, "Internal Server Error"), status_code=500)


def create_app(
    settings: Settings | None = None,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    redis: Any = None,
) -> FastAPI:
    """Build the application.

    ``sessionmaker`` and ``redis`` default to the configured database and
    Redis URL; tests pass in-memory replacements.
    """
    settings = settings or get_settings()
    owns_database = sessionmaker is None
    if sessionmaker is None:
        sessionmaker = app_db.init_engine(
            settings.database_url, settings.slow_query_ms
        )
    if redis is None and settings.redis_url:
        redis = from_url(settings.redis_url, decode_responses=True)

    app = FastAPI(title="Queueboard API", version="1.0.0")
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(LoggingMiddleware)

    bus = ChangeBus(redis=redis, maxsize=settings.change_queue_max)
    timeout = settings.operation_timeout_secs
    engine = TokenOrderingEngine(
        sessionmaker,
        bus,
        OutboxNotifier(sessionmaker),
        timeout=timeout,
        near_front_threshold=settings.near_front_threshold,
        default_service_minutes=settings.default_service_minutes,
        tz=settings.timezone,
    )
    app.state.settings = settings
    app.state.redis = redis
    app.state.bus = bus
    app.state.engine = engine
    app.state.store = QueueStore(sessionmaker, bus, timeout=timeout)
    app.state.event_log = EventLog(sessionmaker, timeout=timeout)
    app.state.analytics = AnalyticsService(
        sessionmaker,
        redis,
        timeout=timeout,
        cache_secs=settings.analytics_cache_secs,
        tz=settings.timezone,
        default_service_minutes=settings.default_service_minutes,
    )
    app.state.lookup = PublicLookup(
        engine, sessionmaker, timeout=timeout, display_size=settings.public_display_size
    )
    app.state.auto_serve_task = None

    app.add_exception_handler(QueueError, queue_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, general_error_handler)

    app.include_router(queues_router)
    app.include_router(tokens_router)
    app.include_router(analytics_router)
    app.include_router(public_router)
    app.include_router(stream_router)
    app.include_router(metrics_router)

    @app.get("/health")
    async def health() -> dict:
        return ok({"status": "ok"})

    @app.on_event("startup")
    async def prepare_database() -> None:
        if owns_database and app_db.engine is not None:
            await app_db.create_all(app_db.engine)

    @app.on_event("startup")
    async def start_auto_serve() -> None:
        app.state.auto_serve_task = asyncio.create_task(
            autoserve.monitor(engine, sessionmaker, settings.auto_serve_poll_secs)
        )

    @app.on_event("shutdown")
    async def stop_auto_serve() -> None:
        task = app.state.auto_serve_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    return app


_settings = get_settings()
configure_logging(_settings.log_level)
init_sentry(_settings.error_dsn, env=_settings.app_env.value)

app = create_app(_settings)
