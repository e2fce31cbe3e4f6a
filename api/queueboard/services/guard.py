"""Run service coroutines under a timeout and fold failures into a ``Result``."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackendError, OperationTimeout, QueueError, Result
from ..routes_metrics import engine_errors_total

T = TypeVar("T")

logger = logging.getLogger("api.engine")


async def guarded(
    op: str, awaitable: Awaitable[T], timeout: float | None, **log_extra
) -> Result[T]:
    """Await ``awaitable`` within ``timeout`` seconds.

    Domain errors pass through unchanged, storage failures become
    :class:`BackendError` and an elapsed timeout becomes
    :class:`OperationTimeout`. Nothing is retried.
    """
    try:
        data = await asyncio.wait_for(awaitable, timeout)
    except QueueError as exc:
        error: QueueError = exc
    except asyncio.TimeoutError:
        error = OperationTimeout(f"{op} timed out after {timeout}s")
    except SQLAlchemyError as exc:
        logger.exception("%s failed in the database", op, extra=log_extra)
        error = BackendError(f"{op} failed: {exc.__class__.__name__}")
    else:
        return Result.success(data)
    engine_errors_total.labels(code=error.code).inc()
    logger.info("%s rejected: %s %s", op, error.code, error.message, extra=log_extra)
    return Result.failure(error)
