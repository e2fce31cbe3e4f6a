"""Statement timing for the queue database.

Statements slower than the threshold are logged at WARNING with the SQL
shortened and the bound parameters reduced to a hash, so contact numbers and
names never reach the log.
"""

from __future__ import annotations

import hashlib
import logging
import time

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger("api.db")

MAX_SQL_CHARS = 200


def _shorten(statement: str) -> str:
    sql = " ".join(statement.split())
    if len(sql) > MAX_SQL_CHARS:
        sql = sql[: MAX_SQL_CHARS - 3] + "..."
    return sql


def add_query_logger(
    engine: Engine | AsyncEngine, label: str, slow_ms: int = 200
) -> None:
    """Log statements on ``engine`` taking longer than ``slow_ms``."""
    target = engine.sync_engine if isinstance(engine, AsyncEngine) else engine

    @event.listens_for(target, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):
        context._queueboard_started = time.perf_counter()

    @event.listens_for(target, "after_cursor_execute")
    def _finish(conn, cursor, statement, parameters, context, executemany):
        elapsed_ms = (time.perf_counter() - context._queueboard_started) * 1000
        if elapsed_ms <= slow_ms:
            return
        logger.warning(
            "slow query %dms db=%s sql=%s params=%s",
            int(elapsed_ms),
            label,
            _shorten(statement),
            hashlib.sha256(repr(parameters).encode()).hexdigest()[:8],
        )
