"""Database engine and session helpers.

The DSN comes from ``Settings.database_url``; any SQLAlchemy async driver
works, for example::

    postgresql+asyncpg://u:p@host:5432/queueboard
    sqlite+aiosqlite:///./queueboard.db

Use :func:`init_engine` once at startup and :data:`SessionLocal` afterwards.
Tests call :func:`create_test_session` for an isolated in-memory database.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from api.queueboard.obs import add_query_logger

from ..models import Base

logger = logging.getLogger(__name__)


def create_engine(
    url: str, label: str = "queueboard", slow_query_ms: int = 200
) -> AsyncEngine:
    """Create an :class:`AsyncEngine` for ``url`` with query logging attached.

    In-memory SQLite databases use a static pool so that every session sees
    the same data.
    """
    parsed = make_url(url)
    kwargs: dict = {}
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_async_engine(url, **kwargs)
    add_query_logger(engine, label, slow_query_ms)
    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_all(engine: AsyncEngine) -> None:
    """Create every table known to the models."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def create_test_session() -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Return a session factory and engine backed by a fresh in-memory database."""

    engine = create_engine("sqlite+aiosqlite:///:memory:", label="test")
    await create_all(engine)
    return create_sessionmaker(engine), engine


async def run_migrations(url: str) -> None:
    """Run Alembic migrations for ``url`` up to ``head``."""

    cfg = Config()
    cfg.set_main_option(
        "script_location", str(Path(__file__).resolve().parents[2] / "alembic")
    )
    cfg.set_main_option("sqlalchemy.url", url)
    try:
        await asyncio.to_thread(command.upgrade, cfg, "head")
    except Exception as exc:  # pragma: no cover - runtime errors
        logger.error("Failed to run migrations: %s", exc)
        raise


# Populated by :func:`init_engine` during application startup.
SessionLocal: async_sessionmaker[AsyncSession] | None = None
engine: AsyncEngine | None = None


def init_engine(
    url: str, slow_query_ms: int = 200
) -> async_sessionmaker[AsyncSession]:
    """Initialise the module-level engine and session factory for ``url``."""
    global SessionLocal, engine
    engine = create_engine(url, slow_query_ms=slow_query_ms)
    SessionLocal = create_sessionmaker(engine)
    return SessionLocal


__all__ = [
    "SessionLocal",
    "create_all",
    "create_engine",
    "create_sessionmaker",
    "create_test_session",
    "engine",
    "init_engine",
    "run_migrations",
]
