"""Alembic environment for the queue schema.

The database URL is taken from ``-x db_url=...``, then ``sqlalchemy.url``,
then the application settings. Async DSNs are migrated through their async
driver; offline SQL generation always uses the synchronous dialect.
"""

from __future__ import annotations

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import create_async_engine

sys.path.append(str(Path(__file__).resolve().parents[2]))

from api.queueboard.models import Base  # noqa: E402
from config import get_settings  # type: ignore  # noqa: E402

ASYNC_DRIVERS = {"asyncpg", "aiosqlite"}

config = context.config
if config.config_file_name and Path(config.config_file_name).exists():
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> URL:
    url = (
        context.get_x_argument(as_dictionary=True).get("db_url")
        or config.get_main_option("sqlalchemy.url")
        or get_settings().database_url
    )
    return make_url(url)


def is_async(url: URL) -> bool:
    return url.get_driver_name() in ASYNC_DRIVERS


def sync_variant(url: URL) -> URL:
    """``sqlite+aiosqlite`` -> ``sqlite``, ``postgresql+asyncpg`` -> ``postgresql``."""
    if is_async(url):
        return url.set(drivername=url.get_backend_name())
    return url


def _migrate(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    context.configure(
        url=sync_variant(database_url()),
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_online_async(url: URL) -> None:
    engine = create_async_engine(url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


def run_online() -> None:
    url = database_url()
    if is_async(url):
        asyncio.run(run_online_async(url))
        return
    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _migrate(connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
