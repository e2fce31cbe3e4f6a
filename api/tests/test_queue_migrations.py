import pathlib
import sys

import pytest
from sqlalchemy import inspect

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from api.queueboard.db import create_engine, run_migrations  # noqa: E402
from api.queueboard.models import Base  # noqa: E402


@pytest.mark.anyio
async def test_migrations_match_models(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'queueboard.db'}"
    await run_migrations(url)
    engine = create_engine(url, label="migrations")
    try:
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda c: set(inspect(c).get_table_names()))
            columns = await conn.run_sync(
                lambda c: {col["name"] for col in inspect(c).get_columns("tokens")}
            )
    finally:
        await engine.dispose()
    assert set(Base.metadata.tables) <= tables
    assert set(Base.metadata.tables["tokens"].columns.keys()) == columns
