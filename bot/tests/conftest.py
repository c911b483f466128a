from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest_asyncio

from database.base import Database
from database.migrations.runner import run_migrations

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "database" / "migrations"


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """Migrated SQLite database, closed even when the test fails."""
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await db.connect()
    await run_migrations(db, MIGRATIONS_DIR)
    try:
        yield db
    finally:
        await db.close()
