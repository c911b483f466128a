from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DatabaseDsn:
    driver: str
    value: str


def parse_database_dsn(url: str) -> DatabaseDsn:
    if url.startswith("sqlite:///"):
        return DatabaseDsn(driver="sqlite", value=url.replace("sqlite:///", "", 1))
    raise ValueError("Unsupported database URL. Use sqlite:///path/to/tickets.db")


class Database:
    """Single shared aiosqlite connection; statements are serialized by a lock."""

    def __init__(self, url: str, timeout_seconds: int = 30) -> None:
        self._dsn = parse_database_dsn(url)
        self._timeout_seconds = timeout_seconds
        self._sqlite: aiosqlite.Connection | None = None
        self._sqlite_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return Path(self._dsn.value)

    @property
    def is_connected(self) -> bool:
        return self._sqlite is not None

    async def connect(self) -> None:
        sqlite_path = self.path
        sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._sqlite = await aiosqlite.connect(sqlite_path, timeout=self._timeout_seconds)
        self._sqlite.row_factory = aiosqlite.Row
        await self._sqlite.execute("PRAGMA journal_mode = WAL;")
        await self._sqlite.execute("PRAGMA foreign_keys = ON;")
        await self._sqlite.commit()
        LOGGER.info("Connected to SQLite: %s", sqlite_path)

    async def close(self) -> None:
        if self._sqlite:
            await self._sqlite.close()
            self._sqlite = None

    def _connection(self) -> aiosqlite.Connection:
        if self._sqlite is None:
            raise RuntimeError("Database is not connected")
        return self._sqlite

    async def execute(self, query: str, params: Sequence[Any] | None = None) -> int:
        """Run a write statement and return the number of affected rows."""
        conn = self._connection()
        async with self._sqlite_lock:
            cursor = await conn.execute(query, tuple(params or []))
            await conn.commit()
            return cursor.rowcount

    async def insert(self, query: str, params: Sequence[Any] | None = None) -> int:
        """Run an INSERT and return the new row id."""
        conn = self._connection()
        async with self._sqlite_lock:
            cursor = await conn.execute(query, tuple(params or []))
            await conn.commit()
            if cursor.lastrowid is None:
                raise RuntimeError("INSERT did not produce a row id")
            return int(cursor.lastrowid)

    async def fetchone(self, query: str, params: Sequence[Any] | None = None) -> dict[str, Any] | None:
        conn = self._connection()
        async with self._sqlite_lock:
            cursor = await conn.execute(query, tuple(params or []))
            row = await cursor.fetchone()
        if row is None:
            return None
        return dict(row)

    async def fetchall(self, query: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        conn = self._connection()
        async with self._sqlite_lock:
            cursor = await conn.execute(query, tuple(params or []))
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def executescript(self, sql_script: str) -> None:
        conn = self._connection()
        async with self._sqlite_lock:
            await conn.executescript(sql_script)
            await conn.commit()
