"""
Local durable store for the assembled geo index.

The whole index is one JSON document under one key, so the store is a single
row in a single table. Like the rest of the backend's adapters it never raises
to callers: every operation returns a `Result`.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from pathlib import Path
from typing import Protocol

import aiosqlite

from ...config import DB_TIMEOUT, INDEX_DB_PATH
from ...features.geo.models import CacheDocument
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

INDEX_KEY = "geo_index"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS geo_index (
    key TEXT PRIMARY KEY,
    document TEXT NOT NULL,
    updated_at REAL NOT NULL
)
"""


class LocalIndexStore(Protocol):
    async def aget(self) -> Result[CacheDocument | None]: ...

    async def aput(self, document: CacheDocument) -> Result[bool]: ...


class SqliteIndexStore:
    """aiosqlite-backed `LocalIndexStore` holding the latest index document."""

    def __init__(self, db_path: str | Path = INDEX_DB_PATH, *, timeout: float = DB_TIMEOUT) -> None:
        self.db_path = Path(db_path)
        self._timeout = timeout
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(self.db_path), timeout=self._timeout)
        try:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            await conn.execute(_SCHEMA)
            await conn.commit()
        except (aiosqlite.Error, sqlite3.Error):
            await conn.close()
            raise
        self._conn = conn
        return conn

    async def aget(self) -> Result[CacheDocument | None]:
        """Load the stored index; Ok(None) when nothing has been stored yet."""
        async with self._lock:
            try:
                conn = await self._connection()
                async with conn.execute("SELECT document FROM geo_index WHERE key = ?", (INDEX_KEY,)) as cursor:
                    row = await cursor.fetchone()
            except (aiosqlite.Error, sqlite3.Error, OSError) as exc:
                logger.error("Failed to read local index: %s", exc)
                return Result.Err(ErrorCode.DB_ERROR, f"Failed to read local index: {exc}")
        if row is None:
            return Result.Ok(None)
        try:
            return Result.Ok(CacheDocument.from_dict(json.loads(row[0])))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Stored index is unreadable, ignoring it: %s", exc)
            return Result.Err(ErrorCode.PARSE_ERROR, f"Stored index is unreadable: {exc}")

    async def aput(self, document: CacheDocument) -> Result[bool]:
        payload = json.dumps(document.to_dict(), separators=(",", ":"), ensure_ascii=False)
        async with self._lock:
            try:
                conn = await self._connection()
                await conn.execute(
                    "INSERT INTO geo_index (key, document, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET document = excluded.document, updated_at = excluded.updated_at",
                    (INDEX_KEY, payload, time.time()),
                )
                await conn.commit()
            except (aiosqlite.Error, sqlite3.Error, OSError) as exc:
                logger.error("Failed to write local index: %s", exc)
                return Result.Err(ErrorCode.DB_ERROR, f"Failed to write local index: {exc}")
        logger.debug("Stored index with %d items (%d bytes)", len(document.geo_items), len(payload))
        return Result.Ok(True)

    async def aclose(self) -> None:
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
