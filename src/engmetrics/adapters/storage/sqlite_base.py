"""Base class for SQLite storage adapters."""

import asyncio
import json
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from engmetrics.core.errors import StorageFailure


def _safe_json_loads(
    data: str | None, default: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Parse a JSON object column, returning default on decode error.

    Args:
        data: JSON string to parse.
        default: Value to return if parsing fails. Defaults to empty dict.

    Returns:
        Parsed JSON as dict, or default if parsing fails.
    """
    if default is None:
        default = {}
    if not data:
        return default
    try:
        result = json.loads(data)
    except json.JSONDecodeError:
        return default
    return result if isinstance(result, dict) else default


def _json_dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, default=str)


class AsyncConnectionManager:
    """Manages aiosqlite connections.

    Handles schema initialization and connection lifecycle. For :memory:
    databases, maintains a persistent connection since SQLite in-memory
    databases are connection-scoped.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _is_memory(self) -> bool:
        return self._db_path == ":memory:"

    async def _ensure_initialized(self) -> None:
        """Create the schema once per manager."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._is_memory:
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        await self._ensure_initialized()
        if self._is_memory:
            if self._persistent_conn is None:
                raise StorageFailure("memory database connection not initialized")
            return self._persistent_conn
        return await aiosqlite.connect(self._db_path)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection, closing it afterwards for file databases.

        sqlite3 errors raised inside the block surface as StorageFailure.
        """
        try:
            db = await self._get_connection()
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot open {self._db_path}: {exc}") from exc
        try:
            yield db
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc
        finally:
            if not self._is_memory:
                await db.close()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Subclasses provide the schema and implement domain-specific queries on
    top of ``async_connection()``.
    """

    _schema: str

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._manager = AsyncConnectionManager(db_path, self._schema)

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._manager.close()

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._manager.connection() as conn:
            yield conn

    async def _insert(self, query: str, params: tuple[Any, ...]) -> int:
        """Run an INSERT and return the new row id."""
        async with self.async_connection() as db:
            cursor = await db.execute(query, params)
            await db.commit()
            row_id = cursor.lastrowid
        if row_id is None:
            raise StorageFailure("insert did not return a row id")
        return row_id

    async def _fetch_all(self, query: str, params: tuple[Any, ...] = ()) -> list[Any]:
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                return list(await cursor.fetchall())

    async def _fetch_one(self, query: str, params: tuple[Any, ...] = ()) -> Any:
        async with self.async_connection() as db:
            async with db.execute(query, params) as cursor:
                return await cursor.fetchone()
