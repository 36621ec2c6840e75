"""Async SQLite connection: WAL mode, schema bootstrap, and a small key-value API.

The key-value helpers back the snapshot slot (and anything else that is a
single JSON blob under a fixed key); per-container trees have their own table.
"""

from datetime import UTC, datetime

import aiosqlite

from tabtree.db.schema import SCHEMA_SQL


class Database:
    """Thin async wrapper around one aiosqlite connection."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection

    @classmethod
    async def connect(cls, path: str = "tabtree.db") -> "Database":
        """Open path (or ":memory:"), enable WAL, and create missing tables."""
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        db = cls(conn)
        await db._ensure_schema()
        return db

    async def _ensure_schema(self) -> None:
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        """Execute one statement and commit."""
        cursor = await self._conn.execute(sql, params or ())
        await self._conn.commit()
        return cursor

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        cursor = await self._conn.execute(sql, params or ())
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        cursor = await self._conn.execute(sql, params or ())
        return list(await cursor.fetchall())

    # -- key-value slots ----------------------------------------------------

    async def get_value(self, key: str) -> str | None:
        row = await self.fetchone("SELECT value FROM kv WHERE key = ?", (key,))
        return row["value"] if row is not None else None

    async def set_value(self, key: str, value: str) -> None:
        await self.execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, datetime.now(UTC).isoformat()),
        )

    async def close(self) -> None:
        await self._conn.close()
