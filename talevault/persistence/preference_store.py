"""SQLite key/value preference store."""

from __future__ import annotations

import aiosqlite


class SQLitePreferenceStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def get(self, key: str) -> str | None:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT value FROM preferences WHERE key = ?", (key,))
            row = await cursor.fetchone()
            return None if row is None else row[0]

    async def set(self, key: str, value: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO preferences (key, value) VALUES (?, ?)",
                (key, value),
            )
            await db.commit()

    async def keys(self, prefix: str = "") -> list[str]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT key FROM preferences WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            )
            return [row[0] for row in await cursor.fetchall()]

    async def remove(self, key: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM preferences WHERE key = ?", (key,))
            await db.commit()


__all__ = ["SQLitePreferenceStore"]
