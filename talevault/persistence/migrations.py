"""Ordered SQL migrations with SHA-256 checksums."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class MigrationChecksumError(RuntimeError):
    """An applied migration file was edited after the fact."""


def _checksum(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def apply_migrations(db_path: str | Path, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending ``*.sql`` files in name order; return the newly applied names.

    Runs on plain ``sqlite3`` so ``executescript`` handles multi-statement
    files as written.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    applied_now: list[str] = []
    try:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS _migrations ("
            "  name TEXT PRIMARY KEY,"
            "  checksum TEXT NOT NULL,"
            "  applied_at TEXT NOT NULL"
            ")"
        )
        conn.commit()
        applied = dict(conn.execute("SELECT name, checksum FROM _migrations").fetchall())

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            checksum = _checksum(sql_file)
            previous = applied.get(sql_file.name)
            if previous is not None:
                if previous != checksum:
                    raise MigrationChecksumError(
                        f"Migration {sql_file.name} changed after it was applied "
                        f"(applied={previous}, current={checksum})"
                    )
                continue

            conn.executescript(sql_file.read_text(encoding="utf-8"))
            conn.execute(
                "INSERT INTO _migrations (name, checksum, applied_at) VALUES (?, ?, ?)",
                (sql_file.name, checksum, datetime.now(UTC).isoformat()),
            )
            conn.commit()
            applied_now.append(sql_file.name)
            logger.info("Applied migration %s", sql_file.name)
    finally:
        conn.close()
    return applied_now


async def run_migrations(db_path: str | Path, migrations_dir: Path | None = None) -> list[str]:
    return await asyncio.to_thread(apply_migrations, db_path, migrations_dir or MIGRATIONS_DIR)


__all__ = ["MigrationChecksumError", "apply_migrations", "run_migrations"]
