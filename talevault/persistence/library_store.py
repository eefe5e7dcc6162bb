"""SQLite library store: books, chapters, attachments, jobs and upload queue."""

from __future__ import annotations

import json
import uuid
from typing import Any

import aiosqlite

from talevault.models.base import now_ms
from talevault.models.library import Attachment, Book, Chapter, ChapterAudioPath, ChapterPage, Job

EXPORT_MODE = "full"
EXPORT_VERSION = 1

# Table -> columns, in export order. Import only ever touches these names.
EXPORT_TABLES: dict[str, tuple[str, ...]] = {
    "books": ("id", "title", "updated_at", "data"),
    "chapters": ("id", "book_id", "idx", "title", "updated_at", "data"),
    "chapter_text": ("chapter_id", "book_id", "content"),
    "attachments": ("id", "book_id", "updated_at", "data"),
    "jobs": ("job_id", "type", "status", "created_at", "updated_at", "data"),
    "upload_queue": ("id", "seq", "data"),
    "chapter_audio_paths": ("chapter_id", "local_path", "size_bytes", "updated_at"),
}


def _queue_key(record: dict[str, Any]) -> str:
    for key in ("id", "queueId", "chapterId"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return uuid.uuid4().hex


class SQLiteLibraryStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @property
    def supports_native_export(self) -> bool:
        return True

    async def list_books(self) -> list[Book]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM books ORDER BY title, id")
            rows = await cursor.fetchall()
        return [Book.model_validate(json.loads(row[0])) for row in rows]

    async def upsert_book(self, book: Book) -> None:
        data = book.to_wire()
        data.pop("chapters", None)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO books (id, title, updated_at, data) VALUES (?, ?, ?, ?)",
                (book.id, book.title, book.updated_at, json.dumps(data)),
            )
            await db.commit()

    async def list_chapters_page(self, book_id: str, after_index: int | None, limit: int) -> ChapterPage:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """SELECT c.idx, c.data, t.content
                FROM chapters c LEFT JOIN chapter_text t ON t.chapter_id = c.id
                WHERE c.book_id = ? AND c.idx > ?
                ORDER BY c.idx, c.id
                LIMIT ?""",
                (book_id, -1 if after_index is None else after_index, limit),
            )
            rows = await cursor.fetchall()

        chapters = []
        for row in rows:
            data = json.loads(row["data"])
            if row["content"] is not None:
                data["content"] = row["content"]
            chapters.append(Chapter.model_validate(data))
        next_after = rows[-1]["idx"] if rows and len(rows) == limit else None
        return ChapterPage(chapters=chapters, next_after_index=next_after)

    async def bulk_upsert_chapters(self, book_id: str, chapters: list[Chapter]) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            for chapter in chapters:
                data = chapter.model_copy(update={"book_id": book_id}).to_wire()
                content = data.pop("content", None)
                await db.execute(
                    """INSERT OR REPLACE INTO chapters (id, book_id, idx, title, updated_at, data)
                    VALUES (?, ?, ?, ?, ?, ?)""",
                    (chapter.id, book_id, chapter.index, chapter.title, chapter.updated_at, json.dumps(data)),
                )
                if content is not None:
                    await db.execute(
                        "INSERT OR REPLACE INTO chapter_text (chapter_id, book_id, content) VALUES (?, ?, ?)",
                        (chapter.id, book_id, content),
                    )
            await db.commit()

    async def list_attachments(self) -> list[Attachment]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM attachments ORDER BY book_id, id")
            rows = await cursor.fetchall()
        return [Attachment.model_validate(json.loads(row[0])) for row in rows]

    async def bulk_upsert_attachments(self, book_id: str, attachments: list[Attachment]) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                "INSERT OR REPLACE INTO attachments (id, book_id, updated_at, data) VALUES (?, ?, ?, ?)",
                [
                    (item.id, book_id, item.updated_at, json.dumps(item.model_copy(update={"book_id": book_id}).to_wire()))
                    for item in attachments
                ],
            )
            await db.commit()

    async def list_jobs(self) -> list[Job]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM jobs ORDER BY created_at, job_id")
            rows = await cursor.fetchall()
        return [Job.model_validate(json.loads(row[0])) for row in rows]

    async def create_job(self, job: Job) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO jobs (job_id, type, status, created_at, updated_at, data)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (job.job_id, job.type, job.status, job.created_at, job.updated_at, json.dumps(job.to_wire())),
            )
            await db.commit()

    async def list_queued_uploads(self, limit: int) -> list[dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM upload_queue ORDER BY seq LIMIT ?", (limit,))
            rows = await cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    async def enqueue_upload(self, record: dict[str, Any]) -> None:
        """Insert or replace by the record's id (or chapter id)."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO upload_queue (id, seq, data)
                VALUES (?, COALESCE((SELECT MAX(seq) FROM upload_queue), 0) + 1, ?)""",
                (_queue_key(record), json.dumps(record)),
            )
            await db.commit()

    async def get_chapter_audio_path(self, chapter_id: str) -> ChapterAudioPath | None:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT local_path, size_bytes, updated_at FROM chapter_audio_paths WHERE chapter_id = ?",
                (chapter_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return ChapterAudioPath(content_id=chapter_id, local_path=row[0], size_bytes=row[1], updated_at=row[2])

    async def set_chapter_audio_path(self, chapter_id: str, local_path: str, size_bytes: int) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO chapter_audio_paths (chapter_id, local_path, size_bytes, updated_at)
                VALUES (?, ?, ?, ?)""",
                (chapter_id, local_path, size_bytes, now_ms()),
            )
            await db.commit()

    async def export_native(self) -> dict[str, Any]:
        tables: dict[str, list[dict[str, Any]]] = {}
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            for table, columns in EXPORT_TABLES.items():
                cursor = await db.execute(f"SELECT {', '.join(columns)} FROM {table}")  # noqa: S608
                tables[table] = [dict(row) for row in await cursor.fetchall()]
        return {"mode": EXPORT_MODE, "version": EXPORT_VERSION, "tables": tables}

    async def is_export_valid(self, payload: dict[str, Any]) -> bool:
        """Structural check only: known mode, every table present, rows carry all columns."""
        if payload.get("mode") != EXPORT_MODE or payload.get("version") != EXPORT_VERSION:
            return False
        tables = payload.get("tables")
        if not isinstance(tables, dict):
            return False
        for table, columns in EXPORT_TABLES.items():
            rows = tables.get(table)
            if not isinstance(rows, list):
                return False
            for row in rows:
                if not isinstance(row, dict) or any(column not in row for column in columns):
                    return False
        return True

    async def import_native(self, payload: dict[str, Any]) -> None:
        """Replace every exported table with the payload rows in one transaction."""
        if not await self.is_export_valid(payload):
            raise ValueError("native export payload failed validation")
        tables = payload["tables"]
        async with aiosqlite.connect(self.db_path) as db:
            try:
                for table, columns in EXPORT_TABLES.items():
                    await db.execute(f"DELETE FROM {table}")  # noqa: S608
                    placeholders = ", ".join("?" for _ in columns)
                    await db.executemany(
                        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",  # noqa: S608
                        [tuple(row[column] for column in columns) for row in tables[table]],
                    )
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise


__all__ = ["EXPORT_TABLES", "SQLiteLibraryStore"]
