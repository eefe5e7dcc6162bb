"""Shared test helpers."""

from __future__ import annotations

from typing import Any

from talevault.backup.archive import META_ENTRY, SNAPSHOT_ENTRY, ArchiveWriter
from talevault.models.library import AppState, BackupContext, Book, Chapter


def make_book(book_id: str = "book-1", chapter_count: int = 3, title: str = "Night Train") -> Book:
    chapters = [
        Chapter(
            id=f"{book_id}-ch{index}",
            book_id=book_id,
            index=index,
            title=f"Part {index}",
            content=f"Text of chapter {index}",
            updated_at=1_000 + index,
        )
        for index in range(1, chapter_count + 1)
    ]
    return Book(id=book_id, title=title, chapters=chapters, updated_at=1_000)


def make_context(*books: Book) -> BackupContext:
    return BackupContext(
        state=AppState(books=list(books), active_book_id=books[0].id if books else None),
        preferences={"theme": "dark"},
        reader_progress={"book-1": {"chapterId": "book-1-ch2"}},
    )


def build_archive(entries: dict[str, Any], raw_entries: dict[str, bytes] | None = None) -> bytes:
    """Zip ``entries`` as JSON plus ``raw_entries`` verbatim."""
    writer = ArchiveWriter()
    for name, payload in entries.items():
        writer.add_json(name, payload)
    for name, data in (raw_entries or {}).items():
        writer.add_bytes(name, data)
    return writer.finish()


def minimal_archive(schema_version: int = 1, **extra: Any) -> dict[str, Any]:
    """Entries for the smallest readable archive; ``extra`` adds or replaces entries."""
    entries: dict[str, Any] = {
        META_ENTRY: {"schemaVersion": schema_version, "createdAt": 1, "platform": "android"},
        SNAPSHOT_ENTRY: {"schemaVersion": 1, "books": [make_book().to_wire()]},
    }
    entries.update(extra)
    return entries
