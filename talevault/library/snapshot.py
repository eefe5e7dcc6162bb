"""Default snapshot builder: a normalized, de-duplicated copy of app state."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

from talevault.models.base import now_ms
from talevault.models.library import BackupContext, Book, Chapter, FullSnapshot
from talevault.protocols.storage import LibraryStore

logger = logging.getLogger(__name__)

CHAPTER_PAGE_SIZE = 500

T = TypeVar("T")


async def list_all_chapters(store: LibraryStore, book_id: str, page_size: int = CHAPTER_PAGE_SIZE) -> list[Chapter]:
    chapters: list[Chapter] = []
    after: int | None = None
    while True:
        page = await store.list_chapters_page(book_id, after, page_size)
        chapters.extend(page.chapters)
        if page.next_after_index is None:
            return chapters
        after = page.next_after_index


def dedupe_by_key(items: Iterable[T], key: Callable[[T], str]) -> list[T]:
    """Keep one item per key; ties and newer ``updated_at`` replace older ones.

    First-seen order is preserved.
    """
    by_key: dict[str, T] = {}
    for item in items:
        item_key = key(item)
        existing = by_key.get(item_key)
        if existing is None or getattr(item, "updated_at", 0) >= getattr(existing, "updated_at", 0):
            by_key[item_key] = item
    return list(by_key.values())


def normalize_chapter(chapter: Chapter, book_id: str | None = None) -> Chapter:
    local_chapter = chapter.volume_local_chapter
    return chapter.model_copy(
        update={
            "book_id": chapter.book_id or book_id,
            "content_format": "markdown" if chapter.content_format == "markdown" else "text",
            "volume_local_chapter": local_chapter if local_chapter and local_chapter > 0 else None,
        }
    )


def normalize_book(book: Book) -> Book:
    chapters = dedupe_by_key((normalize_chapter(chapter, book.id) for chapter in book.chapters), lambda c: c.id)
    chapters.sort(key=lambda chapter: chapter.index)
    return book.model_copy(update={"chapters": chapters})


class LibrarySnapshotBuilder:
    def __init__(self, app_version: str = "unknown") -> None:
        self._app_version = app_version

    def build(self, context: BackupContext) -> FullSnapshot:
        state = context.state
        books = dedupe_by_key((normalize_book(book) for book in state.books), lambda b: b.id)
        chapters = dedupe_by_key((chapter for book in books for chapter in book.chapters), lambda c: c.id)
        attachments = dedupe_by_key(context.attachments, lambda a: a.id)
        jobs = dedupe_by_key(context.jobs, lambda j: j.job_id)
        logger.debug("Snapshot: %d books, %d chapters", len(books), len(chapters))
        return FullSnapshot(
            created_at=now_ms(),
            app_version=self._app_version,
            preferences=context.preferences,
            reader_progress=context.reader_progress,
            legacy_progress_store=context.legacy_progress_store,
            global_rules=state.global_rules,
            books=books,
            chapters=chapters,
            attachments=attachments,
            jobs=jobs,
            ui_state={
                "activeBookId": state.active_book_id,
                "activeChapterId": context.active_chapter_id,
                "activeTab": context.active_tab,
                "lastOpenBookId": state.active_book_id,
                "lastOpenChapterId": context.active_chapter_id,
            },
        )


__all__ = [
    "CHAPTER_PAGE_SIZE",
    "LibrarySnapshotBuilder",
    "dedupe_by_key",
    "list_all_chapters",
    "normalize_book",
    "normalize_chapter",
]
