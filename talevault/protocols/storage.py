from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from talevault.models.library import Attachment, Book, Chapter, ChapterAudioPath, ChapterPage, Job
from talevault.models.remote import DirEntry, FileStat


@runtime_checkable
class PreferenceStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def keys(self, prefix: str = "") -> list[str]: ...

    async def remove(self, key: str) -> None: ...


@runtime_checkable
class LibraryStore(Protocol):
    """Relational store holding books, chapters, jobs and upload queues."""

    @property
    def supports_native_export(self) -> bool: ...

    async def list_books(self) -> list[Book]: ...

    async def list_chapters_page(
        self, book_id: str, after_index: int | None, limit: int
    ) -> ChapterPage: ...

    async def upsert_book(self, book: Book) -> None: ...

    async def bulk_upsert_chapters(self, book_id: str, chapters: list[Chapter]) -> None: ...

    async def bulk_upsert_attachments(self, book_id: str, attachments: list[Attachment]) -> None: ...

    async def list_attachments(self) -> list[Attachment]: ...

    async def list_jobs(self) -> list[Job]: ...

    async def create_job(self, job: Job) -> None: ...

    async def list_queued_uploads(self, limit: int) -> list[dict[str, Any]]: ...

    async def enqueue_upload(self, record: dict[str, Any]) -> None: ...

    async def get_chapter_audio_path(self, chapter_id: str) -> ChapterAudioPath | None: ...

    async def set_chapter_audio_path(
        self, chapter_id: str, local_path: str, size_bytes: int
    ) -> None: ...

    async def export_native(self) -> dict[str, Any]: ...

    async def import_native(self, payload: dict[str, Any]) -> None: ...

    async def is_export_valid(self, payload: dict[str, Any]) -> bool: ...


@runtime_checkable
class NativeFilesystem(Protocol):
    """Device-local file storage addressed by '/'-separated relative paths.

    Missing paths raise ``FileNotFoundError``; other failures raise ``OSError``.
    """

    async def list_dir(self, path: str) -> list[DirEntry]: ...

    async def stat(self, path: str) -> FileStat: ...

    async def read_file(self, path: str) -> bytes: ...

    async def write_file(self, path: str, data: bytes) -> None: ...

    async def mkdir(self, path: str) -> None: ...

    async def delete_file(self, path: str) -> None: ...


__all__ = ["LibraryStore", "NativeFilesystem", "PreferenceStore"]
