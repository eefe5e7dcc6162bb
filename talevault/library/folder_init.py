"""Create or load the ``meta/book.json`` and ``meta/inventory.json`` pair for a book."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TypeVar

from pydantic import ValidationError

from talevault.core.logging import correlation_scope
from talevault.library.naming import build_audio_name, build_text_name
from talevault.library.snapshot import list_all_chapters
from talevault.models.library import Book
from talevault.models.manifests import (
    BOOK_MANIFEST_NAME,
    INVENTORY_MANIFEST_NAME,
    BackendKind,
    BookManifest,
    FolderLayout,
    InventoryChapter,
    InventoryManifest,
)
from talevault.models.remote import FileRef, FolderRef
from talevault.protocols.remote import FolderAdapter
from talevault.protocols.storage import LibraryStore

logger = logging.getLogger(__name__)

M = TypeVar("M", BookManifest, InventoryManifest)


@dataclass(frozen=True, slots=True)
class BookFolderManifests:
    book: BookManifest
    inventory: InventoryManifest


def _dump(manifest: BookManifest | InventoryManifest) -> str:
    return json.dumps(manifest.to_wire(), indent=2)


class FolderManifestInitializer:
    """Idempotent: existing manifests are read, never overwritten."""

    def __init__(self, adapter: FolderAdapter, library: LibraryStore) -> None:
        self._adapter = adapter
        self._library = library

    async def initialize(
        self,
        book: Book,
        root_folder_id: str,
        root_folder_name: str | None = None,
    ) -> BookFolderManifests:
        with correlation_scope(operation="library.folder_init", book_id=book.id):
            root = FolderRef(
                backend=self._adapter.backend,
                id=root_folder_id,
                name=root_folder_name or book.title,
            )
            meta = await self._adapter.ensure_folder(root, FolderLayout().meta)
            book_file = await self._adapter.find_by_name(meta, BOOK_MANIFEST_NAME)
            inventory_file = await self._adapter.find_by_name(meta, INVENTORY_MANIFEST_NAME)

            default_book = BookManifest(
                item_id=book.id,
                title=book.title,
                backend=BackendKind.drive if book.backend == "drive" else BackendKind.local,
                root_folder_id=root_folder_id,
            )
            if book_file is not None:
                book_manifest = await self._read(book_file, BookManifest, default_book)
            else:
                book_manifest = default_book
                await self._adapter.write_text(meta, BOOK_MANIFEST_NAME, _dump(book_manifest))
                logger.info("Created %s for book %s", BOOK_MANIFEST_NAME, book.id)

            if inventory_file is not None:
                inventory = await self._read(inventory_file, InventoryManifest, InventoryManifest(item_id=book.id))
            else:
                inventory = await self._build_inventory(book)
                await self._adapter.write_text(meta, INVENTORY_MANIFEST_NAME, _dump(inventory))
                logger.info("Created %s for book %s with %d chapters", INVENTORY_MANIFEST_NAME, book.id, len(inventory.chapters))

            return BookFolderManifests(book=book_manifest, inventory=inventory)

    async def _read(self, file: FileRef, model: type[M], fallback: M) -> M:
        raw = await self._adapter.read_text(file)
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Unreadable %s (%s); using defaults without overwriting", file.name, exc.error_count())
            return fallback

    async def _build_inventory(self, book: Book) -> InventoryManifest:
        chapters = await list_all_chapters(self._library, book.id)
        return InventoryManifest(
            item_id=book.id,
            expected_total=len(chapters),
            chapters=[
                InventoryChapter(
                    chapter_id=chapter.id,
                    idx=chapter.index,
                    title=chapter.title,
                    text_name=build_text_name(chapter.index, chapter.title),
                    audio_name=build_audio_name(chapter.index, chapter.title),
                    volume_name=chapter.volume_name,
                    volume_local_chapter=chapter.volume_local_chapter,
                )
                for chapter in chapters
            ],
        )


__all__ = ["BookFolderManifests", "FolderManifestInitializer"]
