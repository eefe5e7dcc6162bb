"""Per-book folder manifests stored under ``<book root>/meta``."""

from __future__ import annotations

from enum import StrEnum

from pydantic import AliasChoices, Field, field_validator

from talevault.models.base import WireModel, now_ms

MANIFEST_SCHEMA_VERSION = "3.0"
BOOK_MANIFEST_NAME = "book.json"
INVENTORY_MANIFEST_NAME = "inventory.json"


class BackendKind(StrEnum):
    drive = "drive"
    local = "local"


class FolderLayout(WireModel):
    meta: str = "meta"
    text: str = "text"
    audio: str = "audio"
    trash: str = "trash"


class BookManifest(WireModel):
    schema_version: str = MANIFEST_SCHEMA_VERSION
    item_id: str = Field(validation_alias=AliasChoices("itemId", "bookId", "item_id"))
    title: str = ""
    created_at: int = Field(default_factory=now_ms)
    backend: BackendKind = BackendKind.drive
    root_folder_id: str | None = None
    folders: FolderLayout = Field(default_factory=FolderLayout)

    @field_validator("backend", mode="before")
    @classmethod
    def _legacy_backend(cls, value: object) -> object:
        # Older manifests call the on-device backend "eternal".
        return "local" if value == "eternal" else value


class LegacyNames(WireModel):
    legacy_idx: int
    legacy_text_name: str | None = None
    legacy_audio_name: str | None = None


class InventoryChapter(WireModel):
    chapter_id: str
    idx: int
    title: str = ""
    text_name: str
    audio_name: str
    volume_name: str | None = None
    volume_local_chapter: int | None = None
    legacy: LegacyNames | None = None


class InventoryManifest(WireModel):
    schema_version: str = MANIFEST_SCHEMA_VERSION
    item_id: str = Field(validation_alias=AliasChoices("itemId", "bookId", "item_id"))
    expected_total: int = 0
    chapters: list[InventoryChapter] = Field(default_factory=list)

    @field_validator("chapters")
    @classmethod
    def _unique_chapter_ids(cls, value: list[InventoryChapter]) -> list[InventoryChapter]:
        seen: set[str] = set()
        unique: list[InventoryChapter] = []
        for entry in value:
            if entry.chapter_id in seen:
                continue
            seen.add(entry.chapter_id)
            unique.append(entry)
        return unique


__all__ = [
    "BOOK_MANIFEST_NAME",
    "BackendKind",
    "BookManifest",
    "FolderLayout",
    "INVENTORY_MANIFEST_NAME",
    "InventoryChapter",
    "InventoryManifest",
    "LegacyNames",
    "MANIFEST_SCHEMA_VERSION",
]
