from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from talevault.models.base import WireModel, now_ms


class AudioStatus(StrEnum):
    pending = "pending"
    generating = "generating"
    ready = "ready"
    failed = "failed"


class Chapter(WireModel):
    id: str
    book_id: str | None = None
    index: int
    title: str = ""
    filename: str = ""
    content: str | None = None
    content_format: str = "text"
    word_count: int = 0
    progress: float = 0.0
    volume_name: str | None = None
    volume_local_chapter: int | None = None
    cloud_text_file_id: str | None = None
    cloud_audio_file_id: str | None = None
    text_file_name: str | None = None
    audio_file_name: str | None = None
    has_text_on_drive: bool = False
    audio_status: AudioStatus = AudioStatus.pending
    updated_at: int = 0

    @field_validator("volume_name", mode="before")
    @classmethod
    def _normalize_volume_name(cls, value: object) -> str | None:
        if not isinstance(value, str):
            return None
        trimmed = value.strip()
        return trimmed or None


class Book(WireModel):
    id: str
    title: str = ""
    author: str | None = None
    chapters: list[Chapter] = Field(default_factory=list)
    backend: str = "drive"
    drive_folder_id: str | None = None
    current_chapter_id: str | None = None
    rules: list[dict[str, Any]] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)
    updated_at: int = 0


class Attachment(WireModel):
    id: str
    book_id: str
    filename: str = ""
    mime_type: str | None = None
    local_path: str | None = None
    size_bytes: int = 0
    updated_at: int = 0


class Job(WireModel):
    job_id: str
    type: str = ""
    status: str = "queued"
    payload: dict[str, Any] = Field(default_factory=dict)
    progress: dict[str, Any] | None = None
    created_at: int = 0
    updated_at: int = 0


class ChapterAudioPath(WireModel):
    content_id: str = Field(validation_alias=AliasChoices("contentId", "chapterId", "content_id"))
    local_path: str
    size_bytes: int = 0
    updated_at: int = 0


class AppState(WireModel):
    books: list[Book] = Field(default_factory=list)
    active_book_id: str | None = None
    playback_speed: float = 1.0
    selected_voice_name: str | None = None
    global_rules: list[dict[str, Any]] = Field(default_factory=list)
    drive_root_folder_id: str | None = None


class FullSnapshot(WireModel):
    """Complete in-memory state of the application at one point in time."""

    schema_version: int = 1
    created_at: int = Field(default_factory=now_ms)
    app_version: str = "unknown"
    preferences: dict[str, Any] = Field(default_factory=dict)
    reader_progress: dict[str, Any] = Field(default_factory=dict)
    legacy_progress_store: dict[str, Any] = Field(default_factory=dict)
    global_rules: list[dict[str, Any]] = Field(default_factory=list)
    books: list[Book] = Field(default_factory=list)
    chapters: list[Chapter] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    jobs: list[Job] = Field(default_factory=list)
    ui_state: dict[str, Any] = Field(default_factory=dict)


class BackupContext(BaseModel):
    """Live application state handed to the packager by its caller."""

    state: AppState
    preferences: dict[str, Any] = Field(default_factory=dict)
    reader_progress: dict[str, Any] = Field(default_factory=dict)
    legacy_progress_store: dict[str, Any] = Field(default_factory=dict)
    attachments: list[Attachment] = Field(default_factory=list)
    jobs: list[Job] = Field(default_factory=list)
    active_chapter_id: str | None = None
    active_tab: str | None = None


class ChapterPage(BaseModel):
    chapters: list[Chapter] = Field(default_factory=list)
    next_after_index: int | None = None


__all__ = [
    "AppState",
    "Attachment",
    "AudioStatus",
    "BackupContext",
    "Book",
    "Chapter",
    "ChapterAudioPath",
    "ChapterPage",
    "FullSnapshot",
    "Job",
]
