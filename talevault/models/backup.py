"""Archive, progress and save-result models for backup and restore."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from talevault.models.base import WireModel, now_ms
from talevault.models.library import ChapterAudioPath, FullSnapshot, Job

# Bump when the archive layout changes; older archives are migrated on restore.
CURRENT_SCHEMA_VERSION = 1


class Platform(StrEnum):
    web = "web"
    android = "android"
    ios = "ios"


class BackupStep(StrEnum):
    collecting_state = "collecting_state"
    exporting_db = "exporting_db"
    collecting_files = "collecting_files"
    zipping = "zipping"
    restoring_db = "restoring_db"
    restoring_prefs = "restoring_prefs"
    restoring_files = "restoring_files"
    finalizing = "finalizing"
    saving_drive = "saving_drive"
    saving_local = "saving_local"


class BackupTarget(StrEnum):
    drive = "drive"
    local = "local"


class RestoreState(StrEnum):
    idle = "idle"
    collecting_state = "collecting_state"
    restoring_db = "restoring_db"
    restoring_prefs = "restoring_prefs"
    restoring_files = "restoring_files"
    finalizing = "finalizing"
    done = "done"
    failed = "failed"


_DEFAULT_ON_OPTIONS = (
    "include_audio",
    "include_diagnostics",
    "include_attachments",
    "include_chapter_text",
)
_WIRE_NAMES = {name: to_camel(name) for name in _DEFAULT_ON_OPTIONS} | {
    "include_oauth_tokens": "includeOAuthTokens",
}


class BackupOptions(WireModel):
    """Content toggles for one backup.

    Validation doubles as normalization: anything other than an explicit
    ``False`` enables the content toggles, while credential inclusion needs
    an explicit ``True``.
    """

    include_audio: bool = True
    include_diagnostics: bool = True
    include_attachments: bool = True
    include_chapter_text: bool = True
    include_oauth_tokens: bool = Field(default=False, alias="includeOAuthTokens")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: object) -> object:
        raw: dict[str, Any] = dict(data) if isinstance(data, dict) else {}
        normalized: dict[str, bool] = {}
        for name in _DEFAULT_ON_OPTIONS:
            normalized[name] = _lookup(raw, name) is not False
        normalized["include_oauth_tokens"] = _lookup(raw, "include_oauth_tokens") is True
        return normalized


def _lookup(raw: dict[str, Any], name: str) -> object:
    if name in raw:
        return raw[name]
    return raw.get(_WIRE_NAMES[name])


def normalize_options(options: BackupOptions | dict[str, Any] | None) -> BackupOptions:
    if isinstance(options, BackupOptions):
        return BackupOptions.model_validate(options.model_dump())
    return BackupOptions.model_validate(options or {})


class ArchiveMeta(WireModel):
    schema_version: int = Field(
        validation_alias=AliasChoices("schemaVersion", "backupSchemaVersion", "schema_version"),
    )
    app_version: str = "unknown"
    created_at: int = Field(default_factory=now_ms)
    platform: Platform = Platform.web
    notes: str = "Full backup"
    warnings: list[str] = Field(default_factory=list)
    options: BackupOptions = Field(default_factory=BackupOptions)

    @field_validator("schema_version", mode="before")
    @classmethod
    def _require_number(cls, value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError("schemaVersion must be a number")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError("schemaVersion must be an integer")
        return int(value)

    @field_validator("platform", mode="before")
    @classmethod
    def _coerce_platform(cls, value: object) -> str:
        return value if value in ("android", "ios") else "web"

    @field_validator("warnings", mode="before")
    @classmethod
    def _stringify_warnings(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value]


class FileManifestEntry(WireModel):
    path: str
    bytes: int = 0
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class StorageDriverState(WireModel):
    jobs: list[Job] = Field(default_factory=list)
    queued_uploads: list[Any] = Field(default_factory=list)
    chapter_audio_paths: list[ChapterAudioPath] = Field(default_factory=list)


class Absent(Enum):
    """Marker for an optional archive entry that was not present."""

    ABSENT = "absent"


ABSENT = Absent.ABSENT


@dataclass(frozen=True, slots=True)
class ArchiveBundle:
    meta: ArchiveMeta
    full_snapshot: FullSnapshot
    prefs: dict[str, str] | Absent = ABSENT
    relational_export: dict[str, Any] | Absent = ABSENT
    storage_driver_state: StorageDriverState | Absent = ABSENT
    file_manifest: list[FileManifestEntry] | Absent = ABSENT

    def prefs_or_empty(self) -> dict[str, str]:
        return {} if self.prefs is ABSENT else self.prefs

    def storage_driver_or_empty(self) -> StorageDriverState:
        if self.storage_driver_state is ABSENT:
            return StorageDriverState()
        return self.storage_driver_state


class BackupProgress(BaseModel):
    step: BackupStep
    message: str
    current: int | None = None
    total: int | None = None


class BackupArchive(BaseModel):
    """A packaged archive plus the metadata that went into it."""

    data: bytes
    meta: ArchiveMeta
    file_manifest: list[FileManifestEntry] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return self.meta.warnings


class BackupPointer(WireModel):
    schema_version: int = 1
    latest_file_name: str
    latest_created_at: int = Field(default_factory=now_ms)
    latest_file_id: str
    backup_schema_version: int = CURRENT_SCHEMA_VERSION


class SaveResult(BaseModel):
    location_label: str
    file_name: str
    file_id: str | None = None
    local_path: str | None = None
    warnings: list[str] = Field(default_factory=list)


class BackupCandidate(BaseModel):
    id: str
    name: str
    modified_time: str | None = None
    size: int | None = None


class RestoreResult(BaseModel):
    state: RestoreState
    meta: ArchiveMeta
    warnings: list[str] = Field(default_factory=list)
    restored_files: int = 0
    used_snapshot_fallback: bool = False


__all__ = [
    "ABSENT",
    "Absent",
    "ArchiveBundle",
    "ArchiveMeta",
    "BackupArchive",
    "BackupCandidate",
    "BackupOptions",
    "BackupPointer",
    "BackupProgress",
    "BackupStep",
    "BackupTarget",
    "CURRENT_SCHEMA_VERSION",
    "FileManifestEntry",
    "Platform",
    "RestoreResult",
    "RestoreState",
    "SaveResult",
    "StorageDriverState",
    "normalize_options",
]
