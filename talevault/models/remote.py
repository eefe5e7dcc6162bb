from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from talevault.models.base import WireModel
from talevault.models.library import Chapter
from talevault.models.manifests import BackendKind

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def parse_remote_time(value: str | None) -> float:
    """RFC 3339 modification time to epoch seconds; 0.0 when unparseable."""
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value).timestamp()
    except ValueError:
        return 0.0


class RemoteFile(WireModel):
    id: str
    name: str
    mime_type: str | None = None
    modified_time: str | None = None
    size: int | None = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[1].lower()


class FolderRef(BaseModel):
    backend: BackendKind
    id: str
    name: str | None = None


class FileRef(BaseModel):
    backend: BackendKind
    id: str
    name: str
    mime_type: str | None = None
    modified_time: str | None = None
    is_folder: bool = False


class DirEntry(BaseModel):
    name: str
    is_directory: bool = False


class FileStat(BaseModel):
    is_directory: bool = False
    size: int = 0
    mtime: float = 0.0


class ScanResult(BaseModel):
    missing_text_ids: list[str] = Field(default_factory=list)
    missing_audio_ids: list[str] = Field(default_factory=list)
    stray_files: list[RemoteFile] = Field(default_factory=list)
    # Strays that shadow a file already claimed by a chapter.
    duplicates: list[RemoteFile] = Field(default_factory=list)
    total_checked: int = 0
    updated_chapters: list[Chapter] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DriveCheckReport(BaseModel):
    success: bool
    message: str
    scan: ScanResult | None = None


__all__ = [
    "DirEntry",
    "DriveCheckReport",
    "FOLDER_MIME_TYPE",
    "FileRef",
    "FileStat",
    "FolderRef",
    "RemoteFile",
    "ScanResult",
    "parse_remote_time",
]
