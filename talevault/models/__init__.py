from __future__ import annotations

from talevault.models.backup import (
    ABSENT,
    Absent,
    ArchiveBundle,
    ArchiveMeta,
    BackupArchive,
    BackupCandidate,
    BackupOptions,
    BackupPointer,
    BackupProgress,
    BackupStep,
    BackupTarget,
    CURRENT_SCHEMA_VERSION,
    FileManifestEntry,
    Platform,
    RestoreResult,
    RestoreState,
    SaveResult,
    StorageDriverState,
    normalize_options,
)
from talevault.models.library import (
    AppState,
    Attachment,
    AudioStatus,
    BackupContext,
    Book,
    Chapter,
    ChapterAudioPath,
    ChapterPage,
    FullSnapshot,
    Job,
)
from talevault.models.manifests import (
    BackendKind,
    BookManifest,
    FolderLayout,
    InventoryChapter,
    InventoryManifest,
)
from talevault.models.remote import (
    DirEntry,
    DriveCheckReport,
    FileRef,
    FileStat,
    FolderRef,
    RemoteFile,
    ScanResult,
    parse_remote_time,
)

__all__ = [
    "ABSENT",
    "Absent",
    "AppState",
    "ArchiveBundle",
    "ArchiveMeta",
    "Attachment",
    "AudioStatus",
    "BackendKind",
    "BackupArchive",
    "BackupCandidate",
    "BackupContext",
    "BackupOptions",
    "BackupPointer",
    "BackupProgress",
    "BackupStep",
    "BackupTarget",
    "Book",
    "BookManifest",
    "CURRENT_SCHEMA_VERSION",
    "Chapter",
    "ChapterAudioPath",
    "ChapterPage",
    "DirEntry",
    "DriveCheckReport",
    "FileManifestEntry",
    "FileRef",
    "FileStat",
    "FolderLayout",
    "FolderRef",
    "FullSnapshot",
    "InventoryChapter",
    "InventoryManifest",
    "Job",
    "Platform",
    "RemoteFile",
    "RestoreResult",
    "RestoreState",
    "SaveResult",
    "ScanResult",
    "StorageDriverState",
    "normalize_options",
    "parse_remote_time",
]
