"""Backup packaging, restore, retention and scheduling."""

from talevault.backup.errors import (
    ArchiveFormatError,
    BackupContextError,
    BackupError,
    BackupTargetError,
    RestoreError,
    SnapshotBuildError,
    UnsupportedSchemaError,
)
from talevault.backup.migrations import migrate_bundle
from talevault.backup.packager import ArchivePackager
from talevault.backup.restore import RestoreOrchestrator
from talevault.backup.retention import RetentionManager, format_backup_file_name
from talevault.backup.service import BackupService

__all__ = [
    "ArchiveFormatError",
    "ArchivePackager",
    "BackupContextError",
    "BackupError",
    "BackupService",
    "BackupTargetError",
    "RestoreError",
    "RestoreOrchestrator",
    "RetentionManager",
    "SnapshotBuildError",
    "UnsupportedSchemaError",
    "format_backup_file_name",
    "migrate_bundle",
]
