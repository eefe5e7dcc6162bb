"""Error hierarchy for backup, restore and retention."""

from __future__ import annotations

import aiosqlite

from talevault.protocols.remote import RemoteError


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class BackupContextError(BackupError):
    """Packaging was requested without any application context."""


class SnapshotBuildError(BackupError):
    """The snapshot collaborator failed, so there is nothing to package."""


class ArchiveFormatError(BackupError):
    """An archive (or one of its entries) cannot be read."""

    def __init__(self, message: str, *, entry: str | None = None) -> None:
        super().__init__(message)
        self.entry = entry


class UnsupportedSchemaError(BackupError):
    """The archive was written by a newer schema than this build supports."""

    def __init__(self, found: int, supported: int) -> None:
        super().__init__(f"Unsupported backup schema {found}. App supports up to {supported}.")
        self.found = found
        self.supported = supported


class RestoreError(BackupError):
    """A restore step failed and no fallback was left."""

    def __init__(self, message: str, *, step: str) -> None:
        super().__init__(message)
        self.step = step


class BackupTargetError(BackupError):
    """A save target is not usable, e.g. no remote root folder configured."""


# Collaborator failures that a degradable step turns into a warning.
COLLABORATOR_ERRORS: tuple[type[Exception], ...] = (OSError, ValueError, RemoteError, aiosqlite.Error)


__all__ = [
    "COLLABORATOR_ERRORS",
    "ArchiveFormatError",
    "BackupContextError",
    "BackupError",
    "BackupTargetError",
    "RestoreError",
    "SnapshotBuildError",
    "UnsupportedSchemaError",
]
