"""Backup orchestration: context collection, save targets and restore entry points."""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
from pathlib import Path
from typing import Any

from talevault.adapters.folders import DriveFolderAdapter
from talevault.backup.errors import COLLABORATOR_ERRORS, BackupTargetError
from talevault.backup.packager import ArchivePackager, ProgressCallback, emit_progress
from talevault.backup.restore import RestoreOrchestrator
from talevault.backup.retention import (
    DriveArtifactStore,
    LocalArtifactStore,
    RetentionManager,
    format_backup_file_name,
    is_backup_artifact,
)
from talevault.config import TalevaultSettings
from talevault.core.busy import OperationGate
from talevault.core.logging import correlation_scope
from talevault.library.snapshot import list_all_chapters
from talevault.models.backup import (
    BackupArchive,
    BackupCandidate,
    BackupOptions,
    BackupPointer,
    BackupStep,
    BackupTarget,
    RestoreResult,
    SaveResult,
)
from talevault.models.library import AppState, BackupContext
from talevault.models.manifests import BackendKind
from talevault.models.remote import FolderRef, parse_remote_time
from talevault.protocols.backup import ArtifactStore
from talevault.protocols.remote import RemoteStorage
from talevault.protocols.storage import LibraryStore, NativeFilesystem, PreferenceStore

logger = logging.getLogger(__name__)

ZIP_MIME_TYPE = "application/zip"

# Preference keys whose JSON values seed the snapshot sections.
_PREFS_KEY = "talevox_prefs_v3"
_READER_PROGRESS_KEY = "talevox_reader_progress"
_PROGRESS_STORE_KEY = "talevox_progress_store"


class BackupService:
    """Entry point for backups and restores.

    Holds the busy gate: while one backup or restore runs, further calls
    return ``None`` without touching any store.
    """

    def __init__(
        self,
        *,
        settings: TalevaultSettings,
        library: LibraryStore,
        preferences: PreferenceStore,
        packager: ArchivePackager,
        restorer: RestoreOrchestrator,
        filesystem: NativeFilesystem | None = None,
        remote: RemoteStorage | None = None,
        retention: RetentionManager | None = None,
        gate: OperationGate | None = None,
    ) -> None:
        self._settings = settings
        self._library = library
        self._preferences = preferences
        self._packager = packager
        self._restorer = restorer
        self._filesystem = filesystem
        self._remote = remote
        self._retention = retention or RetentionManager()
        self._gate = gate or OperationGate()

    @property
    def busy(self) -> bool:
        return self._gate.busy

    async def collect_context(self) -> BackupContext:
        books = []
        for book in await self._library.list_books():
            chapters = await list_all_chapters(self._library, book.id)
            books.append(book.model_copy(update={"chapters": chapters}))

        state = AppState(books=books, drive_root_folder_id=self._settings.drive.root_folder_id)
        return BackupContext(
            state=state,
            preferences=await self._json_pref(_PREFS_KEY),
            reader_progress=await self._json_pref(_READER_PROGRESS_KEY),
            legacy_progress_store=await self._json_pref(_PROGRESS_STORE_KEY),
            attachments=await self._library.list_attachments(),
            jobs=await self._library.list_jobs(),
        )

    async def _json_pref(self, key: str) -> dict[str, Any]:
        raw = await self._preferences.get(key)
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Preference %s is not valid JSON; leaving it out of the snapshot", key)
            return {}
        return value if isinstance(value, dict) else {}

    async def run_backup(
        self,
        target: BackupTarget,
        options: BackupOptions | dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SaveResult | None:
        async with self._gate.try_enter(f"backup:{target}") as entered:
            if not entered:
                return None
            with correlation_scope(operation=f"backup.{target}"):
                context = await self.collect_context()
                archive = await self._packager.pack(
                    options if options is not None else self._settings.backup.options,
                    context,
                    on_progress,
                )
                return await self.save_backup(target, archive, on_progress=on_progress)

    async def save_backup(
        self,
        target: BackupTarget,
        archive: BackupArchive,
        file_name: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SaveResult:
        name = file_name or format_backup_file_name(self._settings.product)
        if target == BackupTarget.drive:
            result = await self._save_drive(archive, name, on_progress)
        else:
            result = await self._save_local(archive, name, on_progress)
        logger.info("%s: %s", result.location_label, result.file_name)
        return result

    async def _saves_folder(self, root_folder_id: str | None = None) -> tuple[RemoteStorage, FolderRef]:
        """The remote client plus the saves folder under the configured root."""
        remote = self._remote
        root = root_folder_id or self._settings.drive.root_folder_id
        if remote is None or not root:
            raise BackupTargetError("Drive backup requires a root folder.")
        saves = await DriveFolderAdapter(remote).ensure_folder(
            FolderRef(backend=BackendKind.drive, id=root),
            self._settings.backup.saves_folder_name,
        )
        return remote, saves

    async def _save_drive(
        self,
        archive: BackupArchive,
        name: str,
        on_progress: ProgressCallback | None,
    ) -> SaveResult:
        emit_progress(on_progress, BackupStep.saving_drive, "Uploading backup to Drive")
        remote, saves = await self._saves_folder()
        file_id = await remote.upload(saves.id, name, archive.data, ZIP_MIME_TYPE)

        pointer_name = self._settings.backup.pointer_file_name
        existing = await DriveFolderAdapter(remote).find_by_name(saves, pointer_name)
        pointer = BackupPointer(
            latest_file_name=name,
            latest_file_id=file_id,
            backup_schema_version=archive.meta.schema_version,
        )
        await remote.upload(
            saves.id,
            pointer_name,
            json.dumps(pointer.to_wire()).encode("utf-8"),
            "application/json",
            existing_id=existing.id if existing else None,
        )

        warnings = list(archive.warnings)
        store = DriveArtifactStore(remote, saves.id, self._settings.product)
        warnings.extend(await self._prune(store, self._settings.backup.keep_drive_backups))
        return SaveResult(
            location_label="Saved to Google Drive",
            file_name=name,
            file_id=file_id,
            warnings=warnings,
        )

    async def _save_local(
        self,
        archive: BackupArchive,
        name: str,
        on_progress: ProgressCallback | None,
    ) -> SaveResult:
        if self._filesystem is None:
            raise BackupTargetError("Local backup requires a native filesystem.")
        emit_progress(on_progress, BackupStep.saving_local, "Saving backup to device")
        folder = self._settings.backup.local_folder
        await self._filesystem.mkdir(folder)
        local_path = posixpath.join(folder, name)
        await self._filesystem.write_file(local_path, archive.data)

        warnings = list(archive.warnings)
        store = LocalArtifactStore(self._filesystem, folder, self._settings.product)
        warnings.extend(await self._prune(store, self._settings.backup.keep_local_backups))
        return SaveResult(
            location_label=f"Saved to app storage ({local_path})",
            file_name=name,
            local_path=local_path,
            warnings=warnings,
        )

    async def _prune(self, store: ArtifactStore, keep: int) -> list[str]:
        try:
            await self._retention.prune(store, keep)
        except COLLABORATOR_ERRORS as exc:
            logger.warning("Retention on %s failed: %s", store.label, exc)
            return [f"retention-failed:{store.label}:{exc}"]
        return []

    async def prune(self, target: BackupTarget, keep: int | None = None) -> list[str]:
        """Apply retention to ``target`` outside a save; returns the kept names."""
        if target == BackupTarget.drive:
            remote, saves = await self._saves_folder()
            store: ArtifactStore = DriveArtifactStore(remote, saves.id, self._settings.product)
            default_keep = self._settings.backup.keep_drive_backups
        else:
            if self._filesystem is None:
                raise BackupTargetError("Local backup requires a native filesystem.")
            store = LocalArtifactStore(self._filesystem, self._settings.backup.local_folder, self._settings.product)
            default_keep = self._settings.backup.keep_local_backups
        summary = await self._retention.prune(store, keep if keep is not None else default_keep)
        return summary.kept

    async def list_drive_backup_candidates(self, root_folder_id: str | None = None) -> list[BackupCandidate]:
        remote, saves = await self._saves_folder(root_folder_id)
        files = [
            item
            for item in await remote.list_files(saves.id)
            if not item.is_folder and is_backup_artifact(item.name, self._settings.product)
        ]
        files.sort(key=lambda item: parse_remote_time(item.modified_time), reverse=True)
        return [
            BackupCandidate(id=item.id, name=item.name, modified_time=item.modified_time, size=item.size)
            for item in files
        ]

    async def restore_from_bytes(
        self,
        data: bytes,
        on_progress: ProgressCallback | None = None,
    ) -> RestoreResult | None:
        async with self._gate.try_enter("restore") as entered:
            if not entered:
                return None
            return await self._restorer.restore(data, on_progress)

    async def restore_from_file(
        self,
        path: str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> RestoreResult | None:
        data = await asyncio.to_thread(Path(path).read_bytes)
        return await self.restore_from_bytes(data, on_progress)

    async def restore_from_drive(
        self,
        file_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> RestoreResult | None:
        remote = self._remote
        if remote is None:
            raise BackupTargetError("Drive restore requires a remote storage client.")
        async with self._gate.try_enter("restore") as entered:
            if not entered:
                return None
            data = await remote.fetch_binary(file_id)
            return await self._restorer.restore(data, on_progress)


__all__ = ["BackupService"]
