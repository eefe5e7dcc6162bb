"""Package live application state into a single backup archive."""

from __future__ import annotations

import logging
import posixpath
from collections import deque
from collections.abc import Callable
from typing import Any

from talevault.backup.archive import (
    FILE_MANIFEST_ENTRY,
    META_ENTRY,
    PREFS_ENTRY,
    RELATIONAL_ENTRY,
    SNAPSHOT_ENTRY,
    STORAGE_DRIVER_ENTRY,
    ArchiveWriter,
    files_entry_name,
)
from talevault.backup.errors import COLLABORATOR_ERRORS, BackupContextError, SnapshotBuildError
from talevault.backup.prefs import PreferenceAllowList
from talevault.config import TalevaultSettings
from talevault.core.logging import correlation_scope
from talevault.models.backup import (
    CURRENT_SCHEMA_VERSION,
    ArchiveMeta,
    BackupArchive,
    BackupOptions,
    BackupProgress,
    BackupStep,
    FileManifestEntry,
    Platform,
    StorageDriverState,
    normalize_options,
)
from talevault.models.base import now_ms
from talevault.models.library import AppState, BackupContext, ChapterAudioPath
from talevault.protocols.backup import SnapshotBuilder
from talevault.protocols.storage import LibraryStore, NativeFilesystem, PreferenceStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BackupProgress], None]

QUEUED_UPLOAD_LIMIT = 10_000
WEB_FALLBACK_MODE = "web-fallback"
EXPORT_FAILED_MODE = "native-export-failed"

# Archive namespace -> option that enables it, in packaging order.
_NAMESPACE_OPTIONS = (
    ("chapter_text", "include_chapter_text"),
    ("audio", "include_audio"),
    ("attachments", "include_attachments"),
    ("diagnostics", "include_diagnostics"),
)


def emit_progress(
    on_progress: ProgressCallback | None,
    step: BackupStep,
    message: str,
    current: int | None = None,
    total: int | None = None,
) -> None:
    if on_progress is None:
        return
    on_progress(BackupProgress(step=step, message=message, current=current, total=total))


class ArchivePackager:
    """Builds a backup archive from the snapshot, stores and content folders.

    Only two things abort packaging: a missing context and a failing snapshot
    builder. Everything else is recorded as a warning on the archive meta.
    """

    def __init__(
        self,
        *,
        snapshot_builder: SnapshotBuilder,
        preferences: PreferenceStore,
        library: LibraryStore,
        filesystem: NativeFilesystem | None,
        settings: TalevaultSettings | None = None,
        allow_list: PreferenceAllowList | None = None,
    ) -> None:
        self._snapshot_builder = snapshot_builder
        self._preferences = preferences
        self._library = library
        self._filesystem = filesystem
        self._settings = settings or TalevaultSettings()
        self._allow_list = allow_list or PreferenceAllowList(self._settings.preferences)

    async def pack(
        self,
        options: BackupOptions | dict[str, Any] | None,
        context: BackupContext | None,
        on_progress: ProgressCallback | None = None,
    ) -> BackupArchive:
        with correlation_scope(operation="backup.pack"):
            return await self._pack(normalize_options(options), context, on_progress)

    async def _pack(
        self,
        options: BackupOptions,
        context: BackupContext | None,
        on_progress: ProgressCallback | None,
    ) -> BackupArchive:
        warnings: list[str] = []
        created_at = now_ms()

        emit_progress(on_progress, BackupStep.collecting_state, "Collecting app state")
        if context is None:
            raise BackupContextError("Backup context is required.")
        try:
            snapshot = self._snapshot_builder.build(context)
        except Exception as exc:
            logger.exception("Snapshot builder failed")
            raise SnapshotBuildError(f"Could not build full snapshot: {exc}") from exc

        prefs = await self._collect_prefs(options, warnings)
        driver_state = await self._collect_storage_driver_state(context.state, warnings)

        emit_progress(on_progress, BackupStep.exporting_db, "Exporting SQLite database")
        relational = await self._export_relational(warnings)

        writer = ArchiveWriter()
        manifest: list[FileManifestEntry] = []
        emit_progress(on_progress, BackupStep.collecting_files, "Collecting file assets")
        filesystem = self._filesystem
        if filesystem is not None and self._settings.platform != Platform.web:
            roots = self._settings.content_roots.as_namespaces()
            for namespace, option_name in _NAMESPACE_OPTIONS:
                if getattr(options, option_name):
                    await self._add_folder(
                        filesystem, writer, roots[namespace], namespace, manifest, warnings, on_progress
                    )
        else:
            warnings.append("native-file-folders-unavailable-on-web")

        meta = ArchiveMeta(
            schema_version=CURRENT_SCHEMA_VERSION,
            app_version=self._settings.app_version,
            created_at=created_at,
            platform=self._settings.platform,
            warnings=warnings,
            options=options,
        )
        writer.add_json(META_ENTRY, meta.to_wire())
        writer.add_json(PREFS_ENTRY, prefs)
        writer.add_json(RELATIONAL_ENTRY, relational)
        writer.add_json(SNAPSHOT_ENTRY, snapshot.to_wire())
        writer.add_json(STORAGE_DRIVER_ENTRY, driver_state.to_wire())
        writer.add_json(FILE_MANIFEST_ENTRY, [entry.to_wire() for entry in manifest])

        emit_progress(on_progress, BackupStep.zipping, "Creating ZIP archive")
        data = writer.finish()
        emit_progress(on_progress, BackupStep.zipping, "Compressing backup", 100, 100)

        for warning in warnings:
            logger.warning("Backup warning: %s", warning)
        logger.info(
            "Packaged backup: %d bytes, %d manifest entries, %d warnings",
            len(data),
            len(manifest),
            len(warnings),
        )
        return BackupArchive(data=data, meta=meta, file_manifest=manifest)

    async def _collect_prefs(self, options: BackupOptions, warnings: list[str]) -> dict[str, str]:
        try:
            return await self._allow_list.collect(self._preferences, options.include_oauth_tokens)
        except COLLABORATOR_ERRORS as exc:
            warnings.append(f"prefs-export-failed:{exc}")
            return {}

    async def _collect_storage_driver_state(self, state: AppState, warnings: list[str]) -> StorageDriverState:
        try:
            jobs = await self._library.list_jobs()
            queued = await self._library.list_queued_uploads(QUEUED_UPLOAD_LIMIT)
            audio_paths: list[ChapterAudioPath] = []
            for book in state.books:
                for chapter in book.chapters:
                    binding = await self._library.get_chapter_audio_path(chapter.id)
                    if binding is not None:
                        audio_paths.append(binding)
        except COLLABORATOR_ERRORS as exc:
            warnings.append(f"storage-driver-export-failed:{exc}")
            return StorageDriverState()
        return StorageDriverState(jobs=jobs, queued_uploads=queued, chapter_audio_paths=audio_paths)

    async def _export_relational(self, warnings: list[str]) -> dict[str, Any]:
        if self._settings.platform == Platform.web or not self._library.supports_native_export:
            warnings.append("sqlite-native-export-unavailable-on-web")
            return {"mode": WEB_FALLBACK_MODE, "reason": "sqlite-native-export-unavailable"}
        try:
            return await self._library.export_native()
        except COLLABORATOR_ERRORS as exc:
            warnings.append(f"sqlite-export-failed:{exc}")
            return {"mode": EXPORT_FAILED_MODE}

    async def _add_folder(
        self,
        filesystem: NativeFilesystem,
        writer: ArchiveWriter,
        source_dir: str,
        namespace: str,
        manifest: list[FileManifestEntry],
        warnings: list[str],
        on_progress: ProgressCallback | None,
    ) -> None:
        """Breadth-first walk of ``source_dir`` into ``files/<namespace>/``."""
        threshold = self._settings.backup.large_file_warning_bytes
        pending: deque[tuple[str, str]] = deque([(source_dir, "")])
        processed = 0

        while pending:
            source_path, relative_path = pending.popleft()
            try:
                entries = await filesystem.list_dir(source_path)
            except OSError as exc:
                warnings.append(f"missing-folder:{source_path}:{exc}")
                manifest.append(
                    FileManifestEntry(
                        path=files_entry_name(namespace, relative_path).rstrip("/"),
                        bytes=0,
                        skipped_reason="missing-folder",
                    )
                )
                continue

            for entry in entries:
                child_source = posixpath.join(source_path, entry.name)
                child_relative = posixpath.join(relative_path, entry.name) if relative_path else entry.name
                if entry.is_directory:
                    pending.append((child_source, child_relative))
                    continue

                zip_path = files_entry_name(namespace, child_relative)
                try:
                    data = await filesystem.read_file(child_source)
                except OSError as exc:
                    manifest.append(FileManifestEntry(path=zip_path, bytes=0, skipped_reason=str(exc) or type(exc).__name__))
                    warnings.append(f"file-read-failed:{child_source}:{exc}")
                else:
                    writer.add_bytes(zip_path, data)
                    manifest.append(FileManifestEntry(path=zip_path, bytes=len(data)))
                    if len(data) > threshold:
                        warnings.append(f"large-file:{zip_path}:{len(data)}")
                processed += 1
                emit_progress(on_progress, BackupStep.collecting_files, f"Collecting files/{namespace} files", processed)


__all__ = ["ArchivePackager", "ProgressCallback", "emit_progress"]
