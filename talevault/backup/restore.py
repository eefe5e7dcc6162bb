"""Replay a backup archive into the live stores.

The orchestrator walks a fixed sequence of states::

    idle -> collecting_state -> restoring_db -> restoring_prefs
         -> restoring_files -> finalizing -> done

Any step may end in ``failed``. Reading, validating and migrating the
archive is all-or-nothing; the replay steps after it degrade to warnings
wherever a fallback exists.
"""

from __future__ import annotations

import json
import logging
import posixpath
import zipfile
import zlib
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from talevault.backup.archive import FILES_PREFIX, ArchiveReader, is_safe_entry_path
from talevault.backup.errors import COLLABORATOR_ERRORS, BackupError, RestoreError
from talevault.backup.migrations import migrate_bundle
from talevault.backup.packager import (
    EXPORT_FAILED_MODE,
    ProgressCallback,
    emit_progress,
)
from talevault.backup.prefs import PreferenceAllowList
from talevault.config import TalevaultSettings
from talevault.core.logging import correlation_scope
from talevault.models.backup import (
    ABSENT,
    ArchiveBundle,
    BackupStep,
    Platform,
    RestoreResult,
    RestoreState,
)
from talevault.models.library import Attachment, FullSnapshot
from talevault.protocols.storage import LibraryStore, NativeFilesystem, PreferenceStore

logger = logging.getLogger(__name__)

ReloadHook = Callable[[RestoreResult], Awaitable[None]]


def is_sentinel_export(payload: dict[str, Any]) -> bool:
    mode = str(payload.get("mode") or "")
    return mode.startswith("web-") or mode in (EXPORT_FAILED_MODE, "unavailable")


class RestoreOrchestrator:
    def __init__(
        self,
        *,
        preferences: PreferenceStore,
        library: LibraryStore,
        filesystem: NativeFilesystem | None,
        settings: TalevaultSettings | None = None,
        allow_list: PreferenceAllowList | None = None,
        on_reload: ReloadHook | None = None,
    ) -> None:
        self._preferences = preferences
        self._library = library
        self._filesystem = filesystem
        self._settings = settings or TalevaultSettings()
        self._allow_list = allow_list or PreferenceAllowList(self._settings.preferences)
        self._on_reload = on_reload
        self._state = RestoreState.idle

    @property
    def state(self) -> RestoreState:
        return self._state

    def _enter(self, state: RestoreState) -> None:
        logger.debug("Restore state %s -> %s", self._state, state)
        self._state = state

    async def restore(self, data: bytes, on_progress: ProgressCallback | None = None) -> RestoreResult:
        """Overwrite live state with the archive in ``data``.

        Raises ``BackupError`` subclasses on fatal failures; the orchestrator
        is left in ``failed`` in that case.
        """
        with correlation_scope(operation="backup.restore"):
            try:
                return await self._restore(data, on_progress)
            except BackupError:
                self._enter(RestoreState.failed)
                raise
            except Exception as exc:
                failed_step = str(self._state)
                self._enter(RestoreState.failed)
                logger.exception("Restore failed during %s", failed_step)
                raise RestoreError(f"Restore failed during {failed_step}: {exc}", step=failed_step) from exc

    async def _restore(self, data: bytes, on_progress: ProgressCallback | None) -> RestoreResult:
        self._enter(RestoreState.collecting_state)
        emit_progress(on_progress, BackupStep.collecting_state, "Reading backup ZIP")
        with ArchiveReader(data) as reader:
            bundle = migrate_bundle(reader.read_bundle())
            warnings = list(bundle.meta.warnings)
            logger.info(
                "Restoring backup schema=%s created_at=%s platform=%s",
                bundle.meta.schema_version,
                bundle.meta.created_at,
                bundle.meta.platform,
            )

            self._enter(RestoreState.restoring_db)
            emit_progress(on_progress, BackupStep.restoring_db, "Restoring database")
            used_fallback = await self._restore_db(bundle, warnings)

            self._enter(RestoreState.restoring_prefs)
            emit_progress(on_progress, BackupStep.restoring_prefs, "Restoring preferences")
            warnings.extend(
                await self._allow_list.write_back(
                    self._preferences,
                    bundle.prefs_or_empty(),
                    bundle.meta.options.include_oauth_tokens,
                )
            )

            self._enter(RestoreState.restoring_files)
            emit_progress(on_progress, BackupStep.restoring_files, "Restoring files")
            restored_files = await self._restore_files(reader, warnings, on_progress)

        self._enter(RestoreState.finalizing)
        emit_progress(on_progress, BackupStep.finalizing, "Restoring storage metadata")
        await self._restore_storage_driver(bundle, warnings)

        emit_progress(on_progress, BackupStep.finalizing, "Reloading app")
        await self._persist_warnings(warnings)
        result = RestoreResult(
            state=RestoreState.done,
            meta=bundle.meta,
            warnings=warnings,
            restored_files=restored_files,
            used_snapshot_fallback=used_fallback,
        )
        self._enter(RestoreState.done)
        if self._on_reload is not None:
            await self._on_reload(result)
        logger.info("Restore finished: %d files, %d warnings", restored_files, len(warnings))
        return result

    async def _restore_db(self, bundle: ArchiveBundle, warnings: list[str]) -> bool:
        """Import the native export when usable, else replay the snapshot.

        Returns whether the snapshot fallback was used.
        """
        export = bundle.relational_export
        native = self._settings.platform != Platform.web and self._library.supports_native_export
        if native and export is not ABSENT and not is_sentinel_export(export):
            try:
                valid = await self._library.is_export_valid(export)
                if valid:
                    await self._library.import_native(export)
                    return False
                warnings.append("sqlite-json-invalid-falling-back-to-snapshot")
            except COLLABORATOR_ERRORS as exc:
                logger.warning("Native import failed, replaying snapshot: %s", exc)
                warnings.append(f"sqlite-import-failed-falling-back-to-snapshot:{exc}")

        try:
            await self._apply_snapshot(bundle.full_snapshot)
        except COLLABORATOR_ERRORS as exc:
            raise RestoreError(f"Snapshot replay failed: {exc}", step=RestoreState.restoring_db) from exc
        return True

    async def _apply_snapshot(self, snapshot: FullSnapshot) -> None:
        for book in snapshot.books:
            await self._library.upsert_book(book.model_copy(update={"chapters": []}))
            if book.chapters:
                await self._library.bulk_upsert_chapters(book.id, book.chapters)

        by_book: dict[str, list[Attachment]] = defaultdict(list)
        for attachment in snapshot.attachments:
            by_book[attachment.book_id].append(attachment)
        for book_id, attachments in by_book.items():
            await self._library.bulk_upsert_attachments(book_id, attachments)
        logger.info("Replayed snapshot: %d books, %d attachments", len(snapshot.books), len(snapshot.attachments))

    async def _restore_files(
        self,
        reader: ArchiveReader,
        warnings: list[str],
        on_progress: ProgressCallback | None,
    ) -> int:
        if self._filesystem is None or self._settings.platform == Platform.web:
            warnings.append("native-files-restore-skipped-on-web")
            return 0

        roots = self._settings.content_roots.as_namespaces()
        entries = reader.file_entries()
        done = 0
        for position, name in enumerate(entries, start=1):
            target = self._target_path(name, roots)
            if target is None:
                warnings.append(f"file-restore-skipped:{name}")
                continue
            try:
                parent = posixpath.dirname(target)
                if parent:
                    await self._filesystem.mkdir(parent)
                payload = reader.read_bytes(name)
                await self._filesystem.write_file(target, payload)
            except (OSError, EOFError, zipfile.BadZipFile, zlib.error) as exc:
                logger.warning("Could not restore %s: %s", name, exc)
                warnings.append(f"file-restore-failed:{name}:{exc}")
                continue
            done += 1
            emit_progress(on_progress, BackupStep.restoring_files, "Restoring files", position, len(entries))
        return done

    @staticmethod
    def _target_path(entry_name: str, roots: dict[str, str]) -> str | None:
        if not is_safe_entry_path(entry_name):
            return None
        namespace, _, relative = entry_name[len(FILES_PREFIX) :].partition("/")
        root = roots.get(namespace)
        if root is None or not relative:
            return None
        return posixpath.join(root, relative)

    async def _restore_storage_driver(self, bundle: ArchiveBundle, warnings: list[str]) -> None:
        state = bundle.storage_driver_or_empty()
        for job in state.jobs:
            try:
                await self._library.create_job(job)
            except COLLABORATOR_ERRORS as exc:
                warnings.append(f"job-restore-failed:{job.job_id}:{exc}")
        for binding in state.chapter_audio_paths:
            try:
                await self._library.set_chapter_audio_path(binding.content_id, binding.local_path, binding.size_bytes)
            except COLLABORATOR_ERRORS as exc:
                warnings.append(f"audio-path-restore-failed:{binding.content_id}:{exc}")
        for record in state.queued_uploads:
            if not isinstance(record, dict):
                continue
            try:
                await self._library.enqueue_upload(record)
            except COLLABORATOR_ERRORS as exc:
                warnings.append(f"upload-queue-restore-failed:{exc}")

    async def _persist_warnings(self, warnings: list[str]) -> None:
        key = self._settings.preferences.restore_warnings_key
        try:
            await self._preferences.set(key, json.dumps(warnings))
        except COLLABORATOR_ERRORS as exc:
            logger.warning("Could not persist restore warnings: %s", exc)


__all__ = ["ReloadHook", "RestoreOrchestrator", "is_sentinel_export"]
