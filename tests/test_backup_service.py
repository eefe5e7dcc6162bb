"""Tests for BackupService save targets, busy gating and restore entry points."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from talevault.backup.errors import BackupTargetError
from talevault.backup.packager import ArchivePackager
from talevault.backup.restore import RestoreOrchestrator
from talevault.backup.service import BackupService
from talevault.config import TalevaultSettings
from talevault.core.busy import OperationGate
from talevault.models.backup import BackupTarget, RestoreState
from tests.fakes import FakeRemoteStorage, InMemoryFilesystem, InMemoryLibraryStore, InMemoryPreferenceStore
from tests.helpers import make_book

pytestmark = pytest.mark.asyncio


def _saves_folder_id(remote: FakeRemoteStorage) -> str:
    return next(item.id for item in remote.children("root") if item.name == "saves")


class TestContext:
    async def test_collect_context_pages_chapters_and_reads_json_prefs(
        self,
        service: BackupService,
        library_store: InMemoryLibraryStore,
    ) -> None:
        await library_store.seed(make_book(chapter_count=4))

        context = await service.collect_context()

        assert [chapter.index for chapter in context.state.books[0].chapters] == [1, 2, 3, 4]
        assert context.preferences == {"theme": "dark"}
        assert context.reader_progress == {}
        assert context.state.drive_root_folder_id == "root"

    async def test_invalid_json_pref_is_left_out(
        self,
        service: BackupService,
        preference_store: InMemoryPreferenceStore,
    ) -> None:
        preference_store.values["talevox_reader_progress"] = "{not json"

        context = await service.collect_context()

        assert context.reader_progress == {}


class TestLocalSave:
    async def test_backup_lands_in_local_folder(
        self,
        service: BackupService,
        library_store: InMemoryLibraryStore,
        filesystem: InMemoryFilesystem,
    ) -> None:
        await library_store.seed(make_book())

        result = await service.run_backup(BackupTarget.local)

        assert result is not None
        assert result.local_path == f"talevox/backups/{result.file_name}"
        assert result.location_label.startswith("Saved to app storage")
        assert filesystem.names_in("talevox/backups") == [result.file_name]
        assert any(w.startswith("missing-folder:") for w in result.warnings)

    async def test_save_prunes_old_backups(
        self,
        service: BackupService,
        settings: TalevaultSettings,
        filesystem: InMemoryFilesystem,
    ) -> None:
        settings.backup.keep_local_backups = 2
        for day in (1, 2, 3):
            filesystem.put(f"talevox/backups/talevox-backup-2023-01-0{day}-000000.zip", b"old", mtime=float(day))

        result = await service.run_backup(BackupTarget.local)

        assert result is not None
        assert filesystem.names_in("talevox/backups") == sorted(
            ["talevox-backup-2023-01-03-000000.zip", result.file_name]
        )

    async def test_retention_failure_is_reported_on_the_result(
        self,
        service: BackupService,
        filesystem: InMemoryFilesystem,
    ) -> None:
        filesystem.unlistable.add("talevox/backups")

        result = await service.run_backup(BackupTarget.local)

        assert result is not None
        assert any(w.startswith("retention-failed:local:talevox/backups:") for w in result.warnings)
        assert filesystem.names_in("talevox/backups") == [result.file_name]

    async def test_local_target_needs_a_filesystem(
        self,
        settings: TalevaultSettings,
        library_store: InMemoryLibraryStore,
        preference_store: InMemoryPreferenceStore,
        packager: ArchivePackager,
        restorer: RestoreOrchestrator,
    ) -> None:
        service = BackupService(
            settings=settings,
            library=library_store,
            preferences=preference_store,
            packager=packager,
            restorer=restorer,
        )

        with pytest.raises(BackupTargetError, match="native filesystem"):
            await service.run_backup(BackupTarget.local)

    async def test_prune_outside_a_save(self, service: BackupService, filesystem: InMemoryFilesystem) -> None:
        for day in (1, 2, 3):
            filesystem.put(f"talevox/backups/talevox-backup-2023-01-0{day}-000000.zip", b"old", mtime=float(day))

        kept = await service.prune(BackupTarget.local, keep=1)

        assert kept == ["talevox-backup-2023-01-03-000000.zip"]
        assert filesystem.names_in("talevox/backups") == kept


class TestDriveSave:
    async def test_backup_uploads_archive_and_pointer(
        self,
        service: BackupService,
        remote: FakeRemoteStorage,
    ) -> None:
        result = await service.run_backup(BackupTarget.drive)

        assert result is not None
        assert result.location_label == "Saved to Google Drive"
        saves = _saves_folder_id(remote)
        assert remote.names_in(saves) == sorted([result.file_name, "talevox-latest-backup.json"])
        pointer_file = next(item for item in remote.children(saves) if item.name.endswith(".json"))
        pointer = json.loads(remote.files[pointer_file.id].data)
        assert pointer["latestFileId"] == result.file_id
        assert pointer["latestFileName"] == result.file_name
        assert pointer["backupSchemaVersion"] == 1

    async def test_pointer_is_updated_in_place(
        self,
        service: BackupService,
        packager: ArchivePackager,
        remote: FakeRemoteStorage,
    ) -> None:
        archive = await packager.pack(None, await service.collect_context())
        await service.save_backup(BackupTarget.drive, archive, "talevox-backup-2024-01-01-000000.zip")
        second = await service.save_backup(BackupTarget.drive, archive, "talevox-backup-2024-01-02-000000.zip")

        saves = _saves_folder_id(remote)
        pointers = [item for item in remote.children(saves) if item.name == "talevox-latest-backup.json"]
        assert len(pointers) == 1
        assert json.loads(remote.files[pointers[0].id].data)["latestFileId"] == second.file_id

    async def test_existing_saves_folder_is_reused(self, service: BackupService, remote: FakeRemoteStorage) -> None:
        existing = remote.add_folder("root", "saves")

        await service.run_backup(BackupTarget.drive)

        assert [item.id for item in remote.children("root") if item.name == "saves"] == [existing.id]

    async def test_drive_target_needs_a_root_folder(
        self,
        service: BackupService,
        settings: TalevaultSettings,
    ) -> None:
        settings.drive.root_folder_id = None

        with pytest.raises(BackupTargetError, match="root folder"):
            await service.run_backup(BackupTarget.drive)

    async def test_drive_paths_need_a_remote_client(
        self,
        settings: TalevaultSettings,
        library_store: InMemoryLibraryStore,
        preference_store: InMemoryPreferenceStore,
        packager: ArchivePackager,
        restorer: RestoreOrchestrator,
    ) -> None:
        service = BackupService(
            settings=settings,
            library=library_store,
            preferences=preference_store,
            packager=packager,
            restorer=restorer,
            filesystem=InMemoryFilesystem(),
        )

        with pytest.raises(BackupTargetError, match="root folder"):
            await service.run_backup(BackupTarget.drive)
        with pytest.raises(BackupTargetError, match="root folder"):
            await service.prune(BackupTarget.drive)
        with pytest.raises(BackupTargetError, match="root folder"):
            await service.list_drive_backup_candidates()
        with pytest.raises(BackupTargetError, match="remote storage client"):
            await service.restore_from_drive("file-1")
        assert not service.busy

    async def test_candidates_are_newest_first(
        self,
        service: BackupService,
        packager: ArchivePackager,
    ) -> None:
        archive = await packager.pack(None, await service.collect_context())
        for day in (1, 2, 3):
            await service.save_backup(BackupTarget.drive, archive, f"talevox-backup-2024-01-0{day}-000000.zip")

        candidates = await service.list_drive_backup_candidates()

        assert [candidate.name for candidate in candidates] == [
            "talevox-backup-2024-01-03-000000.zip",
            "talevox-backup-2024-01-02-000000.zip",
            "talevox-backup-2024-01-01-000000.zip",
        ]


class TestRestoreEntryPoints:
    async def test_restore_from_drive(
        self,
        service: BackupService,
        library_store: InMemoryLibraryStore,
        remote: FakeRemoteStorage,
    ) -> None:
        await library_store.seed(make_book())
        saved = await service.run_backup(BackupTarget.drive)
        assert saved is not None and saved.file_id is not None
        library_store.books.clear()

        result = await service.restore_from_drive(saved.file_id)

        assert result is not None
        assert result.state == RestoreState.done
        assert "book-1" in library_store.books

    async def test_restore_from_file(
        self,
        service: BackupService,
        packager: ArchivePackager,
        library_store: InMemoryLibraryStore,
        tmp_path: Path,
    ) -> None:
        await library_store.seed(make_book())
        archive = await packager.pack(None, await service.collect_context())
        path = tmp_path / "backup.zip"
        path.write_bytes(archive.data)
        library_store.books.clear()

        result = await service.restore_from_file(path)

        assert result is not None
        assert "book-1" in library_store.books


class TestBusyGate:
    async def test_calls_while_busy_return_none(
        self,
        service: BackupService,
        gate: OperationGate,
        filesystem: InMemoryFilesystem,
    ) -> None:
        async with gate.try_enter("restore") as entered:
            assert entered
            assert service.busy
            assert await service.run_backup(BackupTarget.local) is None
            assert await service.restore_from_bytes(b"ignored") is None
            assert await service.restore_from_drive("file-1") is None

        assert not service.busy
        assert "talevox/backups" not in filesystem.dirs

    async def test_gate_is_released_after_failure(
        self,
        service: BackupService,
        settings: TalevaultSettings,
    ) -> None:
        settings.drive.root_folder_id = None
        with pytest.raises(BackupTargetError):
            await service.run_backup(BackupTarget.drive)

        assert not service.busy
        assert await service.run_backup(BackupTarget.local) is not None
