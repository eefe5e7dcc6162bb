"""Tests for archive packaging: entries, warnings and degraded collaborators."""

from __future__ import annotations

import json

import pytest

from talevault.backup.archive import (
    FILE_MANIFEST_ENTRY,
    META_ENTRY,
    PREFS_ENTRY,
    RELATIONAL_ENTRY,
    SNAPSHOT_ENTRY,
    STORAGE_DRIVER_ENTRY,
    ArchiveReader,
)
from talevault.backup.errors import BackupContextError, SnapshotBuildError
from talevault.backup.packager import ArchivePackager
from talevault.config import TalevaultSettings
from talevault.library.snapshot import LibrarySnapshotBuilder
from talevault.models.backup import BackupProgress, BackupStep, Platform
from talevault.models.library import Job
from tests.fakes import (
    ExplodingSnapshotBuilder,
    InMemoryFilesystem,
    InMemoryLibraryStore,
    InMemoryPreferenceStore,
)
from tests.helpers import make_book, make_context

pytestmark = pytest.mark.asyncio


def _packager(
    settings: TalevaultSettings,
    preferences: InMemoryPreferenceStore,
    library: InMemoryLibraryStore,
    filesystem: InMemoryFilesystem | None,
) -> ArchivePackager:
    return ArchivePackager(
        snapshot_builder=LibrarySnapshotBuilder(settings.app_version),
        preferences=preferences,
        library=library,
        filesystem=filesystem,
        settings=settings,
    )


class TestArchiveLayout:
    async def test_archive_contains_every_structured_entry(self, packager: ArchivePackager) -> None:
        archive = await packager.pack(None, make_context(make_book()))

        with ArchiveReader(archive.data) as reader:
            for name in (
                META_ENTRY,
                PREFS_ENTRY,
                RELATIONAL_ENTRY,
                SNAPSHOT_ENTRY,
                STORAGE_DRIVER_ENTRY,
                FILE_MANIFEST_ENTRY,
            ):
                assert reader.has(name), name
            meta = reader.read_meta()

        assert meta.schema_version == 1
        assert meta.app_version == "9.9.9"
        assert meta.platform == Platform.android
        assert meta.warnings == archive.warnings

    async def test_file_payloads_are_namespaced(self, packager: ArchivePackager) -> None:
        archive = await packager.pack(None, make_context(make_book()))

        with ArchiveReader(archive.data) as reader:
            assert reader.file_entries() == [
                "files/audio/book-1/0001.mp3",
                "files/chapter_text/book-1/0001.txt",
                "files/chapter_text/book-1/0002.txt",
            ]
            assert reader.read_bytes("files/audio/book-1/0001.mp3") == b"ID3-audio"

    async def test_missing_folders_become_warnings_and_manifest_entries(self, packager: ArchivePackager) -> None:
        archive = await packager.pack(None, make_context(make_book()))

        missing = [w for w in archive.warnings if w.startswith("missing-folder:")]
        assert [w.split(":")[1] for w in missing] == ["talevox/attachments", "talevox/diagnostics"]
        skipped = {entry.path: entry.skipped_reason for entry in archive.file_manifest if entry.skipped}
        assert skipped == {
            "files/attachments": "missing-folder",
            "files/diagnostics": "missing-folder",
        }

    async def test_disabled_namespace_is_not_walked(self, packager: ArchivePackager) -> None:
        archive = await packager.pack({"includeAudio": False, "includeDiagnostics": False}, make_context(make_book()))

        with ArchiveReader(archive.data) as reader:
            assert not any(name.startswith("files/audio/") for name in reader.file_entries())
        assert not any("talevox/diagnostics" in w for w in archive.warnings)

    async def test_storage_driver_state_is_exported(
        self,
        packager: ArchivePackager,
        library_store: InMemoryLibraryStore,
    ) -> None:
        book = make_book()
        await library_store.create_job(Job(job_id="job-1", type="generateAudio", status="running"))
        await library_store.enqueue_upload({"id": "up-1", "chapterId": "book-1-ch1"})
        await library_store.set_chapter_audio_path("book-1-ch1", "talevox/audio/book-1/0001.mp3", 9)

        archive = await packager.pack(None, make_context(book))

        with ArchiveReader(archive.data) as reader:
            driver = reader.read_json(STORAGE_DRIVER_ENTRY)
        assert [job["jobId"] for job in driver["jobs"]] == ["job-1"]
        assert driver["queuedUploads"] == [{"id": "up-1", "chapterId": "book-1-ch1"}]
        assert driver["chapterAudioPaths"][0]["contentId"] == "book-1-ch1"

    async def test_progress_walks_the_packaging_steps(self, packager: ArchivePackager) -> None:
        events: list[BackupProgress] = []

        await packager.pack(None, make_context(make_book()), events.append)

        steps = [event.step for event in events]
        assert steps[0] == BackupStep.collecting_state
        assert BackupStep.exporting_db in steps
        assert BackupStep.collecting_files in steps
        assert events[-1].step == BackupStep.zipping
        assert (events[-1].current, events[-1].total) == (100, 100)


class TestPartialFailure:
    async def test_one_unreadable_file_among_ten(
        self,
        settings: TalevaultSettings,
        preference_store: InMemoryPreferenceStore,
        library_store: InMemoryLibraryStore,
    ) -> None:
        filesystem = InMemoryFilesystem({f"talevox/chapter_text/c{n:02d}.txt": b"x" * n for n in range(1, 11)})
        filesystem.unreadable.add("talevox/chapter_text/c05.txt")
        packager = _packager(settings, preference_store, library_store, filesystem)

        archive = await packager.pack(None, make_context(make_book()))

        with ArchiveReader(archive.data) as reader:
            text_entries = [n for n in reader.file_entries() if n.startswith("files/chapter_text/")]
        assert len(text_entries) == 9
        text_manifest = [e for e in archive.file_manifest if e.path.startswith("files/chapter_text/")]
        assert len(text_manifest) == 10
        assert [e.path for e in text_manifest if e.skipped] == ["files/chapter_text/c05.txt"]
        assert any(w.startswith("file-read-failed:talevox/chapter_text/c05.txt:") for w in archive.warnings)

    async def test_large_file_is_packaged_with_a_warning(
        self,
        settings: TalevaultSettings,
        preference_store: InMemoryPreferenceStore,
        library_store: InMemoryLibraryStore,
        filesystem: InMemoryFilesystem,
    ) -> None:
        settings.backup.large_file_warning_bytes = 10
        packager = _packager(settings, preference_store, library_store, filesystem)

        archive = await packager.pack(None, make_context(make_book()))

        assert "large-file:files/chapter_text/book-1/0001.txt:11" in archive.warnings
        with ArchiveReader(archive.data) as reader:
            assert reader.has("files/chapter_text/book-1/0001.txt")

    async def test_export_failure_writes_sentinel(
        self,
        packager: ArchivePackager,
        library_store: InMemoryLibraryStore,
    ) -> None:
        library_store.export_error = OSError("disk I/O error")

        archive = await packager.pack(None, make_context(make_book()))

        assert any(w.startswith("sqlite-export-failed:") for w in archive.warnings)
        with ArchiveReader(archive.data) as reader:
            assert reader.read_json(RELATIONAL_ENTRY) == {"mode": "native-export-failed"}

    async def test_failing_driver_state_is_a_warning(
        self,
        packager: ArchivePackager,
        library_store: InMemoryLibraryStore,
    ) -> None:
        async def broken(limit: int) -> list[dict[str, object]]:
            raise ValueError("queue table corrupt")

        library_store.list_queued_uploads = broken  # type: ignore[method-assign]

        archive = await packager.pack(None, make_context(make_book()))

        assert "storage-driver-export-failed:queue table corrupt" in archive.warnings
        with ArchiveReader(archive.data) as reader:
            assert reader.read_json(STORAGE_DRIVER_ENTRY) == {
                "jobs": [],
                "queuedUploads": [],
                "chapterAudioPaths": [],
            }


class TestPreferences:
    async def test_credentials_excluded_by_default(self, packager: ArchivePackager) -> None:
        archive = await packager.pack(None, make_context(make_book()))

        with ArchiveReader(archive.data) as reader:
            prefs = reader.read_json(PREFS_ENTRY)
        assert prefs == {
            "talevox_prefs_v3": '{"theme": "dark"}',
            "talevox:viewMode:book-1": "sections",
        }

    async def test_credentials_included_on_request(self, packager: ArchivePackager) -> None:
        archive = await packager.pack({"includeOAuthTokens": True}, make_context(make_book()))

        with ArchiveReader(archive.data) as reader:
            prefs = reader.read_json(PREFS_ENTRY)
            meta = json.loads(reader.read_bytes(META_ENTRY))
        assert prefs["talevox_drive_token_v2"] == "secret-token"
        assert meta["options"]["includeOAuthTokens"] is True

    async def test_truthy_non_boolean_does_not_include_credentials(self, packager: ArchivePackager) -> None:
        archive = await packager.pack({"includeOAuthTokens": "yes"}, make_context(make_book()))

        assert archive.meta.options.include_oauth_tokens is False


class TestWebPlatform:
    async def test_web_skips_files_and_native_export(
        self,
        settings: TalevaultSettings,
        preference_store: InMemoryPreferenceStore,
        library_store: InMemoryLibraryStore,
        filesystem: InMemoryFilesystem,
    ) -> None:
        web = settings.model_copy(update={"platform": Platform.web})
        packager = _packager(web, preference_store, library_store, filesystem)

        archive = await packager.pack(None, make_context(make_book()))

        assert "native-file-folders-unavailable-on-web" in archive.warnings
        assert "sqlite-native-export-unavailable-on-web" in archive.warnings
        with ArchiveReader(archive.data) as reader:
            assert reader.file_entries() == []
            assert reader.read_json(RELATIONAL_ENTRY) == {
                "mode": "web-fallback",
                "reason": "sqlite-native-export-unavailable",
            }

    async def test_missing_filesystem_skips_files(
        self,
        settings: TalevaultSettings,
        preference_store: InMemoryPreferenceStore,
        library_store: InMemoryLibraryStore,
    ) -> None:
        packager = _packager(settings, preference_store, library_store, None)

        archive = await packager.pack(None, make_context(make_book()))

        assert "native-file-folders-unavailable-on-web" in archive.warnings
        assert archive.file_manifest == []
        with ArchiveReader(archive.data) as reader:
            assert reader.file_entries() == []


class TestFatalErrors:
    async def test_missing_context(self, packager: ArchivePackager) -> None:
        with pytest.raises(BackupContextError):
            await packager.pack(None, None)

    async def test_snapshot_failure_aborts(
        self,
        settings: TalevaultSettings,
        preference_store: InMemoryPreferenceStore,
        library_store: InMemoryLibraryStore,
        filesystem: InMemoryFilesystem,
    ) -> None:
        packager = ArchivePackager(
            snapshot_builder=ExplodingSnapshotBuilder(),
            preferences=preference_store,
            library=library_store,
            filesystem=filesystem,
            settings=settings,
        )

        with pytest.raises(SnapshotBuildError, match="snapshot source unavailable"):
            await packager.pack(None, make_context(make_book()))
