from __future__ import annotations

import pytest

from talevault.backup.packager import ArchivePackager
from talevault.backup.restore import RestoreOrchestrator
from talevault.backup.service import BackupService
from talevault.config import TalevaultSettings
from talevault.core.busy import OperationGate
from talevault.library.snapshot import LibrarySnapshotBuilder
from talevault.models.backup import Platform
from tests.fakes import (
    FakeCredentials,
    FakeRemoteStorage,
    InMemoryFilesystem,
    InMemoryLibraryStore,
    InMemoryPreferenceStore,
)


@pytest.fixture
def settings() -> TalevaultSettings:
    return TalevaultSettings(
        product="talevox",
        app_version="9.9.9",
        platform=Platform.android,
        drive={"root_folder_id": "root", "base_delay_s": 0, "max_delay_s": 0},
    )


@pytest.fixture
def preference_store() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore(
        {
            "talevox_prefs_v3": '{"theme": "dark"}',
            "talevox:viewMode:book-1": "sections",
            "talevox_drive_token_v2": "secret-token",
            "unrelated_key": "ignored",
        }
    )


@pytest.fixture
def library_store() -> InMemoryLibraryStore:
    return InMemoryLibraryStore()


@pytest.fixture
def filesystem() -> InMemoryFilesystem:
    return InMemoryFilesystem(
        {
            "talevox/chapter_text/book-1/0001.txt": b"chapter one",
            "talevox/chapter_text/book-1/0002.txt": b"chapter two",
            "talevox/audio/book-1/0001.mp3": b"ID3-audio",
        }
    )


@pytest.fixture
def remote() -> FakeRemoteStorage:
    storage = FakeRemoteStorage()
    storage.add_folder("drive-root", "Talevox", file_id="root")
    return storage


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def packager(
    settings: TalevaultSettings,
    preference_store: InMemoryPreferenceStore,
    library_store: InMemoryLibraryStore,
    filesystem: InMemoryFilesystem,
) -> ArchivePackager:
    return ArchivePackager(
        snapshot_builder=LibrarySnapshotBuilder(settings.app_version),
        preferences=preference_store,
        library=library_store,
        filesystem=filesystem,
        settings=settings,
    )


@pytest.fixture
def restorer(
    settings: TalevaultSettings,
    preference_store: InMemoryPreferenceStore,
    library_store: InMemoryLibraryStore,
    filesystem: InMemoryFilesystem,
) -> RestoreOrchestrator:
    return RestoreOrchestrator(
        preferences=preference_store,
        library=library_store,
        filesystem=filesystem,
        settings=settings,
    )


@pytest.fixture
def gate() -> OperationGate:
    return OperationGate()


@pytest.fixture
def service(
    settings: TalevaultSettings,
    preference_store: InMemoryPreferenceStore,
    library_store: InMemoryLibraryStore,
    filesystem: InMemoryFilesystem,
    remote: FakeRemoteStorage,
    packager: ArchivePackager,
    restorer: RestoreOrchestrator,
    gate: OperationGate,
) -> BackupService:
    return BackupService(
        settings=settings,
        library=library_store,
        preferences=preference_store,
        packager=packager,
        restorer=restorer,
        filesystem=filesystem,
        remote=remote,
        gate=gate,
    )
