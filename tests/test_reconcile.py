"""Tests for chapter-to-remote-file reconciliation."""

from __future__ import annotations

import pytest

from talevault.library.reconcile import RemoteReconciler, is_ignored_name
from talevault.models.library import AudioStatus, Chapter
from talevault.protocols.remote import AuthRequiredError, RemoteError
from tests.fakes import FakeCredentials, FakeRemoteStorage

FOLDER = "book-folder"


def _chapter(index: int, **fields: object) -> Chapter:
    return Chapter(id=f"ch{index}", book_id="book-1", index=index, title=f"Part {index}", **fields)


@pytest.fixture
def reconciler(remote: FakeRemoteStorage, credentials: FakeCredentials) -> RemoteReconciler:
    return RemoteReconciler(remote, credentials)


@pytest.mark.asyncio
class TestMatching:
    async def test_stored_id_wins_and_built_name_is_a_stray_duplicate(
        self,
        reconciler: RemoteReconciler,
        remote: FakeRemoteStorage,
    ) -> None:
        by_id = remote.add_file(FOLDER, "renamed-by-user.txt")
        by_name = remote.add_file(FOLDER, "0001_Part_1.txt")

        result = await reconciler.scan(FOLDER, [_chapter(1, cloud_text_file_id=by_id.id)])

        updated = result.updated_chapters[0]
        assert updated.cloud_text_file_id == by_id.id
        assert updated.text_file_name == "renamed-by-user.txt"
        assert updated.has_text_on_drive is True
        assert [item.id for item in result.stray_files] == [by_name.id]
        assert [item.id for item in result.duplicates] == [by_name.id]

    async def test_built_name_match(self, reconciler: RemoteReconciler, remote: FakeRemoteStorage) -> None:
        text = remote.add_file(FOLDER, "0002_Part_2.txt")
        audio = remote.add_file(FOLDER, "0002_Part_2.mp3")

        result = await reconciler.scan(FOLDER, [_chapter(2)])

        updated = result.updated_chapters[0]
        assert (updated.cloud_text_file_id, updated.cloud_audio_file_id) == (text.id, audio.id)
        assert updated.audio_status == AudioStatus.ready
        assert result.missing_text_ids == [] and result.missing_audio_ids == []

    async def test_index_fallback_respects_content_class(
        self,
        reconciler: RemoteReconciler,
        remote: FakeRemoteStorage,
    ) -> None:
        audio = remote.add_file(FOLDER, "ch-03.mp3")

        result = await reconciler.scan(FOLDER, [_chapter(3)])

        updated = result.updated_chapters[0]
        assert updated.cloud_audio_file_id == audio.id
        assert updated.audio_file_name == "ch-03.mp3"
        assert updated.audio_status == AudioStatus.ready
        assert updated.cloud_text_file_id is None
        assert result.missing_text_ids == ["ch3"]

    async def test_claimed_file_is_not_matched_twice(
        self,
        reconciler: RemoteReconciler,
        remote: FakeRemoteStorage,
    ) -> None:
        shared = remote.add_file(FOLDER, "0002_Part_2.txt")

        result = await reconciler.scan(
            FOLDER,
            [_chapter(1, cloud_text_file_id=shared.id), _chapter(2)],
        )

        assert [chapter.id for chapter in result.updated_chapters] == ["ch1"]
        assert result.missing_text_ids == ["ch2"]

    async def test_unmatched_and_ignored_files(self, reconciler: RemoteReconciler, remote: FakeRemoteStorage) -> None:
        remote.add_file(FOLDER, "0001_Part_1.txt")
        remote.add_file(FOLDER, "cover.jpg")
        remote.add_file(FOLDER, "manifest.json")
        remote.add_folder(FOLDER, "extras")
        stray = remote.add_file(FOLDER, "Chapter 99.txt")

        result = await reconciler.scan(FOLDER, [_chapter(1)])

        assert [item.id for item in result.stray_files] == [stray.id]
        assert result.duplicates == []
        assert result.total_checked == 1

    async def test_every_unclaimed_file_is_a_stray(
        self,
        reconciler: RemoteReconciler,
        remote: FakeRemoteStorage,
    ) -> None:
        renamed = remote.add_file(FOLDER, "weird.txt")
        copy = remote.add_file(FOLDER, "Chapter 1.txt")
        other = remote.add_file(FOLDER, "notes.txt")

        result = await reconciler.scan(FOLDER, [_chapter(1, cloud_text_file_id=renamed.id)])

        assert result.updated_chapters[0].cloud_text_file_id == renamed.id
        assert [item.id for item in result.stray_files] == [copy.id, other.id]
        assert [item.id for item in result.duplicates] == [copy.id]

    async def test_missing_files_never_downgrade(self, reconciler: RemoteReconciler) -> None:
        chapter = _chapter(
            1,
            cloud_text_file_id="gone",
            has_text_on_drive=True,
            audio_status=AudioStatus.ready,
        )

        result = await reconciler.scan(FOLDER, [chapter])

        assert result.updated_chapters == []
        assert result.missing_text_ids == ["ch1"]
        assert result.missing_audio_ids == ["ch1"]

    async def test_second_scan_changes_nothing(self, reconciler: RemoteReconciler, remote: FakeRemoteStorage) -> None:
        remote.add_file(FOLDER, "0001_Part_1.txt")
        remote.add_file(FOLDER, "Chapter 2.mp3")
        chapters = [_chapter(1), _chapter(2)]

        first = await reconciler.scan(FOLDER, chapters)
        merged = {chapter.id: chapter for chapter in chapters} | {c.id: c for c in first.updated_chapters}
        second = await reconciler.scan(FOLDER, list(merged.values()))

        assert len(first.updated_chapters) == 2
        assert second.updated_chapters == []
        assert second.stray_files == first.stray_files


@pytest.mark.asyncio
class TestFailures:
    async def test_invalid_token_requires_sign_in(self, remote: FakeRemoteStorage) -> None:
        reconciler = RemoteReconciler(remote, FakeCredentials(valid=False))

        with pytest.raises(AuthRequiredError):
            await reconciler.scan(FOLDER, [_chapter(1)])

    async def test_refresh_failure_requires_sign_in(self, remote: FakeRemoteStorage) -> None:
        reconciler = RemoteReconciler(remote, FakeCredentials(refresh_error=RuntimeError("network down")))

        with pytest.raises(AuthRequiredError, match="Session expired"):
            await reconciler.scan(FOLDER, [_chapter(1)])

    async def test_listing_failure_reports_everything_missing(
        self,
        reconciler: RemoteReconciler,
        remote: FakeRemoteStorage,
    ) -> None:
        remote.list_error = RemoteError("backend error", status=500)

        result = await reconciler.scan(FOLDER, [_chapter(1), _chapter(2)])

        assert result.warnings == [f"listing-failed:{FOLDER}:backend error"]
        assert result.missing_text_ids == ["ch1", "ch2"]
        assert result.updated_chapters == []

    async def test_auth_failure_during_listing_propagates(
        self,
        reconciler: RemoteReconciler,
        remote: FakeRemoteStorage,
    ) -> None:
        remote.list_error = AuthRequiredError()

        with pytest.raises(AuthRequiredError):
            await reconciler.scan(FOLDER, [_chapter(1)])


@pytest.mark.asyncio
async def test_check_book_summarizes_the_scan(reconciler: RemoteReconciler, remote: FakeRemoteStorage) -> None:
    remote.add_file(FOLDER, "0001_Part_1.txt")
    remote.add_file(FOLDER, "random.txt")

    report = await reconciler.check_book(FOLDER, [_chapter(1)])

    assert report.success is True
    assert report.message == "Scan complete. Found 1 strays, 1 missing audio."
    assert report.scan is not None


@pytest.mark.parametrize(
    ("name", "ignored"),
    [
        ("cover.jpg", True),
        ("Book Cover.png", True),
        ("cover_art.txt", True),
        ("manifest.json", True),
        ("poster.jpeg", True),
        ("poster.WEBP", True),
        ("0001_Intro.txt", False),
        ("0007_Discovery.txt", False),
        ("Recovered Chapter.mp3", False),
    ],
)
def test_is_ignored_name(name: str, ignored: bool) -> None:
    assert is_ignored_name(name) is ignored
