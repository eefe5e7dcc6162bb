"""Reconcile local chapter records against one remote folder listing.

Text and audio are matched separately per chapter, first hit wins:

1. stored remote id
2. stored file name, or the name built from index and title
3. inferred ordinal from the file name, restricted to the content class
   extensions

A remote file claimed by one chapter is invisible to every tier for later
chapters. The listing is fetched once per scan and never refreshed
mid-pass.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from talevault.core.logging import correlation_scope
from talevault.library.naming import (
    AUDIO_EXTENSIONS,
    TEXT_EXTENSIONS,
    build_audio_name,
    build_text_name,
    infer_index_from_name,
    split_extension,
)
from talevault.models.library import AudioStatus, Chapter
from talevault.models.remote import DriveCheckReport, RemoteFile, ScanResult
from talevault.protocols.remote import AuthRequiredError, CredentialProvider, RemoteError, RemoteStorage

logger = logging.getLogger(__name__)

_IGNORED_WORDS = frozenset({"cover", "manifest"})
_IGNORED_EXTENSIONS = frozenset({"json", "jpg", "jpeg", "png", "webp", "gif"})
_WORD = re.compile(r"[a-z]+")


def is_ignored_name(name: str) -> bool:
    """Cover art, manifests and images never count as strays."""
    stem, extension = split_extension(name)
    if extension in _IGNORED_EXTENSIONS:
        return True
    return any(word in _IGNORED_WORDS for word in _WORD.findall(stem.lower()))


class _Listing:
    """Immutable remote listing plus the set of ids claimed so far."""

    def __init__(self, files: Iterable[RemoteFile]) -> None:
        self.files = [item for item in files if not item.is_folder]
        self.claimed: set[str] = set()

    def _available(self) -> Iterable[RemoteFile]:
        return (item for item in self.files if item.id not in self.claimed)

    def by_id(self, file_id: str | None) -> RemoteFile | None:
        if not file_id:
            return None
        return next((item for item in self._available() if item.id == file_id), None)

    def by_name(self, name: str | None) -> RemoteFile | None:
        if not name:
            return None
        return next((item for item in self._available() if item.name == name), None)

    def by_index(self, index: int, extensions: frozenset[str]) -> RemoteFile | None:
        for item in self._available():
            if item.extension in extensions and infer_index_from_name(item.name) == index:
                return item
        return None

    def match(
        self,
        file_id: str | None,
        stored_name: str | None,
        built_name: str,
        index: int,
        extensions: frozenset[str],
    ) -> RemoteFile | None:
        found = self.by_id(file_id) or self.by_name(stored_name or built_name) or self.by_index(index, extensions)
        if found is not None:
            self.claimed.add(found.id)
        return found


class RemoteReconciler:
    def __init__(self, remote: RemoteStorage, credentials: CredentialProvider) -> None:
        self._remote = remote
        self._credentials = credentials

    async def ensure_auth(self) -> None:
        if not self._credentials.is_token_valid():
            raise AuthRequiredError("Google Drive sign-in required")
        try:
            await self._credentials.get_valid_token(interactive=False)
        except AuthRequiredError:
            raise
        except Exception as exc:
            raise AuthRequiredError("Session expired. Please sign in again.") from exc

    async def scan(self, folder_id: str, chapters: list[Chapter]) -> ScanResult:
        with correlation_scope(operation="reconcile.scan"):
            await self.ensure_auth()
            result = ScanResult(total_checked=len(chapters))
            try:
                files = await self._remote.list_files(folder_id)
            except AuthRequiredError:
                raise
            except (RemoteError, OSError) as exc:
                logger.warning("Listing %s failed; reporting no matches: %s", folder_id, exc)
                result.warnings.append(f"listing-failed:{folder_id}:{exc}")
                files = []

            listing = _Listing(files)
            claimed_text_indices: set[int] = set()
            claimed_audio_indices: set[int] = set()
            for chapter in chapters:
                updated, has_text, has_audio = self._reconcile_chapter(chapter, listing, result)
                if has_text:
                    claimed_text_indices.add(chapter.index)
                if has_audio:
                    claimed_audio_indices.add(chapter.index)
                if updated is not chapter:
                    result.updated_chapters.append(updated)

            self._classify_unclaimed(listing, claimed_text_indices, claimed_audio_indices, result)
            logger.info(
                "Scanned %s: %d chapters, %d updated, %d stray, %d duplicates",
                folder_id,
                len(chapters),
                len(result.updated_chapters),
                len(result.stray_files),
                len(result.duplicates),
            )
            return result

    def _reconcile_chapter(
        self, chapter: Chapter, listing: _Listing, result: ScanResult
    ) -> tuple[Chapter, bool, bool]:
        """Match one chapter; the record is returned as-is when nothing changed."""
        changes: dict[str, object] = {}

        text = listing.match(
            chapter.cloud_text_file_id,
            chapter.text_file_name,
            build_text_name(chapter.index, chapter.title),
            chapter.index,
            TEXT_EXTENSIONS,
        )
        if text is None:
            # Never downgrade: a missing entry may be a stale listing.
            result.missing_text_ids.append(chapter.id)
        elif (
            chapter.cloud_text_file_id != text.id
            or chapter.text_file_name != text.name
            or not chapter.has_text_on_drive
        ):
            changes.update(cloud_text_file_id=text.id, text_file_name=text.name, has_text_on_drive=True)

        audio = listing.match(
            chapter.cloud_audio_file_id,
            chapter.audio_file_name,
            build_audio_name(chapter.index, chapter.title),
            chapter.index,
            AUDIO_EXTENSIONS,
        )
        if audio is None:
            result.missing_audio_ids.append(chapter.id)
        elif (
            chapter.cloud_audio_file_id != audio.id
            or chapter.audio_file_name != audio.name
            or chapter.audio_status != AudioStatus.ready
        ):
            changes.update(cloud_audio_file_id=audio.id, audio_file_name=audio.name, audio_status=AudioStatus.ready)

        updated = chapter.model_copy(update=changes) if changes else chapter
        return updated, text is not None, audio is not None

    @staticmethod
    def _classify_unclaimed(
        listing: _Listing,
        claimed_text_indices: set[int],
        claimed_audio_indices: set[int],
        result: ScanResult,
    ) -> None:
        claimed_names = {item.name for item in listing.files if item.id in listing.claimed}
        for item in listing.files:
            if item.id in listing.claimed or is_ignored_name(item.name):
                continue
            result.stray_files.append(item)
            index = infer_index_from_name(item.name)
            if item.name in claimed_names:
                result.duplicates.append(item)
            elif index is not None and item.extension in TEXT_EXTENSIONS and index in claimed_text_indices:
                result.duplicates.append(item)
            elif index is not None and item.extension in AUDIO_EXTENSIONS and index in claimed_audio_indices:
                result.duplicates.append(item)

    async def check_book(self, folder_id: str, chapters: list[Chapter]) -> DriveCheckReport:
        scan = await self.scan(folder_id, chapters)
        return DriveCheckReport(
            success=True,
            message=(
                f"Scan complete. Found {len(scan.stray_files)} strays, "
                f"{len(scan.missing_audio_ids)} missing audio."
            ),
            scan=scan,
        )


__all__ = ["RemoteReconciler", "is_ignored_name"]
