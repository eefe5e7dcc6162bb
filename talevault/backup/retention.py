"""Backup artifact naming and keep-count pruning on each save target."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from datetime import datetime

from talevault.core.logging import correlation_scope
from talevault.models.remote import parse_remote_time
from talevault.protocols.backup import ArtifactStore, StoredArtifact
from talevault.protocols.remote import RemoteStorage
from talevault.protocols.storage import NativeFilesystem

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".zip"


def artifact_prefix(product: str) -> str:
    return f"{product}-backup-"


def format_backup_file_name(product: str, when: datetime | None = None) -> str:
    """``<product>-backup-YYYY-MM-DD-HHMMSS.zip`` in local time."""
    stamp = (when or datetime.now()).strftime("%Y-%m-%d-%H%M%S")
    return f"{artifact_prefix(product)}{stamp}{ARTIFACT_SUFFIX}"


def is_backup_artifact(name: str, product: str) -> bool:
    return name.startswith(artifact_prefix(product)) and name.endswith(ARTIFACT_SUFFIX)


class LocalArtifactStore:
    def __init__(self, filesystem: NativeFilesystem, folder: str, product: str) -> None:
        self._filesystem = filesystem
        self._folder = folder
        self._product = product

    @property
    def label(self) -> str:
        return f"local:{self._folder}"

    async def list_artifacts(self) -> list[StoredArtifact]:
        try:
            entries = await self._filesystem.list_dir(self._folder)
        except FileNotFoundError:
            return []

        artifacts: list[StoredArtifact] = []
        for entry in entries:
            if entry.is_directory or not is_backup_artifact(entry.name, self._product):
                continue
            path = posixpath.join(self._folder, entry.name)
            try:
                modified = (await self._filesystem.stat(path)).mtime
            except OSError:
                modified = 0.0
            artifacts.append(StoredArtifact(name=entry.name, modified=modified, ref=path))
        return artifacts

    async def delete_artifact(self, artifact: StoredArtifact) -> None:
        await self._filesystem.delete_file(artifact.ref)


class DriveArtifactStore:
    def __init__(self, remote: RemoteStorage, folder_id: str, product: str) -> None:
        self._remote = remote
        self._folder_id = folder_id
        self._product = product

    @property
    def label(self) -> str:
        return f"drive:{self._folder_id}"

    async def list_artifacts(self) -> list[StoredArtifact]:
        files = await self._remote.list_files(self._folder_id)
        return [
            StoredArtifact(name=item.name, modified=parse_remote_time(item.modified_time), ref=item.id)
            for item in files
            if not item.is_folder and is_backup_artifact(item.name, self._product)
        ]

    async def delete_artifact(self, artifact: StoredArtifact) -> None:
        await self._remote.delete_file(artifact.ref)


@dataclass(slots=True)
class PruneSummary:
    kept: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class RetentionManager:
    """Keeps the newest ``max(1, keep_count)`` artifacts on a target."""

    async def prune(self, store: ArtifactStore, keep_count: int) -> PruneSummary:
        keep = max(1, keep_count)
        with correlation_scope(operation="backup.prune"):
            artifacts = sorted(await store.list_artifacts(), key=lambda item: item.modified, reverse=True)
            summary = PruneSummary(kept=[item.name for item in artifacts[:keep]])
            for artifact in artifacts[keep:]:
                try:
                    await store.delete_artifact(artifact)
                except Exception as exc:  # noqa: BLE001
                    # Pruning is best effort; the next save retries.
                    logger.warning("Could not delete %s from %s: %s", artifact.name, store.label, exc)
                    summary.failed.append(artifact.name)
                    continue
                summary.removed.append(artifact.name)
            logger.info(
                "Pruned %s: kept %d, removed %d, failed %d",
                store.label,
                len(summary.kept),
                len(summary.removed),
                len(summary.failed),
            )
            return summary


__all__ = [
    "DriveArtifactStore",
    "LocalArtifactStore",
    "PruneSummary",
    "RetentionManager",
    "format_backup_file_name",
    "is_backup_artifact",
]
