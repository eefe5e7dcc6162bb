from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from talevault.models.library import BackupContext, FullSnapshot


@dataclass(frozen=True, slots=True)
class StoredArtifact:
    """One backup file as seen on a storage target."""

    name: str
    modified: float
    ref: str


@runtime_checkable
class SnapshotBuilder(Protocol):
    def build(self, context: BackupContext) -> FullSnapshot: ...


@runtime_checkable
class ArtifactStore(Protocol):
    """A place where backup archives are kept and pruned."""

    @property
    def label(self) -> str: ...

    async def list_artifacts(self) -> list[StoredArtifact]: ...

    async def delete_artifact(self, artifact: StoredArtifact) -> None: ...


__all__ = ["ArtifactStore", "SnapshotBuilder", "StoredArtifact"]
