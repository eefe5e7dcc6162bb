from talevault.protocols.backup import ArtifactStore, SnapshotBuilder, StoredArtifact
from talevault.protocols.remote import (
    AuthRequiredError,
    CredentialProvider,
    FolderAdapter,
    RemoteError,
    RemoteStorage,
)
from talevault.protocols.storage import LibraryStore, NativeFilesystem, PreferenceStore

__all__ = [
    "ArtifactStore",
    "AuthRequiredError",
    "CredentialProvider",
    "FolderAdapter",
    "LibraryStore",
    "NativeFilesystem",
    "PreferenceStore",
    "RemoteError",
    "RemoteStorage",
    "SnapshotBuilder",
    "StoredArtifact",
]
