"""Book-level flows: snapshots, naming, reconciliation and folder layouts."""

from talevault.library.folder_init import BookFolderManifests, FolderManifestInitializer
from talevault.library.naming import build_audio_name, build_text_name, infer_index_from_name
from talevault.library.reconcile import RemoteReconciler
from talevault.library.snapshot import LibrarySnapshotBuilder
from talevault.library.volumes import VolumeFolderCache

__all__ = [
    "BookFolderManifests",
    "FolderManifestInitializer",
    "LibrarySnapshotBuilder",
    "RemoteReconciler",
    "VolumeFolderCache",
    "build_audio_name",
    "build_text_name",
    "infer_index_from_name",
]
