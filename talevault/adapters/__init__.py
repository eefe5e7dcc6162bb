"""Concrete backends: Drive client, local filesystem, folder adapters."""

from talevault.adapters.credentials import StaticTokenProvider
from talevault.adapters.drive import DriveClient
from talevault.adapters.folders import DriveFolderAdapter, LocalFolderAdapter
from talevault.adapters.local_fs import LocalFilesystem

__all__ = [
    "DriveClient",
    "DriveFolderAdapter",
    "LocalFilesystem",
    "LocalFolderAdapter",
    "StaticTokenProvider",
]
