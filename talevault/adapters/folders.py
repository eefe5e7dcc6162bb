"""Folder-capable backends for per-book layouts: remote Drive and on-device."""

from __future__ import annotations

import posixpath

from talevault.models.manifests import BackendKind
from talevault.models.remote import FileRef, FolderRef, RemoteFile, parse_remote_time
from talevault.protocols.remote import RemoteStorage
from talevault.protocols.storage import NativeFilesystem

JSON_MIME_TYPE = "application/json"


def pick_newest(files: list[RemoteFile]) -> RemoteFile:
    """Newest by modification time; the first entry wins when none parse."""
    best = files[0]
    best_time = 0.0
    for item in files:
        modified = parse_remote_time(item.modified_time)
        if modified and modified >= best_time:
            best, best_time = item, modified
    return best


def _to_file_ref(item: RemoteFile) -> FileRef:
    return FileRef(
        backend=BackendKind.drive,
        id=item.id,
        name=item.name,
        mime_type=item.mime_type,
        modified_time=item.modified_time,
        is_folder=item.is_folder,
    )


class DriveFolderAdapter:
    def __init__(self, remote: RemoteStorage) -> None:
        self._remote = remote

    @property
    def backend(self) -> BackendKind:
        return BackendKind.drive

    async def ensure_folder(self, parent: FolderRef, name: str) -> FolderRef:
        items = await self._remote.list_files(parent.id)
        matches = [item for item in items if item.name == name and item.is_folder]
        if matches:
            chosen = pick_newest(matches)
            return FolderRef(backend=BackendKind.drive, id=chosen.id, name=chosen.name)
        folder_id = await self._remote.create_folder(name, parent.id)
        return FolderRef(backend=BackendKind.drive, id=folder_id, name=name)

    async def list(self, folder: FolderRef) -> list[FileRef]:
        return [_to_file_ref(item) for item in await self._remote.list_files(folder.id)]

    async def find_by_name(self, folder: FolderRef, name: str) -> FileRef | None:
        matches = [item for item in await self._remote.list_files(folder.id) if item.name == name]
        if not matches:
            return None
        return _to_file_ref(pick_newest(matches))

    async def read_text(self, file: FileRef) -> str:
        return (await self._remote.fetch_binary(file.id)).decode("utf-8")

    async def write_text(
        self,
        folder: FolderRef,
        name: str,
        content: str,
        existing: FileRef | None = None,
    ) -> FileRef:
        file_id = await self._remote.upload(
            folder.id,
            name,
            content.encode("utf-8"),
            JSON_MIME_TYPE,
            existing_id=existing.id if existing else None,
        )
        return FileRef(backend=BackendKind.drive, id=file_id, name=name, mime_type=JSON_MIME_TYPE)


class LocalFolderAdapter:
    """Folders on the native filesystem; refs carry relative paths as ids."""

    def __init__(self, filesystem: NativeFilesystem) -> None:
        self._filesystem = filesystem

    @property
    def backend(self) -> BackendKind:
        return BackendKind.local

    async def ensure_folder(self, parent: FolderRef, name: str) -> FolderRef:
        path = posixpath.join(parent.id, name)
        await self._filesystem.mkdir(path)
        return FolderRef(backend=BackendKind.local, id=path, name=name)

    async def list(self, folder: FolderRef) -> list[FileRef]:
        return [
            FileRef(
                backend=BackendKind.local,
                id=posixpath.join(folder.id, entry.name),
                name=entry.name,
                is_folder=entry.is_directory,
            )
            for entry in await self._filesystem.list_dir(folder.id)
        ]

    async def find_by_name(self, folder: FolderRef, name: str) -> FileRef | None:
        try:
            entries = await self.list(folder)
        except FileNotFoundError:
            return None
        for entry in entries:
            if entry.name == name and not entry.is_folder:
                return entry
        return None

    async def read_text(self, file: FileRef) -> str:
        return (await self._filesystem.read_file(file.id)).decode("utf-8")

    async def write_text(
        self,
        folder: FolderRef,
        name: str,
        content: str,
        existing: FileRef | None = None,
    ) -> FileRef:
        path = existing.id if existing else posixpath.join(folder.id, name)
        await self._filesystem.write_file(path, content.encode("utf-8"))
        return FileRef(backend=BackendKind.local, id=path, name=name, mime_type=JSON_MIME_TYPE)


__all__ = ["DriveFolderAdapter", "LocalFolderAdapter", "pick_newest"]
