from __future__ import annotations

from typing import Protocol, runtime_checkable

from talevault.models.manifests import BackendKind
from talevault.models.remote import FileRef, FolderRef, RemoteFile


class RemoteError(RuntimeError):
    """A remote storage call failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthRequiredError(RemoteError):
    """No usable credential for the remote service."""

    code = "AUTH_REQUIRED"

    def __init__(self, message: str = "Remote sign-in required") -> None:
        super().__init__(message, status=401)


@runtime_checkable
class CredentialProvider(Protocol):
    def is_token_valid(self) -> bool: ...

    async def get_valid_token(self, interactive: bool = False) -> str: ...


@runtime_checkable
class RemoteStorage(Protocol):
    async def create_folder(self, name: str, parent_id: str) -> str: ...

    async def list_files(self, parent_id: str) -> list[RemoteFile]: ...

    async def upload(
        self,
        parent_id: str,
        name: str,
        data: bytes,
        mime_type: str,
        existing_id: str | None = None,
    ) -> str: ...

    async def delete_file(self, file_id: str) -> None: ...

    async def fetch_binary(self, file_id: str) -> bytes: ...


@runtime_checkable
class FolderAdapter(Protocol):
    """Folder-capable backend used for per-book folder layouts."""

    @property
    def backend(self) -> BackendKind: ...

    async def ensure_folder(self, parent: FolderRef, name: str) -> FolderRef: ...

    async def list(self, folder: FolderRef) -> list[FileRef]: ...

    async def find_by_name(self, folder: FolderRef, name: str) -> FileRef | None: ...

    async def read_text(self, file: FileRef) -> str: ...

    async def write_text(
        self,
        folder: FolderRef,
        name: str,
        content: str,
        existing: FileRef | None = None,
    ) -> FileRef: ...


__all__ = [
    "AuthRequiredError",
    "CredentialProvider",
    "FolderAdapter",
    "RemoteError",
    "RemoteStorage",
]
