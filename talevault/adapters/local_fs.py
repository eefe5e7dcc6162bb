"""On-device filesystem rooted at a data directory."""

from __future__ import annotations

import asyncio
from pathlib import Path

from talevault.models.remote import DirEntry, FileStat


class LocalFilesystem:
    """``NativeFilesystem`` over ``pathlib`` with blocking calls moved off the loop."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.strip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise PermissionError(f"path escapes filesystem root: {path}")
        return target

    async def list_dir(self, path: str) -> list[DirEntry]:
        def _list() -> list[DirEntry]:
            return [
                DirEntry(name=child.name, is_directory=child.is_dir())
                for child in sorted(self._resolve(path).iterdir())
            ]

        return await asyncio.to_thread(_list)

    async def stat(self, path: str) -> FileStat:
        def _stat() -> FileStat:
            target = self._resolve(path)
            info = target.stat()
            return FileStat(is_directory=target.is_dir(), size=info.st_size, mtime=info.st_mtime)

        return await asyncio.to_thread(_stat)

    async def read_file(self, path: str) -> bytes:
        return await asyncio.to_thread(self._resolve(path).read_bytes)

    async def write_file(self, path: str, data: bytes) -> None:
        await asyncio.to_thread(self._resolve(path).write_bytes, data)

    async def mkdir(self, path: str) -> None:
        await asyncio.to_thread(self._resolve(path).mkdir, parents=True, exist_ok=True)

    async def delete_file(self, path: str) -> None:
        await asyncio.to_thread(self._resolve(path).unlink)


__all__ = ["LocalFilesystem"]
