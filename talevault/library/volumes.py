"""Volume sub-folder lookup with a per-root id cache."""

from __future__ import annotations

import logging

from talevault.models.remote import FolderRef
from talevault.protocols.remote import FolderAdapter

logger = logging.getLogger(__name__)

SYSTEM_FOLDER_NAMES = frozenset({"meta", "attachments", "trash", "text", "audio"})


def normalize_volume_name(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    trimmed = raw.strip()
    return trimmed or None


def _cache_key(root_id: str, volume_name: str) -> str:
    return f"{root_id}::{volume_name.lower()}"


class VolumeFolderCache:
    """Maps ``(book root, volume name)`` to a folder id for the process lifetime.

    Entries are never refreshed on their own; call ``invalidate`` after the
    folder structure under a root changes.
    """

    def __init__(self, adapter: FolderAdapter) -> None:
        self._adapter = adapter
        self._ids: dict[str, str] = {}

    def _ref(self, folder_id: str, name: str | None = None) -> FolderRef:
        return FolderRef(backend=self._adapter.backend, id=folder_id, name=name)

    async def ensure_folder(self, root_id: str, volume_name: str | None) -> str:
        """Folder id for the volume, created when missing; the root without a volume."""
        name = normalize_volume_name(volume_name)
        if name is None:
            return root_id
        key = _cache_key(root_id, name)
        cached = self._ids.get(key)
        if cached:
            return cached
        folder = await self._adapter.ensure_folder(self._ref(root_id), name)
        self._ids[key] = folder.id
        return folder.id

    async def find_folder(self, root_id: str, volume_name: str | None) -> str | None:
        name = normalize_volume_name(volume_name)
        if name is None:
            return root_id
        key = _cache_key(root_id, name)
        cached = self._ids.get(key)
        if cached:
            return cached
        for entry in await self._adapter.list(self._ref(root_id)):
            if entry.is_folder and entry.name.strip().lower() == name.lower():
                self._ids[key] = entry.id
                return entry.id
        return None

    async def list_volume_folders(self, root_id: str) -> list[FolderRef]:
        folders: list[FolderRef] = []
        for entry in await self._adapter.list(self._ref(root_id)):
            name = entry.name.strip()
            if not entry.is_folder or not name or name.lower() in SYSTEM_FOLDER_NAMES:
                continue
            folders.append(self._ref(entry.id, name))
        return folders

    def invalidate(self, root_id: str | None = None) -> None:
        if root_id is None:
            self._ids.clear()
            return
        prefix = f"{root_id}::"
        for key in [key for key in self._ids if key.startswith(prefix)]:
            del self._ids[key]
        logger.debug("Invalidated volume cache for %s", root_id)


__all__ = ["SYSTEM_FOLDER_NAMES", "VolumeFolderCache", "normalize_volume_name"]
