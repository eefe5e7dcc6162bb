"""Archive entry layout, zip writer and tagged entry reader.

Every entry has its own parser that yields a validated model or raises
``ArchiveFormatError``. Required entries (meta, snapshot) propagate that
error; optional ones degrade to ``ABSENT`` and a warning on the bundle.
"""

from __future__ import annotations

import io
import json
import logging
import posixpath
import zipfile
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from talevault.backup.errors import ArchiveFormatError
from talevault.models.backup import (
    ABSENT,
    Absent,
    ArchiveBundle,
    ArchiveMeta,
    FileManifestEntry,
    StorageDriverState,
)
from talevault.models.library import FullSnapshot

logger = logging.getLogger(__name__)

META_ENTRY = "meta.json"
PREFS_ENTRY = "prefs.json"
RELATIONAL_ENTRY = "sqlite.json"
RELATIONAL_ENTRY_ALIASES = (RELATIONAL_ENTRY, "db-export.json")
SNAPSHOT_ENTRY = "state/fullSnapshot.json"
STORAGE_DRIVER_ENTRY = "state/storageDriver.json"
FILE_MANIFEST_ENTRY = "manifests/files.json"
FILES_PREFIX = "files/"

T = TypeVar("T")


def dump_json(payload: object) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def files_entry_name(namespace: str, relative_path: str) -> str:
    return posixpath.join(FILES_PREFIX + namespace, relative_path.replace("\\", "/"))


def is_safe_entry_path(name: str) -> bool:
    if name.startswith("/") or "\\" in name:
        return False
    return ".." not in name.split("/")


class ArchiveWriter:
    """Deflate-compressed in-memory zip, written entry by entry."""

    def __init__(self, compresslevel: int = 6) -> None:
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(
            self._buffer,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compresslevel,
        )
        self._closed = False

    def add_bytes(self, name: str, data: bytes) -> None:
        self._zip.writestr(name, data)

    def add_json(self, name: str, payload: object) -> None:
        self.add_bytes(name, dump_json(payload))

    def finish(self) -> bytes:
        if not self._closed:
            self._zip.close()
            self._closed = True
        return self._buffer.getvalue()


def _validated(entry: str, parse: Callable[[Any], T], raw: Any) -> T:
    try:
        return parse(raw)
    except ValidationError as exc:
        raise ArchiveFormatError(f"Invalid {entry}: {exc.error_count()} validation error(s)", entry=entry) from exc


def parse_meta(raw: Any) -> ArchiveMeta:
    if not isinstance(raw, dict):
        raise ArchiveFormatError("Invalid backup metadata.", entry=META_ENTRY)
    return _validated(META_ENTRY, ArchiveMeta.model_validate, raw)


def parse_snapshot(raw: Any) -> FullSnapshot:
    if not isinstance(raw, dict):
        raise ArchiveFormatError("Invalid full snapshot.", entry=SNAPSHOT_ENTRY)
    return _validated(SNAPSHOT_ENTRY, FullSnapshot.model_validate, raw)


def parse_prefs(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        raise ArchiveFormatError("prefs.json must be an object", entry=PREFS_ENTRY)
    return {
        str(key): value if isinstance(value, str) else json.dumps(value)
        for key, value in raw.items()
    }


def parse_relational_export(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ArchiveFormatError("relational export must be an object", entry=RELATIONAL_ENTRY)
    return raw


def parse_storage_driver(raw: Any) -> StorageDriverState:
    if not isinstance(raw, dict):
        raise ArchiveFormatError("storage driver state must be an object", entry=STORAGE_DRIVER_ENTRY)
    return _validated(STORAGE_DRIVER_ENTRY, StorageDriverState.model_validate, raw)


def parse_file_manifest(raw: Any) -> list[FileManifestEntry]:
    if not isinstance(raw, list):
        raise ArchiveFormatError("file manifest must be a list", entry=FILE_MANIFEST_ENTRY)
    return [_validated(FILE_MANIFEST_ENTRY, FileManifestEntry.model_validate, item) for item in raw]


class ArchiveReader:
    def __init__(self, data: bytes) -> None:
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise ArchiveFormatError("Invalid backup archive: not a zip file") from exc
        self._names = {info.filename for info in self._zip.infolist() if not info.is_dir()}

    def __enter__(self) -> ArchiveReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def has(self, name: str) -> bool:
        return name in self._names

    def read_bytes(self, name: str) -> bytes:
        return self._zip.read(name)

    def read_json(self, name: str) -> Any | Absent:
        if name not in self._names:
            return ABSENT
        try:
            return json.loads(self._zip.read(name).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, zipfile.BadZipFile) as exc:
            raise ArchiveFormatError(f"Entry {name} is not valid JSON", entry=name) from exc

    def file_entries(self) -> list[str]:
        return sorted(name for name in self._names if name.startswith(FILES_PREFIX))

    def _required(self, name: str, parse: Callable[[Any], T]) -> T:
        raw = self.read_json(name)
        if raw is ABSENT:
            raise ArchiveFormatError(f"Invalid backup archive: missing {name}", entry=name)
        return parse(raw)

    def _optional(self, names: tuple[str, ...], parse: Callable[[Any], T], warnings: list[str]) -> T | Absent:
        for name in names:
            if name not in self._names:
                continue
            try:
                return parse(self.read_json(name))
            except ArchiveFormatError as exc:
                logger.warning("Ignoring unreadable archive entry %s: %s", name, exc)
                warnings.append(f"entry-unreadable:{name}:{exc}")
                return ABSENT
        return ABSENT

    def read_meta(self) -> ArchiveMeta:
        return self._required(META_ENTRY, parse_meta)

    def read_bundle(self) -> ArchiveBundle:
        """Parse all structured entries; raw ``files/`` payloads stay in the zip."""
        meta = self.read_meta()
        snapshot = self._required(SNAPSHOT_ENTRY, parse_snapshot)

        warnings: list[str] = []
        prefs = self._optional((PREFS_ENTRY,), parse_prefs, warnings)
        relational = self._optional(RELATIONAL_ENTRY_ALIASES, parse_relational_export, warnings)
        driver = self._optional((STORAGE_DRIVER_ENTRY,), parse_storage_driver, warnings)
        manifest = self._optional((FILE_MANIFEST_ENTRY,), parse_file_manifest, warnings)

        if warnings:
            meta = meta.model_copy(update={"warnings": [*meta.warnings, *warnings]})
        return ArchiveBundle(
            meta=meta,
            full_snapshot=snapshot,
            prefs=prefs,
            relational_export=relational,
            storage_driver_state=driver,
            file_manifest=manifest,
        )


__all__ = [
    "ArchiveReader",
    "ArchiveWriter",
    "FILES_PREFIX",
    "FILE_MANIFEST_ENTRY",
    "META_ENTRY",
    "PREFS_ENTRY",
    "RELATIONAL_ENTRY",
    "SNAPSHOT_ENTRY",
    "STORAGE_DRIVER_ENTRY",
    "dump_json",
    "files_entry_name",
    "is_safe_entry_path",
]
