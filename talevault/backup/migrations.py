"""Bring an archive bundle up to the current schema version."""

from __future__ import annotations

import dataclasses
import logging

from talevault.backup.errors import UnsupportedSchemaError
from talevault.models.backup import CURRENT_SCHEMA_VERSION, ArchiveBundle

logger = logging.getLogger(__name__)


def migrate_bundle(bundle: ArchiveBundle, current: int = CURRENT_SCHEMA_VERSION) -> ArchiveBundle:
    """Return ``bundle`` stamped with ``current``.

    Older bundles get a copy with the new version and one warning appended;
    no per-field transforms exist yet. Newer bundles are rejected since data
    is never downgraded.
    """
    found = bundle.meta.schema_version
    if found == current:
        return bundle
    if found > current:
        raise UnsupportedSchemaError(found, current)

    warning = f"Backup migrated from schema {found} to {current}"
    logger.info(warning)
    meta = bundle.meta.model_copy(
        update={
            "schema_version": current,
            "warnings": [*bundle.meta.warnings, warning],
        }
    )
    return dataclasses.replace(bundle, meta=meta)


__all__ = ["migrate_bundle"]
