"""Allow-listed preference collection and write-back."""

from __future__ import annotations

import logging

from talevault.backup.errors import COLLABORATOR_ERRORS
from talevault.config import PreferencesConfig
from talevault.protocols.storage import PreferenceStore

logger = logging.getLogger(__name__)


class PreferenceAllowList:
    """Decides which preference keys travel inside an archive.

    Safe keys and prefix families always travel. Credential keys travel only
    when the caller asks for them explicitly, and are only written back when
    the archive itself was packaged with them.
    """

    def __init__(self, config: PreferencesConfig | None = None) -> None:
        self._config = config or PreferencesConfig()

    def is_credential(self, key: str) -> bool:
        return key in self._config.credential_keys

    async def collect(self, store: PreferenceStore, include_credentials: bool) -> dict[str, str]:
        collected: dict[str, str] = {}
        for key in self._config.safe_keys:
            value = await store.get(key)
            if value is not None:
                collected[key] = value

        for prefix in self._config.prefix_families:
            for key in await store.keys(prefix):
                if key in collected or self.is_credential(key):
                    continue
                value = await store.get(key)
                if value is not None:
                    collected[key] = value

        if include_credentials:
            for key in self._config.credential_keys:
                value = await store.get(key)
                if value is not None:
                    collected[key] = value
        return collected

    async def write_back(
        self,
        store: PreferenceStore,
        prefs: dict[str, str],
        include_credentials: bool,
    ) -> list[str]:
        """Write ``prefs`` into ``store`` and return per-key failure warnings."""
        warnings: list[str] = []
        for key, value in prefs.items():
            if self.is_credential(key) and not include_credentials:
                logger.info("Skipping credential preference %s", key)
                continue
            try:
                await store.set(key, value)
            except COLLABORATOR_ERRORS as exc:
                logger.warning("Failed to restore preference %s: %s", key, exc)
                warnings.append(f"pref-restore-failed:{key}:{exc}")
        return warnings


__all__ = ["PreferenceAllowList"]
