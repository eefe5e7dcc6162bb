"""Single-slot gate that keeps at most one backup or restore in flight."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class OperationGate:
    """Try-acquire mutex: a second caller is told "busy" instead of waiting."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._holder: str | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str | None:
        return self._holder

    @asynccontextmanager
    async def try_enter(self, name: str) -> AsyncIterator[bool]:
        """Yield ``True`` while holding the gate, or ``False`` if it was taken.

        The check and the acquire happen without an intervening suspension
        point, so two tasks on the same loop can never both see ``True``.
        """
        if self._lock.locked():
            logger.info("%s skipped: %s already running", name, self._holder)
            yield False
            return
        await self._lock.acquire()
        self._holder = name
        try:
            yield True
        finally:
            self._holder = None
            self._lock.release()


__all__ = ["OperationGate"]
