"""Periodic auto-backup on top of APScheduler's AsyncIOScheduler.

One interval job per enabled target. Jobs run in the current event loop and
go through ``BackupService.run_backup``, so a tick that lands while another
backup or restore is running is simply skipped by the busy gate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from talevault.backup.service import BackupService
from talevault.config import BackupConfig
from talevault.models.backup import BackupTarget

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Coroutine[Any, Any, Any]]


class BackupScheduler:
    def __init__(self, service: BackupService, config: BackupConfig) -> None:
        self._service = service
        self._config = config
        self._scheduler = AsyncIOScheduler()
        self._jobs: dict[str, str] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def job_ids(self) -> list[str]:
        return list(self._jobs.keys())

    def enabled_targets(self) -> list[BackupTarget]:
        targets: list[BackupTarget] = []
        if self._config.auto_backup_to_drive:
            targets.append(BackupTarget.drive)
        if self._config.auto_backup_to_device:
            targets.append(BackupTarget.local)
        return targets

    def add_target(self, target: BackupTarget) -> str:
        """Register the interval job for ``target``.

        Raises:
            ValueError: If the target already has a job.
        """
        schedule_id = f"auto-backup:{target}"
        if schedule_id in self._jobs:
            raise ValueError(f"schedule '{schedule_id}' already registered")

        async def _run() -> None:
            await self._service.run_backup(target)

        job = self._scheduler.add_job(
            self._safe_invoke(_run, schedule_id),
            trigger=IntervalTrigger(minutes=self._config.backup_interval_min),
            id=schedule_id,
            name=schedule_id,
            replace_existing=False,
        )
        self._jobs[schedule_id] = job.id
        logger.info("Registered %s (every %d min)", schedule_id, self._config.backup_interval_min)
        return schedule_id

    def start(self) -> None:
        """Register jobs for enabled targets and start. Idempotent."""
        if self._running:
            return
        for target in self.enabled_targets():
            if f"auto-backup:{target}" not in self._jobs:
                self.add_target(target)
        self._scheduler.start()
        self._running = True
        logger.info("Backup scheduler started with %d jobs", len(self._jobs))

    def stop(self) -> None:
        if not self._running:
            return
        self._scheduler.shutdown(wait=False)
        self._jobs.clear()
        self._running = False
        logger.info("Backup scheduler stopped")

    def _safe_invoke(self, callback: AsyncCallback, schedule_id: str) -> AsyncCallback:
        async def _wrapper() -> None:
            try:
                await callback()
            except Exception:
                logger.exception("Schedule %s callback failed", schedule_id)

        return _wrapper


__all__ = ["BackupScheduler"]
