"""Tests for BackupScheduler, the APScheduler wrapper for auto-backups."""

from __future__ import annotations

import pytest

from talevault.backup.scheduler import BackupScheduler
from talevault.backup.service import BackupService
from talevault.config import BackupConfig, TalevaultSettings
from talevault.models.backup import BackupTarget
from tests.fakes import InMemoryFilesystem


@pytest.fixture
def config() -> BackupConfig:
    return BackupConfig(auto_backup_to_drive=True, auto_backup_to_device=True, backup_interval_min=15)


class TestTargets:
    def test_enabled_targets_follow_config(self, service: BackupService) -> None:
        scheduler = BackupScheduler(service, BackupConfig(auto_backup_to_device=True))

        assert scheduler.enabled_targets() == [BackupTarget.local]
        assert not scheduler.running
        assert scheduler.job_ids == []

    def test_add_target(self, service: BackupService, config: BackupConfig) -> None:
        scheduler = BackupScheduler(service, config)

        assert scheduler.add_target(BackupTarget.drive) == "auto-backup:drive"
        assert scheduler.job_ids == ["auto-backup:drive"]

    def test_duplicate_target_raises(self, service: BackupService, config: BackupConfig) -> None:
        scheduler = BackupScheduler(service, config)
        scheduler.add_target(BackupTarget.local)

        with pytest.raises(ValueError, match="already registered"):
            scheduler.add_target(BackupTarget.local)


@pytest.mark.asyncio
class TestLifecycle:
    async def test_start_registers_enabled_targets(self, service: BackupService, config: BackupConfig) -> None:
        scheduler = BackupScheduler(service, config)

        scheduler.start()
        scheduler.start()
        try:
            assert scheduler.running
            assert sorted(scheduler.job_ids) == ["auto-backup:drive", "auto-backup:local"]
        finally:
            scheduler.stop()

        assert not scheduler.running
        assert scheduler.job_ids == []

    async def test_stop_is_idempotent(self, service: BackupService, config: BackupConfig) -> None:
        scheduler = BackupScheduler(service, config)

        scheduler.stop()

        assert not scheduler.running


@pytest.mark.asyncio
class TestJobs:
    async def test_job_runs_a_backup(
        self,
        service: BackupService,
        config: BackupConfig,
        filesystem: InMemoryFilesystem,
    ) -> None:
        scheduler = BackupScheduler(service, config)
        schedule_id = scheduler.add_target(BackupTarget.local)

        await scheduler._scheduler.get_job(schedule_id).func()

        assert len(filesystem.names_in("talevox/backups")) == 1

    async def test_job_failure_is_logged_not_raised(
        self,
        service: BackupService,
        settings: TalevaultSettings,
        config: BackupConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        settings.drive.root_folder_id = None
        scheduler = BackupScheduler(service, config)
        schedule_id = scheduler.add_target(BackupTarget.drive)

        await scheduler._scheduler.get_job(schedule_id).func()

        assert "auto-backup:drive callback failed" in caplog.text
