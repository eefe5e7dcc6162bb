"""Talevault CLI entry point and dependency wiring."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import click

from talevault.adapters import DriveClient, DriveFolderAdapter, LocalFilesystem, StaticTokenProvider
from talevault.backup import ArchivePackager, BackupError, BackupService, RestoreOrchestrator
from talevault.backup.scheduler import BackupScheduler
from talevault.config import TalevaultSettings, load_config
from talevault.core.logging import setup_logging
from talevault.library import FolderManifestInitializer, LibrarySnapshotBuilder, RemoteReconciler
from talevault.library.snapshot import list_all_chapters
from talevault.models.backup import BackupProgress, BackupTarget, Platform
from talevault.persistence import SQLiteLibraryStore, SQLitePreferenceStore, run_migrations
from talevault.protocols.remote import RemoteError

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = "config/talevault.yaml"
_TARGETS = click.Choice([target.value for target in BackupTarget], case_sensitive=False)


@dataclass(slots=True)
class Runtime:
    settings: TalevaultSettings
    library: SQLiteLibraryStore
    preferences: SQLitePreferenceStore
    filesystem: LocalFilesystem | None
    credentials: StaticTokenProvider
    drive: DriveClient
    service: BackupService


def build_runtime(settings: TalevaultSettings) -> Runtime:
    library = SQLiteLibraryStore(str(settings.db_path))
    preferences = SQLitePreferenceStore(str(settings.db_path))
    filesystem = None if settings.platform == Platform.web else LocalFilesystem(settings.data_dir)
    credentials = StaticTokenProvider(settings.drive.access_token)
    drive = DriveClient(settings.drive, credentials)

    packager = ArchivePackager(
        snapshot_builder=LibrarySnapshotBuilder(settings.app_version),
        preferences=preferences,
        library=library,
        filesystem=filesystem,
        settings=settings,
    )
    restorer = RestoreOrchestrator(
        preferences=preferences,
        library=library,
        filesystem=filesystem,
        settings=settings,
    )
    service = BackupService(
        settings=settings,
        library=library,
        preferences=preferences,
        packager=packager,
        restorer=restorer,
        filesystem=filesystem,
        remote=drive,
    )
    return Runtime(
        settings=settings,
        library=library,
        preferences=preferences,
        filesystem=filesystem,
        credentials=credentials,
        drive=drive,
        service=service,
    )


@asynccontextmanager
async def open_runtime(settings: TalevaultSettings) -> AsyncIterator[Runtime]:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    await run_migrations(settings.db_path)
    runtime = build_runtime(settings)
    try:
        yield runtime
    finally:
        await runtime.drive.aclose()


def _echo_progress(progress: BackupProgress) -> None:
    suffix = f" ({progress.current}/{progress.total})" if progress.total else ""
    click.echo(f"[{progress.step}] {progress.message}{suffix}", err=True)


def _load(config_path: str) -> TalevaultSettings:
    try:
        settings = load_config(config_path)
    except FileNotFoundError:
        logger.info("No config at %s; using defaults and environment", config_path)
        settings = TalevaultSettings()
    setup_logging(settings.logging.level, json_output=settings.logging.json_output)
    return settings


def _run(coro: object) -> object:
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except (BackupError, RemoteError) as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        click.echo(f"warning: {warning}", err=True)


@click.group()
def cli() -> None:
    """Talevault backup, restore and library sync CLI."""
    setup_logging()


@cli.command("init")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def init_command(config_path: str) -> None:
    """Create the data directory and apply database migrations."""
    settings = _load(config_path)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    applied = asyncio.run(run_migrations(settings.db_path))
    click.echo(f"Database ready at {settings.db_path} ({len(applied)} migrations applied).")


@cli.command("backup")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
@click.option("--target", type=_TARGETS, default=BackupTarget.local.value, show_default=True)
@click.option("--include-oauth-tokens", is_flag=True, default=False)
def backup_command(config_path: str, target: str, include_oauth_tokens: bool) -> None:
    """Package a full backup and save it to the target."""
    settings = _load(config_path)

    async def _backup() -> None:
        async with open_runtime(settings) as runtime:
            options = settings.backup.options.model_copy(update={"include_oauth_tokens": include_oauth_tokens})
            result = await runtime.service.run_backup(BackupTarget(target), options, _echo_progress)
            if result is None:
                raise click.ClickException("Another backup or restore is already running.")
            _echo_warnings(result.warnings)
            click.echo(f"{result.location_label}: {result.file_name}")

    _run(_backup())


@cli.command("restore")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def restore_command(path: Path, config_path: str) -> None:
    """Restore live state from a backup archive on disk."""
    settings = _load(config_path)

    async def _restore() -> None:
        async with open_runtime(settings) as runtime:
            result = await runtime.service.restore_from_file(path, _echo_progress)
            if result is None:
                raise click.ClickException("Another backup or restore is already running.")
            _echo_warnings(result.warnings)
            click.echo(f"Restored backup (schema {result.meta.schema_version}).")

    _run(_restore())


@cli.command("restore-drive")
@click.argument("file_id")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def restore_drive_command(file_id: str, config_path: str) -> None:
    """Download a backup archive from Drive and restore it."""
    settings = _load(config_path)

    async def _restore() -> None:
        async with open_runtime(settings) as runtime:
            result = await runtime.service.restore_from_drive(file_id, _echo_progress)
            if result is None:
                raise click.ClickException("Another backup or restore is already running.")
            _echo_warnings(result.warnings)
            click.echo(f"Restored backup {file_id} (schema {result.meta.schema_version}).")

    _run(_restore())


@cli.command("list-backups")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
@click.option("--root-folder", "root_folder_id", default=None)
def list_backups_command(config_path: str, root_folder_id: str | None) -> None:
    """List backup archives in the Drive saves folder, newest first."""
    settings = _load(config_path)

    async def _list() -> None:
        async with open_runtime(settings) as runtime:
            for candidate in await runtime.service.list_drive_backup_candidates(root_folder_id):
                click.echo(f"{candidate.id}\t{candidate.modified_time or '-'}\t{candidate.name}")

    _run(_list())


@cli.command("prune")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
@click.option("--target", type=_TARGETS, default=BackupTarget.local.value, show_default=True)
@click.option("--keep", type=click.IntRange(min=1), default=None)
def prune_command(config_path: str, target: str, keep: int | None) -> None:
    """Delete all but the newest backups at the target."""
    settings = _load(config_path)

    async def _prune() -> None:
        async with open_runtime(settings) as runtime:
            kept = await runtime.service.prune(BackupTarget(target), keep)
            click.echo(f"Kept {len(kept)} backups.")

    _run(_prune())


@cli.command("scan")
@click.argument("book_id")
@click.argument("folder_id")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def scan_command(book_id: str, folder_id: str, config_path: str) -> None:
    """Reconcile a book's chapters against its Drive folder."""
    settings = _load(config_path)

    async def _scan() -> None:
        async with open_runtime(settings) as runtime:
            chapters = await list_all_chapters(runtime.library, book_id)
            reconciler = RemoteReconciler(runtime.drive, runtime.credentials)
            report = await reconciler.check_book(folder_id, chapters)
            if report.scan is not None and report.scan.updated_chapters:
                await runtime.library.bulk_upsert_chapters(book_id, report.scan.updated_chapters)
                _echo_warnings(report.scan.warnings)
            click.echo(report.message)

    _run(_scan())


@cli.command("init-folder")
@click.argument("book_id")
@click.argument("folder_id")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def init_folder_command(book_id: str, folder_id: str, config_path: str) -> None:
    """Create or load the meta manifests in a book's Drive folder."""
    settings = _load(config_path)

    async def _init_folder() -> None:
        async with open_runtime(settings) as runtime:
            book = next((item for item in await runtime.library.list_books() if item.id == book_id), None)
            if book is None:
                raise click.ClickException(f"Unknown book: {book_id}")
            initializer = FolderManifestInitializer(DriveFolderAdapter(runtime.drive), runtime.library)
            manifests = await initializer.initialize(book, folder_id)
            click.echo(f"{manifests.book.title}: {len(manifests.inventory.chapters)} chapters in inventory.")

    _run(_init_folder())


@cli.command("schedule")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def schedule_command(config_path: str) -> None:
    """Run auto-backups on the configured interval until interrupted."""
    settings = _load(config_path)

    async def _schedule() -> None:
        async with open_runtime(settings) as runtime:
            scheduler = BackupScheduler(runtime.service, settings.backup)
            if not scheduler.enabled_targets():
                raise click.ClickException("No auto-backup target is enabled.")
            scheduler.start()
            try:
                await asyncio.Event().wait()
            finally:
                scheduler.stop()

    try:
        _run(_schedule())
    except KeyboardInterrupt:
        click.echo("Shutting down.")


__all__ = ["Runtime", "build_runtime", "cli", "open_runtime"]
