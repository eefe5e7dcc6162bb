from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from talevault.models.backup import BackupOptions, Platform


class ContentRootsConfig(BaseModel):
    """Native folders walked for each ``files/<namespace>/`` archive namespace."""

    chapter_text: str = "talevox/chapter_text"
    audio: str = "talevox/audio"
    attachments: str = "talevox/attachments"
    diagnostics: str = "talevox/diagnostics"

    def as_namespaces(self) -> dict[str, str]:
        return {
            "chapter_text": self.chapter_text,
            "audio": self.audio,
            "attachments": self.attachments,
            "diagnostics": self.diagnostics,
        }


class BackupConfig(BaseModel):
    local_folder: str = "talevox/backups"
    saves_folder_name: str = "saves"
    pointer_file_name: str = "talevox-latest-backup.json"
    keep_drive_backups: int = Field(default=10, ge=1)
    keep_local_backups: int = Field(default=10, ge=1)
    large_file_warning_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    auto_backup_to_drive: bool = False
    auto_backup_to_device: bool = False
    backup_interval_min: int = Field(default=30, ge=1)
    options: BackupOptions = Field(default_factory=BackupOptions)


class PreferencesConfig(BaseModel):
    safe_keys: list[str] = Field(
        default_factory=lambda: [
            "talevox_prefs_v3",
            "talevox_reader_progress",
            "talevox_progress_store",
            "talevox_nav_context_v1",
            "talevox_ui_mode",
            "talevox_sync_diag",
            "talevox_launch_sync_v1",
            "talevox_last_fatal_error",
            "talevox_full_snapshot_meta_v1",
            "talevox_saved_snapshot_v1",
            "talevox_backup_settings_v1",
        ]
    )
    prefix_families: list[str] = Field(default_factory=lambda: ["talevox:viewMode:"])
    credential_keys: list[str] = Field(
        default_factory=lambda: ["talevox_drive_token_v2", "talevox_drive_session_v3"]
    )
    restore_warnings_key: str = "talevox_restore_warnings_v1"

    @field_validator("prefix_families")
    @classmethod
    def _non_empty_prefixes(cls, value: list[str]) -> list[str]:
        # An empty prefix would match every key, credentials included.
        if any(not prefix for prefix in value):
            raise ValueError("preferences.prefix_families entries must be non-empty")
        return value


class DriveConfig(BaseModel):
    root_folder_id: str | None = None
    access_token: str | None = None
    api_base: str = "https://www.googleapis.com/drive/v3"
    upload_base: str = "https://www.googleapis.com/upload/drive/v3"
    timeout_s: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=4, ge=1)
    base_delay_s: float = Field(default=0.4, ge=0)
    max_delay_s: float = Field(default=4.0, ge=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class TalevaultSettings(BaseSettings):
    product: str = "talevox"
    app_version: str = "unknown"
    platform: Platform = Platform.android
    data_dir: Path = Path("./data")
    db_path: Path = Path("./data/talevox.db")
    content_roots: ContentRootsConfig = Field(default_factory=ContentRootsConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    preferences: PreferencesConfig = Field(default_factory=PreferencesConfig)
    drive: DriveConfig = Field(default_factory=DriveConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="TALEVAULT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("product")
    @classmethod
    def _safe_product(cls, value: str) -> str:
        if not value or "/" in value:
            raise ValueError("product must be a non-empty name without '/'")
        return value


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    prefix = "TALEVAULT_"
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/talevault.yaml") -> TalevaultSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("talevault", loaded)
    if not isinstance(raw, dict):
        raise ValueError("talevault config section must be a mapping")

    merged = _apply_env_overrides(raw)
    return TalevaultSettings.model_validate(merged)


__all__ = [
    "BackupConfig",
    "ContentRootsConfig",
    "DriveConfig",
    "LoggingConfig",
    "PreferencesConfig",
    "TalevaultSettings",
    "load_config",
]
