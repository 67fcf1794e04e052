"""Configuration management for Playlister."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".playlister"
_CONFIG_FILE = "config.toml"
_DB_FILE = "playlister.db"
_LOG_DIR = "logs"


def get_base_dir() -> Path:
    """Return the base directory for all Playlister runtime files (~/.playlister/)."""
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class AppSection(BaseModel):
    """Settings that control the application process itself."""

    log_level: str = Field(default="info", description="Logging level")


class PlaybackConfig(BaseModel):
    """Settings that control the playback session."""

    position_sync_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between persisted position snapshots while playing",
    )
    duration_attempts: int = Field(
        default=10,
        ge=1,
        description="How many times to poll the engine for the media duration",
    )
    duration_backoff_ms: int = Field(
        default=100,
        ge=0,
        description="Delay added per duration attempt (100ms, 200ms, ...)",
    )
    start_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How long play() waits for the engine to report start",
    )


class LibraryConfig(BaseModel):
    """Settings for playlist listings."""

    history_limit: int = Field(default=1000, ge=1, description="Maximum history rows shown")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    app: AppSection = Field(default_factory=AppSection)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    library: LibraryConfig = Field(default_factory=LibraryConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def db_path(self) -> Path:
        return self.base_dir / _DB_FILE

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config() -> AppConfig:
    """Load configuration from TOML, falling back to defaults if the file is missing."""
    path = get_base_dir() / _CONFIG_FILE
    if not path.is_file():
        return AppConfig()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return AppConfig.model_validate(raw)


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string.

    Only handles the flat two-level structure we actually use (tables with
    scalar values).
    """
    lines: list[str] = []
    sections = [
        ("app", config.app),
        ("playback", config.playback),
        ("library", config.library),
    ]
    for section_name, section_model in sections:
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)
