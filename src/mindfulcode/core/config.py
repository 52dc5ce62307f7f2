"""Mindful Code configuration: Pydantic model, load, and save."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from mindfulcode.core.constants import (
    BREAK_AFTER_MINUTES,
    BREAK_COOLDOWN_MINUTES,
    CONFIG_FILENAME,
    DB_FILENAME,
    DEFAULT_AUTOSAVE_INTERVAL_SECONDS,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_FLOW_WINDOW_MS,
    DEFAULT_IDLE_TIMEOUT_MINUTES,
    DEFAULT_MIN_ACTIVITY_INTERVAL_MS,
    DEFAULT_TICK_INTERVAL_SECONDS,
    FLOW_NOTIFY_COOLDOWN_MINUTES,
    _default_data_dir,
)
from mindfulcode.core.exceptions import ConfigError, ConfigNotFoundError


def mindfulcode_dir() -> Path:
    """
    Return the Mindful Code data directory, creating it if needed.

    macOS : ~/Library/Application Support/mindfulcode
    Linux : ~/.config/mindfulcode  (or $XDG_CONFIG_HOME/mindfulcode)
    Other : ~/.mindfulcode
    """
    d = _default_data_dir()
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class SessionConfig(BaseModel):
    idle_timeout_minutes: int = DEFAULT_IDLE_TIMEOUT_MINUTES
    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS
    autosave_interval_seconds: float = DEFAULT_AUTOSAVE_INTERVAL_SECONDS
    break_after_minutes: int = BREAK_AFTER_MINUTES
    break_cooldown_minutes: int = BREAK_COOLDOWN_MINUTES

    @field_validator("idle_timeout_minutes")
    @classmethod
    def validate_idle_timeout(cls, v: int) -> int:
        if not (1 <= v <= 120):
            raise ValueError("idle_timeout_minutes must be between 1 and 120")
        return v

    @field_validator("tick_interval_seconds")
    @classmethod
    def validate_tick_interval(cls, v: float) -> float:
        if not (0.5 <= v <= 60.0):
            raise ValueError("tick_interval_seconds must be between 0.5 and 60.0")
        return v

    @field_validator("autosave_interval_seconds")
    @classmethod
    def validate_autosave_interval(cls, v: float) -> float:
        if not (5.0 <= v <= 3600.0):
            raise ValueError("autosave_interval_seconds must be between 5 and 3600")
        return v

    @property
    def idle_timeout_ms(self) -> int:
        return self.idle_timeout_minutes * 60_000


class FlowConfig(BaseModel):
    enabled: bool = True
    window_minutes: int = DEFAULT_FLOW_WINDOW_MS // 60_000
    notify_cooldown_minutes: int = FLOW_NOTIFY_COOLDOWN_MINUTES

    @field_validator("window_minutes")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if not (1 <= v <= 120):
            raise ValueError("window_minutes must be between 1 and 120")
        return v

    @property
    def window_ms(self) -> int:
        return self.window_minutes * 60_000


class NotificationsConfig(BaseModel):
    show_notifications: bool = True


class TrackingConfig(BaseModel):
    """Host-side activity throttling and file filtering."""

    min_interval_ms: int = DEFAULT_MIN_ACTIVITY_INTERVAL_MS
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))

    @field_validator("min_interval_ms")
    @classmethod
    def validate_min_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("min_interval_ms must not be negative")
        return v

    @field_validator("exclude_patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        import re

        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid exclude pattern {pattern!r}: {exc}") from exc
        return v


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


class DatabaseConfig(BaseModel):
    path: str = ""  # empty → use default


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class MindfulCodeConfig(BaseModel):
    """Root Mindful Code configuration model."""

    config_version: int = 1
    session: SessionConfig = Field(default_factory=SessionConfig)
    flow: FlowConfig = Field(default_factory=FlowConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @property
    def db_path(self) -> Path:
        if self.database.path:
            return Path(self.database.path).expanduser()
        return mindfulcode_dir() / DB_FILENAME


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("MINDFULCODE_CONFIG"):
        return Path(env_path)
    return _default_data_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None) -> MindfulCodeConfig:
    """
    Load MindfulCodeConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (MINDFULCODE_*)
      2. Config file (platform data dir / config.toml)
    """
    import tomllib

    cfg_path = Path(path) if path is not None else _config_file_path()

    if not cfg_path.exists():
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    try:
        with open(cfg_path, "rb") as f:
            data = tomllib.load(f)
    except Exception as exc:
        raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc

    return _validate(data, source=str(cfg_path))


def load_config_or_default(path: Path | str | None = None) -> MindfulCodeConfig:
    """Like ``load_config`` but fall back to defaults (plus env overrides) when no file exists."""
    try:
        return load_config(path)
    except ConfigNotFoundError:
        return _validate({}, source="defaults")


def _validate(data: dict[str, Any], *, source: str) -> MindfulCodeConfig:
    _apply_env_overrides(data)
    try:
        return MindfulCodeConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {source}: {exc}") from exc


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay MINDFULCODE_* environment variables onto parsed TOML."""
    env = os.environ.get

    if level := env("MINDFULCODE_LOG_LEVEL", ""):
        data.setdefault("logging", {})["level"] = level
    if db := env("MINDFULCODE_DB_PATH", ""):
        data.setdefault("database", {})["path"] = db
    if idle := env("MINDFULCODE_IDLE_TIMEOUT_MINUTES", ""):
        try:
            data.setdefault("session", {})["idle_timeout_minutes"] = int(idle)
        except ValueError as exc:
            raise ConfigError(f"MINDFULCODE_IDLE_TIMEOUT_MINUTES must be an integer: {idle!r}") from exc
    if flow := env("MINDFULCODE_FLOW_ENABLED", ""):
        data.setdefault("flow", {})["enabled"] = _env_bool(flow)
    if notify := env("MINDFULCODE_SHOW_NOTIFICATIONS", ""):
        data.setdefault("notifications", {})["show_notifications"] = _env_bool(notify)


def save_config(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Write config dict to a TOML file with owner-only permissions (0600)."""
    import tomli_w

    cfg_path = path or _config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    config_data.setdefault("config_version", 1)

    # Write atomically
    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(config_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
