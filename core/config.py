"""Settings loading for TaskFlow.

Settings live in ``config.yaml`` under the data root. A handful of
environment variables override file values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.errors import ConfigError
from core.fileio import read_yaml, write_yaml_atomic
from core.paths import config_path, data_root

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _read_int(raw: Any, *, default: int, key: str, minimum: int = 0) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer.", {"key": key, "value": raw})
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}.", {"key": key, "value": value})
    return value


@dataclass(frozen=True)
class Settings:
    timezone: str = "UTC"
    notification_interval_seconds: int = 60
    recurrence_horizon_days: int = 30
    completion_horizon_days: int = 60
    default_max_occurrences: int = 100
    focus_minutes: int = 25
    break_minutes: int = 5
    log_level: str = "INFO"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        timezone = str(d.get("timezone", "UTC") or "UTC")
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigError(f"Unknown timezone: {timezone}", {"key": "timezone"})
        log_level = str(d.get("log_level", "INFO") or "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {log_level}", {"key": "log_level"})
        return cls(
            timezone=timezone,
            notification_interval_seconds=_read_int(
                d.get("notification_interval_seconds"), default=60,
                key="notification_interval_seconds", minimum=1,
            ),
            recurrence_horizon_days=_read_int(
                d.get("recurrence_horizon_days"), default=30, key="recurrence_horizon_days", minimum=1,
            ),
            completion_horizon_days=_read_int(
                d.get("completion_horizon_days"), default=60, key="completion_horizon_days", minimum=1,
            ),
            default_max_occurrences=_read_int(
                d.get("default_max_occurrences"), default=100, key="default_max_occurrences", minimum=1,
            ),
            focus_minutes=_read_int(d.get("focus_minutes"), default=25, key="focus_minutes", minimum=1),
            break_minutes=_read_int(d.get("break_minutes"), default=5, key="break_minutes", minimum=1),
            log_level=log_level,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "notification_interval_seconds": self.notification_interval_seconds,
            "recurrence_horizon_days": self.recurrence_horizon_days,
            "completion_horizon_days": self.completion_horizon_days,
            "default_max_occurrences": self.default_max_occurrences,
            "focus_minutes": self.focus_minutes,
            "break_minutes": self.break_minutes,
            "log_level": self.log_level,
        }


def load_settings(root: Path | None = None) -> Settings:
    """Load config.yaml and apply environment overrides."""
    if root is None:
        root = data_root()
    data = dict(read_yaml(config_path(root)))
    env_level = os.environ.get("TASKFLOW_LOG_LEVEL", "").strip()
    if env_level:
        data["log_level"] = env_level
    return Settings.from_dict(data)


def save_settings(settings: Settings, root: Path | None = None) -> None:
    write_yaml_atomic(config_path(root), settings.to_dict())


def configure_logging(level: str = "INFO", filename: Path | None = None) -> None:
    """Configure root logging once for an entry point (stderr unless *filename* is given)."""
    if filename is not None:
        filename.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        filename=str(filename) if filename is not None else None,
    )
