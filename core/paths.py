"""Data root, timezone and path helpers for TaskFlow."""

from __future__ import annotations

import os
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.fileio import read_yaml


def data_root() -> Path:
    """Get the data root directory (holds config.yaml, data/ and focus/)."""
    return Path(
        os.environ.get("TASKFLOW_ROOT", str(Path.home() / "taskflow"))
    ).expanduser().resolve()


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Get user's timezone from config.yaml, defaulting to UTC."""
    if root is None:
        root = data_root()
    name = read_yaml(config_path(root)).get("timezone")
    if name:
        try:
            return ZoneInfo(str(name))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo("UTC")


def day_key(moment: datetime, tz: ZoneInfo) -> str:
    """Calendar-day key of *moment* as seen in *tz*."""
    return moment.astimezone(tz).date().isoformat()


def previous_day(day: str) -> str:
    return (date.fromisoformat(day) - timedelta(days=1)).isoformat()


# ── Path helpers ──────────────────────────────────────────────

def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "config.yaml"


def tasks_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "data" / "tasks.json"


def workspaces_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "data" / "workspaces.json"


def sessions_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "focus" / "sessions.json"


def trees_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "focus" / "trees.json"


def stats_path(root: Path | None = None) -> Path:
    if root is None:
        root = data_root()
    return root / "focus" / "stats.json"
