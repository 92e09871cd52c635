"""Shared test fixtures for TaskFlow tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml

from core.context import build_context
from core.forest import ForestEngine
from core.paths import tasks_path, workspaces_path
from core.recurrence import RecurrenceEngine
from core.store import TaskStore, WorkspaceStore

# Monday
START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create a temporary data root with a config.yaml."""
    root = tmp_path / "taskflow"
    root.mkdir(parents=True)

    config = {
        "timezone": "UTC",
        "notification_interval_seconds": 60,
        "recurrence_horizon_days": 30,
        "completion_horizon_days": 60,
        "focus_minutes": 25,
        "break_minutes": 5,
        "log_level": "INFO",
    }
    (root / "config.yaml").write_text(yaml.dump(config, default_flow_style=False), encoding="utf-8")

    # Set env var
    os.environ["TASKFLOW_ROOT"] = str(root)
    yield root
    # Cleanup
    if "TASKFLOW_ROOT" in os.environ:
        del os.environ["TASKFLOW_ROOT"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def task_store(data_dir: Path, clock: FakeClock) -> TaskStore:
    return TaskStore(tasks_path(data_dir), clock=clock)


@pytest.fixture
def workspace_store(data_dir: Path, clock: FakeClock) -> WorkspaceStore:
    return WorkspaceStore(workspaces_path(data_dir), clock=clock)


@pytest.fixture
def engine(task_store: TaskStore, clock: FakeClock) -> RecurrenceEngine:
    return RecurrenceEngine(task_store, clock=clock, tz=ZoneInfo("UTC"))


@pytest.fixture
def forest(data_dir: Path, clock: FakeClock) -> ForestEngine:
    return ForestEngine(data_dir, clock=clock, tz=ZoneInfo("UTC"))


@pytest.fixture
def ctx(data_dir: Path, clock: FakeClock):
    return build_context(data_dir, clock=clock)
