"""Application context: one set of stores and engines per user session."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Callable

from core.config import Settings, load_settings
from core.errors import ImportDataError, ValidationError, WorkspaceNotFoundError
from core.forest import ForestEngine
from core.importexport import ExportBundle
from core.models import DEFAULT_WORKSPACE_ID, Task
from core.notifications import NotificationScheduler
from core.paths import data_root, tasks_path, workspaces_path
from core.recurrence import RecurrenceEngine
from core.store import TaskStore, WorkspaceStore
from core.tasks import filter_tasks, validate_task

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    root: Path
    settings: Settings
    tz: tzinfo
    clock: Callable[[], datetime]
    tasks: TaskStore
    workspaces: WorkspaceStore
    recurrence: RecurrenceEngine
    forest: ForestEngine
    notifications: NotificationScheduler
    current_workspace_id: str = DEFAULT_WORKSPACE_ID

    def now(self) -> datetime:
        return self.clock()

    # ── workspace scope ──

    def select_workspace(self, workspace_id: str) -> str:
        if not self.workspaces.exists(workspace_id):
            raise WorkspaceNotFoundError(workspace_id)
        self.current_workspace_id = workspace_id
        return workspace_id

    def current_tasks(self) -> list[Task]:
        return filter_tasks(self.tasks.list(), workspace_id=self.current_workspace_id)

    def delete_workspace(self, workspace_id: str) -> list[str]:
        """Delete a workspace and all of its tasks. Returns deleted task ids."""
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise ValidationError("The default workspace cannot be deleted")
        self.workspaces.get(workspace_id)
        with self.tasks.batch():
            removed = self.tasks.delete_where(lambda t: t.workspace_id == workspace_id)
            self.workspaces.delete(workspace_id)
        if self.current_workspace_id == workspace_id:
            self.current_workspace_id = DEFAULT_WORKSPACE_ID
        logger.info("Deleted workspace %s with %d task(s)", workspace_id, len(removed))
        return removed

    # ── import ──

    def import_bundle(self, bundle: ExportBundle) -> dict[str, int]:
        """Merge an export bundle; records whose id already exists are skipped.

        Every new record is checked before either store changes, so an
        invalid bundle imports nothing. Raises ImportDataError.
        """
        known_ws = {w.id for w in self.workspaces.list()}
        known_tasks = {t.id for t in self.tasks.list()}

        new_ws = []
        for i, ws in enumerate(bundle.workspaces):
            if ws.id in known_ws or ws.id in {w.id for w in new_ws}:
                continue
            if not ws.id or not ws.name.strip():
                raise ImportDataError("Invalid workspace", {"index": i})
            new_ws.append(ws)
        ws_ids = known_ws | {w.id for w in new_ws}

        new_tasks = []
        for i, task in enumerate(bundle.tasks):
            if task.id in known_tasks or task.id in {t.id for t in new_tasks}:
                continue
            task = copy.deepcopy(task)
            if task.workspace_id not in ws_ids:
                task.workspace_id = DEFAULT_WORKSPACE_ID
            errors = validate_task(task)
            if errors:
                raise ImportDataError(f"Invalid task {task.id}: {'; '.join(errors)}", {"index": i})
            new_tasks.append(task)

        with self.workspaces.batch(), self.tasks.batch():
            for ws in new_ws:
                self.workspaces.restore(ws)
            for task in new_tasks:
                self.tasks.create(task)
        logger.info("Imported %d task(s) and %d workspace(s)", len(new_tasks), len(new_ws))
        return {"tasks": len(new_tasks), "workspaces": len(new_ws)}


def build_context(
    root: Path | None = None,
    clock: Callable[[], datetime] | None = None,
    settings: Settings | None = None,
) -> AppContext:
    """Wire stores and engines for the data root."""
    if root is None:
        root = data_root()
    if settings is None:
        settings = load_settings(root)
    tz = settings.tz
    if clock is None:
        def clock() -> datetime:
            return datetime.now(tz)

    tasks = TaskStore(tasks_path(root), clock=clock)
    workspaces = WorkspaceStore(workspaces_path(root), clock=clock)
    return AppContext(
        root=root,
        settings=settings,
        tz=tz,
        clock=clock,
        tasks=tasks,
        workspaces=workspaces,
        recurrence=RecurrenceEngine(
            tasks,
            clock=clock,
            tz=tz,
            horizon_days=settings.recurrence_horizon_days,
            completion_horizon_days=settings.completion_horizon_days,
            default_max_occurrences=settings.default_max_occurrences,
        ),
        forest=ForestEngine(root, clock=clock, tz=tz),
        notifications=NotificationScheduler(settings.notification_interval_seconds, clock=clock),
    )
