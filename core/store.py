"""Task and workspace stores for TaskFlow.

Both stores keep their records in memory and, when given a path, persist
every change as one atomic JSON write. ``batch()`` groups several changes
into a single write and a single subscriber notification, so readers never
observe half of a multi-record pass.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, TypeVar

from core.errors import TaskNotFoundError, ValidationError, WorkspaceNotFoundError
from core.fileio import read_json, write_json_atomic
from core.models import DEFAULT_WORKSPACE_ID, Task, TaskUpdate, Workspace, default_workspace
from core.tasks import apply_update, validate_task

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
R = TypeVar("R", Task, Workspace)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _JsonCollection(Generic[R]):
    """Ordered record collection persisted under one JSON key."""

    key = "records"

    def __init__(self, path: Path | None = None, clock: Clock | None = None) -> None:
        self.path = path
        self._clock = clock or _utc_now
        self._lock = threading.RLock()
        self._subscribers: list[Callable[[list[R]], None]] = []
        self._batch_depth = 0
        self._dirty = False
        self._records: list[R] = self._load()

    # ── record (de)serialization, provided by subclasses ──

    def _decode(self, d: dict[str, Any]) -> R:
        raise NotImplementedError

    # ── persistence ──

    def _load(self) -> list[R]:
        if self.path is None:
            return []
        try:
            data = read_json(self.path, default={})
        except json.JSONDecodeError:
            backup = self.path.with_name(self.path.name + ".corrupt")
            logger.error("Unreadable %s; moved aside to %s", self.path, backup)
            self.path.rename(backup)
            return []
        raw = data.get(self.key, []) if isinstance(data, dict) else data
        return [self._decode(r) for r in raw or [] if isinstance(r, dict)]

    def _persist(self) -> None:
        if self.path is None:
            return
        try:
            write_json_atomic(self.path, {self.key: [r.to_dict() for r in self._records]})
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to save %s", self.path)

    def _changed(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        self._persist()
        self._notify()

    def _notify(self) -> None:
        snapshot = self.list()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Store subscriber failed")

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group changes into one persisted write and one notification.

        If the outermost block raises, every change made inside it is
        discarded and nothing is written.
        """
        with self._lock:
            outermost = self._batch_depth == 0
            snapshot = copy.deepcopy(self._records) if outermost else None
            self._batch_depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self._records = snapshot
                    self._dirty = False
                raise
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._dirty:
                    self._dirty = False
                    self._persist()
                    self._notify()

    def subscribe(self, callback: Callable[[list[R]], None]) -> Callable[[], None]:
        """Register *callback* for change snapshots. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # ── reads ──

    def list(self) -> list[R]:
        with self._lock:
            return copy.deepcopy(self._records)

    def _index(self, record_id: str) -> int | None:
        for i, r in enumerate(self._records):
            if r.id == record_id:
                return i
        return None


class TaskStore(_JsonCollection[Task]):
    key = "tasks"

    def _decode(self, d: dict[str, Any]) -> Task:
        return Task.from_dict(d)

    def get(self, task_id: str) -> Task:
        with self._lock:
            i = self._index(task_id)
            if i is None:
                raise TaskNotFoundError(task_id)
            return copy.deepcopy(self._records[i])

    def create(self, task: Task | dict[str, Any]) -> Task:
        """Add a task, assigning id and timestamps. Raises ValidationError."""
        if isinstance(task, dict):
            task = Task.from_dict(task)
        task = copy.deepcopy(task)
        errors = validate_task(task)
        if errors:
            raise ValidationError(errors)
        with self._lock:
            if not task.id:
                task.id = uuid.uuid4().hex
            elif self._index(task.id) is not None:
                raise ValidationError(f"Task ID already exists: {task.id}")
            now = self._clock()
            task.title = task.title.strip()
            task.created_at = task.created_at or now
            task.updated_at = now
            self._records.append(task)
            self._changed()
            return copy.deepcopy(task)

    def update(self, task_id: str, update: TaskUpdate) -> Task:
        with self._lock:
            i = self._index(task_id)
            if i is None:
                raise TaskNotFoundError(task_id)
            updated = apply_update(self._records[i], update, self._clock())
            errors = validate_task(updated)
            if errors:
                raise ValidationError(errors)
            self._records[i] = updated
            self._changed()
            return copy.deepcopy(updated)

    def replace(self, task: Task) -> Task:
        """Store a whole modified task (used for embedded records such as time tracking)."""
        errors = validate_task(task)
        if errors:
            raise ValidationError(errors)
        with self._lock:
            i = self._index(task.id)
            if i is None:
                raise TaskNotFoundError(task.id)
            task = copy.deepcopy(task)
            task.created_at = self._records[i].created_at
            task.updated_at = self._clock()
            self._records[i] = task
            self._changed()
            return copy.deepcopy(task)

    def delete(self, task_id: str) -> None:
        with self._lock:
            i = self._index(task_id)
            if i is None:
                raise TaskNotFoundError(task_id)
            del self._records[i]
            self._changed()

    def delete_where(self, predicate: Callable[[Task], bool]) -> list[str]:
        """Delete every task matching *predicate*. Returns deleted ids."""
        with self._lock:
            removed = [t.id for t in self._records if predicate(t)]
            if removed:
                self._records = [t for t in self._records if not predicate(t)]
                self._changed()
            return removed


class WorkspaceStore(_JsonCollection[Workspace]):
    key = "workspaces"

    def _decode(self, d: dict[str, Any]) -> Workspace:
        return Workspace.from_dict(d)

    def _ensure_default(self) -> None:
        if self._index(DEFAULT_WORKSPACE_ID) is None:
            self._records.insert(0, default_workspace(self._clock()))
            self._persist()

    def list(self) -> list[Workspace]:
        with self._lock:
            self._ensure_default()
            return copy.deepcopy(self._records)

    def get(self, workspace_id: str) -> Workspace:
        with self._lock:
            self._ensure_default()
            i = self._index(workspace_id)
            if i is None:
                raise WorkspaceNotFoundError(workspace_id)
            return copy.deepcopy(self._records[i])

    def exists(self, workspace_id: str) -> bool:
        with self._lock:
            return workspace_id == DEFAULT_WORKSPACE_ID or self._index(workspace_id) is not None

    def create(self, name: str, icon: str = "📁", color: str = "blue") -> Workspace:
        if not name.strip():
            raise ValidationError("Missing required field: name")
        with self._lock:
            self._ensure_default()
            ws = Workspace(
                id=uuid.uuid4().hex,
                name=name.strip(),
                icon=icon,
                color=color,
                created_at=self._clock(),
            )
            self._records.append(ws)
            self._changed()
            return copy.deepcopy(ws)

    def restore(self, ws: Workspace) -> Workspace:
        """Insert an exported workspace, keeping its id."""
        if not ws.id or not ws.name.strip():
            raise ValidationError("Workspace requires id and name")
        with self._lock:
            self._ensure_default()
            if self._index(ws.id) is not None:
                raise ValidationError(f"Workspace ID already exists: {ws.id}")
            ws = copy.deepcopy(ws)
            ws.created_at = ws.created_at or self._clock()
            self._records.append(ws)
            self._changed()
            return copy.deepcopy(ws)

    def update(
        self,
        workspace_id: str,
        name: str | None = None,
        icon: str | None = None,
        color: str | None = None,
    ) -> Workspace:
        if name is not None and not name.strip():
            raise ValidationError("name must not be empty")
        with self._lock:
            self._ensure_default()
            i = self._index(workspace_id)
            if i is None:
                raise WorkspaceNotFoundError(workspace_id)
            ws = self._records[i]
            if name is not None:
                ws.name = name.strip()
            if icon is not None:
                ws.icon = icon
            if color is not None:
                ws.color = color
            self._changed()
            return copy.deepcopy(ws)

    def delete(self, workspace_id: str) -> None:
        if workspace_id == DEFAULT_WORKSPACE_ID:
            raise ValidationError("The default workspace cannot be deleted")
        with self._lock:
            i = self._index(workspace_id)
            if i is None:
                raise WorkspaceNotFoundError(workspace_id)
            del self._records[i]
            self._changed()
