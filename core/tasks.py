"""Task validation, update requests, queries and time tracking for TaskFlow."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from core.errors import ValidationError
from core.models import (
    PRIORITIES,
    PRIORITY_RANK,
    STATUSES,
    DetailsUpdate,
    RecurrencePattern,
    RecurrenceUpdate,
    ScheduleUpdate,
    StatusUpdate,
    TagsUpdate,
    Task,
    TaskUpdate,
    TimeTracking,
    TrackedSession,
    normalize_priority,
    parse_datetime,
    unique_tags,
)

if TYPE_CHECKING:
    from core.store import TaskStore

logger = logging.getLogger(__name__)


# ── Validation ────────────────────────────────────────────────


def validate_task(task: Task) -> list[str]:
    """Validate a task and return list of errors (empty if valid)."""
    errors = []
    if not task.title.strip():
        errors.append("Missing required field: title")
    if task.priority not in PRIORITIES:
        errors.append(f"Invalid priority: {task.priority}")
    if task.status not in STATUSES:
        errors.append(f"Invalid status: {task.status}")
    if task.estimated_minutes is not None and task.estimated_minutes < 0:
        errors.append("estimatedMinutes must be non-negative")
    if not task.workspace_id:
        errors.append("Missing required field: workspaceId")

    if task.is_recurring and task.recurrence_pattern is None:
        errors.append("Recurring task requires a recurrencePattern")
    if not task.is_recurring and task.recurrence_pattern is not None:
        errors.append("recurrencePattern set on a non-recurring task")
    if task.recurrence_pattern is not None:
        errors.extend(task.recurrence_pattern.validate())
    if task.is_recurring and task.parent_task_id:
        errors.append("A generated instance cannot itself be recurring")
    return errors


# ── Input checks ──────────────────────────────────────────────
#
# Raw JSON may carry any type; these run before from_dict converts it.

TEXT_FIELDS = ("title", "description", "priority", "status", "workspaceId")


def _integer_error(value: Any, name: str) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return f"{name} must be an integer"
    try:
        int(value)
    except (TypeError, ValueError):
        return f"{name} must be an integer"
    return None


def check_pattern_input(raw: Any) -> list[str]:
    if not isinstance(raw, dict):
        return ["recurrencePattern must be an object"]
    errors = []
    for key in ("interval", "dayOfMonth", "maxOccurrences"):
        error = _integer_error(raw.get(key), key)
        if error:
            errors.append(error)
    days = raw.get("daysOfWeek")
    if days is not None:
        if not isinstance(days, list):
            errors.append("daysOfWeek must be a list")
        else:
            errors.extend(e for e in (_integer_error(d, "daysOfWeek") for d in days) if e)
    if raw.get("endDate") and parse_datetime(raw["endDate"]) is None:
        errors.append(f"Invalid endDate: {raw['endDate']}")
    return errors


def check_task_input(data: dict[str, Any]) -> list[str]:
    """Type errors in a raw camelCase task payload (empty if well-formed)."""
    errors = []
    for key in TEXT_FIELDS:
        if data.get(key) is not None and not isinstance(data[key], str):
            errors.append(f"{key} must be a string")
    error = _integer_error(data.get("estimatedMinutes"), "estimatedMinutes")
    if error:
        errors.append(error)
    tags = data.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        errors.append("tags must be a list of strings")
    if data.get("dueDate") and parse_datetime(data["dueDate"]) is None:
        errors.append(f"Invalid dueDate: {data['dueDate']}")
    if data.get("recurrencePattern"):
        errors.extend(check_pattern_input(data["recurrencePattern"]))
    return errors


def pattern_from_input(raw: Any) -> RecurrencePattern:
    """Build a RecurrencePattern from raw input. Raises ValidationError."""
    errors = check_pattern_input(raw)
    if errors:
        raise ValidationError(errors)
    pattern = RecurrencePattern.from_dict(raw)
    errors = pattern.validate()
    if errors:
        raise ValidationError(errors)
    return pattern


def task_from_input(data: dict[str, Any]) -> Task:
    """Build a Task from user/API input, rejecting invalid data."""
    errors = check_task_input(data)
    if errors:
        raise ValidationError(errors)
    task = Task.from_dict(data)
    errors = validate_task(task)
    if errors:
        raise ValidationError(errors)
    return task


# ── Update requests ───────────────────────────────────────────


def apply_update(task: Task, update: TaskUpdate, now: datetime) -> Task:
    """Return a copy of *task* with *update* applied and updated_at bumped."""
    errors = update.validate()
    if errors:
        raise ValidationError(errors)

    if isinstance(update, DetailsUpdate):
        changes: dict[str, Any] = {}
        if update.title is not None:
            changes["title"] = update.title.strip()
        if update.description is not None:
            changes["description"] = update.description
        if update.priority is not None:
            changes["priority"] = normalize_priority(update.priority)
        if update.estimated_minutes is not None:
            changes["estimated_minutes"] = update.estimated_minutes
        if update.workspace_id is not None:
            changes["workspace_id"] = update.workspace_id
        updated = replace(task, **changes)
    elif isinstance(update, StatusUpdate):
        updated = replace(task, status=update.status)
    elif isinstance(update, ScheduleUpdate):
        updated = replace(task, due_date=None if update.clear_due_date else update.due_date)
    elif isinstance(update, TagsUpdate):
        updated = replace(task, tags=unique_tags(update.tags))
    elif isinstance(update, RecurrenceUpdate):
        if update.pattern is not None and task.parent_task_id:
            raise ValidationError("A generated instance cannot itself be recurring")
        updated = replace(
            task,
            is_recurring=update.pattern is not None,
            recurrence_pattern=update.pattern,
        )
    else:
        raise ValidationError(f"Unsupported update: {type(update).__name__}")

    updated.updated_at = now
    return updated


def update_from_input(data: dict[str, Any]) -> list[TaskUpdate]:
    """Split a flat camelCase payload into explicit update requests.

    Used by the HTTP layer; keys that belong together are grouped so
    recurrencePattern can never be set without isRecurring.
    """
    errors = check_task_input(data)
    if errors:
        raise ValidationError(errors)

    updates: list[TaskUpdate] = []
    detail_keys = {"title", "description", "priority", "estimatedMinutes", "workspaceId"}
    if detail_keys & data.keys():
        estimate = data.get("estimatedMinutes")
        updates.append(
            DetailsUpdate(
                title=data.get("title"),
                description=data.get("description"),
                priority=data.get("priority"),
                estimated_minutes=int(estimate) if estimate not in (None, "") else None,
                workspace_id=data.get("workspaceId"),
            )
        )
    if "status" in data:
        updates.append(StatusUpdate(str(data["status"])))
    if "dueDate" in data:
        due = parse_datetime(data["dueDate"])
        updates.append(ScheduleUpdate(due_date=due, clear_due_date=due is None))
    if "tags" in data:
        updates.append(TagsUpdate(tuple(data.get("tags") or ())))
    if "recurrencePattern" in data or "isRecurring" in data:
        raw = data.get("recurrencePattern")
        if data.get("isRecurring") is False:
            raw = None
        elif data.get("isRecurring") and not raw:
            raise ValidationError("Recurring task requires a recurrencePattern")
        updates.append(RecurrenceUpdate(pattern_from_input(raw) if raw else None))
    if not updates:
        raise ValidationError("Missing updates")
    return updates


# ── Queries ───────────────────────────────────────────────────


def filter_tasks(
    tasks: Iterable[Task],
    workspace_id: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    tag: str | None = None,
    search: str | None = None,
) -> list[Task]:
    """Filter tasks by workspace, status, priority, tag and free-text search."""
    needle = (search or "").strip().lower()
    result = []
    for task in tasks:
        if workspace_id and task.workspace_id != workspace_id:
            continue
        if status and task.status != status:
            continue
        if priority and task.priority != priority:
            continue
        if tag and tag not in task.tags:
            continue
        if needle and needle not in task.title.lower() and needle not in task.description.lower():
            continue
        result.append(task)
    return result


def sort_tasks(tasks: Iterable[Task], key: str = "dueDate") -> list[Task]:
    """Sort by 'dueDate' (undated last), 'priority' (high first) or 'createdAt'."""
    tasks = list(tasks)
    if key == "priority":
        return sorted(tasks, key=lambda t: -PRIORITY_RANK.get(t.priority, 0))
    if key == "createdAt":
        return sorted(tasks, key=lambda t: (t.created_at is None, t.created_at or datetime.min))
    if key == "dueDate":
        return sorted(
            tasks,
            key=lambda t: (t.due_date is None, t.due_date.timestamp() if t.due_date else 0.0),
        )
    raise ValidationError(f"Unknown sort key: {key}")


def toggle_task(store: TaskStore, task_id: str) -> Task:
    """Flip a task between pending and completed."""
    task = store.get(task_id)
    new_status = "pending" if task.status == "completed" else "completed"
    return store.update(task_id, StatusUpdate(new_status))


# ── Time tracking ─────────────────────────────────────────────


def start_time_tracking(store: TaskStore, task_id: str, now: datetime) -> Task:
    task = store.get(task_id)
    tracking = task.time_tracking or TimeTracking()
    if tracking.is_active:
        raise ValidationError(f"Time tracking already running for task {task_id}")
    tracking.is_active = True
    tracking.active_session_start = now
    task.time_tracking = tracking
    return store.replace(task)


def stop_time_tracking(store: TaskStore, task_id: str, now: datetime, note: str = "") -> Task:
    """Close the running tracking session; elapsed time is floored to minutes."""
    task = store.get(task_id)
    tracking = task.time_tracking
    if tracking is None or not tracking.is_active or tracking.active_session_start is None:
        raise ValidationError(f"No active time tracking for task {task_id}")

    start = tracking.active_session_start
    minutes = max(0, int((now - start).total_seconds() // 60))
    tracking.sessions.append(
        TrackedSession(id=uuid.uuid4().hex, start_time=start, end_time=now, minutes=minutes, note=note)
    )
    tracking.total_minutes += minutes
    tracking.is_active = False
    tracking.active_session_start = None
    logger.debug("Tracked %d min on task %s", minutes, task_id)
    return store.replace(task)
