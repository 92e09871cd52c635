"""Recurring task engine for TaskFlow.

A recurring *template* task carries a RecurrencePattern. The engine
expands the pattern into concrete, dated task *instances* up to a
look-ahead horizon, skipping any day that already has an instance.

Weekly patterns with ``days_of_week`` step to the next selected weekday
(within every ``interval``-th week); without it they advance by whole
weeks from the current due date.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable

from core.errors import ValidationError
from core.models import (
    DEFAULT_MAX_OCCURRENCES,
    RecurrencePattern,
    RecurrenceUpdate,
    StatusUpdate,
    Task,
    TaskUpdate,
)
from core.store import TaskStore
from core.tasks import task_from_input

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 30
COMPLETION_HORIZON_DAYS = 60


# ── Date arithmetic ───────────────────────────────────────────


def _add_months(moment: datetime, months: int, day: int | None = None) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    index = moment.month - 1 + months
    year, month = moment.year + index // 12, index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(day or moment.day, last))


def _add_years(moment: datetime, years: int) -> datetime:
    year = moment.year + years
    last = calendar.monthrange(year, moment.month)[1]
    return moment.replace(year=year, day=min(moment.day, last))


def _sunday_weekday(moment: datetime) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


def _next_selected_weekday(moment: datetime, interval: int, days: list[int]) -> datetime:
    today = _sunday_weekday(moment)
    later = [d for d in days if d > today]
    if later:
        return moment + timedelta(days=later[0] - today)
    week_start = moment - timedelta(days=today)
    return week_start + timedelta(days=interval * 7 + days[0])


def compute_next_occurrence(
    task: Task, pattern: RecurrencePattern | None, tz: tzinfo | None = None
) -> datetime | None:
    """Next due date after *task*'s current one, or None when the pattern cannot advance.

    Arithmetic happens on the wall clock in *tz* (when given) so a
    recurring 09:00 task stays at 09:00 across DST changes. Never raises.
    """
    if task.due_date is None or pattern is None or pattern.validate():
        return None

    current = task.due_date.astimezone(tz) if tz is not None else task.due_date

    if pattern.type == "daily":
        nxt = current + timedelta(days=pattern.interval)
    elif pattern.type == "weekly":
        if pattern.days_of_week:
            nxt = _next_selected_weekday(current, pattern.interval, sorted(pattern.days_of_week))
        else:
            nxt = current + timedelta(days=pattern.interval * 7)
    elif pattern.type == "monthly":
        nxt = _add_months(current, pattern.interval, pattern.day_of_month)
    elif pattern.type == "yearly":
        nxt = _add_years(current, pattern.interval)
    else:
        return None

    if pattern.end_date is not None and nxt > pattern.end_date:
        return None
    return nxt


# ── Engine ────────────────────────────────────────────────────


class RecurrenceEngine:
    """Materializes recurring templates into task instances held in a TaskStore."""

    def __init__(
        self,
        store: TaskStore,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        completion_horizon_days: int = COMPLETION_HORIZON_DAYS,
        default_max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ) -> None:
        self.store = store
        self.tz = tz or timezone.utc
        self._clock = clock or (lambda: datetime.now(self.tz))
        self.horizon_days = horizon_days
        self.completion_horizon_days = completion_horizon_days
        self.default_max_occurrences = default_max_occurrences

    def _day(self, moment: datetime):
        return moment.astimezone(self.tz).date()

    def generate_upcoming_instances(self, template: Task, horizon_days: int | None = None) -> list[Task]:
        """Create missing instances due strictly before now + horizon. Returns only new ones."""
        pattern = template.recurrence_pattern
        if not template.is_recurring or pattern is None or template.due_date is None:
            return []
        if horizon_days is None:
            horizon_days = self.horizon_days

        horizon = self._clock() + timedelta(days=horizon_days)
        existing_days = {
            self._day(t.due_date)
            for t in self.store.list()
            if t.parent_task_id == template.id and t.due_date is not None
        }

        cap = pattern.max_occurrences or self.default_max_occurrences
        created: list[Task] = []
        cursor = template
        with self.store.batch():
            while len(created) < cap:
                nxt = compute_next_occurrence(cursor, pattern, self.tz)
                if nxt is None or nxt >= horizon:
                    break
                if self._day(nxt) not in existing_days:
                    created.append(self.store.create(self._instance_of(template, nxt)))
                    existing_days.add(self._day(nxt))
                cursor = Task(due_date=nxt)

        if created:
            logger.info("Generated %d instance(s) of recurring task %s", len(created), template.id)
        return created

    @staticmethod
    def _instance_of(template: Task, due: datetime) -> Task:
        return Task(
            title=template.title,
            description=template.description,
            priority=template.priority,
            status="pending",
            due_date=due,
            tags=list(template.tags),
            workspace_id=template.workspace_id,
            estimated_minutes=template.estimated_minutes,
            is_recurring=False,
            parent_task_id=template.id,
        )

    def create_recurring_task(self, task_data: dict[str, Any] | Task, pattern: RecurrencePattern) -> Task:
        """Create a template task and generate its first instances."""
        errors = pattern.validate()
        if errors:
            raise ValidationError(errors)
        if isinstance(task_data, Task):
            task_data = task_data.to_dict()
        data = dict(task_data)
        data.pop("parentTaskId", None)
        data["isRecurring"] = True
        data["recurrencePattern"] = pattern.to_dict()
        template = self.store.create(task_from_input(data))
        self.generate_upcoming_instances(template)
        return template

    def update_recurring_task(self, task_id: str, update: TaskUpdate) -> Task:
        """Apply *update*; a pattern change replaces future, incomplete instances."""
        task = self.store.update(task_id, update)
        if isinstance(update, RecurrenceUpdate) and task.is_recurring:
            with self.store.batch():
                self._cleanup_future_instances(task_id)
                self.generate_upcoming_instances(task)
        return task

    def delete_recurring_task(self, task_id: str, delete_instances: bool = False) -> None:
        """Delete a template; optionally also its future, incomplete instances."""
        with self.store.batch():
            self.store.get(task_id)
            if delete_instances:
                self._cleanup_future_instances(task_id)
            self.store.delete(task_id)

    def _cleanup_future_instances(self, parent_id: str) -> list[str]:
        now = self._clock()
        removed = self.store.delete_where(
            lambda t: t.parent_task_id == parent_id
            and t.status != "completed"
            and t.due_date is not None
            and t.due_date > now
        )
        if removed:
            logger.info("Removed %d future instance(s) of %s", len(removed), parent_id)
        return removed

    def get_recurring_task_instances(self, parent_id: str) -> list[Task]:
        return [t for t in self.store.list() if t.parent_task_id == parent_id]

    def complete_instance(self, instance_id: str) -> Task:
        """Mark an instance completed and top up its template's future instances."""
        instance = self.store.update(instance_id, StatusUpdate("completed"))
        if instance.parent_task_id:
            template = next(
                (t for t in self.store.list() if t.id == instance.parent_task_id), None
            )
            if template is not None:
                self.generate_upcoming_instances(template, self.completion_horizon_days)
        return instance
