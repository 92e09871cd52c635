"""Task and focus analytics for TaskFlow.

Pure aggregations over task lists and focus sessions, used by the
analytics view and the API.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Iterable

from core.models import PRIORITIES, FocusSession, Task

DUE_SOON_DAYS = 3


@dataclass
class TaskSummary:
    total: int = 0
    completed: int = 0
    pending: int = 0
    in_progress: int = 0
    overdue: int = 0
    due_soon: int = 0
    high_priority: int = 0
    completion_rate: float = 0.0
    by_priority: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "pending": self.pending,
            "inProgress": self.in_progress,
            "overdue": self.overdue,
            "dueSoon": self.due_soon,
            "highPriority": self.high_priority,
            "completionRate": round(self.completion_rate, 3),
            "byPriority": self.by_priority,
        }


def summarize_tasks(tasks: Iterable[Task], now: datetime) -> TaskSummary:
    """Counts by status and urgency. Recurring templates are not counted."""
    summary = TaskSummary(by_priority={p: 0 for p in PRIORITIES})
    soon = now + timedelta(days=DUE_SOON_DAYS)

    for task in tasks:
        if task.is_recurring:
            continue
        summary.total += 1
        if task.status == "completed":
            summary.completed += 1
        elif task.status == "pending":
            summary.pending += 1
        elif task.status == "in-progress":
            summary.in_progress += 1

        if task.priority == "high":
            summary.high_priority += 1
        summary.by_priority[task.priority] = summary.by_priority.get(task.priority, 0) + 1

        if task.due_date is not None and task.status not in ("completed", "cancelled"):
            if task.due_date < now:
                summary.overdue += 1
            elif task.due_date <= soon:
                summary.due_soon += 1

    if summary.total:
        summary.completion_rate = summary.completed / summary.total
    return summary


def deadline_distribution(tasks: Iterable[Task], now: datetime, tz: tzinfo) -> dict[str, int]:
    """Open dated tasks bucketed into today / this week / next week / later.

    Weeks start on Sunday. Overdue tasks count as today.
    """
    today = now.astimezone(tz).date()
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    next_week = week_start + timedelta(days=7)
    after_next = week_start + timedelta(days=14)

    buckets = {"today": 0, "thisWeek": 0, "nextWeek": 0, "later": 0}
    for task in tasks:
        if task.due_date is None or task.is_recurring or task.status in ("completed", "cancelled"):
            continue
        due = task.due_date.astimezone(tz).date()
        if due <= today:
            buckets["today"] += 1
        elif due < next_week:
            buckets["thisWeek"] += 1
        elif due < after_next:
            buckets["nextWeek"] += 1
        else:
            buckets["later"] += 1
    return buckets


def completed_by_day(tasks: Iterable[Task], days: int, today: date, tz: tzinfo) -> dict[str, int]:
    """Completed tasks per day over the last *days* days, keyed by ISO date.

    Completion time is approximated by ``updated_at``.
    """
    counts = {(today - timedelta(days=i)).isoformat(): 0 for i in range(days - 1, -1, -1)}
    for task in tasks:
        if task.status != "completed" or task.updated_at is None:
            continue
        key = task.updated_at.astimezone(tz).date().isoformat()
        if key in counts:
            counts[key] += 1
    return counts


def focus_minutes_by_day(sessions: Iterable[FocusSession], days: int, today: date) -> dict[str, int]:
    """Completed focus minutes per day over the last *days* days."""
    totals: dict[str, int] = defaultdict(int)
    for s in sessions:
        if s.completed:
            totals[s.date] += s.duration
    return {
        (today - timedelta(days=i)).isoformat(): totals.get((today - timedelta(days=i)).isoformat(), 0)
        for i in range(days - 1, -1, -1)
    }
