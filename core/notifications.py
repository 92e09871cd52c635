"""Deadline reminders for TaskFlow.

Each check compares every open, dated task against a fixed milestone
table keyed by priority. A milestone fires when the remaining time is
within its tolerance, at most one notification per task per check.
Fired milestones are remembered per due date so the following poll,
still inside the same tolerance window, stays quiet.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Union

from core.models import Task

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60
HOUR = 3600.0
DAY = 24 * HOUR

Notify = Callable[[str, str, str], None]
TaskSource = Union[Iterable[Task], Callable[[], Iterable[Task]]]


@dataclass(frozen=True)
class Milestone:
    key: str
    target: float  # seconds before due
    tolerance: float  # seconds
    severity: str  # info, warning, error
    title: str
    message: str  # formatted with {title}


def _days(n: float, tol: float = 0.01) -> tuple[float, float]:
    return n * DAY, tol * DAY


def _hours(n: float, tol: float = 0.1) -> tuple[float, float]:
    return n * HOUR, tol * HOUR


MILESTONES: dict[str, list[Milestone]] = {
    "high": [
        Milestone("24h", *_days(1), "warning", "🔥 High Priority Reminder", '"{title}" is due in 24 hours!'),
        Milestone("12h", *_hours(12), "warning", "🔥 High Priority Alert", '"{title}" is due in 12 hours!'),
        Milestone("6h", *_hours(6), "error", "🚨 Urgent!", '"{title}" is due in 6 hours!'),
        Milestone("2h", *_hours(2), "error", "🚨 Very Urgent!", '"{title}" is due in 2 hours!'),
        Milestone("1h", *_hours(1), "error", "🚨 CRITICAL!", '"{title}" is due in 1 hour!'),
        Milestone("30m", *_hours(0.5, 0.05), "error", "🚨 FINAL WARNING!", '"{title}" is due in 30 minutes!'),
    ],
    "medium": [
        Milestone("3d", *_days(3), "info", "📅 Upcoming Task", '"{title}" is due in 3 days.'),
        Milestone("1d", *_days(1), "warning", "⏰ Task Due Tomorrow", '"{title}" is due tomorrow!'),
        Milestone("6h", *_hours(6), "warning", "⚠️ Task Due Soon", '"{title}" is due in 6 hours!'),
        Milestone("2h", *_hours(2), "error", "🚨 Task Due Very Soon!", '"{title}" is due in 2 hours!'),
    ],
    "low": [
        Milestone("7d", *_days(7), "info", "📝 Gentle Reminder", '"{title}" is due in a week.'),
        Milestone("3d", *_days(3), "info", "📅 Task Reminder", '"{title}" is due in 3 days.'),
        Milestone("1d", *_days(1), "warning", "⏰ Task Due Tomorrow", '"{title}" is due tomorrow.'),
    ],
}

OVERDUE = Milestone("overdue", 0.0, HOUR, "error", "⚠️ Task Overdue!", '"{title}" is now overdue!')


def match_milestone(task: Task, now: datetime) -> Milestone | None:
    """The milestone *task* is at right now, if any."""
    if task.due_date is None or task.status == "completed":
        return None
    remaining = (task.due_date - now).total_seconds()
    if remaining < 0:
        # Announce once, shortly after the deadline passes.
        return OVERDUE if -remaining < OVERDUE.tolerance else None
    for milestone in MILESTONES.get(task.priority, []):
        if abs(remaining - milestone.target) < milestone.tolerance:
            return milestone
    return None


def get_task_urgency_level(task: Task, now: datetime) -> str:
    """low, medium, high, critical or overdue, for list badges."""
    if task.due_date is None or task.status == "completed":
        return "low"
    hours = (task.due_date - now).total_seconds() / HOUR
    if hours < 0:
        return "overdue"
    if task.priority in ("high", "medium") and hours <= 2:
        return "critical"
    if hours <= 6:
        return "high"
    if hours <= 24:
        return "medium"
    return "low"


class NotificationScheduler:
    """Polls tasks on a background thread and reports due-date milestones."""

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.interval = interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._fired: set[tuple[str, str, str]] = set()
        self._tasks: TaskSource = ()
        self._on_notify: Notify | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._check_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_monitoring(self, tasks: TaskSource, on_notify: Notify) -> None:
        """Check immediately, then every ``interval`` seconds until stopped.

        *tasks* is either a fixed collection or a callable returning the
        current task list.
        """
        self.stop_monitoring()
        self._tasks = tasks
        self._on_notify = on_notify
        self._stop = threading.Event()
        self.check()
        self._thread = threading.Thread(target=self._run, name="taskflow-notifications", daemon=True)
        self._thread.start()
        logger.info("Deadline monitoring started (every %ss)", self.interval)

    def stop_monitoring(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        logger.info("Deadline monitoring stopped")

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.check()
            except Exception:
                logger.exception("Deadline check failed")

    def _current_tasks(self) -> list[Task]:
        source = self._tasks
        return list(source() if callable(source) else source)

    def check(self, now: datetime | None = None) -> int:
        """Run one pass. Returns how many notifications were delivered."""
        with self._check_lock:
            if now is None:
                now = self._clock()
            delivered = 0
            tasks = self._current_tasks()
            for task in tasks:
                milestone = match_milestone(task, now)
                if milestone is None:
                    continue
                key = (task.id, milestone.key, task.due_date.isoformat())
                if key in self._fired:
                    continue
                self._fired.add(key)
                if self._deliver(milestone, task):
                    delivered += 1
            self._forget_stale({t.id for t in tasks}, now)
            return delivered

    def _forget_stale(self, live_ids: set[str], now: datetime) -> None:
        """Drop fired keys for tasks that are gone or past their overdue window."""
        cutoff = now - timedelta(seconds=OVERDUE.tolerance)
        self._fired = {
            key for key in self._fired
            if key[0] in live_ids and datetime.fromisoformat(key[2]) >= cutoff
        }

    def _deliver(self, milestone: Milestone, task: Task) -> bool:
        if self._on_notify is None:
            return False
        try:
            self._on_notify(milestone.severity, milestone.title, milestone.message.format(title=task.title))
        except Exception:
            logger.warning("Dropped %s notification for task %s", milestone.key, task.id, exc_info=True)
            return False
        return True
