"""Typed dataclasses for the TaskFlow data model.

All models use from_dict/to_dict for JSON serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
Datetimes are ISO-8601 strings on disk and aware datetimes in memory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


DEFAULT_WORKSPACE_ID = "default"
DEFAULT_MAX_OCCURRENCES = 100

PRIORITIES = ("low", "medium", "high")
PRIORITY_RANK = {p: i for i, p in enumerate(PRIORITIES)}
STATUSES = ("pending", "in-progress", "completed", "cancelled")
RECURRENCE_TYPES = ("daily", "weekly", "monthly", "yearly")


# ── Primitives ────────────────────────────────────────────────


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime).

    A trailing 'Z' is accepted; naive values are taken as UTC.
    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="seconds")


def unique_tags(tags: Any) -> list[str]:
    """Strip, drop empties and de-duplicate while keeping first-seen order."""
    seen: list[str] = []
    for tag in tags or []:
        t = str(tag).strip()
        if t and t not in seen:
            seen.append(t)
    return seen


def normalize_priority(value: Any) -> str:
    p = str(value or "medium").strip().lower()
    # Older exports carried a fourth "urgent" level; fold it into high.
    if p == "urgent":
        return "high"
    return p


# ── Recurrence ────────────────────────────────────────────────


@dataclass
class RecurrencePattern:
    type: str = "daily"  # daily, weekly, monthly, yearly
    interval: int = 1
    days_of_week: list[int] = field(default_factory=list)  # 0=Sunday .. 6=Saturday
    day_of_month: int | None = None
    end_date: datetime | None = None
    max_occurrences: int | None = None

    def validate(self) -> list[str]:
        errors = []
        if self.type not in RECURRENCE_TYPES:
            errors.append(f"Invalid recurrence type: {self.type}")
        if not isinstance(self.interval, int) or self.interval < 1:
            errors.append("interval must be a positive integer")
        for d in self.days_of_week:
            if not isinstance(d, int) or not 0 <= d <= 6:
                errors.append(f"Invalid day of week: {d}")
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            errors.append("dayOfMonth must be 1-31")
        if self.max_occurrences is not None and self.max_occurrences < 1:
            errors.append("maxOccurrences must be positive")
        return errors

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RecurrencePattern:
        if not d or not isinstance(d, dict):
            return cls()
        dom = d.get("dayOfMonth", d.get("day_of_month"))
        cap = d.get("maxOccurrences", d.get("max_occurrences"))
        return cls(
            type=str(d.get("type", "daily")).lower(),
            interval=int(d.get("interval", 1) or 1),
            days_of_week=sorted({int(x) for x in (d.get("daysOfWeek", d.get("days_of_week")) or [])}),
            day_of_month=int(dom) if dom not in (None, "") else None,
            end_date=parse_datetime(d.get("endDate", d.get("end_date"))),
            max_occurrences=int(cap) if cap not in (None, "") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type, "interval": self.interval}
        if self.days_of_week:
            d["daysOfWeek"] = list(self.days_of_week)
        if self.day_of_month is not None:
            d["dayOfMonth"] = self.day_of_month
        if self.end_date is not None:
            d["endDate"] = format_datetime(self.end_date)
        if self.max_occurrences is not None:
            d["maxOccurrences"] = self.max_occurrences
        return d


# ── Time tracking ─────────────────────────────────────────────


@dataclass
class TrackedSession:
    id: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    minutes: int = 0
    note: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TrackedSession:
        return cls(
            id=str(d.get("id", "")),
            start_time=parse_datetime(d.get("startTime")),
            end_time=parse_datetime(d.get("endTime")),
            minutes=int(d.get("minutes", 0) or 0),
            note=str(d.get("note", "") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": format_datetime(self.start_time),
            "endTime": format_datetime(self.end_time),
            "minutes": self.minutes,
            "note": self.note,
        }


@dataclass
class TimeTracking:
    sessions: list[TrackedSession] = field(default_factory=list)
    total_minutes: int = 0
    is_active: bool = False
    active_session_start: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TimeTracking:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            sessions=[TrackedSession.from_dict(s) for s in (d.get("sessions") or [])],
            total_minutes=int(d.get("totalMinutes", 0) or 0),
            is_active=bool(d.get("isActive", False)),
            active_session_start=parse_datetime(d.get("activeSessionStart")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "sessions": [s.to_dict() for s in self.sessions],
            "totalMinutes": self.total_minutes,
            "isActive": self.is_active,
        }
        if self.active_session_start is not None:
            d["activeSessionStart"] = format_datetime(self.active_session_start)
        return d


# ── Tasks ─────────────────────────────────────────────────────


@dataclass
class Task:
    id: str = ""
    title: str = ""
    description: str = ""
    priority: str = "medium"  # low, medium, high
    status: str = "pending"  # pending, in-progress, completed, cancelled
    due_date: datetime | None = None
    tags: list[str] = field(default_factory=list)
    workspace_id: str = DEFAULT_WORKSPACE_ID
    estimated_minutes: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # recurrence
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    parent_task_id: str | None = None
    time_tracking: TimeTracking | None = None

    @property
    def is_instance(self) -> bool:
        return self.parent_task_id is not None and not self.is_recurring

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Task:
        pattern = d.get("recurrencePattern")
        tracking = d.get("timeTracking")
        estimate = d.get("estimatedMinutes")
        return cls(
            id=str(d.get("id", "")),
            title=str(d.get("title", "")),
            description=str(d.get("description", "") or ""),
            priority=normalize_priority(d.get("priority")),
            status=str(d.get("status", "pending") or "pending"),
            due_date=parse_datetime(d.get("dueDate")),
            tags=unique_tags(d.get("tags")),
            workspace_id=str(d.get("workspaceId") or DEFAULT_WORKSPACE_ID),
            estimated_minutes=int(estimate) if estimate not in (None, "") else None,
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
            is_recurring=bool(d.get("isRecurring", False)),
            recurrence_pattern=RecurrencePattern.from_dict(pattern) if pattern else None,
            parent_task_id=d.get("parentTaskId") or None,
            time_tracking=TimeTracking.from_dict(tracking) if tracking else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "priority": self.priority,
            "status": self.status,
            "tags": list(self.tags),
            "workspaceId": self.workspace_id,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
            "isRecurring": self.is_recurring,
        }
        if self.description:
            d["description"] = self.description
        if self.due_date is not None:
            d["dueDate"] = format_datetime(self.due_date)
        if self.estimated_minutes is not None:
            d["estimatedMinutes"] = self.estimated_minutes
        if self.recurrence_pattern is not None:
            d["recurrencePattern"] = self.recurrence_pattern.to_dict()
        if self.parent_task_id:
            d["parentTaskId"] = self.parent_task_id
        if self.time_tracking is not None:
            d["timeTracking"] = self.time_tracking.to_dict()
        return d


# ── Update requests ───────────────────────────────────────────
#
# One request type per mutable field group. A pattern can only be set
# through RecurrenceUpdate, which also sets is_recurring.


@dataclass(frozen=True)
class DetailsUpdate:
    title: str | None = None
    description: str | None = None
    priority: str | None = None
    estimated_minutes: int | None = None
    workspace_id: str | None = None

    def validate(self) -> list[str]:
        errors = []
        if self.title is not None and (not isinstance(self.title, str) or not self.title.strip()):
            errors.append("title must be a non-empty string")
        if self.priority is not None and normalize_priority(self.priority) not in PRIORITIES:
            errors.append(f"Invalid priority: {self.priority}")
        if self.estimated_minutes is not None and (
            not isinstance(self.estimated_minutes, int) or self.estimated_minutes < 0
        ):
            errors.append("estimatedMinutes must be a non-negative integer")
        if self.workspace_id is not None and (not isinstance(self.workspace_id, str) or not self.workspace_id.strip()):
            errors.append("workspaceId must be a non-empty string")
        return errors


@dataclass(frozen=True)
class StatusUpdate:
    status: str

    def validate(self) -> list[str]:
        if self.status not in STATUSES:
            return [f"Invalid status: {self.status}"]
        return []


@dataclass(frozen=True)
class ScheduleUpdate:
    due_date: datetime | None = None
    clear_due_date: bool = False

    def validate(self) -> list[str]:
        if self.due_date is None and not self.clear_due_date:
            return ["dueDate is required unless clearing it"]
        return []


@dataclass(frozen=True)
class TagsUpdate:
    tags: tuple[str, ...] = ()

    def validate(self) -> list[str]:
        return []


@dataclass(frozen=True)
class RecurrenceUpdate:
    pattern: RecurrencePattern | None = None

    def validate(self) -> list[str]:
        return self.pattern.validate() if self.pattern is not None else []


TaskUpdate = DetailsUpdate | StatusUpdate | ScheduleUpdate | TagsUpdate | RecurrenceUpdate


# ── Workspaces ────────────────────────────────────────────────


@dataclass
class Workspace:
    id: str = ""
    name: str = ""
    icon: str = "📁"
    color: str = "blue"
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Workspace:
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            icon=str(d.get("icon", "📁") or "📁"),
            color=str(d.get("color", "blue") or "blue"),
            created_at=parse_datetime(d.get("createdAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "createdAt": format_datetime(self.created_at),
        }


def default_workspace(now: datetime) -> Workspace:
    return Workspace(id=DEFAULT_WORKSPACE_ID, name="Personal", icon="📝", color="green", created_at=now)


# ── Focus / Forest ────────────────────────────────────────────


@dataclass
class FocusSession:
    id: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int = 0  # minutes
    completed: bool = False
    date: str = ""  # YYYY-MM-DD, local day of start_time
    workspace_id: str | None = None
    task_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FocusSession:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            id=str(d.get("id", "")),
            start_time=parse_datetime(d.get("startTime")),
            end_time=parse_datetime(d.get("endTime")),
            duration=int(d.get("duration", 0) or 0),
            completed=bool(d.get("completed", False)),
            date=str(d.get("date", "")),
            workspace_id=d.get("workspaceId") or None,
            task_id=d.get("taskId") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "startTime": format_datetime(self.start_time),
            "endTime": format_datetime(self.end_time),
            "duration": self.duration,
            "completed": self.completed,
            "date": self.date,
        }
        if self.workspace_id:
            d["workspaceId"] = self.workspace_id
        if self.task_id:
            d["taskId"] = self.task_id
        return d


@dataclass
class ForestTree:
    id: str = ""
    type: str = "sapling"  # sapling, young, mature, ancient
    session_id: str = ""
    planted_date: str = ""
    duration: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ForestTree:
        return cls(
            id=str(d.get("id", "")),
            type=str(d.get("type", "sapling")),
            session_id=str(d.get("sessionId", "")),
            planted_date=str(d.get("plantedDate", "")),
            duration=int(d.get("duration", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "sessionId": self.session_id,
            "plantedDate": self.planted_date,
            "duration": self.duration,
        }


@dataclass
class ForestStats:
    total_sessions: int = 0
    total_minutes: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    trees_planted: int = 0
    forest_level: int = 1

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ForestStats:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            total_sessions=int(d.get("totalSessions", 0) or 0),
            total_minutes=int(d.get("totalMinutes", 0) or 0),
            current_streak=int(d.get("currentStreak", 0) or 0),
            longest_streak=int(d.get("longestStreak", 0) or 0),
            trees_planted=int(d.get("treesPlanted", 0) or 0),
            forest_level=int(d.get("forestLevel", 1) or 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSessions": self.total_sessions,
            "totalMinutes": self.total_minutes,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "treesPlanted": self.trees_planted,
            "forestLevel": self.forest_level,
        }
