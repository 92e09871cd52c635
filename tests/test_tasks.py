"""Tests for core/tasks.py — validation, update requests, queries, time tracking."""

from datetime import datetime, timedelta, timezone

import pytest

from core.errors import ValidationError
from core.models import (
    DetailsUpdate,
    RecurrencePattern,
    RecurrenceUpdate,
    ScheduleUpdate,
    StatusUpdate,
    TagsUpdate,
    Task,
)
from core.tasks import (
    apply_update,
    filter_tasks,
    sort_tasks,
    start_time_tracking,
    stop_time_tracking,
    task_from_input,
    toggle_task,
    update_from_input,
    validate_task,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_validate_task_valid():
    assert validate_task(Task(title="Task")) == []


def test_validate_task_missing_title():
    errors = validate_task(Task(title="   "))
    assert any("title" in e for e in errors)


def test_validate_task_invalid_priority_and_status():
    errors = validate_task(Task(title="T", priority="urgent-ish", status="done"))
    assert any("priority" in e for e in errors)
    assert any("status" in e for e in errors)


def test_validate_task_recurring_needs_pattern():
    errors = validate_task(Task(title="T", is_recurring=True))
    assert any("recurrencePattern" in e for e in errors)


def test_validate_task_pattern_without_flag():
    errors = validate_task(Task(title="T", recurrence_pattern=RecurrencePattern()))
    assert any("non-recurring" in e for e in errors)


def test_task_from_input_raises():
    with pytest.raises(ValidationError, match="title"):
        task_from_input({"title": ""})


def test_apply_details_update():
    task = Task(id="t1", title="Old", priority="low")
    updated = apply_update(task, DetailsUpdate(title="  New ", priority="urgent"), NOW)
    assert updated.title == "New"
    assert updated.priority == "high"
    assert updated.updated_at == NOW
    assert task.title == "Old"


def test_apply_status_update_rejects_unknown():
    with pytest.raises(ValidationError):
        apply_update(Task(title="T"), StatusUpdate("done"), NOW)


def test_apply_schedule_update_set_and_clear():
    due = NOW + timedelta(days=1)
    task = apply_update(Task(title="T"), ScheduleUpdate(due_date=due), NOW)
    assert task.due_date == due
    task = apply_update(task, ScheduleUpdate(clear_due_date=True), NOW)
    assert task.due_date is None


def test_apply_tags_update_dedups():
    task = apply_update(Task(title="T"), TagsUpdate(("a", "b", "a", " ")), NOW)
    assert task.tags == ["a", "b"]


def test_apply_recurrence_update_sets_flag_and_pattern():
    pattern = RecurrencePattern(type="weekly")
    task = apply_update(Task(title="T"), RecurrenceUpdate(pattern), NOW)
    assert task.is_recurring is True
    assert task.recurrence_pattern == pattern

    cleared = apply_update(task, RecurrenceUpdate(None), NOW)
    assert cleared.is_recurring is False
    assert cleared.recurrence_pattern is None


def test_apply_recurrence_update_rejected_on_instance():
    with pytest.raises(ValidationError, match="instance"):
        apply_update(Task(title="T", parent_task_id="p1"), RecurrenceUpdate(RecurrencePattern()), NOW)


def test_update_from_input_groups_fields():
    updates = update_from_input(
        {"title": "New", "priority": "high", "status": "completed", "dueDate": "2026-03-05T10:00:00Z", "tags": ["x"]}
    )
    kinds = [type(u) for u in updates]
    assert kinds == [DetailsUpdate, StatusUpdate, ScheduleUpdate, TagsUpdate]
    assert updates[2].due_date == datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)


def test_update_from_input_clear_due_date():
    (update,) = update_from_input({"dueDate": None})
    assert update == ScheduleUpdate(due_date=None, clear_due_date=True)


def test_update_from_input_invalid_due_date():
    with pytest.raises(ValidationError, match="dueDate"):
        update_from_input({"dueDate": "tomorrow-ish"})


def test_update_from_input_recurring_without_pattern():
    with pytest.raises(ValidationError, match="recurrencePattern"):
        update_from_input({"isRecurring": True})


def test_update_from_input_type_errors():
    with pytest.raises(ValidationError) as exc:
        update_from_input({"title": 5, "estimatedMinutes": "abc", "tags": "abc"})
    assert exc.value.errors == [
        "title must be a string",
        "estimatedMinutes must be an integer",
        "tags must be a list of strings",
    ]


def test_task_from_input_bad_pattern():
    with pytest.raises(ValidationError, match="interval must be an integer"):
        task_from_input({"title": "T", "isRecurring": True, "recurrencePattern": {"interval": "weekly"}})


def test_details_update_rejects_non_string_title():
    assert DetailsUpdate(title=5).validate() == ["title must be a non-empty string"]
    assert DetailsUpdate(estimated_minutes="ten").validate() == ["estimatedMinutes must be a non-negative integer"]


def test_update_from_input_empty():
    with pytest.raises(ValidationError, match="Missing updates"):
        update_from_input({})


def test_filter_tasks():
    tasks = [
        Task(id="a", title="Buy milk", workspace_id="home", tags=["errand"], priority="low"),
        Task(id="b", title="Ship release", workspace_id="work", status="completed", priority="high"),
        Task(id="c", title="Plan sprint", description="milk the backlog", workspace_id="work"),
    ]
    assert [t.id for t in filter_tasks(tasks, workspace_id="work")] == ["b", "c"]
    assert [t.id for t in filter_tasks(tasks, status="completed")] == ["b"]
    assert [t.id for t in filter_tasks(tasks, tag="errand")] == ["a"]
    assert [t.id for t in filter_tasks(tasks, priority="high")] == ["b"]
    assert [t.id for t in filter_tasks(tasks, search="MILK")] == ["a", "c"]


def test_sort_tasks_by_due_date_undated_last():
    tasks = [
        Task(id="none"),
        Task(id="late", due_date=NOW + timedelta(days=2)),
        Task(id="soon", due_date=NOW + timedelta(hours=1)),
    ]
    assert [t.id for t in sort_tasks(tasks, "dueDate")] == ["soon", "late", "none"]


def test_sort_tasks_by_priority():
    tasks = [Task(id="l", priority="low"), Task(id="h", priority="high"), Task(id="m", priority="medium")]
    assert [t.id for t in sort_tasks(tasks, "priority")] == ["h", "m", "l"]


def test_sort_tasks_unknown_key():
    with pytest.raises(ValidationError):
        sort_tasks([], "colour")


def test_toggle_task(task_store):
    task = task_store.create({"title": "Toggle me"})
    assert toggle_task(task_store, task.id).status == "completed"
    assert toggle_task(task_store, task.id).status == "pending"


def test_time_tracking_floors_minutes(task_store, clock):
    task = task_store.create({"title": "Track me"})
    start_time_tracking(task_store, task.id, clock())
    tracked = stop_time_tracking(task_store, task.id, clock() + timedelta(seconds=150), note="first pass")
    tt = tracked.time_tracking
    assert tt.is_active is False
    assert tt.total_minutes == 2
    assert tt.sessions[0].minutes == 2
    assert tt.sessions[0].note == "first pass"


def test_time_tracking_accumulates(task_store, clock):
    task = task_store.create({"title": "Track me"})
    for minutes in (10, 15):
        start_time_tracking(task_store, task.id, clock())
        stop_time_tracking(task_store, task.id, clock.advance(minutes=minutes))
    tt = task_store.get(task.id).time_tracking
    assert tt.total_minutes == 25
    assert len(tt.sessions) == 2


def test_time_tracking_double_start(task_store, clock):
    task = task_store.create({"title": "Track me"})
    start_time_tracking(task_store, task.id, clock())
    with pytest.raises(ValidationError, match="already running"):
        start_time_tracking(task_store, task.id, clock())


def test_time_tracking_stop_without_start(task_store, clock):
    task = task_store.create({"title": "Track me"})
    with pytest.raises(ValidationError, match="No active"):
        stop_time_tracking(task_store, task.id, clock())
