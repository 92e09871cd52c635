"""Tests for core/store.py — task and workspace persistence, subscriptions, batching."""

import json

import pytest

from core.errors import TaskNotFoundError, ValidationError, WorkspaceNotFoundError
from core.models import DetailsUpdate, StatusUpdate, Task, Workspace
from core.paths import tasks_path, workspaces_path
from core.store import TaskStore, WorkspaceStore


def test_create_assigns_id_and_timestamps(task_store, clock):
    task = task_store.create({"title": "  Write tests  "})
    assert task.id
    assert task.title == "Write tests"
    assert task.created_at == clock()
    assert task.updated_at == clock()


def test_create_keeps_given_id_and_rejects_duplicate(task_store):
    task_store.create(Task(id="fixed", title="One"))
    with pytest.raises(ValidationError, match="already exists"):
        task_store.create(Task(id="fixed", title="Two"))


def test_create_rejects_invalid(task_store):
    with pytest.raises(ValidationError) as exc:
        task_store.create({"title": "", "priority": "critical"})
    assert len(exc.value.errors) == 2
    assert task_store.list() == []


def test_get_missing(task_store):
    with pytest.raises(TaskNotFoundError, match="Task not found: nope"):
        task_store.get("nope")


def test_update_bumps_updated_at(task_store, clock):
    task = task_store.create({"title": "Original"})
    clock.advance(minutes=5)
    updated = task_store.update(task.id, DetailsUpdate(title="Renamed"))
    assert updated.title == "Renamed"
    assert updated.updated_at == clock()
    assert updated.created_at == task.created_at


def test_update_missing(task_store):
    with pytest.raises(TaskNotFoundError):
        task_store.update("nope", StatusUpdate("completed"))


def test_delete(task_store):
    task = task_store.create({"title": "Doomed"})
    task_store.delete(task.id)
    assert task_store.list() == []
    with pytest.raises(TaskNotFoundError):
        task_store.delete(task.id)


def test_delete_where(task_store):
    keep = task_store.create({"title": "Keep", "workspaceId": "a"})
    task_store.create({"title": "Drop 1", "workspaceId": "b"})
    task_store.create({"title": "Drop 2", "workspaceId": "b"})
    removed = task_store.delete_where(lambda t: t.workspace_id == "b")
    assert len(removed) == 2
    assert [t.id for t in task_store.list()] == [keep.id]


def test_list_returns_copies(task_store):
    task = task_store.create({"title": "Immutable"})
    listed = task_store.list()
    listed[0].title = "Mutated"
    assert task_store.get(task.id).title == "Immutable"


def test_persists_and_reloads(data_dir, task_store, clock):
    task = task_store.create({"title": "Persist me", "tags": ["a"]})
    data = json.loads(tasks_path(data_dir).read_text("utf-8"))
    assert data["tasks"][0]["id"] == task.id

    reloaded = TaskStore(tasks_path(data_dir), clock=clock)
    assert reloaded.get(task.id).tags == ["a"]


def test_corrupt_file_moved_aside(data_dir, clock):
    path = tasks_path(data_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{not json", encoding="utf-8")
    store = TaskStore(path, clock=clock)
    assert store.list() == []
    assert path.with_name("tasks.json.corrupt").exists()


def test_in_memory_store_without_path(clock):
    store = TaskStore(clock=clock)
    store.create({"title": "Ephemeral"})
    assert len(store.list()) == 1


def test_subscribe_and_unsubscribe(task_store):
    seen = []
    unsubscribe = task_store.subscribe(lambda tasks: seen.append(len(tasks)))
    task_store.create({"title": "One"})
    task_store.create({"title": "Two"})
    unsubscribe()
    task_store.create({"title": "Three"})
    assert seen == [1, 2]


def test_failing_subscriber_does_not_block_others(task_store):
    seen = []

    def broken(tasks):
        raise RuntimeError("boom")

    task_store.subscribe(broken)
    task_store.subscribe(lambda tasks: seen.append(len(tasks)))
    task_store.create({"title": "One"})
    assert seen == [1]


def test_batch_notifies_once(task_store):
    seen = []
    task_store.subscribe(lambda tasks: seen.append(len(tasks)))
    with task_store.batch():
        for i in range(3):
            task_store.create({"title": f"Task {i}"})
        assert seen == []
    assert seen == [3]


def test_batch_discards_changes_when_it_raises(data_dir, task_store):
    keep = task_store.create({"title": "Keep"})
    seen = []
    task_store.subscribe(lambda tasks: seen.append(len(tasks)))
    with pytest.raises(ValidationError):
        with task_store.batch():
            task_store.create({"title": "Half done"})
            task_store.update(keep.id, DetailsUpdate(title="Renamed"))
            task_store.create({"title": ""})
    assert [t.title for t in task_store.list()] == ["Keep"]
    assert seen == []
    data = json.loads(tasks_path(data_dir).read_text("utf-8"))
    assert [t["title"] for t in data["tasks"]] == ["Keep"]


# ── Workspaces ────────────────────────────────────────────────


def test_default_workspace_always_present(workspace_store):
    workspaces = workspace_store.list()
    assert workspaces[0].id == "default"
    assert workspaces[0].name == "Personal"
    assert workspace_store.exists("default")


def test_create_update_delete_workspace(workspace_store):
    ws = workspace_store.create("Work", icon="💼", color="purple")
    assert workspace_store.get(ws.id).name == "Work"

    updated = workspace_store.update(ws.id, name="Office")
    assert updated.name == "Office"
    assert updated.icon == "💼"

    workspace_store.delete(ws.id)
    assert not workspace_store.exists(ws.id)
    with pytest.raises(WorkspaceNotFoundError):
        workspace_store.get(ws.id)


def test_create_workspace_requires_name(workspace_store):
    with pytest.raises(ValidationError, match="name"):
        workspace_store.create("   ")


def test_default_workspace_cannot_be_deleted(workspace_store):
    with pytest.raises(ValidationError, match="default"):
        workspace_store.delete("default")


def test_restore_keeps_id(workspace_store):
    workspace_store.restore(Workspace(id="imported", name="Imported"))
    assert workspace_store.get("imported").name == "Imported"
    with pytest.raises(ValidationError, match="already exists"):
        workspace_store.restore(Workspace(id="imported", name="Again"))


def test_workspaces_persist(data_dir, workspace_store, clock):
    ws = workspace_store.create("Side project")
    reloaded = WorkspaceStore(workspaces_path(data_dir), clock=clock)
    assert [w.id for w in reloaded.list()] == ["default", ws.id]
