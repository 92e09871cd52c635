from __future__ import annotations

import json
import logging
import os
import secrets
import threading
from datetime import date as date_type
from pathlib import Path
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from core import (
    AppContext,
    ConfigError,
    ImportDataError,
    NotFoundError,
    TaskFlowError,
    ValidationError,
    build_context,
    data_root,
    deadline_distribution,
    export_csv,
    export_json,
    filter_tasks,
    focus_minutes_by_day,
    get_task_urgency_level,
    import_csv,
    import_json,
    sort_tasks,
    start_time_tracking,
    stop_time_tracking,
    summarize_tasks,
    task_from_input,
    toggle_task,
    update_from_input,
)
from core.analytics import completed_by_day
from core.models import parse_datetime
from core.tasks import apply_update, pattern_from_input, validate_task

logger = logging.getLogger(__name__)

app = FastAPI(title="TaskFlow API", version="1.0.0")

security = HTTPBasic(auto_error=False)


# ── Errors ────────────────────────────────────────────────────

def _status_for(exc: TaskFlowError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (ValidationError, ImportDataError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ConfigError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(TaskFlowError)
def taskflow_error_handler(request: Request, exc: TaskFlowError) -> JSONResponse:
    code = _status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message, **exc.to_dict()})


# ── Auth ──────────────────────────────────────────────────────

def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("TASKFLOW_USERNAME", "")
    expected_password = os.environ.get("TASKFLOW_PASSWORD", "")

    if credentials is None:
        if not expected_username or not expected_password:
            return "guest"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    if not expected_username or not expected_password:
        return "guest"

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


# ── Context ───────────────────────────────────────────────────

_contexts: dict[Path, AppContext] = {}
_contexts_lock = threading.Lock()


def get_context() -> AppContext:
    """One AppContext per data root, built on first use."""
    root = data_root()
    with _contexts_lock:
        ctx = _contexts.get(root)
        if ctx is None:
            ctx = build_context(root)
            _contexts[root] = ctx
        return ctx


# ── Health ────────────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/api/settings")
def api_settings(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    return ctx.settings.to_dict()


# ── Tasks ─────────────────────────────────────────────────────

@app.get("/api/tasks")
def api_list_tasks(
    workspace: str | None = None,
    status_filter: str | None = Query(None, alias="status"),
    priority: str | None = None,
    tag: str | None = None,
    search: str | None = None,
    sort: str = "dueDate",
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """List tasks in a workspace (the current one by default)."""
    tasks = filter_tasks(
        ctx.tasks.list(),
        workspace_id=workspace or ctx.current_workspace_id,
        status=status_filter,
        priority=priority,
        tag=tag,
        search=search,
    )
    now = ctx.now()
    return {
        "tasks": [
            {**t.to_dict(), "urgency": get_task_urgency_level(t, now)}
            for t in sort_tasks(tasks, sort)
        ],
        "workspaceId": workspace or ctx.current_workspace_id,
    }


@app.post("/api/tasks")
def api_create_task(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    data = dict(payload)
    data.setdefault("workspaceId", ctx.current_workspace_id)
    if not ctx.workspaces.exists(data["workspaceId"]):
        raise ValidationError(f"Unknown workspace: {data['workspaceId']}")
    if data.get("isRecurring") or data.get("recurrencePattern"):
        raise ValidationError("Use /api/recurring to create recurring tasks")
    task = ctx.tasks.create(task_from_input(data))
    return {"ok": True, "task": task.to_dict()}


@app.get("/api/tasks/{task_id}")
def api_get_task(task_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    task = ctx.tasks.get(task_id)
    return {"task": task.to_dict(), "urgency": get_task_urgency_level(task, ctx.now())}


@app.put("/api/tasks/{task_id}")
def api_update_task(
    task_id: str,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Update a task from a flat camelCase payload."""
    updates = update_from_input(payload)
    preview = ctx.tasks.get(task_id)
    for update in updates:
        preview = apply_update(preview, update, ctx.now())
    errors = validate_task(preview)
    if errors:
        raise ValidationError(errors)
    task = None
    with ctx.tasks.batch():
        for update in updates:
            task = ctx.recurrence.update_recurring_task(task_id, update)
    return {"ok": True, "task": task.to_dict() if task else None}


@app.delete("/api/tasks/{task_id}")
def api_delete_task(
    task_id: str,
    delete_instances: bool = False,
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    task = ctx.tasks.get(task_id)
    if task.is_recurring:
        ctx.recurrence.delete_recurring_task(task_id, delete_instances=delete_instances)
    else:
        ctx.tasks.delete(task_id)
    return {"ok": True, "task_id": task_id}


@app.post("/api/tasks/{task_id}/toggle")
def api_toggle_task(task_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    """Flip completion; completing a recurring instance tops up its series."""
    task = ctx.tasks.get(task_id)
    if task.is_instance and task.status != "completed":
        task = ctx.recurrence.complete_instance(task_id)
    else:
        task = toggle_task(ctx.tasks, task_id)
    return {"ok": True, "task": task.to_dict()}


@app.post("/api/tasks/{task_id}/tracking/start")
def api_start_tracking(task_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    task = start_time_tracking(ctx.tasks, task_id, ctx.now())
    return {"ok": True, "timeTracking": task.time_tracking.to_dict()}


@app.post("/api/tasks/{task_id}/tracking/stop")
def api_stop_tracking(
    task_id: str,
    payload: dict[str, Any] = Body(default={}),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    task = stop_time_tracking(ctx.tasks, task_id, ctx.now(), note=str(payload.get("note", "")))
    return {"ok": True, "timeTracking": task.time_tracking.to_dict()}


# ── Workspaces ────────────────────────────────────────────────

@app.get("/api/workspaces")
def api_list_workspaces(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {
        "workspaces": [w.to_dict() for w in ctx.workspaces.list()],
        "currentWorkspaceId": ctx.current_workspace_id,
    }


@app.post("/api/workspaces")
def api_create_workspace(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    ws = ctx.workspaces.create(
        str(payload.get("name", "")),
        icon=str(payload.get("icon") or "📁"),
        color=str(payload.get("color") or "blue"),
    )
    return {"ok": True, "workspace": ws.to_dict()}


@app.put("/api/workspaces/{workspace_id}")
def api_update_workspace(
    workspace_id: str,
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    ws = ctx.workspaces.update(
        workspace_id,
        name=payload.get("name"),
        icon=payload.get("icon"),
        color=payload.get("color"),
    )
    return {"ok": True, "workspace": ws.to_dict()}


@app.delete("/api/workspaces/{workspace_id}")
def api_delete_workspace(workspace_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    removed = ctx.delete_workspace(workspace_id)
    return {"ok": True, "deletedTasks": len(removed), "currentWorkspaceId": ctx.current_workspace_id}


@app.post("/api/workspaces/{workspace_id}/select")
def api_select_workspace(workspace_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "currentWorkspaceId": ctx.select_workspace(workspace_id)}


# ── Recurring tasks ───────────────────────────────────────────

@app.post("/api/recurring")
def api_create_recurring(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Create a template from {"task": {...}, "pattern": {...}} and its first instances."""
    raw_task = payload.get("task") or {}
    if not isinstance(raw_task, dict):
        raise ValidationError("task must be an object")
    task_data = dict(raw_task)
    raw_pattern = payload.get("pattern")
    if not isinstance(raw_pattern, dict):
        raise ValidationError("Missing recurrence pattern")
    task_data.setdefault("workspaceId", ctx.current_workspace_id)
    template = ctx.recurrence.create_recurring_task(task_data, pattern_from_input(raw_pattern))
    instances = ctx.recurrence.get_recurring_task_instances(template.id)
    return {"ok": True, "task": template.to_dict(), "instances": [t.to_dict() for t in instances]}


@app.get("/api/recurring/{task_id}/instances")
def api_recurring_instances(task_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    ctx.tasks.get(task_id)
    instances = sort_tasks(ctx.recurrence.get_recurring_task_instances(task_id), "dueDate")
    return {"instances": [t.to_dict() for t in instances]}


@app.post("/api/recurring/{task_id}/generate")
def api_recurring_generate(
    task_id: str,
    horizon_days: int | None = None,
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    template = ctx.tasks.get(task_id)
    if not template.is_recurring:
        raise ValidationError(f"Task {task_id} is not recurring")
    created = ctx.recurrence.generate_upcoming_instances(template, horizon_days)
    return {"ok": True, "created": [t.to_dict() for t in created]}


@app.post("/api/recurring/instances/{instance_id}/complete")
def api_complete_instance(instance_id: str, ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    task = ctx.recurrence.complete_instance(instance_id)
    return {"ok": True, "task": task.to_dict()}


# ── Focus forest ──────────────────────────────────────────────

@app.post("/api/focus/sessions")
def api_save_session(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Record a finished focus session reported by a client-side timer."""
    start = parse_datetime(payload.get("startTime"))
    end = parse_datetime(payload.get("endTime"))
    if start is None or end is None:
        raise ValidationError("startTime and endTime are required ISO-8601 datetimes")
    try:
        duration = int(payload.get("duration", 0))
    except (TypeError, ValueError):
        raise ValidationError("duration must be an integer number of minutes")
    if duration < 0:
        raise ValidationError("duration must be non-negative")
    session = ctx.forest.save_session(
        start_time=start,
        end_time=end,
        duration=duration,
        completed=bool(payload.get("completed", False)),
        workspace_id=payload.get("workspaceId") or ctx.current_workspace_id,
        task_id=payload.get("taskId") or None,
    )
    return {"ok": True, "session": session.to_dict(), "stats": ctx.forest.get_stats().to_dict()}


@app.get("/api/focus/sessions")
def api_list_sessions(
    date: str | None = None,
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    sessions = ctx.forest.get_sessions_for_date(_check_date(date)) if date else ctx.forest.get_sessions()
    return {"sessions": [s.to_dict() for s in sessions]}


@app.get("/api/focus/stats")
def api_forest_stats(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    return ctx.forest.get_stats().to_dict()


@app.get("/api/focus/today")
def api_focus_today(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"date": ctx.forest.today(), **ctx.forest.get_today_stats()}


@app.get("/api/focus/trees")
def api_list_trees(
    date: str | None = None,
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    trees = ctx.forest.get_trees_for_date(_check_date(date)) if date else ctx.forest.get_trees()
    return {"trees": [t.to_dict() for t in trees]}


@app.get("/api/focus/forest")
def api_forest_visualization(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> dict[str, Any]:
    forest = ctx.forest.get_forest_visualization()
    return {day: [t.to_dict() for t in trees] for day, trees in sorted(forest.items())}


def _check_date(value: str) -> str:
    try:
        return date_type.fromisoformat(value).isoformat()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


# ── Import / export ───────────────────────────────────────────

@app.get("/api/export/json")
def api_export_json(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> PlainTextResponse:
    body = export_json(ctx.tasks.list(), ctx.workspaces.list(), ctx.now())
    return PlainTextResponse(body, media_type="application/json")


@app.post("/api/import/json")
def api_import_json(
    payload: dict[str, Any] = Body(...),
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    bundle = import_json(json.dumps(payload))
    return {"ok": True, "imported": ctx.import_bundle(bundle)}


@app.get("/api/export/csv")
def api_export_csv(ctx: AppContext = Depends(get_context), username: str = Depends(get_current_user)) -> PlainTextResponse:
    return PlainTextResponse(export_csv(ctx.tasks.list()), media_type="text/csv")


@app.post("/api/import/csv")
async def api_import_csv(
    request: Request,
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Create tasks from a CSV body; unknown workspaces fall back to the current one."""
    text = (await request.body()).decode("utf-8-sig")
    rows = import_csv(text)
    tasks = []
    for row in rows:
        if not row.get("workspaceId") or not ctx.workspaces.exists(row["workspaceId"]):
            row["workspaceId"] = ctx.current_workspace_id
        tasks.append(task_from_input(row))
    with ctx.tasks.batch():
        created = [ctx.tasks.create(t) for t in tasks]
    return {"ok": True, "imported": len(created)}


# ── Analytics ─────────────────────────────────────────────────

@app.get("/api/analytics")
def api_analytics(
    days: int = 7,
    workspace: str | None = None,
    ctx: AppContext = Depends(get_context),
    username: str = Depends(get_current_user),
) -> dict[str, Any]:
    """Task summary, deadline buckets and daily completion/focus series."""
    if days < 1 or days > 366:
        raise HTTPException(status_code=400, detail="days must be between 1 and 366")
    tasks = filter_tasks(ctx.tasks.list(), workspace_id=workspace)
    now = ctx.now()
    today = now.astimezone(ctx.tz).date()
    return {
        "summary": summarize_tasks(tasks, now).to_dict(),
        "deadlines": deadline_distribution(tasks, now, ctx.tz),
        "completedByDay": completed_by_day(tasks, days, today, ctx.tz),
        "focusMinutesByDay": focus_minutes_by_day(ctx.forest.get_sessions(), days, today),
        "forest": ctx.forest.get_stats().to_dict(),
    }
