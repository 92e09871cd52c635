"""JSON bundle and CSV import/export for TaskFlow."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from core.errors import ImportDataError
from core.models import Task, Workspace, format_datetime, parse_datetime

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"
CSV_HEADERS = [
    "Title",
    "Description",
    "Priority",
    "Status",
    "Due Date",
    "Tags",
    "Workspace",
    "Created At",
    "Estimated Minutes",
]
TAG_SEPARATOR = "; "


@dataclass
class ExportBundle:
    tasks: list[Task] = field(default_factory=list)
    workspaces: list[Workspace] = field(default_factory=list)
    export_date: str = ""
    version: str = EXPORT_VERSION


def export_json(tasks: Iterable[Task], workspaces: Iterable[Workspace], now: datetime) -> str:
    bundle = {
        "tasks": [t.to_dict() for t in tasks],
        "workspaces": [w.to_dict() for w in workspaces],
        "exportDate": format_datetime(now),
        "version": EXPORT_VERSION,
    }
    return json.dumps(bundle, indent=2, ensure_ascii=False)


def import_json(text: str) -> ExportBundle:
    """Parse and validate an export bundle. Raises ImportDataError."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportDataError(f"Invalid JSON: {e.msg}", {"line": e.lineno})
    if not isinstance(data, dict):
        raise ImportDataError("Export bundle must be a JSON object")

    raw_tasks = data.get("tasks")
    raw_workspaces = data.get("workspaces")
    if not isinstance(raw_tasks, list):
        raise ImportDataError("Invalid tasks data")
    if not isinstance(raw_workspaces, list):
        raise ImportDataError("Invalid workspaces data")

    for i, t in enumerate(raw_tasks):
        if not isinstance(t, dict) or not all(t.get(k) for k in ("id", "title", "status", "priority")):
            raise ImportDataError("Invalid task structure", {"index": i})
    for i, w in enumerate(raw_workspaces):
        if not isinstance(w, dict) or not w.get("id") or not w.get("name"):
            raise ImportDataError("Invalid workspace structure", {"index": i})

    tasks = []
    for i, t in enumerate(raw_tasks):
        try:
            tasks.append(Task.from_dict(t))
        except (TypeError, ValueError) as e:
            raise ImportDataError(f"Invalid task data: {e}", {"index": i})

    bundle = ExportBundle(
        tasks=tasks,
        workspaces=[Workspace.from_dict(w) for w in raw_workspaces],
        export_date=str(data.get("exportDate", "")),
        version=str(data.get("version", EXPORT_VERSION)),
    )
    logger.info("Parsed import bundle: %d tasks, %d workspaces", len(bundle.tasks), len(bundle.workspaces))
    return bundle


def export_csv(tasks: Iterable[Task]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for task in tasks:
        writer.writerow(
            [
                task.title,
                task.description,
                task.priority,
                task.status,
                format_datetime(task.due_date) or "",
                TAG_SEPARATOR.join(task.tags),
                task.workspace_id,
                format_datetime(task.created_at) or "",
                "" if task.estimated_minutes is None else task.estimated_minutes,
            ]
        )
    return buf.getvalue()


def import_csv(text: str) -> list[dict[str, Any]]:
    """Parse CSV produced by export_csv into task input dicts (without ids)."""
    reader = csv.DictReader(io.StringIO(text))
    missing = [h for h in CSV_HEADERS if h not in (reader.fieldnames or [])]
    if missing:
        raise ImportDataError("Missing CSV columns", {"missing": missing})

    rows = []
    for line, row in enumerate(reader, start=2):
        if not (row.get("Title") or "").strip():
            raise ImportDataError("Missing title", {"line": line})
        due = row.get("Due Date") or ""
        if due and parse_datetime(due) is None:
            raise ImportDataError(f"Invalid due date: {due}", {"line": line})
        estimate = (row.get("Estimated Minutes") or "").strip()
        try:
            minutes = int(estimate) if estimate else None
        except ValueError:
            raise ImportDataError(f"Invalid estimate: {estimate}", {"line": line})
        # Task.from_dict strips and de-duplicates
        tags = (row.get("Tags") or "").split(";")
        data: dict[str, Any] = {
            "title": row["Title"],
            "description": row.get("Description") or "",
            "priority": row.get("Priority") or "medium",
            "status": row.get("Status") or "pending",
            "tags": tags,
            "workspaceId": row.get("Workspace") or None,
            "createdAt": row.get("Created At") or None,
        }
        if due:
            data["dueDate"] = due
        if minutes is not None:
            data["estimatedMinutes"] = minutes
        rows.append(data)
    return rows
