"""Structured error types for TaskFlow."""

from __future__ import annotations

from typing import Any, Mapping


class TaskFlowError(RuntimeError):
    """Base error carrying a machine-readable code."""

    code = "TASKFLOW_ERROR"

    def __init__(self, message: str, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(TaskFlowError):
    """Raised when task, workspace or pattern data is invalid."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str] | str, details: Mapping[str, Any] | None = None) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors), details)


class NotFoundError(TaskFlowError):
    code = "NOT_FOUND"


class TaskNotFoundError(NotFoundError):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}", {"id": task_id})


class WorkspaceNotFoundError(NotFoundError):
    code = "WORKSPACE_NOT_FOUND"

    def __init__(self, workspace_id: str) -> None:
        super().__init__(f"Workspace not found: {workspace_id}", {"id": workspace_id})


class ImportDataError(TaskFlowError):
    """Raised when an import bundle or CSV cannot be parsed."""

    code = "IMPORT_ERROR"


class ConfigError(TaskFlowError):
    """Raised when configuration is missing or invalid."""

    code = "CONFIG_ERROR"
