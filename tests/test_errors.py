"""Tests for core/errors.py — error codes and serialization."""

from core.errors import (
    ConfigError,
    ImportDataError,
    NotFoundError,
    TaskFlowError,
    TaskNotFoundError,
    ValidationError,
    WorkspaceNotFoundError,
)


def test_validation_error_joins_messages():
    err = ValidationError(["Missing required field: title", "Invalid priority: x"])
    assert str(err) == "Missing required field: title; Invalid priority: x"
    assert err.errors == ["Missing required field: title", "Invalid priority: x"]
    assert err.to_dict() == {"code": "VALIDATION_ERROR", "message": str(err), "details": {}}


def test_validation_error_single_string():
    assert ValidationError("bad").errors == ["bad"]


def test_not_found_errors():
    err = TaskNotFoundError("t1")
    assert isinstance(err, NotFoundError)
    assert err.to_dict() == {"code": "TASK_NOT_FOUND", "message": "Task not found: t1", "details": {"id": "t1"}}
    assert WorkspaceNotFoundError("w1").code == "WORKSPACE_NOT_FOUND"


def test_all_errors_share_base():
    for cls in (ValidationError, NotFoundError, ImportDataError, ConfigError):
        assert issubclass(cls, TaskFlowError)
    assert ImportDataError("x", {"line": 3}).details == {"line": 3}
