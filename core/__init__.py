"""TaskFlow core library — shared data layer and engines.

Public API re-exports for convenient imports:
    from core import build_context, TaskStore, RecurrenceEngine, ...
"""

# Paths
from core.paths import (
    data_root,
    get_user_timezone,
    config_path,
    tasks_path,
    workspaces_path,
    sessions_path,
    trees_path,
    stats_path,
)

# File I/O
from core.fileio import (
    read_text,
    read_json,
    read_yaml,
    write_json_atomic,
    write_yaml_atomic,
)

# Errors
from core.errors import (
    TaskFlowError,
    ValidationError,
    NotFoundError,
    TaskNotFoundError,
    WorkspaceNotFoundError,
    ImportDataError,
    ConfigError,
)

# Config
from core.config import Settings, load_settings, save_settings, configure_logging

# Models
from core.models import (
    RecurrencePattern,
    TrackedSession,
    TimeTracking,
    Task,
    DetailsUpdate,
    StatusUpdate,
    ScheduleUpdate,
    TagsUpdate,
    RecurrenceUpdate,
    Workspace,
    FocusSession,
    ForestTree,
    ForestStats,
)

# Tasks
from core.tasks import (
    validate_task,
    task_from_input,
    update_from_input,
    filter_tasks,
    sort_tasks,
    toggle_task,
    start_time_tracking,
    stop_time_tracking,
)

# Stores and engines
from core.store import TaskStore, WorkspaceStore
from core.recurrence import RecurrenceEngine, compute_next_occurrence
from core.forest import ForestEngine, classify_tree
from core.focus import FocusTimer
from core.notifications import NotificationScheduler, get_task_urgency_level

# Import / export and analytics
from core.importexport import export_json, import_json, export_csv, import_csv
from core.analytics import summarize_tasks, deadline_distribution, focus_minutes_by_day

# Wiring
from core.context import AppContext, build_context
