#!/usr/bin/env python3
"""TaskFlow TUI — tasks, focus timer and forest in the terminal, powered by Textual."""

from __future__ import annotations

import logging
import sys
import threading

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.timer import Timer
from textual.widgets import DataTable, Footer, Header, Input, Label, ProgressBar, Static

from core import (
    AppContext,
    FocusSession,
    FocusTimer,
    TaskFlowError,
    build_context,
    configure_logging,
    data_root,
    get_task_urgency_level,
    load_settings,
    sort_tasks,
    toggle_task,
)
from core.focus import FOCUS, FOCUS_DURATIONS, IDLE, RUNNING

logger = logging.getLogger(__name__)

SEVERITY = {"info": "information", "warning": "warning", "error": "error"}
URGENCY_MARK = {"overdue": "⚠", "critical": "‼", "high": "!", "medium": "·", "low": ""}
TREE_ICON = {"sapling": "🌱", "young": "🌿", "mature": "🌳", "ancient": "🌲"}


# ── Stylesheet ─────────────────────────────────────────────────

CSS = """
Screen {
    background: $surface;
}

#main-layout {
    height: 1fr;
}

#left-pane {
    width: 2fr;
    min-width: 40;
    border-right: tall $primary-background-darken-2;
    padding: 0 1;
}

#right-pane {
    width: 1fr;
    min-width: 30;
    padding: 0 1;
}

.section-title {
    text-style: bold;
    color: $text;
    margin: 1 0 0 0;
    padding: 0 1;
}

#new-task {
    height: 3;
    margin: 0 0 1 0;
}

#tasks-table {
    height: 1fr;
}

#timer-mode {
    color: $text-muted;
    padding: 0 1;
}

#timer-clock {
    height: 3;
    content-align: center middle;
    text-style: bold;
    color: $warning;
}

#timer-progress {
    margin: 0 1 1 1;
}

#today-stats {
    height: auto;
    padding: 1 2;
    border: tall $primary-background-darken-2;
}

#forest-screen {
    padding: 1 2;
}

#forest-info {
    height: auto;
    padding: 1 2;
    margin: 0 0 1 0;
    border: tall $primary-background-darken-2;
}

#trees-table {
    height: 1fr;
}
"""


# ── Screens ────────────────────────────────────────────────────


class ForestScreen(Vertical):
    """Forest view: lifetime stats + planted trees by day."""

    def __init__(self, ctx: AppContext, **kwargs) -> None:
        super().__init__(**kwargs)
        self.ctx = ctx

    def compose(self) -> ComposeResult:
        yield Label("Focus Forest", classes="section-title")
        yield Static(id="forest-info")
        yield DataTable(id="trees-table")

    def on_mount(self) -> None:
        stats = self.ctx.forest.get_stats()
        info = [
            f"Level {stats.forest_level} · {stats.trees_planted} trees",
            f"Sessions: {stats.total_sessions} ({stats.total_minutes} min)",
            f"Streak: {stats.current_streak} days (best {stats.longest_streak})",
        ]
        self.query_one("#forest-info", Static).update("\n".join(info))

        table: DataTable = self.query_one("#trees-table", DataTable)
        table.add_columns("Date", "Trees", "Minutes")
        forest = self.ctx.forest.get_forest_visualization()
        for day in sorted(forest, reverse=True)[:30]:
            trees = forest[day]
            table.add_row(
                day,
                "".join(TREE_ICON.get(t.type, "?") for t in trees),
                str(sum(t.duration for t in trees)),
            )


# ── Main app ───────────────────────────────────────────────────


class TaskFlowApp(App):
    """TaskFlow — tasks and focus sessions in the terminal."""

    TITLE = "TaskFlow"
    CSS = CSS
    AUTO_FOCUS = "#tasks-table"

    BINDINGS = [
        Binding("a", "add_task", "Add"),
        Binding("x", "toggle_task", "Done"),
        Binding("delete", "delete_task", "Delete"),
        Binding("w", "next_workspace", "Workspace"),
        Binding("p", "start_pause", "Start/Pause"),
        Binding("s", "stop_timer", "Stop"),
        Binding("l", "cycle_duration", "Length"),
        Binding("o", "toggle_forest", "Forest"),
        Binding("escape", "blur_focus", "Back"),
        Binding("q", "quit_app", "Quit"),
    ]

    current_view: reactive[str] = reactive("dashboard")

    def __init__(self, ctx: AppContext) -> None:
        super().__init__()
        self.ctx = ctx
        self.timer = FocusTimer(
            ctx.forest,
            focus_minutes=ctx.settings.focus_minutes,
            break_minutes=ctx.settings.break_minutes,
            on_complete=self._on_timer_complete,
        )
        self._ticker: Timer | None = None
        self._unsubscribe = None

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        """Hide task bindings while the forest overlay is shown."""
        if action in ("add_task", "toggle_task", "delete_task") and self.current_view != "dashboard":
            return None
        return True

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            Vertical(
                Label("Tasks", classes="section-title", id="tasks-title"),
                Input(placeholder="New task title… (enter to add)", id="new-task"),
                DataTable(id="tasks-table", cursor_type="row"),
                id="left-pane",
            ),
            Vertical(
                Label("Focus", classes="section-title"),
                Label("", id="timer-mode"),
                Static("", id="timer-clock"),
                ProgressBar(total=100, show_eta=False, id="timer-progress"),
                Label("Today", classes="section-title"),
                Static("", id="today-stats"),
                id="right-pane",
            ),
            id="main-layout",
        )
        yield Footer()

    def on_mount(self) -> None:
        table: DataTable = self.query_one("#tasks-table", DataTable)
        table.add_columns("", "Title", "Pri", "Status", "Due", "Tags")
        self._top_up_recurring()
        self._unsubscribe = self.ctx.tasks.subscribe(lambda _tasks: self._refresh_tasks())
        self._refresh_tasks()
        self._refresh_timer()
        self._refresh_today()
        self.ctx.notifications.start_monitoring(self.ctx.tasks.list, self._notify_from_thread)

    def _top_up_recurring(self) -> None:
        """Generate missing instances for every recurring template."""
        for task in self.ctx.tasks.list():
            if task.is_recurring:
                try:
                    self.ctx.recurrence.generate_upcoming_instances(task)
                except TaskFlowError:
                    logger.exception("Could not generate instances for %s", task.id)

    # ── Rendering ──────────────────────────────────────────────

    def _refresh_tasks(self) -> None:
        table: DataTable = self.query_one("#tasks-table", DataTable)
        table.clear()
        now = self.ctx.now()
        tasks = [t for t in self.ctx.current_tasks() if not t.is_recurring]
        for t in sort_tasks(tasks, "dueDate"):
            due = t.due_date.astimezone(self.ctx.tz).strftime("%b %d %H:%M") if t.due_date else ""
            table.add_row(
                URGENCY_MARK.get(get_task_urgency_level(t, now), ""),
                ("↻ " if t.parent_task_id else "") + t.title,
                t.priority,
                t.status,
                due,
                ", ".join(t.tags),
                key=t.id,
            )
        ws = self.ctx.workspaces.get(self.ctx.current_workspace_id)
        self.query_one("#tasks-title", Label).update(f"{ws.icon} {ws.name}")

    def _refresh_timer(self) -> None:
        mode = "Focus" if self.timer.mode == FOCUS else "Break"
        self.query_one("#timer-mode", Label).update(
            f"{mode} · {self.timer.duration_minutes} min · {self.timer.status}"
        )
        self.query_one("#timer-clock", Static).update(self.timer.format_time())
        self.query_one("#timer-progress", ProgressBar).update(progress=self.timer.progress())

    def _refresh_today(self) -> None:
        today = self.ctx.forest.get_today_stats()
        stats = self.ctx.forest.get_stats()
        self.query_one("#today-stats", Static).update(
            f"Sessions: {today['sessions']}\n"
            f"Minutes: {today['minutes']}\n"
            f"Trees: {today['trees']}\n"
            f"🔥 {stats.current_streak} day streak"
        )
        self.sub_title = f"🌳 Level {stats.forest_level} · 🔥 {stats.current_streak}"

    def _selected_task_id(self) -> str | None:
        table: DataTable = self.query_one("#tasks-table", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    # ── Notifications ──────────────────────────────────────────

    def _notify_from_thread(self, severity: str, title: str, message: str) -> None:
        level = SEVERITY.get(severity, "information")
        if threading.current_thread() is threading.main_thread():
            self.notify(message, title=title, severity=level)
        else:
            self.call_from_thread(self.notify, message, title=title, severity=level)

    # ── Tasks ──────────────────────────────────────────────────

    def action_add_task(self) -> None:
        self.query_one("#new-task", Input).focus()

    @on(Input.Submitted, "#new-task")
    def _on_new_task(self, event: Input.Submitted) -> None:
        title = event.value.strip()
        if not title:
            return
        try:
            self.ctx.tasks.create({"title": title, "workspaceId": self.ctx.current_workspace_id})
        except TaskFlowError as e:
            self.notify(e.message, title="Invalid task", severity="error")
            return
        event.input.value = ""
        self.query_one("#tasks-table", DataTable).focus()

    def action_toggle_task(self) -> None:
        task_id = self._selected_task_id()
        if task_id is None:
            return
        try:
            task = self.ctx.tasks.get(task_id)
            if task.is_instance and task.status != "completed":
                self.ctx.recurrence.complete_instance(task_id)
            else:
                toggle_task(self.ctx.tasks, task_id)
        except TaskFlowError as e:
            self.notify(e.message, title="Error", severity="error")

    def action_delete_task(self) -> None:
        task_id = self._selected_task_id()
        if task_id is None:
            return
        try:
            self.ctx.tasks.delete(task_id)
        except TaskFlowError as e:
            self.notify(e.message, title="Error", severity="error")

    def action_next_workspace(self) -> None:
        ids = [w.id for w in self.ctx.workspaces.list()]
        current = ids.index(self.ctx.current_workspace_id) if self.ctx.current_workspace_id in ids else -1
        self.ctx.select_workspace(ids[(current + 1) % len(ids)])
        self._refresh_tasks()

    # ── Focus timer ────────────────────────────────────────────

    def action_start_pause(self) -> None:
        if self.timer.status == RUNNING:
            self.timer.pause()
        else:
            task_id = self._selected_task_id() if self.timer.status == IDLE else None
            self.timer.start(task_id=task_id, workspace_id=self.ctx.current_workspace_id)
            if self._ticker is None:
                self._ticker = self.set_interval(1, self._tick)
        self._refresh_timer()

    def action_stop_timer(self) -> None:
        if self.timer.status != IDLE:
            self.timer.stop()
            self.notify("Session abandoned. No tree this time.", title="Focus stopped")
        self._refresh_timer()

    def action_cycle_duration(self) -> None:
        if self.timer.status != IDLE or self.timer.mode != FOCUS:
            self.notify("Stop the timer to change its length.", severity="warning")
            return
        durations = list(FOCUS_DURATIONS)
        current = self.timer.duration_minutes
        nxt = next((d for d in durations if d > current), durations[0])
        self.timer.set_duration(nxt)
        self._refresh_timer()

    def _tick(self) -> None:
        if self.timer.status == RUNNING:
            self.timer.tick()
            self._refresh_timer()

    def _on_timer_complete(self, mode: str, session: FocusSession | None) -> None:
        if mode == FOCUS and session is not None:
            self.notify(
                f"{session.duration} min focus complete. Take a {self.timer.break_minutes} min break.",
                title="🌳 Tree planted!",
            )
            self._refresh_today()
        else:
            self.notify("Break over. Ready for the next session?", title="Break finished")

    # ── Views ──────────────────────────────────────────────────

    def action_toggle_forest(self) -> None:
        self._switch_to("dashboard" if self.current_view == "forest" else "forest")

    def action_blur_focus(self) -> None:
        if self.current_view != "dashboard":
            self._switch_to("dashboard")
        self.set_focus(None)

    def action_quit_app(self) -> None:
        self.exit()

    def on_unmount(self) -> None:
        self.ctx.notifications.stop_monitoring()
        if self._unsubscribe is not None:
            self._unsubscribe()

    def _switch_to(self, view: str) -> None:
        main = self.query_one("#main-layout", Horizontal)
        for old in self.query(".overlay-screen"):
            old.remove()

        show_dashboard = view == "dashboard"
        self.query_one("#left-pane").display = show_dashboard
        self.query_one("#right-pane").display = show_dashboard
        if view == "forest":
            main.mount(ForestScreen(self.ctx, id="forest-screen", classes="overlay-screen"))
        self.current_view = view
        self.refresh_bindings()


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = data_root()
    try:
        settings = load_settings(root)
    except TaskFlowError as e:
        print(f"Invalid configuration in {root}: {e.message}")
        sys.exit(1)
    # the terminal belongs to Textual; log to a file under the data root
    configure_logging(settings.log_level, filename=root / "taskflow.log")

    app = TaskFlowApp(build_context(root, settings=settings))
    app.run()


if __name__ == "__main__":
    main()
