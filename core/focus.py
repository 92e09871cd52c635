"""Pomodoro-style focus timer for TaskFlow.

States: idle -> running <-> paused -> idle. The host drives the
countdown by calling ``tick()`` once per second. Only a focus countdown
that reaches zero records a completed session (and plants a tree);
stopping or pausing never does.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from core.forest import ForestEngine
from core.models import FocusSession
from core.paths import day_key

logger = logging.getLogger(__name__)

FOCUS_DURATIONS = (25, 45, 60, 90, 120)

IDLE, RUNNING, PAUSED = "idle", "running", "paused"
FOCUS, BREAK = "focus", "break"


class FocusTimer:
    def __init__(
        self,
        forest: ForestEngine,
        focus_minutes: int = 25,
        break_minutes: int = 5,
        clock: Callable[[], datetime] | None = None,
        on_complete: Callable[[str, FocusSession | None], None] | None = None,
    ) -> None:
        self.forest = forest
        self.focus_minutes = focus_minutes
        self.break_minutes = break_minutes
        self._clock = clock or forest.now
        self.on_complete = on_complete

        self.mode = FOCUS
        self.status = IDLE
        self.duration_minutes = focus_minutes
        self.remaining_seconds = focus_minutes * 60
        self.session_start: datetime | None = None
        self.workspace_id: str | None = None
        self.task_id: str | None = None
        self.completed_sessions = 0

    def set_duration(self, minutes: int) -> None:
        """Pick the length of the next countdown. Only allowed while idle."""
        if self.status != IDLE:
            raise ValueError("Stop the timer before changing its duration.")
        if minutes < 1:
            raise ValueError("Duration must be at least one minute.")
        self.duration_minutes = minutes
        self.remaining_seconds = minutes * 60

    def start(self, task_id: str | None = None, workspace_id: str | None = None) -> None:
        if self.status == RUNNING:
            raise ValueError("The timer is already running.")
        if self.status == PAUSED:
            self.resume()
            return
        self.status = RUNNING
        self.task_id = task_id
        self.workspace_id = workspace_id
        if self.mode == FOCUS:
            self.session_start = self._clock()

    def pause(self) -> None:
        if self.status != RUNNING:
            raise ValueError("The timer is not running.")
        self.status = PAUSED

    def resume(self) -> None:
        if self.status != PAUSED:
            raise ValueError("The timer is not paused.")
        self.status = RUNNING

    def stop(self) -> None:
        """Abandon the countdown. Nothing is recorded."""
        self.status = IDLE
        self.remaining_seconds = self.duration_minutes * 60
        self.session_start = None

    def tick(self, seconds: int = 1) -> FocusSession | None:
        """Advance the countdown. Returns the saved session when a focus block completes."""
        if self.status != RUNNING:
            return None
        self.remaining_seconds = max(0, self.remaining_seconds - seconds)
        if self.remaining_seconds == 0:
            return self._complete()
        return None

    def _complete(self) -> FocusSession | None:
        finished = self.mode
        self.status = IDLE
        session = None

        if finished == FOCUS and self.session_start is not None:
            session = self.forest.save_session(
                start_time=self.session_start,
                end_time=self._clock(),
                duration=self.duration_minutes,
                completed=True,
                date=day_key(self.session_start, self.forest.tz),
                workspace_id=self.workspace_id,
                task_id=self.task_id,
            )
            self.completed_sessions += 1
            self.session_start = None
            self.mode = BREAK
            self.duration_minutes = self.break_minutes
        else:
            self.mode = FOCUS
            self.duration_minutes = self.focus_minutes
        self.remaining_seconds = self.duration_minutes * 60

        if self.on_complete is not None:
            try:
                self.on_complete(finished, session)
            except Exception:
                logger.exception("Focus completion callback failed")
        return session

    def progress(self) -> float:
        """Percent of the current countdown elapsed."""
        total = self.duration_minutes * 60
        return (total - self.remaining_seconds) / total * 100

    def format_time(self) -> str:
        mins, secs = divmod(self.remaining_seconds, 60)
        return f"{mins:02d}:{secs:02d}"
