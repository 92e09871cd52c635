"""Focus forest: completed focus sessions grow trees and streak statistics.

Every completed session plants exactly one tree whose type depends only
on the session length. Statistics are updated incrementally on each
completed session; they are never rebuilt from history.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Callable
from zoneinfo import ZoneInfo

from core.fileio import locked, read_json, write_json_atomic
from core.models import FocusSession, ForestStats, ForestTree
from core.paths import data_root, day_key, previous_day, sessions_path, stats_path, trees_path

logger = logging.getLogger(__name__)

TREES_PER_LEVEL = 10


def classify_tree(duration: int | float) -> str:
    """Tree type for a session of *duration* minutes."""
    if duration >= 120:
        return "ancient"
    if duration >= 60:
        return "mature"
    if duration >= 30:
        return "young"
    return "sapling"


def forest_level(trees_planted: int) -> int:
    return trees_planted // TREES_PER_LEVEL + 1


class ForestEngine:
    """Session history, planted trees and forest statistics for one user.

    Writes are serialized with a thread lock and an flock on the stats
    file, so concurrent completions cannot lose streak or tree updates.
    """

    def __init__(
        self,
        root: Path | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.root = root if root is not None else data_root()
        self.tz = tz or ZoneInfo("UTC")
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._lock = threading.Lock()

    # ── persistence ──

    def _read(self, path: Path, what: str, default: Any) -> Any:
        """Read a JSON document, moving an unparseable file aside to ``<name>.corrupt``."""
        try:
            return read_json(path, default=default)
        except json.JSONDecodeError:
            backup = path.with_name(path.name + ".corrupt")
            logger.error("Unreadable %s in %s; moved aside to %s", what, path, backup)
            try:
                path.replace(backup)
            except OSError:
                logger.exception("Could not move aside %s", path)
            return default
        except OSError:
            logger.exception("Error loading %s", what)
            return default

    def _read_list(self, path: Path, what: str) -> list[dict[str, Any]]:
        data = self._read(path, what, [])
        return [d for d in data if isinstance(d, dict)] if isinstance(data, list) else []

    def _write(self, path: Path, data: Any, what: str) -> None:
        try:
            write_json_atomic(path, data)
        except (OSError, TypeError, ValueError):
            logger.exception("Error saving %s", what)

    # ── reads ──

    def get_sessions(self) -> list[FocusSession]:
        return [FocusSession.from_dict(d) for d in self._read_list(sessions_path(self.root), "focus sessions")]

    def get_trees(self) -> list[ForestTree]:
        return [ForestTree.from_dict(d) for d in self._read_list(trees_path(self.root), "forest trees")]

    def get_stats(self) -> ForestStats:
        return ForestStats.from_dict(self._read(stats_path(self.root), "forest stats", {}))

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> str:
        return self.now().astimezone(self.tz).date().isoformat()

    # ── session recording ──

    def save_session(
        self,
        start_time: datetime,
        end_time: datetime,
        duration: int,
        completed: bool,
        date: str | None = None,
        workspace_id: str | None = None,
        task_id: str | None = None,
    ) -> FocusSession:
        """Record a focus session; a completed one plants a tree and updates stats."""
        session = FocusSession(
            id=uuid.uuid4().hex,
            start_time=start_time,
            end_time=end_time,
            duration=int(duration),
            completed=completed,
            date=date or day_key(start_time, self.tz),
            workspace_id=workspace_id,
            task_id=task_id,
        )
        with self._lock, locked(stats_path(self.root)):
            sessions = self._read_list(sessions_path(self.root), "focus sessions")
            sessions.append(session.to_dict())
            self._write(sessions_path(self.root), sessions, "focus sessions")

            if session.completed:
                self._update_stats(session, [FocusSession.from_dict(d) for d in sessions])
                self._plant_tree(session)
        return session

    def _plant_tree(self, session: FocusSession) -> ForestTree:
        tree = ForestTree(
            id=f"tree_{session.id}",
            type=classify_tree(session.duration),
            session_id=session.id,
            planted_date=session.date,
            duration=session.duration,
        )
        trees = self._read_list(trees_path(self.root), "forest trees")
        trees.append(tree.to_dict())
        self._write(trees_path(self.root), trees, "forest trees")
        logger.info("Planted %s tree for %d min session", tree.type, session.duration)
        return tree

    def _update_stats(self, session: FocusSession, sessions: list[FocusSession]) -> ForestStats:
        stats = self.get_stats()
        stats.total_sessions += 1
        stats.total_minutes += session.duration
        stats.trees_planted += 1

        today = self.today()
        yesterday = previous_day(today)
        today_count = sum(1 for s in sessions if s.completed and s.date == today)
        yesterday_count = sum(1 for s in sessions if s.completed and s.date == yesterday)

        # Only the first completed session of the day moves the streak.
        if today_count == 1:
            stats.current_streak = stats.current_streak + 1 if yesterday_count > 0 else 1

        stats.longest_streak = max(stats.longest_streak, stats.current_streak)
        stats.forest_level = forest_level(stats.trees_planted)
        self._write(stats_path(self.root), stats.to_dict(), "forest stats")
        return stats

    # ── queries ──

    def get_sessions_for_date(self, date: str) -> list[FocusSession]:
        return [s for s in self.get_sessions() if s.date == date]

    def get_trees_for_date(self, date: str) -> list[ForestTree]:
        return [t for t in self.get_trees() if t.planted_date == date]

    def get_today_stats(self) -> dict[str, int]:
        today = self.today()
        done = [s for s in self.get_sessions_for_date(today) if s.completed]
        return {
            "sessions": len(done),
            "minutes": sum(s.duration for s in done),
            "trees": len(self.get_trees_for_date(today)),
        }

    def get_forest_visualization(self) -> dict[str, list[ForestTree]]:
        """Trees grouped by planted date, for calendar overlays."""
        forest: dict[str, list[ForestTree]] = defaultdict(list)
        for tree in self.get_trees():
            forest[tree.planted_date].append(tree)
        return dict(forest)
