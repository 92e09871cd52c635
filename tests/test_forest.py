"""Tests for core/forest.py — trees, streaks and forest statistics."""

import threading
from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest

from core.forest import ForestEngine, classify_tree, forest_level
from core.paths import sessions_path


def _complete(forest, clock, minutes=25):
    start = clock()
    return forest.save_session(start, start + timedelta(minutes=minutes), minutes, completed=True)


@pytest.mark.parametrize(
    "minutes,expected",
    [
        (0, "sapling"),
        (29, "sapling"),
        (30, "young"),
        (59, "young"),
        (60, "mature"),
        (119, "mature"),
        (120, "ancient"),
        (240, "ancient"),
    ],
)
def test_classify_tree(minutes, expected):
    assert classify_tree(minutes) == expected


def test_forest_level():
    assert forest_level(0) == 1
    assert forest_level(9) == 1
    assert forest_level(10) == 2
    assert forest_level(25) == 3


def test_completed_session_plants_tree(forest, clock):
    session = _complete(forest, clock, minutes=45)
    trees = forest.get_trees()
    assert len(trees) == 1
    assert trees[0].id == f"tree_{session.id}"
    assert trees[0].type == "young"
    assert trees[0].planted_date == "2026-03-02"
    assert trees[0].duration == 45

    stats = forest.get_stats()
    assert stats.total_sessions == 1
    assert stats.total_minutes == 45
    assert stats.trees_planted == 1
    assert stats.current_streak == 1
    assert stats.longest_streak == 1


def test_incomplete_session_recorded_without_tree(forest, clock):
    start = clock()
    forest.save_session(start, start + timedelta(minutes=10), 10, completed=False)
    assert len(forest.get_sessions()) == 1
    assert forest.get_trees() == []
    assert forest.get_stats().total_sessions == 0


def test_streak_counts_once_per_day(forest, clock):
    _complete(forest, clock)
    clock.advance(hours=2)
    _complete(forest, clock)
    stats = forest.get_stats()
    assert stats.total_sessions == 2
    assert stats.current_streak == 1


def test_streak_over_consecutive_days_then_reset(forest, clock):
    for _ in range(3):
        _complete(forest, clock)
        clock.advance(days=1)
    stats = forest.get_stats()
    assert stats.current_streak == 3
    assert stats.longest_streak == 3

    # skip a day
    clock.advance(days=1)
    _complete(forest, clock)
    stats = forest.get_stats()
    assert stats.current_streak == 1
    assert stats.longest_streak == 3
    assert stats.trees_planted == 4


def test_incomplete_session_does_not_extend_streak(forest, clock):
    _complete(forest, clock)
    clock.advance(days=1)
    start = clock()
    forest.save_session(start, start + timedelta(minutes=5), 5, completed=False)
    clock.advance(days=1)
    _complete(forest, clock)
    assert forest.get_stats().current_streak == 1


def test_level_up_after_ten_trees(forest, clock):
    for _ in range(10):
        _complete(forest, clock)
    assert forest.get_stats().forest_level == 2


def test_session_date_uses_local_day(data_dir, clock):
    forest = ForestEngine(data_dir, clock=clock, tz=ZoneInfo("Asia/Tokyo"))
    # 09:00 UTC is 18:00 in Tokyo; 16:00 UTC is already the next day there
    clock.advance(hours=7)
    session = _complete(forest, clock)
    assert session.date == "2026-03-03"


def test_explicit_date_wins(forest, clock):
    start = clock()
    session = forest.save_session(start, start, 25, completed=True, date="2026-03-01")
    assert session.date == "2026-03-01"
    assert forest.get_trees_for_date("2026-03-01")[0].session_id == session.id


def test_today_stats(forest, clock):
    _complete(forest, clock, minutes=25)
    _complete(forest, clock, minutes=50)
    start = clock()
    forest.save_session(start, start, 10, completed=False)
    assert forest.get_today_stats() == {"sessions": 2, "minutes": 75, "trees": 2}

    clock.advance(days=1)
    assert forest.get_today_stats() == {"sessions": 0, "minutes": 0, "trees": 0}


def test_sessions_for_date(forest, clock):
    _complete(forest, clock)
    clock.advance(days=1)
    _complete(forest, clock)
    assert len(forest.get_sessions_for_date("2026-03-02")) == 1
    assert len(forest.get_sessions_for_date("2026-03-03")) == 1
    assert forest.get_sessions_for_date("2026-03-04") == []


def test_forest_visualization_groups_by_day(forest, clock):
    _complete(forest, clock, minutes=25)
    _complete(forest, clock, minutes=120)
    clock.advance(days=1)
    _complete(forest, clock, minutes=60)
    forest_map = forest.get_forest_visualization()
    assert sorted(forest_map) == ["2026-03-02", "2026-03-03"]
    assert [t.type for t in forest_map["2026-03-02"]] == ["sapling", "ancient"]
    assert [t.type for t in forest_map["2026-03-03"]] == ["mature"]


def test_stats_persist_across_engines(data_dir, forest, clock):
    _complete(forest, clock)
    again = ForestEngine(data_dir, clock=clock, tz=ZoneInfo("UTC"))
    assert again.get_stats().trees_planted == 1
    assert len(again.get_sessions()) == 1


def test_corrupt_sessions_file_reads_as_empty(data_dir, forest):
    path = sessions_path(data_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[{broken", encoding="utf-8")
    assert forest.get_sessions() == []


def test_corrupt_history_is_kept_aside(data_dir, forest, clock):
    path = sessions_path(data_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[{broken", encoding="utf-8")
    _complete(forest, clock)
    assert path.with_name("sessions.json.corrupt").read_text("utf-8") == "[{broken"
    assert len(forest.get_sessions()) == 1


def test_concurrent_completions_are_not_lost(forest, clock):
    threads = [threading.Thread(target=_complete, args=(forest, clock)) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    stats = forest.get_stats()
    assert stats.total_sessions == 20
    assert stats.trees_planted == 20
    assert len(forest.get_trees()) == 20
    assert stats.current_streak == 1
