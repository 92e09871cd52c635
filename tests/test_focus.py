"""Tests for core/focus.py — focus timer lifecycle."""

import pytest

from core.focus import BREAK, FOCUS, IDLE, PAUSED, RUNNING, FocusTimer


@pytest.fixture
def timer(forest):
    return FocusTimer(forest, focus_minutes=25, break_minutes=5)


def test_initial_state(timer):
    assert timer.status == IDLE
    assert timer.mode == FOCUS
    assert timer.format_time() == "25:00"
    assert timer.progress() == 0


def test_start_pause_resume(timer):
    timer.start()
    assert timer.status == RUNNING
    timer.tick(60)
    assert timer.format_time() == "24:00"

    timer.pause()
    assert timer.status == PAUSED
    assert timer.tick(60) is None
    assert timer.format_time() == "24:00"

    timer.resume()
    assert timer.status == RUNNING


def test_start_while_paused_resumes(timer):
    timer.start()
    timer.pause()
    timer.start()
    assert timer.status == RUNNING


def test_invalid_transitions(timer):
    with pytest.raises(ValueError, match="not running"):
        timer.pause()
    with pytest.raises(ValueError, match="not paused"):
        timer.resume()
    timer.start()
    with pytest.raises(ValueError, match="already running"):
        timer.start()


def test_set_duration(timer):
    timer.set_duration(45)
    assert timer.remaining_seconds == 45 * 60
    timer.start()
    with pytest.raises(ValueError):
        timer.set_duration(60)


def test_set_duration_rejects_zero(timer):
    with pytest.raises(ValueError):
        timer.set_duration(0)


def test_progress(timer):
    timer.start()
    timer.tick(750)
    assert timer.progress() == 50.0


def test_completed_focus_plants_tree_and_starts_break(timer, forest, clock):
    timer.start(task_id="t1", workspace_id="default")
    clock.advance(minutes=25)
    session = timer.tick(25 * 60)

    assert session is not None
    assert session.completed is True
    assert session.duration == 25
    assert session.task_id == "t1"
    assert session.workspace_id == "default"
    assert forest.get_stats().trees_planted == 1

    assert timer.mode == BREAK
    assert timer.status == IDLE
    assert timer.duration_minutes == 5
    assert timer.completed_sessions == 1


def test_break_completion_returns_to_focus_without_session(timer, forest):
    timer.start()
    timer.tick(25 * 60)
    timer.start()
    assert timer.tick(5 * 60) is None
    assert timer.mode == FOCUS
    assert timer.duration_minutes == 25
    assert len(forest.get_sessions()) == 1


def test_stop_records_nothing(timer, forest):
    timer.start()
    timer.tick(20 * 60)
    timer.stop()
    assert timer.status == IDLE
    assert timer.format_time() == "25:00"
    assert forest.get_sessions() == []
    assert forest.get_trees() == []


def test_session_dated_by_start_day(timer, clock):
    clock.set(clock().replace(hour=23, minute=50))
    timer.start()
    clock.advance(minutes=25)
    session = timer.tick(25 * 60)
    assert session.date == "2026-03-02"


def test_on_complete_callback(forest):
    calls = []
    timer = FocusTimer(forest, on_complete=lambda mode, session: calls.append((mode, session)))
    timer.start()
    session = timer.tick(25 * 60)
    timer.start()
    timer.tick(5 * 60)
    assert calls == [("focus", session), ("break", None)]


def test_failing_callback_does_not_lose_session(forest):
    def broken(mode, session):
        raise RuntimeError("boom")

    timer = FocusTimer(forest, on_complete=broken)
    timer.start()
    assert timer.tick(25 * 60) is not None
    assert forest.get_stats().total_sessions == 1
