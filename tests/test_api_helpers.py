# tests/test_api_helpers.py

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from taskkeeper.core.errors import ValidationError
from taskkeeper.goals.goal_api import average_active_progress, days_left, days_left_text
from taskkeeper.goals.goal_models import Goal, GoalStatus
from taskkeeper.tasks.task_api import (
    completed_on,
    completed_this_week,
    filter_tasks,
    repeat_text,
    time_left_text,
)
from taskkeeper.tasks.task_models import RepeatType, Task, TaskPriority, TaskStatus

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def _task(task_id: str, **overrides) -> Task:
    base = Task(
        id=task_id,
        title=task_id,
        description="",
        status=TaskStatus.PENDING,
        priority=TaskPriority.MEDIUM,
        created_at=NOW,
        updated_at=NOW,
    )
    return replace(base, **overrides)


def _goal(goal_id: str, **overrides) -> Goal:
    base = Goal(
        id=goal_id,
        title=goal_id,
        description="",
        status=GoalStatus.ACTIVE,
        progress=0,
        created_at=NOW,
        updated_at=NOW,
    )
    return replace(base, **overrides)


def test_filter_tasks() -> None:
    tasks = [
        _task("p", priority=TaskPriority.HIGH),
        _task("c", status=TaskStatus.COMPLETED),
        _task("tpl", is_repeat_template=True, repeat_type=RepeatType.DAILY),
        _task("inst", repeat_type=RepeatType.DAILY, parent_template_id="tpl"),
    ]
    assert [t.id for t in filter_tasks(tasks)] == ["p", "c", "inst"]
    assert [t.id for t in filter_tasks(tasks, "completed")] == ["c"]
    assert [t.id for t in filter_tasks(tasks, "HIGH")] == ["p"]
    assert [t.id for t in filter_tasks(tasks, "templates")] == ["tpl"]
    assert [t.id for t in filter_tasks(tasks, "repeating")] == ["inst"]
    assert [t.id for t in filter_tasks(tasks, "single")] == ["p", "c"]
    with pytest.raises(ValidationError):
        filter_tasks(tasks, "someday")


def test_time_left_text() -> None:
    assert time_left_text(_task("a"), NOW) == ""
    assert time_left_text(_task("a", deadline=NOW + timedelta(days=2, hours=3, minutes=5)), NOW) == "2d 3h"
    assert time_left_text(_task("a", deadline=NOW + timedelta(hours=5, minutes=10)), NOW) == "5h 10m"
    assert time_left_text(_task("a", deadline=NOW + timedelta(minutes=42, seconds=30)), NOW) == "42m"
    assert time_left_text(_task("a", deadline=NOW), NOW) == "overdue"


def test_repeat_text() -> None:
    assert repeat_text(_task("a", repeat_type=RepeatType.DAILY)) == "daily"
    assert repeat_text(_task("a", repeat_type=RepeatType.WEEKLY, repeat_interval=2)) == "every 2 weeks"
    assert repeat_text(_task("a", repeat_type=RepeatType.MONTHLY, repeat_interval=3)) == "every 3 months"
    assert repeat_text(_task("a", repeat_type=RepeatType.CUSTOM, repeat_interval=10)) == "every 10 day(s)"
    assert repeat_text(_task("a")) == "once"


def test_completed_counts() -> None:
    tasks = [
        _task("today", status=TaskStatus.COMPLETED, completed_at=NOW - timedelta(hours=1)),
        _task("lastweek", status=TaskStatus.COMPLETED, completed_at=NOW - timedelta(days=6)),
        _task("old", status=TaskStatus.COMPLETED, completed_at=NOW - timedelta(days=30)),
        # reopened: completed_at is kept but it no longer counts
        _task("reopened", status=TaskStatus.PENDING, completed_at=NOW - timedelta(hours=2)),
    ]
    assert [t.id for t in completed_on(tasks, NOW.date())] == ["today"]
    assert [t.id for t in completed_this_week(tasks, NOW)] == ["today", "lastweek"]


def test_days_left() -> None:
    assert days_left(NOW + timedelta(days=3), NOW) == 3
    assert days_left(NOW + timedelta(days=2, hours=1), NOW) == 3
    assert days_left(NOW - timedelta(days=2), NOW) == -2

    assert days_left_text(_goal("g"), NOW) == ""
    assert days_left_text(_goal("g", target_date=NOW + timedelta(days=5)), NOW) == "5 days left"
    assert days_left_text(_goal("g", target_date=NOW + timedelta(hours=20)), NOW) == "due tomorrow"
    assert days_left_text(_goal("g", target_date=NOW), NOW) == "due today"
    assert days_left_text(_goal("g", target_date=NOW - timedelta(days=1)), NOW) == "overdue by 1 day(s)"


def test_average_active_progress() -> None:
    goals = [
        _goal("a", progress=50),
        _goal("b", progress=25),
        _goal("c", progress=100, status=GoalStatus.COMPLETED),
    ]
    # 37.5 rounds up
    assert average_active_progress(goals) == 38
    assert average_active_progress([]) == 0
