# src/taskkeeper/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from ..core.clock import utc_now
from ..core.errors import ValidationError
from ..core.state import AppState
from .task_models import RepeatType, Task, TaskPatch, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

FILTER_NAMES = (
    "all",
    "pending",
    "completed",
    "expired",
    "failed",
    "high",
    "medium",
    "low",
    "repeating",
    "single",
    "templates",
)


async def _set_status(state: AppState, task_id: str, status: TaskStatus) -> Task:
    """
    Status change followed by a goal refresh, since progress derives from task status.
    Uses state.task_store / state.goal_store (already constructed in bootstrap).
    """
    task = await state.task_store.update(task_id, TaskPatch(status=status))
    await state.goal_store.load()
    return task


async def complete_task(state: AppState, task_id: str) -> Task:
    return await _set_status(state, task_id, TaskStatus.COMPLETED)


async def fail_task(state: AppState, task_id: str) -> Task:
    return await _set_status(state, task_id, TaskStatus.FAILED)


async def reactivate_task(state: AppState, task_id: str) -> Task:
    """Back to pending. completed_at is kept: it records the first completion only."""
    return await _set_status(state, task_id, TaskStatus.PENDING)


def actionable(tasks: Iterable[Task]) -> list[Task]:
    return [t for t in tasks if not t.is_repeat_template]


def filter_tasks(tasks: Iterable[Task], name: str = "all") -> list[Task]:
    key = (name or "all").strip().lower()
    items = list(tasks)

    if key == "all":
        return actionable(items)
    if key == "templates":
        return [t for t in items if t.is_repeat_template]
    if key in {s.value for s in TaskStatus}:
        return [t for t in actionable(items) if t.status == key]
    if key in {p.value for p in TaskPriority}:
        return [t for t in actionable(items) if t.priority == key]
    if key == "repeating":
        return [t for t in actionable(items) if t.repeat_type is not RepeatType.NONE]
    if key == "single":
        return [t for t in actionable(items) if t.repeat_type is RepeatType.NONE]

    raise ValidationError(f"unknown filter: {name} (expected one of: {', '.join(FILTER_NAMES)})")


def completed_on(tasks: Iterable[Task], day: date) -> list[Task]:
    return [
        t
        for t in tasks
        if t.status is TaskStatus.COMPLETED and t.completed_at is not None and t.completed_at.date() == day
    ]


def completed_since(tasks: Iterable[Task], since: datetime) -> list[Task]:
    return [
        t
        for t in tasks
        if t.status is TaskStatus.COMPLETED and t.completed_at is not None and t.completed_at >= since
    ]


def completed_this_week(tasks: Iterable[Task], now: datetime | None = None) -> list[Task]:
    now = now or utc_now()
    return completed_since(tasks, now - timedelta(days=7))


def time_left_text(task: Task, now: datetime | None = None) -> str:
    """Short countdown to the deadline: '2d 3h', '5h 10m', '42m', or 'overdue'."""
    if task.deadline is None:
        return ""
    now = now or utc_now()
    left = task.deadline - now
    if left <= timedelta(0):
        return "overdue"

    minutes_total = int(left.total_seconds() // 60)
    days, rem = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(rem, 60)
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def repeat_text(task: Task) -> str:
    n = task.repeat_interval
    if task.repeat_type is RepeatType.DAILY:
        return "daily" if n == 1 else f"every {n} days"
    if task.repeat_type is RepeatType.WEEKLY:
        return "weekly" if n == 1 else f"every {n} weeks"
    if task.repeat_type is RepeatType.MONTHLY:
        return "monthly" if n == 1 else f"every {n} months"
    if task.repeat_type is RepeatType.CUSTOM:
        return f"every {n} day(s)"
    return "once"
