# src/taskkeeper/goals/goal_api.py

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime

from ..core.clock import utc_now
from ..core.state import AppState
from .goal_models import Goal, GoalPatch, GoalStatus


async def complete_goal(state: AppState, goal_id: str) -> Goal:
    return await state.goal_store.update(goal_id, GoalPatch(status=GoalStatus.COMPLETED, progress=100))


async def pause_goal(state: AppState, goal_id: str) -> Goal:
    return await state.goal_store.update(goal_id, GoalPatch(status=GoalStatus.PAUSED))


async def resume_goal(state: AppState, goal_id: str) -> Goal:
    return await state.goal_store.update(goal_id, GoalPatch(status=GoalStatus.ACTIVE))


async def archive_goal(state: AppState, goal_id: str) -> Goal:
    return await state.goal_store.update(goal_id, GoalPatch(status=GoalStatus.ARCHIVED))


def days_left(target: datetime, now: datetime | None = None) -> int:
    """Whole days until `target`, rounded up; negative when past."""
    now = now or utc_now()
    return math.ceil((target - now).total_seconds() / 86400)


def days_left_text(goal: Goal, now: datetime | None = None) -> str:
    if goal.target_date is None:
        return ""
    n = days_left(goal.target_date, now)
    if n < 0:
        return f"overdue by {abs(n)} day(s)"
    if n == 0:
        return "due today"
    if n == 1:
        return "due tomorrow"
    return f"{n} days left"


def average_active_progress(goals: Iterable[Goal]) -> int:
    active = [g for g in goals if g.status is GoalStatus.ACTIVE]
    if not active:
        return 0
    total = sum(g.progress for g in active)
    return (2 * total + len(active)) // (2 * len(active))
