# src/taskkeeper/goals/goal_store.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from ..core.clock import Clock, utc_now
from ..core.errors import NotFoundError, ValidationError
from ..core.ports import PersistenceBackend
from ..tasks.task_models import Task, TaskFilter, TaskPatch, TaskStatus
from ..tasks.task_store import TaskStore
from .goal_models import Goal, GoalDraft, GoalPatch, GoalStatus, new_goal_id

logger = logging.getLogger(__name__)


def progress_for(goal_id: str, tasks: Iterable[Task]) -> int:
    """
    Percentage of completed tasks linked to the goal, rounded half-up.

    Templates are not actionable and do not count; no linked tasks -> 0.
    """
    linked = [t for t in tasks if t.goal_id == goal_id and not t.is_repeat_template]
    if not linked:
        return 0
    done = sum(1 for t in linked if t.status is TaskStatus.COMPLETED)
    total = len(linked)
    return (200 * done + total) // (2 * total)


class GoalStore:
    """
    Session-owned goal list.

    Progress is derived from the TaskStore snapshot on every load. The
    TaskStore is only read here, except when a goal is deleted and its
    tasks have to be unlinked.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        task_store: TaskStore,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._backend = backend
        self._task_store = task_store
        self._clock = clock
        self._goals: list[Goal] = []
        self._lock = asyncio.Lock()

    @property
    def goals(self) -> list[Goal]:
        return list(self._goals)

    def get(self, goal_id: str) -> Goal:
        for goal in self._goals:
            if goal.id == goal_id:
                return goal
        raise NotFoundError("goal", goal_id)

    def linked_tasks(self, goal_id: str) -> list[Task]:
        return [t for t in self._task_store.tasks if t.goal_id == goal_id]

    async def load(self, now: datetime | None = None) -> list[Goal]:
        async with self._lock:
            now = now or self._clock()
            goals = await self._backend.list_goals()
            tasks = self._task_store.tasks

            refreshed: list[Goal] = []
            for goal in goals:
                progress = progress_for(goal.id, tasks)
                changes: dict[str, Any] = {}
                if progress != goal.progress:
                    changes["progress"] = progress
                completing = progress == 100 and goal.status is GoalStatus.ACTIVE
                if completing:
                    changes["status"] = GoalStatus.COMPLETED
                    if goal.completed_at is None:
                        changes["completed_at"] = now

                if not changes:
                    refreshed.append(goal)
                    continue

                updated = await self._backend.update_goal(goal.id, GoalPatch(**changes, updated_at=now))
                if completing:
                    await self._backend.increment_statistic("total_goals_completed")
                    logger.info("Goal auto-completed id=%s title=%r", goal.id, goal.title)
                refreshed.append(updated)

            self._goals = refreshed
            return list(self._goals)

    async def create(self, draft: GoalDraft | Mapping[str, Any]) -> Goal:
        if isinstance(draft, Mapping):
            draft = GoalDraft.from_mapping(draft)
        else:
            draft = draft.validate()

        now = self._clock()
        goal = Goal(
            id=new_goal_id(),
            title=draft.title,
            description=draft.description,
            status=GoalStatus.ACTIVE,
            progress=0,
            created_at=now,
            updated_at=now,
            target_date=draft.target_date,
            category=draft.category,
            priority=draft.priority,
        )
        created = await self._backend.create_goal(goal)
        logger.info("Goal created id=%s title=%r", created.id, created.title)
        await self.load(now)
        return created

    async def update(self, goal_id: str, patch: GoalPatch | Mapping[str, Any]) -> Goal:
        """
        Apply a user patch.

        An explicit `progress` is stored as given; the next load() recomputes
        it from the linked tasks.
        """
        if isinstance(patch, Mapping):
            patch = GoalPatch.from_user(patch)
        if patch.is_empty():
            raise ValidationError("no fields to update")

        current = await self._backend.get_goal(goal_id)
        now = self._clock()
        patch = patch.merged(updated_at=now)
        changes = patch.changes()

        status = changes.get("status", current.status)
        if changes.get("progress") == 100 and status is GoalStatus.ACTIVE:
            status = GoalStatus.COMPLETED
            patch = patch.merged(status=status)

        completing = status is GoalStatus.COMPLETED and current.status is not GoalStatus.COMPLETED
        if completing and current.completed_at is None:
            patch = patch.merged(completed_at=now)

        updated = await self._backend.update_goal(goal_id, patch)
        if completing:
            await self._backend.increment_statistic("total_goals_completed")
            logger.info("Goal completed id=%s", goal_id)

        self._goals = [updated if g.id == goal_id else g for g in self._goals]
        if not any(g.id == goal_id for g in self._goals):
            self._goals.append(updated)
        return updated

    async def delete(self, goal_id: str) -> int:
        """Delete a goal and unlink its tasks (tasks are kept). Returns the unlinked count."""
        await self._backend.get_goal(goal_id)
        now = self._clock()

        linked = await self._backend.list_tasks(TaskFilter(goal_id=goal_id))
        for task in linked:
            await self._backend.update_task(task.id, TaskPatch(goal_id=None, updated_at=now))

        await self._backend.delete_goal(goal_id)
        logger.info("Goal deleted id=%s unlinked_tasks=%d", goal_id, len(linked))

        await self._task_store.load(now)
        await self.load(now)
        return len(linked)
