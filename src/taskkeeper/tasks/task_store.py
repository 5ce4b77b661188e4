# src/taskkeeper/tasks/task_store.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from ..core.clock import Clock, utc_now
from ..core.errors import NotFoundError, ValidationError
from ..core.ports import PersistenceBackend
from ..storage.records import advance_streak
from .recurrence import initial_next_due_date, sweep
from .task_models import (
    RepeatType,
    Task,
    TaskDraft,
    TaskPatch,
    TaskStatus,
    new_task_id,
    sort_tasks,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Session-owned task list.

    Every mutation goes through the PersistenceBackend and is followed by a
    reload, so `tasks` always reflects the backend after the last sweep.

    Loads are serialized: a load requested while another one is in flight
    waits for it and then re-fetches, so one due cycle is never spawned twice.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        *,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = new_task_id,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._id_factory = id_factory
        self._tasks: list[Task] = []
        self._lock = asyncio.Lock()

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def is_loading(self) -> bool:
        return self._lock.locked()

    def get(self, task_id: str) -> Task:
        for task in self._tasks:
            if task.id == task_id:
                return task
        raise NotFoundError("task", task_id)

    def instances_of(self, template_id: str) -> list[Task]:
        return [t for t in self._tasks if t.parent_template_id == template_id]

    async def load(self, now: datetime | None = None) -> list[Task]:
        async with self._lock:
            now = now or self._clock()
            fetched = await self._backend.list_tasks()
            result = sweep(fetched, now, id_factory=self._id_factory)

            for task in result.expired:
                await self._backend.update_task(
                    task.id, TaskPatch(status=TaskStatus.EXPIRED, updated_at=now)
                )

            # Templates advance before their instances are written: an
            # interrupted load can miss an instance, never duplicate one.
            for template in result.templates:
                await self._backend.update_task(
                    template.id,
                    TaskPatch(
                        is_repeat_template=template.is_repeat_template,
                        next_due_date=template.next_due_date,
                        updated_at=now,
                    ),
                )
            for instance in result.spawned:
                await self._backend.create_task(instance)

            if result.changed:
                logger.info(
                    "Sweep: expired=%d templates=%d spawned=%d",
                    len(result.expired),
                    len(result.templates),
                    len(result.spawned),
                )

            self._tasks = sort_tasks(result.tasks)
            return list(self._tasks)

    async def create(self, draft: TaskDraft | Mapping[str, Any]) -> Task:
        if isinstance(draft, Mapping):
            draft = TaskDraft.from_mapping(draft)
        else:
            draft = draft.validate()

        now = self._clock()
        repeat_type = draft.repeat_type
        if repeat_type is not RepeatType.NONE and draft.deadline is None:
            logger.info("Recurrence ignored for task without a deadline title=%r", draft.title)
            repeat_type = RepeatType.NONE
        recurring = repeat_type is not RepeatType.NONE
        task = Task(
            id=self._id_factory(),
            title=draft.title,
            description=draft.description,
            status=TaskStatus.PENDING,
            priority=draft.priority,
            created_at=now,
            updated_at=now,
            deadline=draft.deadline,
            goal_id=draft.goal_id,
            is_repeat_template=recurring,
            repeat_type=repeat_type,
            repeat_interval=draft.repeat_interval,
            repeat_end_date=draft.repeat_end_date,
            next_due_date=initial_next_due_date(draft.deadline) if recurring else None,
        )
        created = await self._backend.create_task(task)
        logger.info("Task created id=%s title=%r recurring=%s", created.id, created.title, recurring)
        await self.load(now)
        return created

    async def update(self, task_id: str, patch: TaskPatch | Mapping[str, Any]) -> Task:
        if isinstance(patch, Mapping):
            patch = TaskPatch.from_user(patch)
        if patch.is_empty():
            raise ValidationError("no fields to update")

        current = await self._backend.get_task(task_id)
        now = self._clock()
        patch = patch.merged(updated_at=now)

        if current.is_repeat_template and "status" in patch.changes() and patch.status is not current.status:
            raise ValidationError("a recurring template has no status of its own; update its instances")

        if "repeat_type" in patch.changes() and not current.is_instance:
            patch = self._rederive_recurrence(current, patch)

        completing = patch.status is TaskStatus.COMPLETED and current.status is not TaskStatus.COMPLETED
        if completing and current.completed_at is None:
            patch = patch.merged(completed_at=now)

        updated = await self._backend.update_task(task_id, patch)

        if completing:
            await self._backend.increment_statistic("total_tasks_completed")
            await self._record_activity(now)
            logger.info("Task completed id=%s", task_id)

        await self.load(now)
        return updated

    @staticmethod
    def _rederive_recurrence(current: Task, patch: TaskPatch) -> TaskPatch:
        repeat_type = patch.repeat_type
        if repeat_type is RepeatType.NONE:
            return patch.merged(is_repeat_template=False, next_due_date=None)
        if current.is_repeat_template:
            return patch
        deadline = patch.changes().get("deadline", current.deadline)
        if deadline is None:
            logger.info("Recurrence ignored for task without a deadline id=%s", current.id)
            return patch.merged(repeat_type=RepeatType.NONE, is_repeat_template=False, next_due_date=None)
        return patch.merged(
            is_repeat_template=True,
            next_due_date=initial_next_due_date(deadline),
        )

    async def _record_activity(self, now: datetime) -> None:
        stats = await self._backend.get_statistics()
        changes = advance_streak(stats, now.date())
        if changes:
            await self._backend.update_statistics(changes)

    async def delete(self, task_id: str, *, cascade: bool = False) -> int:
        """
        Delete one task; with cascade=True also every instance of a template.

        Returns the number of deleted records.
        """
        current = await self._backend.get_task(task_id)
        deleted = 0

        if cascade and current.is_repeat_template:
            for task in await self._backend.list_tasks():
                if task.parent_template_id == task_id:
                    await self._backend.delete_task(task.id)
                    deleted += 1

        await self._backend.delete_task(task_id)
        deleted += 1
        logger.info("Task deleted id=%s cascade=%s removed=%d", task_id, cascade, deleted)
        await self.load()
        return deleted
