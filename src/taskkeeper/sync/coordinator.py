# src/taskkeeper/sync/coordinator.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.errors import ConnectivityError, ValidationError
from ..core.ports import ModeListener, PersistenceBackend
from ..goals.goal_models import Goal, GoalPatch
from ..storage.records import Snapshot, Statistics
from ..tasks.task_models import Task, TaskFilter, TaskPatch

logger = logging.getLogger(__name__)


class SyncMode(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class MigrationDirection(StrEnum):
    PUSH = "push"  # local cache -> remote API
    PULL = "pull"  # remote API -> local cache


@dataclass(slots=True, frozen=True)
class MigrationPlan:
    direction: MigrationDirection
    source: str
    destination: str
    source_tasks: int
    source_goals: int
    destination_tasks: int
    destination_goals: int

    def describe(self) -> str:
        return (
            f"Copy {self.source_tasks} task(s) and {self.source_goals} goal(s) "
            f"from {self.source} to {self.destination}. "
            f"This replaces {self.destination_tasks} task(s) and "
            f"{self.destination_goals} goal(s) currently stored in {self.destination}."
        )


ConfirmFn = Callable[[MigrationPlan], "bool | Awaitable[bool]"]


class SyncCoordinator:
    """
    PersistenceBackend that routes every call to the active backend.

    State machine:
    - start(): REMOTE iff a remote backend is configured and reachable
    - REMOTE -> LOCAL: any call failing with ConnectivityError; the same call
      is retried once against the local cache and the mode stays LOCAL
    - LOCAL -> REMOTE: only via reconnect(); nothing is uploaded automatically

    Validation/not-found/conflict errors are never a fallback trigger.
    """

    def __init__(
        self,
        local: PersistenceBackend,
        remote: PersistenceBackend | None = None,
        *,
        on_mode_change: ModeListener | None = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._mode = SyncMode.LOCAL
        self._listeners: list[ModeListener] = []
        if on_mode_change is not None:
            self._listeners.append(on_mode_change)

    # ---- state ----

    @property
    def mode(self) -> SyncMode:
        return self._mode

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    @property
    def active(self) -> PersistenceBackend:
        if self._mode is SyncMode.REMOTE and self._remote is not None:
            return self._remote
        return self._local

    @property
    def name(self) -> str:
        return f"sync:{self._mode.value}"

    def add_listener(self, listener: ModeListener) -> None:
        self._listeners.append(listener)

    def _set_mode(self, new: SyncMode, reason: str) -> None:
        old = self._mode
        if old is new:
            return
        self._mode = new
        logger.info("Sync mode %s -> %s (%s)", old.value, new.value, reason)
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                logger.exception("Mode listener failed")

    async def start(self) -> SyncMode:
        if self._remote is None:
            logger.info("No remote backend configured; using local cache")
            self._set_mode(SyncMode.LOCAL, "no remote configured")
            return self._mode

        if await self._remote.check_connection():
            self._set_mode(SyncMode.REMOTE, "startup check ok")
        else:
            logger.warning("Remote backend unreachable at startup; using local cache")
            self._set_mode(SyncMode.LOCAL, "startup check failed")
        return self._mode

    async def reconnect(self) -> bool:
        """Explicit LOCAL -> REMOTE transition. No data is reconciled."""
        if self._remote is None:
            return False
        if not await self._remote.check_connection():
            logger.info("Reconnect failed; staying in %s mode", self._mode.value)
            return False
        self._set_mode(SyncMode.REMOTE, "reconnect")
        return True

    async def check_connection(self) -> bool:
        return await self.active.check_connection()

    async def _call(self, op: str, *args: Any, **kwargs: Any) -> Any:
        backend = self.active
        try:
            return await getattr(backend, op)(*args, **kwargs)
        except ConnectivityError as e:
            if backend is self._local:
                raise
            logger.warning("Remote %s failed (%s); falling back to local cache", op, e)
            self._set_mode(SyncMode.LOCAL, f"{op} failed")
        return await getattr(self._local, op)(*args, **kwargs)

    # ---- PersistenceBackend ----

    async def list_tasks(self, filter: TaskFilter | None = None) -> list[Task]:
        return await self._call("list_tasks", filter)

    async def get_task(self, task_id: str) -> Task:
        return await self._call("get_task", task_id)

    async def create_task(self, task: Task) -> Task:
        return await self._call("create_task", task)

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        return await self._call("update_task", task_id, patch)

    async def delete_task(self, task_id: str) -> None:
        await self._call("delete_task", task_id)

    async def list_goals(self, status: str | None = None) -> list[Goal]:
        return await self._call("list_goals", status)

    async def get_goal(self, goal_id: str) -> Goal:
        return await self._call("get_goal", goal_id)

    async def create_goal(self, goal: Goal) -> Goal:
        return await self._call("create_goal", goal)

    async def update_goal(self, goal_id: str, patch: GoalPatch) -> Goal:
        return await self._call("update_goal", goal_id, patch)

    async def delete_goal(self, goal_id: str) -> None:
        await self._call("delete_goal", goal_id)

    async def get_settings(self) -> dict[str, Any]:
        return await self._call("get_settings")

    async def put_setting(self, key: str, value: Any) -> None:
        await self._call("put_setting", key, value)

    async def get_statistics(self) -> Statistics:
        return await self._call("get_statistics")

    async def update_statistics(self, patch: Mapping[str, Any]) -> Statistics:
        return await self._call("update_statistics", patch)

    async def increment_statistic(self, name: str, amount: int = 1) -> Statistics:
        return await self._call("increment_statistic", name, amount)

    async def export_all(self) -> Snapshot:
        return await self._call("export_all")

    async def import_all(self, snapshot: Snapshot) -> None:
        await self._call("import_all", snapshot)

    async def close(self) -> None:
        if self._remote is not None:
            try:
                await self._remote.close()
            except Exception:
                logger.exception("Failed to close remote backend")
        await self._local.close()

    # ---- migration ----

    def _endpoints(self, direction: MigrationDirection) -> tuple[PersistenceBackend, PersistenceBackend]:
        if self._remote is None:
            raise ValidationError("no remote backend configured")
        if direction is MigrationDirection.PUSH:
            return self._local, self._remote
        return self._remote, self._local

    async def plan_migration(self, direction: MigrationDirection) -> tuple[MigrationPlan, Snapshot]:
        source, destination = self._endpoints(direction)
        snapshot = await source.export_all()
        dest_tasks = await destination.list_tasks()
        dest_goals = await destination.list_goals()
        plan = MigrationPlan(
            direction=direction,
            source=source.name,
            destination=destination.name,
            source_tasks=len(snapshot.tasks),
            source_goals=len(snapshot.goals),
            destination_tasks=len(dest_tasks),
            destination_goals=len(dest_goals),
        )
        return plan, snapshot

    async def migrate(self, direction: MigrationDirection | str, confirm: ConfirmFn) -> bool:
        """
        Replace the destination's data with the source's, after confirmation.

        Both ends are addressed directly (no fallback): a connectivity failure
        aborts the migration and propagates. Returns False when declined.
        """
        direction = MigrationDirection(direction)
        plan, snapshot = await self.plan_migration(direction)

        approved = confirm(plan)
        if inspect.isawaitable(approved):
            approved = await approved
        if not approved:
            logger.info("Migration %s declined", direction.value)
            return False

        _, destination = self._endpoints(direction)
        await destination.import_all(snapshot)
        logger.info(
            "Migration %s done: %d task(s), %d goal(s) %s -> %s",
            direction.value,
            plan.source_tasks,
            plan.source_goals,
            plan.source,
            plan.destination,
        )
        return True
