# src/taskkeeper/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the stores.

TaskStore/GoalStore depend on the PersistenceBackend Protocol only. There are
two concrete backends (local SQLite cache, remote REST API) and the
SyncCoordinator, which implements the same Protocol by delegating to whichever
backend is active.
"""

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..goals.goal_models import Goal, GoalPatch
    from ..storage.records import Snapshot, Statistics
    from ..sync.coordinator import SyncMode
    from ..tasks.task_models import Task, TaskFilter, TaskPatch


class PersistenceBackend(Protocol):
    """
    Durable storage for one user's tasks, goals, settings and statistics.

    Failure modes:
    - ConnectivityError: backend unreachable (fallback trigger for the coordinator)
    - ValidationError: rejected input
    - NotFoundError: unknown id
    """

    name: str

    async def check_connection(self) -> bool: ...

    # Tasks
    async def list_tasks(self, filter: TaskFilter | None = None) -> list[Task]: ...
    async def get_task(self, task_id: str) -> Task: ...
    async def create_task(self, task: Task) -> Task: ...
    async def update_task(self, task_id: str, patch: TaskPatch) -> Task: ...
    async def delete_task(self, task_id: str) -> None: ...

    # Goals
    async def list_goals(self, status: str | None = None) -> list[Goal]: ...
    async def get_goal(self, goal_id: str) -> Goal: ...
    async def create_goal(self, goal: Goal) -> Goal: ...
    async def update_goal(self, goal_id: str, patch: GoalPatch) -> Goal: ...
    async def delete_goal(self, goal_id: str) -> None: ...

    # Settings
    async def get_settings(self) -> dict[str, Any]: ...
    async def put_setting(self, key: str, value: Any) -> None: ...

    # Statistics
    async def get_statistics(self) -> Statistics: ...
    async def update_statistics(self, patch: Mapping[str, Any]) -> Statistics: ...
    async def increment_statistic(self, name: str, amount: int = 1) -> Statistics: ...

    # Import / export
    async def export_all(self) -> Snapshot: ...
    async def import_all(self, snapshot: Snapshot) -> None: ...

    async def close(self) -> None: ...


ModeListener = Callable[["SyncMode", "SyncMode"], None]
# Called with (old_mode, new_mode) whenever the coordinator switches backends.
