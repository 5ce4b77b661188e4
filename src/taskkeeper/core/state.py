# src/taskkeeper/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..goals.goal_store import GoalStore
    from ..sync.coordinator import SyncCoordinator
    from ..tasks.task_scheduler import SweepScheduler
    from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    """
    Per-session context, built once by the composition root and passed to
    every command and helper. There are no module-level store instances.
    """

    # Store Settings on the state for easy access in other modules later.
    settings: Any

    backend: SyncCoordinator
    task_store: TaskStore
    goal_store: GoalStore
    scheduler: SweepScheduler | None = None

    # User-visible notices (e.g. "switched to local cache"), drained by the console.
    notices: list[str] = field(default_factory=list)

    def notify(self, text: str) -> None:
        self.notices.append(text)

    def drain_notices(self) -> list[str]:
        out, self.notices = self.notices, []
        return out
