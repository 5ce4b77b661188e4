# src/taskkeeper/tasks/task_scheduler.py

from __future__ import annotations

"""
Sweep scheduler.

A small polling loop that, every interval:
- reloads the task list (expire overdue instances, materialize due templates),
- reloads goals so progress follows the new task state.

Each sweep runs as its own asyncio task. While one is in flight, further
ticks are skipped: two overlapping loads could spawn the same due cycle twice.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from .task_store import TaskStore

if TYPE_CHECKING:
    from ..goals.goal_store import GoalStore

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(
        self,
        task_store: TaskStore,
        goal_store: GoalStore | None = None,
        *,
        interval_seconds: float = 60.0,
    ) -> None:
        self._task_store = task_store
        self._goal_store = goal_store
        self._interval_s = max(0.5, float(interval_seconds))
        self._in_flight = False
        self._current: asyncio.Task[bool] | None = None
        self.sweeps_run = 0
        self.ticks_skipped = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def sweep_once(self) -> bool:
        """Run one sweep. Returns False if skipped (another sweep in flight) or failed."""
        if self._in_flight:
            self.ticks_skipped += 1
            logger.debug("Sweep already in flight; skipping tick")
            return False

        self._in_flight = True
        try:
            await self._task_store.load()
            if self._goal_store is not None:
                await self._goal_store.load()
            self.sweeps_run += 1
            return True
        except Exception:
            logger.exception("Sweep failed")
            return False
        finally:
            self._in_flight = False

    def tick(self) -> asyncio.Task[bool] | None:
        """Launch a sweep in the background unless one is still running."""
        if self._in_flight:
            self.ticks_skipped += 1
            logger.debug("Sweep already in flight; skipping tick")
            return None
        self._current = asyncio.create_task(self.sweep_once(), name="taskkeeper-sweep")
        return self._current

    async def drain(self) -> None:
        """Wait for the sweep launched by the last tick, if it is still running."""
        current = self._current
        if current is None or current.done():
            return
        logger.info("Waiting for in-flight sweep to finish")
        await current

    async def run(self) -> None:
        """
        Tick forever. To stop the scheduler, cancel the coroutine/task.

        Cancelling stops the ticking only; await `drain` to let a running sweep finish.
        """
        logger.info("Sweep scheduler started interval=%.1fs", self._interval_s)
        while True:
            self.tick()
            await asyncio.sleep(self._interval_s)


async def run_sweep_scheduler(
        task_store: TaskStore,
        goal_store: GoalStore | None = None,
        *,
        interval_seconds: float = 60.0,
) -> None:
    await SweepScheduler(task_store, goal_store, interval_seconds=interval_seconds).run()
