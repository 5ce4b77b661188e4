# src/taskkeeper/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the local cache, the optional remote API and the sync coordinator
  into the stores, and the stores into AppState,
- starts and stops a session (initial connectivity check, first load).
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..core.state import AppState
from ..goals.goal_store import GoalStore
from ..storage.local_backend import LocalBackend
from ..storage.remote_backend import RemoteBackend
from ..sync.coordinator import SyncCoordinator, SyncMode
from ..tasks.task_scheduler import SweepScheduler
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.local_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    local = LocalBackend(settings.local_db_path, user_id=settings.user_id)
    remote: RemoteBackend | None = None
    if settings.api_url:
        remote = RemoteBackend(
            settings.api_url,
            token=settings.api_token,
            timeout_s=settings.http_timeout_seconds,
        )

    coordinator = SyncCoordinator(local, remote)
    task_store = TaskStore(coordinator)
    goal_store = GoalStore(coordinator, task_store)

    state = AppState(
        settings=settings,
        backend=coordinator,
        task_store=task_store,
        goal_store=goal_store,
        scheduler=SweepScheduler(
            task_store,
            goal_store,
            interval_seconds=settings.sweep_interval_seconds,
        ),
    )

    def _on_mode_change(old: SyncMode, new: SyncMode) -> None:
        if new is SyncMode.LOCAL and old is SyncMode.REMOTE:
            state.notify("Remote API unreachable; working on the local cache. Use /sync reconnect later.")
        elif new is SyncMode.REMOTE:
            state.notify("Using the remote API.")

    coordinator.add_listener(_on_mode_change)
    return state


async def start_session(state: AppState) -> None:
    """Pick the backend, then run the first load (which also sweeps)."""
    mode = await state.backend.start()
    await state.task_store.load()
    await state.goal_store.load()
    logger.info(
        "Session ready mode=%s tasks=%d goals=%d",
        mode.value,
        len(state.task_store.tasks),
        len(state.goal_store.goals),
    )


async def shutdown_session(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if state.scheduler is not None:
        try:
            await state.scheduler.drain()
        except Exception:
            logger.exception("In-flight sweep failed during shutdown.")

    try:
        await state.backend.close()
    except Exception:
        logger.exception("Failed to close storage backends.")
