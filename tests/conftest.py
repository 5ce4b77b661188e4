# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskkeeper.core.state import AppState
from taskkeeper.goals.goal_store import GoalStore
from taskkeeper.storage.local_backend import LocalBackend
from taskkeeper.sync.coordinator import SyncCoordinator
from taskkeeper.tasks.task_scheduler import SweepScheduler
from taskkeeper.tasks.task_store import TaskStore

from .fakes import FakeClock, InMemoryBackend, SequentialIds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture()
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture()
def local_backend(tmp_path: Path, clock: FakeClock) -> LocalBackend:
    return LocalBackend(tmp_path / "cache.sqlite3", clock=clock)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskkeeper-test",
        data_dir=tmp_path,
        local_db_path=tmp_path / "cache.sqlite3",
        api_url=None,
        api_token=None,
        user_id="local",
        sweep_interval_seconds=60.0,
        console_enabled=False,
    )


@pytest.fixture()
def state(settings: SimpleNamespace, local_backend: LocalBackend, clock: FakeClock, ids: SequentialIds) -> AppState:
    """
    AppState wired around a real SQLite cache (no remote configured).

    NOTE: We keep the real LocalBackend here because its correctness is
    part of what we want to test.
    """
    coordinator = SyncCoordinator(local_backend)
    task_store = TaskStore(coordinator, clock=clock, id_factory=ids)
    goal_store = GoalStore(coordinator, task_store, clock=clock)
    return AppState(
        settings=settings,
        backend=coordinator,
        task_store=task_store,
        goal_store=goal_store,
        scheduler=SweepScheduler(task_store, goal_store),
    )
