# tests/test_goal_store.py

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from taskkeeper.core.errors import NotFoundError, ValidationError
from taskkeeper.goals.goal_models import GoalStatus
from taskkeeper.goals.goal_store import GoalStore, progress_for
from taskkeeper.tasks.task_models import Task, TaskPriority, TaskStatus
from taskkeeper.tasks.task_store import TaskStore

from .fakes import FakeClock, InMemoryBackend, SequentialIds


def _stores(backend: InMemoryBackend, clock: FakeClock, ids: SequentialIds) -> tuple[TaskStore, GoalStore]:
    tasks = TaskStore(backend, clock=clock, id_factory=ids)
    return tasks, GoalStore(backend, tasks, clock=clock)


def _task(task_id: str, clock: FakeClock, **overrides) -> Task:
    base = Task(
        id=task_id,
        title=f"task {task_id}",
        description="",
        status=TaskStatus.PENDING,
        priority=TaskPriority.MEDIUM,
        created_at=clock.now,
        updated_at=clock.now,
    )
    return replace(base, **overrides)


def test_progress_rounds_half_up_and_ignores_templates(clock) -> None:
    tasks = [
        _task("a", clock, goal_id="g", status=TaskStatus.COMPLETED),
        _task("b", clock, goal_id="g"),
        _task("c", clock, goal_id="g"),
        _task("tpl", clock, goal_id="g", is_repeat_template=True),
        _task("other", clock, goal_id="h", status=TaskStatus.COMPLETED),
    ]
    # 1 of 3 -> 33.33 -> 33
    assert progress_for("g", tasks) == 33
    # 2 of 3 -> 66.67 -> 67
    tasks[1] = replace(tasks[1], status=TaskStatus.COMPLETED)
    assert progress_for("g", tasks) == 67
    # 1 of 8 -> 12.5 -> 13
    eighths = [_task(str(i), clock, goal_id="x", status=TaskStatus.COMPLETED if i == 0 else TaskStatus.PENDING) for i in range(8)]
    assert progress_for("x", eighths) == 13
    assert progress_for("nothing", tasks) == 0


@pytest.mark.asyncio
async def test_progress_reflects_linked_tasks(memory_backend, clock, ids) -> None:
    task_store, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Ship the garden shed"})

    created = [await task_store.create({"title": f"step {n}", "goal_id": goal.id}) for n in range(4)]
    for task in created[:3]:
        await task_store.update(task.id, {"status": "completed"})
    await goal_store.load()

    refreshed = goal_store.get(goal.id)
    assert refreshed.progress == 75
    assert refreshed.status is GoalStatus.ACTIVE
    assert memory_backend.goals[goal.id].progress == 75


@pytest.mark.asyncio
async def test_goal_without_tasks_has_zero_progress(memory_backend, clock, ids) -> None:
    _, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Learn Rust"})

    await goal_store.load()

    assert goal_store.get(goal.id).progress == 0
    assert goal_store.get(goal.id).status is GoalStatus.ACTIVE


@pytest.mark.asyncio
async def test_goal_auto_completes_when_all_tasks_done(memory_backend, clock, ids) -> None:
    task_store, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Move house"})
    created = [await task_store.create({"title": f"box {n}", "goal_id": goal.id}) for n in range(4)]
    for task in created:
        await task_store.update(task.id, {"status": "completed"})

    clock.advance(minutes=5)
    await goal_store.load()

    done = goal_store.get(goal.id)
    assert done.progress == 100
    assert done.status is GoalStatus.COMPLETED
    assert done.completed_at == clock.now
    assert memory_backend.statistics.total_goals_completed == 1

    # stays completed without counting again
    clock.advance(minutes=5)
    await goal_store.load()
    assert goal_store.get(goal.id).completed_at == done.completed_at
    assert memory_backend.statistics.total_goals_completed == 1


@pytest.mark.asyncio
async def test_paused_goal_is_not_auto_completed(memory_backend, clock, ids) -> None:
    task_store, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Paint the fence"})
    task = await task_store.create({"title": "Buy paint", "goal_id": goal.id})
    await goal_store.update(goal.id, {"status": "paused"})

    await task_store.update(task.id, {"status": "completed"})
    await goal_store.load()

    paused = goal_store.get(goal.id)
    assert paused.progress == 100
    assert paused.status is GoalStatus.PAUSED


@pytest.mark.asyncio
async def test_explicit_progress_holds_until_next_load(memory_backend, clock, ids) -> None:
    task_store, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Read 12 books"})
    await task_store.create({"title": "Book 1", "goal_id": goal.id})

    overridden = await goal_store.update(goal.id, {"progress": 40})
    assert overridden.progress == 40
    assert goal_store.get(goal.id).progress == 40

    await goal_store.load()
    assert goal_store.get(goal.id).progress == 0


@pytest.mark.asyncio
async def test_update_progress_100_completes_active_goal(memory_backend, clock, ids) -> None:
    _, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Finish course"})

    updated = await goal_store.update(goal.id, {"progress": 100})

    assert updated.status is GoalStatus.COMPLETED
    assert updated.completed_at == clock.now
    assert memory_backend.statistics.total_goals_completed == 1


@pytest.mark.asyncio
async def test_update_validation(memory_backend, clock, ids) -> None:
    _, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Something"})

    with pytest.raises(ValidationError):
        await goal_store.update(goal.id, {"progress": 101})
    with pytest.raises(ValidationError):
        await goal_store.update(goal.id, {"status": "done"})
    with pytest.raises(ValidationError):
        await goal_store.create({"title": ""})
    with pytest.raises(NotFoundError):
        await goal_store.update("goal_missing", {"title": "x"})


@pytest.mark.asyncio
async def test_delete_unlinks_tasks(memory_backend, clock, ids) -> None:
    task_store, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Marathon"})
    linked = [await task_store.create({"title": f"run {n}k", "goal_id": goal.id}) for n in (5, 10)]
    unrelated = await task_store.create({"title": "Groceries"})

    clock.advance(minutes=1)
    assert await goal_store.delete(goal.id) == 2

    assert goal_store.goals == []
    assert goal.id not in memory_backend.goals
    for task in linked:
        kept = task_store.get(task.id)
        assert kept.goal_id is None
        assert kept.updated_at == clock.now
    assert task_store.get(unrelated.id).updated_at == unrelated.updated_at

    with pytest.raises(NotFoundError):
        await goal_store.delete(goal.id)


@pytest.mark.asyncio
async def test_goal_timestamps(memory_backend, clock, ids) -> None:
    _, goal_store = _stores(memory_backend, clock, ids)
    goal = await goal_store.create({"title": "Save money", "target_date": clock.now + timedelta(days=30)})
    assert goal.created_at == goal.updated_at == clock.now
    assert goal.id.startswith("goal_")
    assert goal.category == "personal"

    clock.advance(hours=1)
    renamed = await goal_store.update(goal.id, {"title": "Save more money"})
    assert renamed.updated_at == clock.now
    assert renamed.created_at == goal.created_at
