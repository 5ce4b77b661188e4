# tests/test_recurrence.py

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

from taskkeeper.tasks.recurrence import (
    catch_up,
    compute_next_due_date,
    expire,
    initial_next_due_date,
    materialize,
    sweep,
)
from taskkeeper.tasks.task_models import RepeatType, Task, TaskPriority, TaskStatus

from .fakes import SequentialIds

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)
DAY = timedelta(days=1)


def make_template(**overrides) -> Task:
    base = Task(
        id="tpl",
        title="Water plants",
        description="balcony",
        status=TaskStatus.PENDING,
        priority=TaskPriority.HIGH,
        created_at=NOW - 10 * DAY,
        updated_at=NOW - 10 * DAY,
        goal_id="goal_garden",
        is_repeat_template=True,
        repeat_type=RepeatType.DAILY,
        repeat_interval=1,
        next_due_date=NOW,
    )
    return replace(base, **overrides)


def make_task(**overrides) -> Task:
    base = Task(
        id="t1",
        title="Pay rent",
        description="",
        status=TaskStatus.PENDING,
        priority=TaskPriority.MEDIUM,
        created_at=NOW - 2 * DAY,
        updated_at=NOW - 2 * DAY,
    )
    return replace(base, **overrides)


def test_compute_next_due_date_per_repeat_type() -> None:
    base = datetime(2026, 3, 10, 18, 30, tzinfo=UTC)
    assert compute_next_due_date(base, RepeatType.DAILY, 1) == base + DAY
    assert compute_next_due_date(base, RepeatType.DAILY, 3) == base + 3 * DAY
    assert compute_next_due_date(base, RepeatType.WEEKLY, 2) == base + 14 * DAY
    assert compute_next_due_date(base, RepeatType.CUSTOM, 5) == base + 5 * DAY
    assert compute_next_due_date(base, RepeatType.MONTHLY, 1) == datetime(2026, 4, 10, 18, 30, tzinfo=UTC)
    assert compute_next_due_date(base, "weekly", 1) == base + 7 * DAY


def test_compute_next_due_date_monthly_overflow_rolls_forward() -> None:
    jan31 = datetime(2026, 1, 31, 8, 0, tzinfo=UTC)
    assert compute_next_due_date(jan31, RepeatType.MONTHLY, 1) == datetime(2026, 3, 3, 8, 0, tzinfo=UTC)

    leap = datetime(2024, 1, 31, 8, 0, tzinfo=UTC)
    assert compute_next_due_date(leap, RepeatType.MONTHLY, 1) == datetime(2024, 3, 2, 8, 0, tzinfo=UTC)

    dec = datetime(2026, 12, 15, tzinfo=UTC)
    assert compute_next_due_date(dec, RepeatType.MONTHLY, 2) == datetime(2027, 2, 15, tzinfo=UTC)


def test_compute_next_due_date_returns_none_outside_domain() -> None:
    assert compute_next_due_date(None, RepeatType.DAILY, 1) is None
    assert compute_next_due_date(NOW, RepeatType.NONE, 1) is None
    assert compute_next_due_date(NOW, "yearly", 1) is None
    assert compute_next_due_date(NOW, None, 1) is None
    assert compute_next_due_date(NOW, RepeatType.DAILY, 0) is None
    assert compute_next_due_date(NOW, RepeatType.DAILY, -2) is None
    assert compute_next_due_date(NOW, RepeatType.DAILY, None) is None
    assert compute_next_due_date(NOW, RepeatType.DAILY, True) is None


def test_compute_next_due_date_past_datetime_max_is_none() -> None:
    assert compute_next_due_date(NOW, RepeatType.DAILY, 10**9) is None
    assert compute_next_due_date(NOW, RepeatType.CUSTOM, 3_000_000) is None
    assert compute_next_due_date(NOW, RepeatType.WEEKLY, 500_000) is None
    assert compute_next_due_date(NOW, RepeatType.MONTHLY, 120_000) is None


def test_initial_next_due_date_is_the_deadline() -> None:
    deadline = NOW + 2 * DAY
    assert initial_next_due_date(deadline) == deadline
    assert initial_next_due_date(None) is None


def test_materialize_with_huge_interval_spawns_once_and_stops() -> None:
    template = make_template(repeat_type=RepeatType.CUSTOM, repeat_interval=3_000_000)

    result = materialize(template, NOW, id_factory=lambda: "inst-1")

    assert result.spawned is not None
    assert result.spawned.deadline == NOW
    assert result.template.next_due_date is None
    assert result.template.is_repeat_template is False

    spawned, updated = catch_up(result.template, NOW + DAY)
    assert spawned == []
    assert updated == result.template


def test_materialize_daily_template_at_due_time() -> None:
    template = make_template(next_due_date=NOW, repeat_end_date=NOW + 30 * DAY)

    result = materialize(template, NOW, id_factory=lambda: "inst-1")

    spawned = result.spawned
    assert spawned is not None
    assert spawned.id == "inst-1"
    assert spawned.deadline == NOW
    assert spawned.status is TaskStatus.PENDING
    assert spawned.is_repeat_template is False
    assert spawned.parent_template_id == "tpl"
    assert spawned.next_due_date is None
    assert spawned.completed_at is None
    assert spawned.created_at == NOW and spawned.updated_at == NOW
    # copied from the template
    assert spawned.title == "Water plants"
    assert spawned.description == "balcony"
    assert spawned.priority is TaskPriority.HIGH
    assert spawned.goal_id == "goal_garden"
    assert spawned.repeat_type is RepeatType.DAILY
    assert spawned.repeat_interval == 1
    assert spawned.repeat_end_date == NOW + 30 * DAY

    assert result.template.next_due_date == NOW + DAY
    assert result.template.is_repeat_template is True


def test_materialize_twice_with_same_now_spawns_once() -> None:
    ids = SequentialIds("i")
    first = materialize(make_template(), NOW, id_factory=ids)
    second = materialize(first.template, NOW, id_factory=ids)

    assert first.spawned is not None
    assert second.spawned is None
    assert second.template == first.template


def test_materialize_not_yet_due_is_noop() -> None:
    template = make_template(next_due_date=NOW + timedelta(minutes=1))
    result = materialize(template, NOW)
    assert result.spawned is None
    assert result.template is template


def test_materialize_ignores_non_templates() -> None:
    plain = make_task(next_due_date=NOW - DAY)
    assert materialize(plain, NOW).spawned is None

    no_repeat = make_template(repeat_type=RepeatType.NONE)
    assert materialize(no_repeat, NOW).spawned is None

    no_due = make_template(next_due_date=None)
    assert materialize(no_due, NOW).spawned is None


def test_catch_up_spawns_one_instance_per_missed_cycle() -> None:
    # Three cycles fell strictly in the past while the host was offline.
    first_due = NOW - 3 * DAY + timedelta(hours=1)
    template = make_template(next_due_date=first_due)

    spawned, updated = catch_up(template, NOW, id_factory=SequentialIds("i"))

    assert len(spawned) == 3
    deadlines = [t.deadline for t in spawned]
    assert deadlines == [first_due, first_due + DAY, first_due + 2 * DAY]
    assert all(b - a == DAY for a, b in zip(deadlines, deadlines[1:]))
    assert len({t.id for t in spawned}) == 3
    assert updated.next_due_date is not None and updated.next_due_date > NOW


def test_catch_up_includes_cycle_due_exactly_now() -> None:
    spawned, updated = catch_up(make_template(next_due_date=NOW - 3 * DAY), NOW)
    # now-3d, now-2d, now-1d and the cycle due at `now` itself
    assert len(spawned) == 4
    assert updated.next_due_date == NOW + DAY


def test_catch_up_is_bounded_per_pass() -> None:
    template = make_template(next_due_date=NOW - 100 * DAY)

    spawned, updated = catch_up(template, NOW, max_cycles=5)

    assert len(spawned) == 5
    assert updated.next_due_date == NOW - 95 * DAY


def test_recurrence_stops_after_end_date_regardless_of_overdue() -> None:
    template = make_template(next_due_date=NOW - 40 * DAY, repeat_end_date=NOW - DAY)

    result = materialize(template, NOW)

    assert result.spawned is None
    assert result.template.is_repeat_template is False
    assert result.template.next_due_date is None

    spawned, updated = catch_up(template, NOW)
    assert spawned == []
    assert updated.is_repeat_template is False


def test_expire_only_pending_overdue_instances() -> None:
    overdue = make_task(deadline=NOW - timedelta(seconds=1))
    expired = expire(overdue, NOW)
    assert expired is not None
    assert expired.status is TaskStatus.EXPIRED
    assert expired.updated_at == NOW

    assert expire(make_task(deadline=NOW), NOW) is None
    assert expire(make_task(deadline=None), NOW) is None
    assert expire(make_task(deadline=NOW - DAY, status=TaskStatus.COMPLETED), NOW) is None
    assert expire(make_template(deadline=NOW - DAY), NOW) is None


def test_sweep_expires_before_materializing() -> None:
    template = make_template(next_due_date=NOW - 2 * DAY + timedelta(hours=1))
    overdue = make_task(id="old", deadline=NOW - DAY)
    fresh = make_task(id="fresh", deadline=NOW + DAY)

    result = sweep([template, overdue, fresh], NOW, id_factory=SequentialIds("i"))

    assert [t.id for t in result.expired] == ["old"]
    assert len(result.spawned) == 2
    # catch-up instances carry past deadlines but are not expired in the pass that created them
    assert all(t.status is TaskStatus.PENDING for t in result.spawned)
    assert all(t.deadline is not None and t.deadline < NOW for t in result.spawned)
    assert [t.id for t in result.templates] == ["tpl"]
    assert result.changed
    assert {t.id for t in result.tasks} == {"tpl", "old", "fresh", "i0001", "i0002"}


def test_sweep_without_work_reports_no_change() -> None:
    result = sweep([make_task(deadline=NOW + DAY), make_template(next_due_date=NOW + DAY)], NOW)
    assert not result.changed
    assert len(result.tasks) == 2
