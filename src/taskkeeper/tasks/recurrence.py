# src/taskkeeper/tasks/recurrence.py

"""
Recurrence engine.

Pure functions over Task values: nothing here touches storage, and nothing
raises for inputs outside the documented domain (those are no-ops / None).

A template spawns one instance per due cycle. After the host was offline for
several cycles, `catch_up` loops over `materialize` so that every missed cycle
gets its own instance (deadlines one interval apart) instead of snapping to
the next future date.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from .task_models import RepeatType, Task, TaskStatus, new_task_id

logger = logging.getLogger(__name__)

# Upper bound of instances spawned for one template in a single sweep.
# Anything left over is still due and gets picked up by the next sweep.
MAX_CATCH_UP_CYCLES = 500


def add_months(base: datetime, months: int) -> datetime:
    """
    Calendar-month arithmetic with day overflow rolling forward.

    Jan 31 + 1 month -> Mar 3 (Mar 2 in a leap year), the way Date.setMonth does it.
    """
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = calendar.monthrange(year, month)[1]
    if base.day <= days_in_month:
        return base.replace(year=year, month=month)
    overflow = base.day - days_in_month
    return base.replace(year=year, month=month, day=days_in_month) + timedelta(days=overflow)


def compute_next_due_date(
    base: datetime | None,
    repeat_type: RepeatType | str | None,
    interval: int | None,
) -> datetime | None:
    if base is None or repeat_type is None:
        return None
    try:
        kind = RepeatType(repeat_type)
    except ValueError:
        return None
    if kind is RepeatType.NONE:
        return None
    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 1:
        return None

    # Intervals that run past datetime.max leave the template without a next date.
    try:
        if kind is RepeatType.DAILY or kind is RepeatType.CUSTOM:
            return base + timedelta(days=interval)
        if kind is RepeatType.WEEKLY:
            return base + timedelta(days=7 * interval)
        if kind is RepeatType.MONTHLY:
            return add_months(base, interval)
    except (OverflowError, ValueError):
        return None
    return None


def initial_next_due_date(deadline: datetime | None) -> datetime | None:
    """
    First due instant of a new template: its deadline.

    A task without a deadline has nothing to anchor its cycles to and never recurs.
    """
    return deadline


def is_eligible_template(task: Task) -> bool:
    return (
        task.is_repeat_template
        and task.repeat_type is not RepeatType.NONE
        and task.next_due_date is not None
    )


@dataclass(slots=True, frozen=True)
class Materialization:
    spawned: Task | None
    template: Task


def materialize(
    template: Task,
    now: datetime,
    *,
    id_factory: Callable[[], str] = new_task_id,
) -> Materialization:
    if not is_eligible_template(template):
        return Materialization(spawned=None, template=template)

    if template.repeat_end_date is not None and now > template.repeat_end_date:
        stopped = replace(template, is_repeat_template=False, next_due_date=None, updated_at=now)
        return Materialization(spawned=None, template=stopped)

    due = template.next_due_date
    if due is None or now < due:
        return Materialization(spawned=None, template=template)

    instance = Task(
        id=id_factory(),
        title=template.title,
        description=template.description,
        status=TaskStatus.PENDING,
        priority=template.priority,
        created_at=now,
        updated_at=now,
        deadline=due,
        goal_id=template.goal_id,
        completed_at=None,
        is_repeat_template=False,
        repeat_type=template.repeat_type,
        repeat_interval=template.repeat_interval,
        repeat_end_date=template.repeat_end_date,
        parent_template_id=template.id,
        next_due_date=None,
    )
    next_due = compute_next_due_date(due, template.repeat_type, template.repeat_interval)
    advanced = replace(template, next_due_date=next_due, updated_at=now)
    if next_due is None:
        # Interval went invalid; a template without a next date can never fire again.
        advanced = replace(advanced, is_repeat_template=False)
    return Materialization(spawned=instance, template=advanced)


def catch_up(
    template: Task,
    now: datetime,
    *,
    id_factory: Callable[[], str] = new_task_id,
    max_cycles: int = MAX_CATCH_UP_CYCLES,
) -> tuple[list[Task], Task]:
    """Materialize repeatedly until the template is no longer due (or stops)."""
    spawned: list[Task] = []
    current = template
    for _ in range(max_cycles):
        result = materialize(current, now, id_factory=id_factory)
        current = result.template
        if result.spawned is None:
            return spawned, current
        spawned.append(result.spawned)

    logger.warning(
        "Catch-up cap reached template_id=%s spawned=%d next_due=%s",
        template.id,
        len(spawned),
        current.next_due_date,
    )
    return spawned, current


def expire(task: Task, now: datetime) -> Task | None:
    """Return the expired version of `task`, or None if it is not overdue."""
    if task.is_repeat_template:
        return None
    if task.status is not TaskStatus.PENDING or task.deadline is None:
        return None
    if task.deadline < now:
        return replace(task, status=TaskStatus.EXPIRED, updated_at=now)
    return None


@dataclass(slots=True)
class SweepResult:
    tasks: list[Task] = field(default_factory=list)
    expired: list[Task] = field(default_factory=list)
    templates: list[Task] = field(default_factory=list)
    spawned: list[Task] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.expired or self.templates or self.spawned)


def sweep(
    tasks: Iterable[Task],
    now: datetime,
    *,
    id_factory: Callable[[], str] = new_task_id,
) -> SweepResult:
    """
    Expire overdue instances first, then materialize due templates.

    Instances spawned in this pass are appended after the expiration step,
    so they are never expiry-checked in the pass that created them.
    """
    result = SweepResult()

    current: list[Task] = []
    for task in tasks:
        expired = expire(task, now)
        if expired is not None:
            result.expired.append(expired)
            current.append(expired)
        else:
            current.append(task)

    for idx, task in enumerate(current):
        if not is_eligible_template(task):
            continue
        spawned, updated = catch_up(task, now, id_factory=id_factory)
        if updated != task:
            result.templates.append(updated)
            current[idx] = updated
        result.spawned.extend(spawned)

    result.tasks = current + result.spawned
    return result
