# src/taskkeeper/tasks/task_models.py

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar

from ..core.errors import ValidationError
from ..core.validation import (
    optional_id,
    optional_text,
    optional_ts,
    parse_choice,
    positive_int,
    require_text,
)


class TaskStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


class RepeatType(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

    @classmethod
    def from_db(cls, raw: str | None) -> RepeatType:
        if not raw:
            return cls.NONE
        try:
            return cls(raw)
        except ValueError:
            return cls.NONE


# Used by list ordering: high first.
PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}


def new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    created_at: datetime
    updated_at: datetime

    deadline: datetime | None = None
    goal_id: str | None = None
    completed_at: datetime | None = None

    # Recurrence
    is_repeat_template: bool = False
    repeat_type: RepeatType = RepeatType.NONE
    repeat_interval: int = 1
    repeat_end_date: datetime | None = None
    parent_template_id: str | None = None
    next_due_date: datetime | None = None

    @property
    def is_instance(self) -> bool:
        return self.parent_template_id is not None


class _Unset:
    _instance: ClassVar[_Unset | None] = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(slots=True, frozen=True)
class TaskDraft:
    """Validated input for TaskStore.create()."""

    title: str
    description: str = ""
    deadline: datetime | None = None
    goal_id: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    repeat_type: RepeatType = RepeatType.NONE
    repeat_interval: int = 1
    repeat_end_date: datetime | None = None

    FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "title",
            "description",
            "deadline",
            "goal_id",
            "priority",
            "repeat_type",
            "repeat_interval",
            "repeat_end_date",
        }
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TaskDraft:
        unknown = set(data) - cls.FIELDS
        if unknown:
            raise ValidationError(f"unknown task fields: {', '.join(sorted(unknown))}")
        return cls(
            title=require_text(data.get("title"), "title"),
            description=optional_text(data.get("description"), "description"),
            deadline=optional_ts(data.get("deadline"), "deadline"),
            goal_id=optional_id(data.get("goal_id"), "goal_id"),
            priority=parse_choice(TaskPriority, data.get("priority") or "medium", "priority"),
            repeat_type=parse_choice(RepeatType, data.get("repeat_type") or "none", "repeat_type"),
            repeat_interval=positive_int(data.get("repeat_interval", 1), "repeat_interval"),
            repeat_end_date=optional_ts(data.get("repeat_end_date"), "repeat_end_date"),
        )

    def validate(self) -> TaskDraft:
        """Re-run coercion on a directly constructed draft."""
        return TaskDraft.from_mapping({f: getattr(self, f) for f in self.FIELDS})


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """
    Explicit partial update.

    Only fields that are not UNSET are applied. `from_user` enforces the
    user-editable allow-list; internal callers (sweeps, completion stamping)
    construct patches directly and may also touch bookkeeping fields.
    """

    title: Any = UNSET
    description: Any = UNSET
    deadline: Any = UNSET
    status: Any = UNSET
    priority: Any = UNSET
    goal_id: Any = UNSET
    repeat_type: Any = UNSET
    repeat_interval: Any = UNSET
    repeat_end_date: Any = UNSET

    # bookkeeping
    is_repeat_template: Any = UNSET
    next_due_date: Any = UNSET
    completed_at: Any = UNSET
    updated_at: Any = UNSET

    USER_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "title",
            "description",
            "deadline",
            "status",
            "priority",
            "goal_id",
            "repeat_type",
            "repeat_interval",
            "repeat_end_date",
        }
    )

    @classmethod
    def from_user(cls, data: Mapping[str, Any]) -> TaskPatch:
        if not data:
            raise ValidationError("no fields to update")
        unknown = set(data) - cls.USER_FIELDS
        if unknown:
            raise ValidationError(f"fields not editable: {', '.join(sorted(unknown))}")

        coerced: dict[str, Any] = {}
        for key, value in data.items():
            if key == "title":
                coerced[key] = require_text(value, key)
            elif key == "description":
                coerced[key] = optional_text(value, key)
            elif key in ("deadline", "repeat_end_date"):
                coerced[key] = optional_ts(value, key)
            elif key == "status":
                coerced[key] = parse_choice(TaskStatus, value, key)
            elif key == "priority":
                coerced[key] = parse_choice(TaskPriority, value, key)
            elif key == "goal_id":
                coerced[key] = optional_id(value, key)
            elif key == "repeat_type":
                coerced[key] = parse_choice(RepeatType, value, key)
            elif key == "repeat_interval":
                coerced[key] = positive_int(value, key)
        return cls(**coerced)

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    def is_empty(self) -> bool:
        return not self.changes()

    def apply(self, task: Task) -> Task:
        return replace(task, **self.changes())

    def merged(self, **changes: Any) -> TaskPatch:
        return replace(self, **changes)


@dataclass(slots=True, frozen=True)
class TaskFilter:
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    goal_id: str | None = None
    is_template: bool | None = None

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status != self.status:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.goal_id is not None and task.goal_id != self.goal_id:
            return False
        if self.is_template is not None and task.is_repeat_template != self.is_template:
            return False
        return True

    def to_params(self) -> dict[str, str]:
        """Query parameters understood by the REST API."""
        params: dict[str, str] = {}
        if self.status is not None:
            params["status"] = self.status.value
        if self.priority is not None:
            params["priority"] = self.priority.value
        if self.goal_id is not None:
            params["goal_id"] = self.goal_id
        if self.is_template is not None:
            params["is_template"] = "true" if self.is_template else "false"
        return params


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Priority high -> low, then newest first."""
    by_newest = sorted(tasks, key=lambda t: t.created_at, reverse=True)
    return sorted(by_newest, key=lambda t: PRIORITY_RANK.get(t.priority, 1))
