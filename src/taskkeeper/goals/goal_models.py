# src/taskkeeper/goals/goal_models.py

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar

from ..core.errors import ValidationError
from ..core.validation import optional_text, optional_ts, parse_choice, percentage, require_text
from ..tasks.task_models import UNSET, TaskPriority


class GoalStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    ARCHIVED = "archived"

    @classmethod
    def from_db(cls, raw: str | None) -> GoalStatus:
        if not raw:
            return cls.ACTIVE
        try:
            return cls(raw)
        except ValueError:
            return cls.ACTIVE


DEFAULT_CATEGORY = "personal"


def new_goal_id() -> str:
    return "goal_" + uuid.uuid4().hex


@dataclass(slots=True)
class Goal:
    id: str
    title: str
    description: str
    status: GoalStatus
    progress: int
    created_at: datetime
    updated_at: datetime

    target_date: datetime | None = None
    completed_at: datetime | None = None
    category: str = DEFAULT_CATEGORY
    priority: TaskPriority = TaskPriority.MEDIUM


@dataclass(slots=True, frozen=True)
class GoalDraft:
    title: str
    description: str = ""
    target_date: datetime | None = None
    category: str = DEFAULT_CATEGORY
    priority: TaskPriority = TaskPriority.MEDIUM

    FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"title", "description", "target_date", "category", "priority"}
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> GoalDraft:
        unknown = set(data) - cls.FIELDS
        if unknown:
            raise ValidationError(f"unknown goal fields: {', '.join(sorted(unknown))}")
        return cls(
            title=require_text(data.get("title"), "title"),
            description=optional_text(data.get("description"), "description"),
            target_date=optional_ts(data.get("target_date"), "target_date"),
            category=optional_text(data.get("category"), "category") or DEFAULT_CATEGORY,
            priority=parse_choice(TaskPriority, data.get("priority") or "medium", "priority"),
        )

    def validate(self) -> GoalDraft:
        return GoalDraft.from_mapping({f: getattr(self, f) for f in self.FIELDS})


@dataclass(slots=True, frozen=True)
class GoalPatch:
    title: Any = UNSET
    description: Any = UNSET
    target_date: Any = UNSET
    status: Any = UNSET
    category: Any = UNSET
    priority: Any = UNSET
    # explicit override; recomputed from linked tasks on the next load
    progress: Any = UNSET

    completed_at: Any = UNSET
    updated_at: Any = UNSET

    USER_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"title", "description", "target_date", "status", "category", "priority", "progress"}
    )

    @classmethod
    def from_user(cls, data: Mapping[str, Any]) -> GoalPatch:
        if not data:
            raise ValidationError("no fields to update")
        unknown = set(data) - cls.USER_FIELDS
        if unknown:
            raise ValidationError(f"fields not editable: {', '.join(sorted(unknown))}")

        coerced: dict[str, Any] = {}
        for key, value in data.items():
            if key == "title":
                coerced[key] = require_text(value, key)
            elif key in ("description", "category"):
                coerced[key] = optional_text(value, key)
            elif key == "target_date":
                coerced[key] = optional_ts(value, key)
            elif key == "status":
                coerced[key] = parse_choice(GoalStatus, value, key)
            elif key == "priority":
                coerced[key] = parse_choice(TaskPriority, value, key)
            elif key == "progress":
                coerced[key] = percentage(value, key)
        if coerced.get("category") == "":
            coerced["category"] = DEFAULT_CATEGORY
        return cls(**coerced)

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    def is_empty(self) -> bool:
        return not self.changes()

    def apply(self, goal: Goal) -> Goal:
        return replace(goal, **self.changes())

    def merged(self, **changes: Any) -> GoalPatch:
        return replace(self, **changes)
