# src/taskkeeper/storage/records.py

"""
Record shapes and the field-name translation between the two backends.

Three shapes exist for every entity:
- the Python dataclass (snake_case attributes, datetime/enum values),
- the *record*: a camelCase JSON document, as kept by the local cache and
  written to exported snapshot files (goalId, isRepeatTemplate, ...),
- the *wire* row: the snake_case JSON understood by the REST API
  (goal_id, is_repeat_template, parent_task_id, ...).

Each entity has one FieldSpec table; both directions are driven by it, so
record -> wire -> record reproduces every mapped key, with absent values
becoming None on either side.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from ..core.clock import format_ts, parse_day, parse_ts, utc_now
from ..goals.goal_models import DEFAULT_CATEGORY, Goal, GoalStatus
from ..tasks.task_models import RepeatType, Task, TaskPriority, TaskStatus

SNAPSHOT_VERSION = "1.0.0"

DEFAULT_SETTINGS: dict[str, Any] = {
    "theme": "light",
    "notifications": True,
    "autoCleanup": True,
    "defaultDeadlineHours": 24,
}


def _identity(value: Any) -> Any:
    return value


def _enc_enum(value: Any) -> Any:
    return None if value is None else str(value.value if hasattr(value, "value") else value)


def _dec_text(value: Any) -> str:
    return "" if value is None else str(value)


def _dec_opt_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _dec_bool(value: Any) -> bool:
    # MySQL hands back 0/1 for BOOLEAN columns.
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _dec_interval(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 1
    return n if n >= 1 else 1


def _dec_progress(value: Any) -> int:
    try:
        n = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, n))


def _dec_counter(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _enc_day(value: date | None) -> str | None:
    return None if value is None else value.isoformat()


@dataclass(frozen=True, slots=True)
class FieldSpec:
    attr: str
    record_key: str
    wire_key: str
    encode: Callable[[Any], Any] = _identity
    decode: Callable[[Any], Any] = _identity


TASK_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("id", "id", "id", decode=_dec_text),
    FieldSpec("title", "title", "title", decode=_dec_text),
    FieldSpec("description", "description", "description", decode=_dec_text),
    FieldSpec("deadline", "deadline", "deadline", format_ts, parse_ts),
    FieldSpec("status", "status", "status", _enc_enum, TaskStatus.from_db),
    FieldSpec("priority", "priority", "priority", _enc_enum, TaskPriority.from_db),
    FieldSpec("goal_id", "goalId", "goal_id", decode=_dec_opt_id),
    FieldSpec("is_repeat_template", "isRepeatTemplate", "is_repeat_template", bool, _dec_bool),
    FieldSpec("parent_template_id", "parentTemplateId", "parent_task_id", decode=_dec_opt_id),
    FieldSpec("repeat_type", "repeatType", "repeat_type", _enc_enum, RepeatType.from_db),
    FieldSpec("repeat_interval", "repeatInterval", "repeat_interval", int, _dec_interval),
    FieldSpec("repeat_end_date", "repeatEndDate", "repeat_end_date", format_ts, parse_ts),
    FieldSpec("next_due_date", "nextDueDate", "next_due_date", format_ts, parse_ts),
    FieldSpec("created_at", "createdAt", "created_at", format_ts, parse_ts),
    FieldSpec("updated_at", "updatedAt", "updated_at", format_ts, parse_ts),
    FieldSpec("completed_at", "completedAt", "completed_at", format_ts, parse_ts),
)

GOAL_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("id", "id", "id", decode=_dec_text),
    FieldSpec("title", "title", "title", decode=_dec_text),
    FieldSpec("description", "description", "description", decode=_dec_text),
    FieldSpec("target_date", "targetDate", "target_date", format_ts, parse_ts),
    FieldSpec("status", "status", "status", _enc_enum, GoalStatus.from_db),
    FieldSpec("progress", "progress", "progress", int, _dec_progress),
    FieldSpec("category", "category", "category", decode=lambda v: str(v or DEFAULT_CATEGORY)),
    FieldSpec("priority", "priority", "priority", _enc_enum, TaskPriority.from_db),
    FieldSpec("created_at", "createdAt", "created_at", format_ts, parse_ts),
    FieldSpec("updated_at", "updatedAt", "updated_at", format_ts, parse_ts),
    FieldSpec("completed_at", "completedAt", "completed_at", format_ts, parse_ts),
)

STATISTICS_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("total_tasks_created", "totalTasksCreated", "total_tasks_created", int, _dec_counter),
    FieldSpec("total_tasks_completed", "totalTasksCompleted", "total_tasks_completed", int, _dec_counter),
    FieldSpec("total_goals_created", "totalGoalsCreated", "total_goals_created", int, _dec_counter),
    FieldSpec("total_goals_completed", "totalGoalsCompleted", "total_goals_completed", int, _dec_counter),
    FieldSpec("streak_days", "streakDays", "streak_days", int, _dec_counter),
    FieldSpec("last_active_date", "lastActiveDate", "last_active_date", _enc_day, parse_day),
)

_BY_ATTR = {
    "task": {f.attr: f for f in TASK_FIELDS},
    "goal": {f.attr: f for f in GOAL_FIELDS},
    "statistics": {f.attr: f for f in STATISTICS_FIELDS},
}


# ---- record <-> wire key translation ----


def to_wire(record: Mapping[str, Any], specs: Iterable[FieldSpec]) -> dict[str, Any]:
    return {f.wire_key: record.get(f.record_key) for f in specs}


def from_wire(row: Mapping[str, Any], specs: Iterable[FieldSpec]) -> dict[str, Any]:
    return {f.record_key: row.get(f.wire_key) for f in specs}


def _looks_wired(item: Mapping[str, Any], specs: Iterable[FieldSpec]) -> bool:
    return any(f.wire_key in item for f in specs if f.wire_key != f.record_key)


# ---- dataclass <-> record ----


def _to_record(obj: Any, specs: Iterable[FieldSpec]) -> dict[str, Any]:
    return {f.record_key: f.encode(getattr(obj, f.attr)) if getattr(obj, f.attr) is not None else None for f in specs}


def _from_record(record: Mapping[str, Any], specs: Iterable[FieldSpec]) -> dict[str, Any]:
    return {f.attr: f.decode(record.get(f.record_key)) for f in specs}


def task_to_record(task: Task) -> dict[str, Any]:
    return _to_record(task, TASK_FIELDS)


def task_from_record(record: Mapping[str, Any]) -> Task:
    kwargs = _from_record(record, TASK_FIELDS)
    now = utc_now()
    kwargs["created_at"] = kwargs["created_at"] or now
    kwargs["updated_at"] = kwargs["updated_at"] or kwargs["created_at"]
    return Task(**kwargs)


def task_to_wire(task: Task) -> dict[str, Any]:
    return to_wire(task_to_record(task), TASK_FIELDS)


def task_from_wire(row: Mapping[str, Any]) -> Task:
    return task_from_record(from_wire(row, TASK_FIELDS))


def goal_to_record(goal: Goal) -> dict[str, Any]:
    return _to_record(goal, GOAL_FIELDS)


def goal_from_record(record: Mapping[str, Any]) -> Goal:
    kwargs = _from_record(record, GOAL_FIELDS)
    now = utc_now()
    kwargs["created_at"] = kwargs["created_at"] or now
    kwargs["updated_at"] = kwargs["updated_at"] or kwargs["created_at"]
    return Goal(**kwargs)


def goal_to_wire(goal: Goal) -> dict[str, Any]:
    return to_wire(goal_to_record(goal), GOAL_FIELDS)


def goal_from_wire(row: Mapping[str, Any]) -> Goal:
    return goal_from_record(from_wire(row, GOAL_FIELDS))


def changes_to_wire(kind: str, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Translate patch changes (attribute names) to wire keys and JSON values."""
    table = _BY_ATTR[kind]
    out: dict[str, Any] = {}
    for attr, value in changes.items():
        spec = table[attr]
        out[spec.wire_key] = None if value is None else spec.encode(value)
    return out


# ---- statistics ----


@dataclass(slots=True)
class Statistics:
    total_tasks_created: int = 0
    total_tasks_completed: int = 0
    total_goals_created: int = 0
    total_goals_completed: int = 0
    streak_days: int = 0
    last_active_date: date | None = None

    COUNTERS = (
        "total_tasks_created",
        "total_tasks_completed",
        "total_goals_created",
        "total_goals_completed",
        "streak_days",
    )


def statistics_to_record(stats: Statistics) -> dict[str, Any]:
    return _to_record(stats, STATISTICS_FIELDS)


def statistics_from_record(record: Mapping[str, Any] | None) -> Statistics:
    return Statistics(**_from_record(record or {}, STATISTICS_FIELDS))


def statistics_to_wire(stats: Statistics) -> dict[str, Any]:
    return to_wire(statistics_to_record(stats), STATISTICS_FIELDS)


def statistics_from_wire(row: Mapping[str, Any] | None) -> Statistics:
    return statistics_from_record(from_wire(row or {}, STATISTICS_FIELDS))


def advance_streak(stats: Statistics, today: date) -> dict[str, Any]:
    """
    Statistics patch for activity on `today` (empty when nothing changes).

    Consecutive days extend the streak; a gap restarts it at 1.
    """
    last = stats.last_active_date
    if last == today:
        return {}
    if last is not None and (today - last).days == 1:
        streak = stats.streak_days + 1
    else:
        streak = 1
    return {"streak_days": streak, "last_active_date": today}


def validate_statistics_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Decode a statistics patch keyed by attribute name; unknown keys are rejected."""
    table = _BY_ATTR["statistics"]
    unknown = set(patch) - set(table)
    if unknown:
        raise KeyError(", ".join(sorted(unknown)))
    return {k: table[k].decode(v) for k, v in patch.items()}


# ---- snapshot ----


@dataclass(slots=True)
class Snapshot:
    tasks: list[Task] = field(default_factory=list)
    goals: list[Goal] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    statistics: Statistics = field(default_factory=Statistics)
    export_date: datetime = field(default_factory=utc_now)
    version: str = SNAPSHOT_VERSION

    def to_record(self) -> dict[str, Any]:
        """camelCase document, the format of exported backup files."""
        return {
            "tasks": [task_to_record(t) for t in self.tasks],
            "goals": [goal_to_record(g) for g in self.goals],
            "settings": dict(self.settings),
            "statistics": statistics_to_record(self.statistics),
            "exportDate": format_ts(self.export_date),
            "version": self.version,
        }

    def to_wire(self) -> dict[str, Any]:
        """snake_case document accepted by POST /import."""
        return {
            "tasks": [task_to_wire(t) for t in self.tasks],
            "goals": [goal_to_wire(g) for g in self.goals],
            "settings": dict(self.settings),
            "statistics": statistics_to_wire(self.statistics),
            "exportDate": format_ts(self.export_date),
            "version": self.version,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> Snapshot:
        """
        Accept either shape (local record or REST export), item by item.

        Missing statistics fields default to 0/None.
        """
        if not isinstance(doc, Mapping):
            raise ValueError("snapshot document must be an object")

        tasks: list[Task] = []
        for item in doc.get("tasks") or []:
            if not isinstance(item, Mapping):
                raise ValueError("snapshot task entries must be objects")
            tasks.append(task_from_wire(item) if _looks_wired(item, TASK_FIELDS) else task_from_record(item))

        goals: list[Goal] = []
        for item in doc.get("goals") or []:
            if not isinstance(item, Mapping):
                raise ValueError("snapshot goal entries must be objects")
            goals.append(goal_from_wire(item) if _looks_wired(item, GOAL_FIELDS) else goal_from_record(item))

        raw_stats = doc.get("statistics") or {}
        if not isinstance(raw_stats, Mapping):
            raise ValueError("snapshot statistics must be an object")
        if _looks_wired(raw_stats, STATISTICS_FIELDS):
            stats = statistics_from_wire(raw_stats)
        else:
            stats = statistics_from_record(raw_stats)

        settings = doc.get("settings") or {}
        if not isinstance(settings, Mapping):
            raise ValueError("snapshot settings must be an object")

        return cls(
            tasks=tasks,
            goals=goals,
            settings=dict(settings),
            statistics=stats,
            export_date=parse_ts(doc.get("exportDate")) or utc_now(),
            version=str(doc.get("version") or SNAPSHOT_VERSION),
        )
