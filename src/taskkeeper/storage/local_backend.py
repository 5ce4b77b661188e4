# src/taskkeeper/storage/local_backend.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

from ..core.clock import Clock, format_ts, utc_now
from ..core.errors import NotFoundError, StorageError, ValidationError
from ..goals.goal_models import Goal, GoalPatch
from ..tasks.task_models import Task, TaskFilter, TaskPatch
from .records import (
    DEFAULT_SETTINGS,
    GOAL_FIELDS,
    TASK_FIELDS,
    Snapshot,
    Statistics,
    changes_to_wire,
    goal_from_wire,
    goal_to_wire,
    statistics_from_wire,
    statistics_to_wire,
    task_from_wire,
    task_to_wire,
    validate_statistics_patch,
)

logger = logging.getLogger(__name__)

_TASK_COLUMNS = [f.wire_key for f in TASK_FIELDS]
_GOAL_COLUMNS = [f.wire_key for f in GOAL_FIELDS]

_PRIORITY_ORDER = "CASE priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 WHEN 'low' THEN 2 ELSE 1 END"


class LocalBackend:
    """
    SQLite-backed local cache.

    Mirrors the remote data model so the coordinator can swap backends freely.
    Column names are the wire (snake_case) names, so rows decode through the
    same field tables the REST backend uses.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Each method opens its own SQLite connection.
    """

    name = "local"

    def __init__(
        self,
        db_path: str | Path = "taskkeeper.sqlite3",
        *,
        user_id: str = "local",
        clock: Clock = utc_now,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._user_id = user_id
        self._clock = clock
        self._ensure_schema()
        self._ensure_user_defaults()
        logger.info("LocalBackend ready db=%s user=%s", self._db_path, self._user_id)

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        """One connection, one transaction: commit on success, roll back on error."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageError(f"cannot open local cache {self._db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"local cache error: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._tx() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    user_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    deadline TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    goal_id TEXT,
                    is_repeat_template INTEGER NOT NULL DEFAULT 0,
                    parent_task_id TEXT,
                    repeat_type TEXT NOT NULL DEFAULT 'none',
                    repeat_interval INTEGER NOT NULL DEFAULT 1,
                    repeat_end_date TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    PRIMARY KEY (user_id, id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS goals (
                    user_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    target_date TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    progress INTEGER NOT NULL DEFAULT 0,
                    category TEXT NOT NULL DEFAULT 'personal',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    PRIMARY KEY (user_id, id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    user_id TEXT NOT NULL,
                    setting_key TEXT NOT NULL,
                    setting_value TEXT NOT NULL,
                    PRIMARY KEY (user_id, setting_key)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS statistics (
                    user_id TEXT PRIMARY KEY,
                    total_tasks_created INTEGER NOT NULL DEFAULT 0,
                    total_tasks_completed INTEGER NOT NULL DEFAULT 0,
                    total_goals_created INTEGER NOT NULL DEFAULT 0,
                    total_goals_completed INTEGER NOT NULL DEFAULT 0,
                    streak_days INTEGER NOT NULL DEFAULT 0,
                    last_active_date TEXT
                )
                """
            )

            # Migrations (safe): columns added after the first schema.
            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("LocalBackend migration: added column %s.%s", table, name)

            add_col("tasks", "next_due_date", "TEXT")
            add_col("goals", "priority", "TEXT NOT NULL DEFAULT 'medium'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_status ON tasks(user_id, status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_goal ON tasks(user_id, goal_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_parent ON tasks(user_id, parent_task_id)")

    def _ensure_user_defaults(self) -> None:
        with self._tx() as conn:
            conn.execute("INSERT OR IGNORE INTO statistics(user_id) VALUES (?)", (self._user_id,))
            row = conn.execute(
                "SELECT COUNT(*) FROM settings WHERE user_id = ?", (self._user_id,)
            ).fetchone()
            if int(row[0]) == 0:
                conn.executemany(
                    "INSERT INTO settings(user_id, setting_key, setting_value) VALUES (?, ?, ?)",
                    [(self._user_id, k, json.dumps(v)) for k, v in DEFAULT_SETTINGS.items()],
                )

    @staticmethod
    def _encode_setting(value: Any) -> str:
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            raise ValidationError("setting value must be JSON-serializable") from None

    @staticmethod
    def _decode_setting(raw: str | None) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def _insert_task(self, conn: sqlite3.Connection, task: Task) -> None:
        row = task_to_wire(task)
        cols = ["user_id", *_TASK_COLUMNS]
        placeholders = ", ".join("?" for _ in cols)
        conn.execute(
            f"INSERT INTO tasks({', '.join(cols)}) VALUES ({placeholders})",
            (self._user_id, *[row[c] for c in _TASK_COLUMNS]),
        )

    def _insert_goal(self, conn: sqlite3.Connection, goal: Goal) -> None:
        row = goal_to_wire(goal)
        cols = ["user_id", *_GOAL_COLUMNS]
        placeholders = ", ".join("?" for _ in cols)
        conn.execute(
            f"INSERT INTO goals({', '.join(cols)}) VALUES ({placeholders})",
            (self._user_id, *[row[c] for c in _GOAL_COLUMNS]),
        )

    def _bump(self, conn: sqlite3.Connection, name: str, amount: int = 1) -> None:
        conn.execute(
            f"UPDATE statistics SET {name} = {name} + ? WHERE user_id = ?",
            (int(amount), self._user_id),
        )

    def _update_row(
        self,
        table: str,
        kind: str,
        item_id: str,
        changes: dict[str, Any],
    ) -> None:
        changes = dict(changes)
        if changes.get("updated_at") is None:
            changes["updated_at"] = self._clock()
        wire = changes_to_wire(kind, changes)
        assignments = ", ".join(f"{col} = ?" for col in wire)
        with self._tx() as conn:
            cur = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE user_id = ? AND id = ?",
                (*wire.values(), self._user_id, item_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(kind, item_id)

    # ---- public API ----

    async def check_connection(self) -> bool:
        try:
            with self._tx() as conn:
                conn.execute("SELECT 1")
        except StorageError:
            logger.exception("Local cache unavailable db=%s", self._db_path)
            return False
        return True

    # Tasks

    async def list_tasks(self, filter: TaskFilter | None = None) -> list[Task]:
        where = ["user_id = ?"]
        params: list[Any] = [self._user_id]
        if filter is not None:
            if filter.status is not None:
                where.append("status = ?")
                params.append(filter.status.value)
            if filter.priority is not None:
                where.append("priority = ?")
                params.append(filter.priority.value)
            if filter.goal_id is not None:
                where.append("goal_id = ?")
                params.append(filter.goal_id)
            if filter.is_template is not None:
                where.append("is_repeat_template = ?")
                params.append(1 if filter.is_template else 0)

        with self._tx() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM tasks
                WHERE {' AND '.join(where)}
                ORDER BY {_PRIORITY_ORDER}, created_at DESC
                """,
                params,
            ).fetchall()
        return [task_from_wire(dict(r)) for r in rows]

    async def get_task(self, task_id: str) -> Task:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? AND id = ?", (self._user_id, task_id)
            ).fetchone()
        if row is None:
            raise NotFoundError("task", task_id)
        return task_from_wire(dict(row))

    async def create_task(self, task: Task) -> Task:
        if not task.id or not task.title.strip():
            raise ValidationError("task id and title are required")
        with self._tx() as conn:
            exists = conn.execute(
                "SELECT 1 FROM tasks WHERE user_id = ? AND id = ?", (self._user_id, task.id)
            ).fetchone()
            if exists:
                raise ValidationError(f"task id already exists: {task.id}")
            self._insert_task(conn, task)
            self._bump(conn, "total_tasks_created")
        logger.debug("Task created id=%s template=%s parent=%s", task.id, task.is_repeat_template, task.parent_template_id)
        return await self.get_task(task.id)

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        changes = patch.changes()
        if not changes:
            raise ValidationError("no fields to update")
        self._update_row("tasks", "task", task_id, changes)
        return await self.get_task(task_id)

    async def delete_task(self, task_id: str) -> None:
        with self._tx() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE user_id = ? AND id = ?", (self._user_id, task_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("task", task_id)

    # Goals

    async def list_goals(self, status: str | None = None) -> list[Goal]:
        sql = "SELECT * FROM goals WHERE user_id = ?"
        params: list[Any] = [self._user_id]
        if status:
            sql += " AND status = ?"
            params.append(str(status))
        sql += " ORDER BY created_at DESC"
        with self._tx() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [goal_from_wire(dict(r)) for r in rows]

    async def get_goal(self, goal_id: str) -> Goal:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT * FROM goals WHERE user_id = ? AND id = ?", (self._user_id, goal_id)
            ).fetchone()
        if row is None:
            raise NotFoundError("goal", goal_id)
        return goal_from_wire(dict(row))

    async def create_goal(self, goal: Goal) -> Goal:
        if not goal.id or not goal.title.strip():
            raise ValidationError("goal id and title are required")
        with self._tx() as conn:
            exists = conn.execute(
                "SELECT 1 FROM goals WHERE user_id = ? AND id = ?", (self._user_id, goal.id)
            ).fetchone()
            if exists:
                raise ValidationError(f"goal id already exists: {goal.id}")
            self._insert_goal(conn, goal)
            self._bump(conn, "total_goals_created")
        return await self.get_goal(goal.id)

    async def update_goal(self, goal_id: str, patch: GoalPatch) -> Goal:
        changes = patch.changes()
        if not changes:
            raise ValidationError("no fields to update")
        self._update_row("goals", "goal", goal_id, changes)
        return await self.get_goal(goal_id)

    async def delete_goal(self, goal_id: str) -> None:
        with self._tx() as conn:
            cur = conn.execute(
                "DELETE FROM goals WHERE user_id = ? AND id = ?", (self._user_id, goal_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError("goal", goal_id)

    # Settings

    async def get_settings(self) -> dict[str, Any]:
        with self._tx() as conn:
            rows = conn.execute(
                "SELECT setting_key, setting_value FROM settings WHERE user_id = ?",
                (self._user_id,),
            ).fetchall()
        return {r["setting_key"]: self._decode_setting(r["setting_value"]) for r in rows}

    async def put_setting(self, key: str, value: Any) -> None:
        if not key or not str(key).strip():
            raise ValidationError("setting key is required")
        encoded = self._encode_setting(value)
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO settings(user_id, setting_key, setting_value) VALUES (?, ?, ?)
                ON CONFLICT(user_id, setting_key) DO UPDATE SET setting_value = excluded.setting_value
                """,
                (self._user_id, str(key).strip(), encoded),
            )

    # Statistics

    async def get_statistics(self) -> Statistics:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT * FROM statistics WHERE user_id = ?", (self._user_id,)
            ).fetchone()
        return statistics_from_wire(dict(row) if row else None)

    async def update_statistics(self, patch: Mapping[str, Any]) -> Statistics:
        try:
            decoded = validate_statistics_patch(patch)
        except KeyError as e:
            raise ValidationError(f"unknown statistics fields: {e.args[0]}") from None
        if decoded:
            wire = statistics_to_wire(Statistics(**decoded))
            cols = [c for c in wire if c in decoded]
            with self._tx() as conn:
                conn.execute(
                    f"UPDATE statistics SET {', '.join(f'{c} = ?' for c in cols)} WHERE user_id = ?",
                    (*[wire[c] for c in cols], self._user_id),
                )
        return await self.get_statistics()

    async def increment_statistic(self, name: str, amount: int = 1) -> Statistics:
        if name not in Statistics.COUNTERS:
            raise ValidationError(f"unknown statistic: {name}")
        with self._tx() as conn:
            self._bump(conn, name, amount)
        return await self.get_statistics()

    # Import / export

    async def export_all(self) -> Snapshot:
        return Snapshot(
            tasks=await self.list_tasks(),
            goals=await self.list_goals(),
            settings=await self.get_settings(),
            statistics=await self.get_statistics(),
            export_date=self._clock(),
        )

    async def import_all(self, snapshot: Snapshot) -> None:
        """Atomic replace of this user's data; partial imports are rolled back."""
        stats = statistics_to_wire(snapshot.statistics)
        with self._tx() as conn:
            conn.execute("DELETE FROM tasks WHERE user_id = ?", (self._user_id,))
            conn.execute("DELETE FROM goals WHERE user_id = ?", (self._user_id,))
            conn.execute("DELETE FROM settings WHERE user_id = ?", (self._user_id,))
            for task in snapshot.tasks:
                self._insert_task(conn, task)
            for goal in snapshot.goals:
                self._insert_goal(conn, goal)
            conn.executemany(
                "INSERT INTO settings(user_id, setting_key, setting_value) VALUES (?, ?, ?)",
                [(self._user_id, k, self._encode_setting(v)) for k, v in snapshot.settings.items()],
            )
            conn.execute(
                """
                INSERT INTO statistics(
                    user_id, total_tasks_created, total_tasks_completed,
                    total_goals_created, total_goals_completed, streak_days, last_active_date
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    total_tasks_created = excluded.total_tasks_created,
                    total_tasks_completed = excluded.total_tasks_completed,
                    total_goals_created = excluded.total_goals_created,
                    total_goals_completed = excluded.total_goals_completed,
                    streak_days = excluded.streak_days,
                    last_active_date = excluded.last_active_date
                """,
                (
                    self._user_id,
                    stats["total_tasks_created"] or 0,
                    stats["total_tasks_completed"] or 0,
                    stats["total_goals_created"] or 0,
                    stats["total_goals_completed"] or 0,
                    stats["streak_days"] or 0,
                    stats["last_active_date"],
                ),
            )
        logger.info(
            "Local import done user=%s tasks=%d goals=%d settings=%d exported_at=%s",
            self._user_id,
            len(snapshot.tasks),
            len(snapshot.goals),
            len(snapshot.settings),
            format_ts(snapshot.export_date),
        )
