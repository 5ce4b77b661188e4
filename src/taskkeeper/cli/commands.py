# src/taskkeeper/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
import shlex
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, cast

from ..core.clock import utc_now
from ..core.errors import (
    ConflictError,
    ConnectivityError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from ..core.state import AppState
from ..goals import goal_api
from ..goals.goal_models import Goal
from ..storage.records import Snapshot
from ..sync.coordinator import MigrationDirection, MigrationPlan
from ..tasks import task_api
from ..tasks.task_models import Task, TaskStatus

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Domain errors become user messages; anything else propagates to the caller.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                result = cast(CommandHandler3, handler)(state, args, emit)
            else:
                result = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(result):
                result = await result
        except ValidationError as e:
            return f"Invalid input: {e}"
        except NotFoundError as e:
            return f"Not found: {e.kind} {e.item_id}"
        except ConflictError as e:
            return f"Conflict: {e}"
        except ConnectivityError as e:
            return f"Remote API unavailable: {e}"
        except StorageError as e:
            logger.error("Local cache failure: %s", e)
            return f"Local cache error: {e}"
        return cast(str, result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----

_TASK_KEYS = {
    "title": "title",
    "desc": "description",
    "description": "description",
    "deadline": "deadline",
    "due": "deadline",
    "priority": "priority",
    "p": "priority",
    "goal": "goal_id",
    "repeat": "repeat_type",
    "every": "repeat_interval",
    "until": "repeat_end_date",
    "status": "status",
}

_GOAL_KEYS = {
    "title": "title",
    "desc": "description",
    "description": "description",
    "target": "target_date",
    "category": "category",
    "priority": "priority",
    "p": "priority",
    "status": "status",
    "progress": "progress",
}


def _split_options(args: list[str], keys: dict[str, str]) -> tuple[list[str], dict[str, Any]]:
    """
    Separate free words from key=value options.

    'none'/'null' clears an optional field.
    """
    words: list[str] = []
    options: dict[str, Any] = {}
    for token in args:
        key, sep, value = token.partition("=")
        if sep and key.lower() in keys:
            options[keys[key.lower()]] = None if value.lower() in ("none", "null", "") else value
        else:
            words.append(token)
    return words, options


def _resolve(items: list[Any], token: str, kind: str) -> str:
    """Exact id or unique id prefix."""
    ids = [item.id for item in items]
    if token in ids:
        return token
    matches = [i for i in ids if i.startswith(token)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"ambiguous {kind} id prefix: {token}")
    raise NotFoundError(kind, token)


def _short(item_id: str) -> str:
    return item_id[:8]


def _fmt_ts(dt: Any) -> str:
    if dt is None:
        return "-"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def _format_task(task: Task) -> str:
    parts = [f"[{_short(task.id)}]", f"({task.priority.value})", task.title]
    if task.is_repeat_template:
        parts.append(f"<{task_api.repeat_text(task)}, next {_fmt_ts(task.next_due_date)}>")
    else:
        parts.append(f"- {task.status.value}")
        if task.deadline is not None:
            left = task_api.time_left_text(task) if task.status is TaskStatus.PENDING else ""
            parts.append(f"due {_fmt_ts(task.deadline)}" + (f" ({left})" if left else ""))
    if task.goal_id:
        parts.append(f"goal={_short(task.goal_id)}")
    return " ".join(parts)


def _format_goal(goal: Goal) -> str:
    line = f"[{goal.id}] {goal.title} - {goal.status.value} {goal.progress}% ({goal.category})"
    left = goal_api.days_left_text(goal)
    if left:
        line += f", {left}"
    return line


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    remote = getattr(state.settings, "api_url", None) or "not configured"
    all_tasks = state.task_store.tasks
    actionable = task_api.actionable(all_tasks)
    lines = [
        "Status:",
        f"  Storage mode: {state.backend.mode.value}",
        f"  Remote API: {remote}",
        f"  Tasks loaded: {len(actionable)} (+{len(all_tasks) - len(actionable)} recurring templates)",
        f"  Goals loaded: {len(state.goal_store.goals)}",
    ]
    if state.scheduler is not None:
        lines.append(
            f"  Sweeps: {state.scheduler.sweeps_run} run, {state.scheduler.ticks_skipped} skipped"
        )
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks             -> actionable tasks
    /tasks <filter>    -> pending|completed|expired|failed|high|medium|low|repeating|single|templates
    """
    name = args[0] if args else "all"
    tasks = task_api.filter_tasks(state.task_store.tasks, name)
    if not tasks:
        return f"No tasks ({name})."
    return "\n".join([f"Tasks ({name}):"] + [f"  {_format_task(t)}" for t in tasks])


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title> [deadline=ISO] [priority=low|medium|high] [goal=ID] [repeat=daily every=2 until=ISO] [desc=...]"""
    words, options = _split_options(args, _TASK_KEYS)
    options.pop("status", None)
    if "title" not in options:
        options["title"] = " ".join(words)
    if options.get("goal_id"):
        options["goal_id"] = _resolve(state.goal_store.goals, options["goal_id"], "goal")
    task = await state.task_store.create(options)
    if task.is_repeat_template:
        return f"Recurring task created [{_short(task.id)}] {task.title} ({task_api.repeat_text(task)})."
    return f"Task created [{_short(task.id)}] {task.title}."


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <id> key=value ..."""
    if not args:
        return "Usage: /edit <id> title=... deadline=... priority=... goal=... repeat=... every=... until=..."
    task_id = _resolve(state.task_store.tasks, args[0], "task")
    words, options = _split_options(args[1:], _TASK_KEYS)
    if words:
        return f"Unrecognized arguments: {' '.join(words)}"
    if options.get("goal_id"):
        options["goal_id"] = _resolve(state.goal_store.goals, options["goal_id"], "goal")
    task = await state.task_store.update(task_id, options)
    await state.goal_store.load()
    return f"Task updated: {_format_task(task)}"


async def _status_command(state: AppState, args: list[str], action: str) -> str:
    if not args:
        return f"Usage: /{action} <id>"
    task_id = _resolve(state.task_store.tasks, args[0], "task")
    if action == "done":
        task = await task_api.complete_task(state, task_id)
    elif action == "fail":
        task = await task_api.fail_task(state, task_id)
    else:
        task = await task_api.reactivate_task(state, task_id)
    return f"Task [{_short(task.id)}] {task.title} -> {task.status.value}."


async def cmd_done(state: AppState, args: list[str]) -> str:
    return await _status_command(state, args, "done")


async def cmd_fail(state: AppState, args: list[str]) -> str:
    return await _status_command(state, args, "fail")


async def cmd_reopen(state: AppState, args: list[str]) -> str:
    return await _status_command(state, args, "reopen")


async def cmd_del(state: AppState, args: list[str]) -> str:
    """
    /del <id>         -> delete one task (a template's instances are kept)
    /del <id> --all   -> delete a template together with all of its instances
    """
    flags = {a for a in args if a.startswith("--")}
    rest = [a for a in args if not a.startswith("--")]
    if not rest:
        return "Usage: /del <id> [--all]"

    task_id = _resolve(state.task_store.tasks, rest[0], "task")
    cascade = "--all" in flags
    instances = state.task_store.instances_of(task_id)

    removed = await state.task_store.delete(task_id, cascade=cascade)
    await state.goal_store.load()
    msg = f"Deleted {removed} task(s)."
    if instances and not cascade:
        msg += f" {len(instances)} instance(s) of this recurring task were kept (use --all to delete them too)."
    return msg


def cmd_goals(state: AppState, args: list[str]) -> str:
    goals = state.goal_store.goals
    if args:
        goals = [g for g in goals if g.status.value == args[0].lower()]
    if not goals:
        return "No goals."
    return "\n".join(["Goals:"] + [f"  {_format_goal(g)}" for g in goals])


async def cmd_goal(state: AppState, args: list[str]) -> str:
    """
    /goal add <title> [target=ISO] [category=...] [priority=...] [desc=...]
    /goal edit <id> key=value ...
    /goal done|pause|resume|archive <id>
    /goal del <id>
    /goal tasks <id>
    """
    usage = (
        "Usage:\n"
        "  /goal add <title> [target=ISO] [category=...] [priority=...]\n"
        "  /goal edit <id> key=value ...\n"
        "  /goal done|pause|resume|archive <id>\n"
        "  /goal del <id>\n"
        "  /goal tasks <id>"
    )
    if not args:
        return usage

    sub = args[0].lower()
    rest = args[1:]

    if sub == "add":
        words, options = _split_options(rest, _GOAL_KEYS)
        options.pop("status", None)
        options.pop("progress", None)
        if "title" not in options:
            options["title"] = " ".join(words)
        goal = await state.goal_store.create(options)
        return f"Goal created [{goal.id}] {goal.title}."

    if not rest:
        return usage
    goal_id = _resolve(state.goal_store.goals, rest[0], "goal")

    if sub == "edit":
        words, options = _split_options(rest[1:], _GOAL_KEYS)
        if words:
            return f"Unrecognized arguments: {' '.join(words)}"
        goal = await state.goal_store.update(goal_id, options)
        return f"Goal updated: {_format_goal(goal)}"

    actions = {
        "done": goal_api.complete_goal,
        "pause": goal_api.pause_goal,
        "resume": goal_api.resume_goal,
        "archive": goal_api.archive_goal,
    }
    if sub in actions:
        goal = await actions[sub](state, goal_id)
        return f"Goal {goal.title} -> {goal.status.value}."

    if sub in ("del", "delete"):
        unlinked = await state.goal_store.delete(goal_id)
        return f"Goal deleted; {unlinked} task(s) unlinked."

    if sub == "tasks":
        tasks = state.goal_store.linked_tasks(goal_id)
        if not tasks:
            return "No tasks linked to this goal."
        return "\n".join(f"  {_format_task(t)}" for t in tasks)

    return usage


async def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = await state.backend.get_statistics()
    tasks = state.task_store.tasks
    now = utc_now()
    today_done = task_api.completed_on(tasks, now.date())
    return (
        "Statistics:\n"
        f"  Tasks created/completed: {stats.total_tasks_created}/{stats.total_tasks_completed}\n"
        f"  Goals created/completed: {stats.total_goals_created}/{stats.total_goals_completed}\n"
        f"  Streak: {stats.streak_days} day(s), last active {stats.last_active_date or '-'}\n"
        f"  Completed today: {len(today_done)}, this week: {len(task_api.completed_this_week(tasks, now))}\n"
        f"  Average progress of active goals: {goal_api.average_active_progress(state.goal_store.goals)}%"
    )


async def cmd_settings(state: AppState, args: list[str]) -> str:
    """
    /settings              -> show all
    /settings <key>        -> show one
    /settings <key> <json> -> set (plain text if not valid JSON)
    """
    if len(args) >= 2:
        raw = " ".join(args[1:])
        try:
            value: Any = json.loads(raw)
        except ValueError:
            value = raw
        await state.backend.put_setting(args[0], value)
        return f"Setting {args[0]} = {json.dumps(value, ensure_ascii=False)}"

    settings = await state.backend.get_settings()
    if args:
        if args[0] not in settings:
            return f"Setting {args[0]} is not set."
        return f"{args[0]} = {json.dumps(settings[args[0]], ensure_ascii=False)}"
    if not settings:
        return "No settings."
    lines = ["Settings:"]
    for key in sorted(settings):
        lines.append(f"  {key} = {json.dumps(settings[key], ensure_ascii=False)}")
    return "\n".join(lines)


async def cmd_sweep(state: AppState, args: list[str]) -> str:
    if state.scheduler is not None:
        ran = await state.scheduler.sweep_once()
        if not ran:
            return "A sweep is already running (or failed; see log)."
    else:
        await state.task_store.load()
        await state.goal_store.load()
    return f"Sweep done: {len(task_api.actionable(state.task_store.tasks))} task(s), {len(state.goal_store.goals)} goal(s)."


async def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /sync                  -> show mode
    /sync reconnect        -> try the remote API again
    /sync push [--yes]     -> replace remote data with the local cache
    /sync pull [--yes]     -> replace the local cache with remote data
    """
    coordinator = state.backend
    if not args:
        return f"Storage mode: {coordinator.mode.value} (remote {'configured' if coordinator.has_remote else 'not configured'})."

    sub = args[0].lower()
    if sub == "reconnect":
        if not coordinator.has_remote:
            return "No remote API configured (set TASKKEEPER_API_URL)."
        if await coordinator.reconnect():
            await state.task_store.load()
            await state.goal_store.load()
            return "Reconnected: using the remote API. Local-only changes were not uploaded (use /sync push)."
        return "Remote API still unreachable; staying on the local cache."

    if sub in ("push", "pull"):
        confirmed = "--yes" in args[1:]
        seen: list[MigrationPlan] = []

        def confirm(plan: MigrationPlan) -> bool:
            seen.append(plan)
            if emit is not None:
                emit(plan.describe())
            return confirmed

        done = await coordinator.migrate(MigrationDirection(sub), confirm)
        if not done:
            text = seen[0].describe() if seen and emit is None else ""
            return (text + "\n" if text else "") + f"Nothing changed. Re-run as /sync {sub} --yes to proceed."
        await state.task_store.load()
        await state.goal_store.load()
        return f"Sync {sub} done."

    return "Usage: /sync [reconnect | push [--yes] | pull [--yes]]"


async def cmd_export(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /export <file.json>"
    snapshot = await state.backend.export_all()
    path = Path(args[0]).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot.to_record(), ensure_ascii=False, indent=2), "utf-8")
    return f"Exported {len(snapshot.tasks)} task(s) and {len(snapshot.goals)} goal(s) to {path}."


async def cmd_import(state: AppState, args: list[str]) -> str:
    files = [a for a in args if not a.startswith("--")]
    if not files:
        return "Usage: /import <file.json> --yes"
    path = Path(files[0]).expanduser()
    try:
        doc = json.loads(path.read_text("utf-8"))
    except OSError as e:
        return f"Cannot read {path}: {e}"
    except ValueError as e:
        return f"{path} is not valid JSON: {e}"
    try:
        snapshot = Snapshot.from_document(doc)
    except ValueError as e:
        raise ValidationError(f"invalid snapshot: {e}") from e

    if "--yes" not in args:
        return (
            f"{path} holds {len(snapshot.tasks)} task(s) and {len(snapshot.goals)} goal(s). "
            f"Importing replaces all current data in {state.backend.mode.value} storage. "
            f"Re-run as /import {files[0]} --yes to proceed."
        )

    await state.backend.import_all(snapshot)
    await state.task_store.load()
    await state.goal_store.load()
    return f"Imported {len(snapshot.tasks)} task(s) and {len(snapshot.goals)} goal(s)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show storage mode and loaded data.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [pending|completed|expired|failed|high|...|templates].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [deadline=ISO] [priority=...] [repeat=daily every=N until=ISO] (repeating needs a deadline) [goal=ID].")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> key=value ...")
registry.register("done", cmd_done, help_text="Mark a task completed: /done <id>.")
registry.register("fail", cmd_fail, help_text="Mark a task failed: /fail <id>.")
registry.register("reopen", cmd_reopen, help_text="Set a task back to pending: /reopen <id>.")
registry.register("del", cmd_del, help_text="Delete a task: /del <id> [--all].", aliases=["rm"])
registry.register("goals", cmd_goals, help_text="List goals: /goals [active|completed|paused|archived].")
registry.register("goal", cmd_goal, help_text="Manage goals: /goal add|edit|done|pause|resume|archive|del|tasks.")
registry.register("stats", cmd_stats, help_text="Show usage statistics.")
registry.register("settings", cmd_settings, help_text="Show or change settings: /settings [key [json-value]].")
registry.register("sweep", cmd_sweep, help_text="Run the expiry/recurrence sweep now.")
registry.register("sync", cmd_sync, help_text="Storage sync: /sync [reconnect | push [--yes] | pull [--yes]].")
registry.register("export", cmd_export, help_text="Export all data: /export <file.json>.")
registry.register("import", cmd_import, help_text="Replace all data from a file: /import <file.json> --yes.")
