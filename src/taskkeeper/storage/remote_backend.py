# src/taskkeeper/storage/remote_backend.py

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..core.errors import ConflictError, ConnectivityError, NotFoundError, ValidationError
from ..goals.goal_models import Goal, GoalPatch
from ..tasks.task_models import Task, TaskFilter, TaskPatch
from .records import (
    Snapshot,
    Statistics,
    changes_to_wire,
    goal_from_wire,
    goal_to_wire,
    statistics_from_wire,
    task_from_wire,
    task_to_wire,
    validate_statistics_patch,
)

logger = logging.getLogger(__name__)


def _make_timeout(total_s: float) -> httpx.Timeout:
    """Connect fails fast; reads get the whole timeout."""
    connect_s = min(5.0, total_s)
    return httpx.Timeout(total_s, connect=connect_s, pool=connect_s)


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, Mapping):
        err = body.get("error") or body.get("message")
        if err:
            return str(err)
    return fallback


class RemoteBackend:
    """
    REST API client for the task server.

    Every response is an envelope {success, data, error}. Transport problems,
    timeouts, bodies that are not JSON and unexpected statuses all surface as
    ConnectivityError, which is what the coordinator falls back on; 400/422,
    404 and 409 map to the caller-facing errors and never trigger fallback.
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=_make_timeout(timeout_s),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        kind: str = "item",
        item_id: str | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(
                method,
                path,
                params=params,
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning("Remote %s %s failed: %s", method, path, e)
            raise ConnectivityError(f"{method} {path}: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        status = resp.status_code
        if status in (400, 422):
            raise ValidationError(_error_message(body, f"rejected by server ({status})"))
        if status == 404:
            raise NotFoundError(kind, item_id or path)
        if status == 409:
            raise ConflictError(_error_message(body, "conflict"))
        if not 200 <= status < 300:
            logger.warning("Remote %s %s returned HTTP %d", method, path, status)
            raise ConnectivityError(_error_message(body, f"{method} {path}: HTTP {status}"))

        if not isinstance(body, Mapping):
            raise ConnectivityError(f"{method} {path}: response is not a JSON object")
        if body.get("success") is False:
            raise ConnectivityError(_error_message(body, f"{method} {path}: request failed"))
        return body.get("data")

    async def check_connection(self) -> bool:
        try:
            await self._request("GET", "/statistics", kind="statistics")
        except ConnectivityError:
            return False
        return True

    # Tasks

    async def list_tasks(self, filter: TaskFilter | None = None) -> list[Task]:
        params = filter.to_params() if filter is not None else None
        data = await self._request("GET", "/tasks", params=params, kind="task")
        return [task_from_wire(row) for row in (data or [])]

    async def get_task(self, task_id: str) -> Task:
        data = await self._request("GET", f"/tasks/{task_id}", kind="task", item_id=task_id)
        if not data:
            raise NotFoundError("task", task_id)
        return task_from_wire(data)

    async def create_task(self, task: Task) -> Task:
        data = await self._request("POST", "/tasks", payload=task_to_wire(task), kind="task", item_id=task.id)
        return task_from_wire(data) if isinstance(data, Mapping) else task

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        changes = patch.changes()
        if not changes:
            raise ValidationError("no fields to update")
        data = await self._request(
            "PUT", f"/tasks/{task_id}", payload=changes_to_wire("task", changes), kind="task", item_id=task_id
        )
        if isinstance(data, Mapping):
            return task_from_wire(data)
        return await self.get_task(task_id)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}", kind="task", item_id=task_id)

    # Goals

    async def list_goals(self, status: str | None = None) -> list[Goal]:
        params = {"status": str(status)} if status else None
        data = await self._request("GET", "/goals", params=params, kind="goal")
        return [goal_from_wire(row) for row in (data or [])]

    async def get_goal(self, goal_id: str) -> Goal:
        data = await self._request("GET", f"/goals/{goal_id}", kind="goal", item_id=goal_id)
        if not data:
            raise NotFoundError("goal", goal_id)
        return goal_from_wire(data)

    async def create_goal(self, goal: Goal) -> Goal:
        data = await self._request("POST", "/goals", payload=goal_to_wire(goal), kind="goal", item_id=goal.id)
        return goal_from_wire(data) if isinstance(data, Mapping) else goal

    async def update_goal(self, goal_id: str, patch: GoalPatch) -> Goal:
        changes = patch.changes()
        if not changes:
            raise ValidationError("no fields to update")
        data = await self._request(
            "PUT", f"/goals/{goal_id}", payload=changes_to_wire("goal", changes), kind="goal", item_id=goal_id
        )
        if isinstance(data, Mapping):
            return goal_from_wire(data)
        return await self.get_goal(goal_id)

    async def delete_goal(self, goal_id: str) -> None:
        await self._request("DELETE", f"/goals/{goal_id}", kind="goal", item_id=goal_id)

    # Settings

    async def get_settings(self) -> dict[str, Any]:
        data = await self._request("GET", "/settings", kind="settings") or {}
        out: dict[str, Any] = {}
        for key, value in dict(data).items():
            # The server keeps values as JSON text; tolerate both forms.
            if isinstance(value, str):
                try:
                    value = json.loads(value)
                except ValueError:
                    pass
            out[key] = value
        return out

    async def put_setting(self, key: str, value: Any) -> None:
        if not key or not str(key).strip():
            raise ValidationError("setting key is required")
        await self._request(
            "PUT",
            "/settings",
            payload={"setting_key": str(key).strip(), "setting_value": value},
            kind="settings",
        )

    # Statistics

    async def get_statistics(self) -> Statistics:
        data = await self._request("GET", "/statistics", kind="statistics")
        return statistics_from_wire(data if isinstance(data, Mapping) else None)

    async def update_statistics(self, patch: Mapping[str, Any]) -> Statistics:
        try:
            decoded = validate_statistics_patch(patch)
        except KeyError as e:
            raise ValidationError(f"unknown statistics fields: {e.args[0]}") from None
        if decoded:
            await self._request("PUT", "/statistics", payload=changes_to_wire("statistics", decoded), kind="statistics")
        return await self.get_statistics()

    async def increment_statistic(self, name: str, amount: int = 1) -> Statistics:
        # No server-side increment endpoint: read-modify-write (last write wins).
        if name not in Statistics.COUNTERS:
            raise ValidationError(f"unknown statistic: {name}")
        current = await self.get_statistics()
        value = int(getattr(current, name)) + int(amount)
        await self._request("PUT", "/statistics", payload=changes_to_wire("statistics", {name: value}), kind="statistics")
        setattr(current, name, value)
        return current

    # Import / export

    async def export_all(self) -> Snapshot:
        data = await self._request("GET", "/export", kind="export")
        if not isinstance(data, Mapping):
            raise ConnectivityError("GET /export: malformed snapshot")
        try:
            return Snapshot.from_document(data)
        except ValueError as e:
            raise ConnectivityError(f"GET /export: {e}") from e

    async def import_all(self, snapshot: Snapshot) -> None:
        await self._request("POST", "/import", payload=snapshot.to_wire(), kind="import")
        logger.info(
            "Remote import done tasks=%d goals=%d settings=%d",
            len(snapshot.tasks),
            len(snapshot.goals),
            len(snapshot.settings),
        )

