# tests/test_remote_backend.py

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from taskkeeper.core.errors import ConflictError, ConnectivityError, NotFoundError, ValidationError
from taskkeeper.storage.records import Statistics
from taskkeeper.storage.remote_backend import RemoteBackend
from taskkeeper.tasks.task_models import Task, TaskFilter, TaskPatch, TaskPriority, TaskStatus

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)

TASK_ROW = {
    "id": "t1",
    "title": "Renew passport",
    "description": "",
    "deadline": "2026-03-12T00:00:00.000Z",
    "status": "pending",
    "priority": "high",
    "goal_id": None,
    "is_repeat_template": 0,
    "parent_task_id": None,
    "repeat_type": "none",
    "repeat_interval": 1,
    "repeat_end_date": None,
    "next_due_date": None,
    "created_at": "2026-03-10T09:00:00.000Z",
    "updated_at": "2026-03-10T09:00:00.000Z",
    "completed_at": None,
}


def ok(data) -> dict:
    return {"success": True, "data": data}


class Recorder:
    """MockTransport handler that records requests and answers from a route table."""

    def __init__(self, routes: dict[tuple[str, str], dict]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"success": False, "error": "no route"})
        return httpx.Response(200, json=self.routes[key])


def make_backend(handler, token: str | None = "secret") -> RemoteBackend:
    return RemoteBackend("http://api.test/api", token=token, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_tasks_unwraps_envelope_and_sends_auth() -> None:
    rec = Recorder({("GET", "/api/tasks"): ok([TASK_ROW])})
    backend = make_backend(rec)

    tasks = await backend.list_tasks(TaskFilter(status=TaskStatus.PENDING, is_template=False))
    await backend.close()

    assert [t.id for t in tasks] == ["t1"]
    assert tasks[0].priority is TaskPriority.HIGH
    assert tasks[0].deadline == datetime(2026, 3, 12, tzinfo=UTC)
    assert tasks[0].is_repeat_template is False

    request = rec.requests[0]
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.url.params["status"] == "pending"
    assert request.url.params["is_template"] == "false"


@pytest.mark.asyncio
async def test_no_token_sends_no_auth_header() -> None:
    rec = Recorder({("GET", "/api/goals"): ok([])})
    backend = make_backend(rec, token=None)

    assert await backend.list_goals() == []
    assert "Authorization" not in rec.requests[0].headers


@pytest.mark.asyncio
async def test_create_task_posts_wire_row() -> None:
    rec = Recorder({("POST", "/api/tasks"): ok(TASK_ROW)})
    backend = make_backend(rec)
    task = Task(
        id="t1",
        title="Renew passport",
        description="",
        status=TaskStatus.PENDING,
        priority=TaskPriority.HIGH,
        created_at=NOW,
        updated_at=NOW,
        parent_template_id="tpl",
    )

    created = await backend.create_task(task)

    sent = json.loads(rec.requests[0].content)
    assert sent["parent_task_id"] == "tpl"
    assert sent["goal_id"] is None
    assert sent["created_at"] == NOW.isoformat()
    assert created.id == "t1"


@pytest.mark.asyncio
async def test_update_task_sends_only_changed_fields() -> None:
    rec = Recorder({("PUT", "/api/tasks/t1"): ok({**TASK_ROW, "status": "completed"})})
    backend = make_backend(rec)

    updated = await backend.update_task("t1", TaskPatch(status=TaskStatus.COMPLETED, goal_id=None))

    assert json.loads(rec.requests[0].content) == {"status": "completed", "goal_id": None}
    assert updated.status is TaskStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error"),
    [
        (400, ValidationError),
        (422, ValidationError),
        (404, NotFoundError),
        (409, ConflictError),
        (500, ConnectivityError),
        (503, ConnectivityError),
    ],
)
async def test_status_codes_map_to_errors(status: int, error: type[Exception]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"success": False, "error": "nope"})

    backend = make_backend(handler)
    with pytest.raises(error):
        await backend.get_task("t1")


@pytest.mark.asyncio
async def test_not_found_carries_kind_and_id() -> None:
    backend = make_backend(lambda request: httpx.Response(404))

    with pytest.raises(NotFoundError) as exc_info:
        await backend.get_goal("goal_1")

    assert exc_info.value.kind == "goal"
    assert exc_info.value.item_id == "goal_1"


@pytest.mark.asyncio
async def test_transport_failures_are_connectivity_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = make_backend(refuse)

    with pytest.raises(ConnectivityError):
        await backend.list_tasks()
    assert await backend.check_connection() is False


@pytest.mark.asyncio
async def test_malformed_bodies_are_connectivity_errors() -> None:
    backend = make_backend(lambda request: httpx.Response(200, text="<html>proxy error</html>"))
    with pytest.raises(ConnectivityError):
        await backend.list_tasks()

    backend = make_backend(lambda request: httpx.Response(200, json={"success": False, "error": "db down"}))
    with pytest.raises(ConnectivityError, match="db down"):
        await backend.list_tasks()


@pytest.mark.asyncio
async def test_check_connection_ok() -> None:
    backend = make_backend(Recorder({("GET", "/api/statistics"): ok({"total_tasks_created": 2})}))
    assert await backend.check_connection() is True


@pytest.mark.asyncio
async def test_settings_values_are_json_decoded() -> None:
    rec = Recorder(
        {
            ("GET", "/api/settings"): ok({"theme": '"dark"', "notifications": "false", "defaultDeadlineHours": 48, "motto": "carpe diem"}),
            ("PUT", "/api/settings"): ok(None),
        }
    )
    backend = make_backend(rec)

    settings = await backend.get_settings()
    assert settings == {"theme": "dark", "notifications": False, "defaultDeadlineHours": 48, "motto": "carpe diem"}

    await backend.put_setting("theme", "light")
    assert json.loads(rec.requests[-1].content) == {"setting_key": "theme", "setting_value": "light"}


@pytest.mark.asyncio
async def test_increment_statistic_reads_then_writes() -> None:
    rec = Recorder(
        {
            ("GET", "/api/statistics"): ok({"total_tasks_completed": 4, "streak_days": 2, "last_active_date": "2026-03-09"}),
            ("PUT", "/api/statistics"): ok(None),
        }
    )
    backend = make_backend(rec)

    stats = await backend.increment_statistic("total_tasks_completed")

    assert stats.total_tasks_completed == 5
    assert json.loads(rec.requests[-1].content) == {"total_tasks_completed": 5}

    with pytest.raises(ValidationError):
        await backend.increment_statistic("last_active_date")
    with pytest.raises(ValidationError):
        await backend.update_statistics({"bogus": 1})


@pytest.mark.asyncio
async def test_export_and_import_snapshot() -> None:
    exported = {
        "tasks": [TASK_ROW],
        "goals": [],
        "settings": {"theme": "dark"},
        "statistics": {"total_tasks_created": 1},
        "exportDate": NOW.isoformat(),
        "version": "1.0.0",
    }
    rec = Recorder({("GET", "/api/export"): ok(exported), ("POST", "/api/import"): ok(None)})
    backend = make_backend(rec)

    snapshot = await backend.export_all()
    assert [t.id for t in snapshot.tasks] == ["t1"]
    assert snapshot.statistics == Statistics(total_tasks_created=1)

    await backend.import_all(snapshot)
    body = json.loads(rec.requests[-1].content)
    assert body["tasks"][0]["id"] == "t1"
    assert body["statistics"]["total_tasks_created"] == 1
    assert body["settings"] == {"theme": "dark"}


@pytest.mark.asyncio
async def test_export_with_malformed_snapshot() -> None:
    backend = make_backend(Recorder({("GET", "/api/export"): ok({"tasks": ["bad"]})}))
    with pytest.raises(ConnectivityError):
        await backend.export_all()
