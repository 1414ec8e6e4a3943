"""Tests for TodoistClient.

Requests go through httpx.MockTransport, so these check the exact paths and
payloads sent to Todoist REST v2 and how failures are surfaced.
"""
import json

import httpx
import pytest

from tasksync.sync.exceptions import RemoteOperationError
from tasksync.todoist.client import TodoistClient
from tasksync.todoist.schemas import RemoteProject, RemoteTask

BASE_URL = "https://todoist.test/rest/v2"

FAKE_TASK = {
    "id": "2995104339",
    "content": "Buy milk",
    "description": "whole",
    "project_id": "2203306141",
    "is_completed": False,
    "created_at": "2025-01-10T09:00:00.000000Z",
}


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses=None):
        self.requests = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        status, body = self.responses.get(key, (204, None))
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_client(recorder: Recorder) -> TodoistClient:
    return TodoistClient(
        "tok-123", base_url=BASE_URL, transport=httpx.MockTransport(recorder)
    )


class TestProjects:
    @pytest.mark.asyncio
    async def test_list_projects_parses_models(self):
        recorder = Recorder({
            ("GET", "/rest/v2/projects"): (200, [
                {"id": "1", "name": "Inbox", "is_inbox_project": True},
                {"id": "2", "name": "Work", "color": "red"},
            ]),
        })
        async with make_client(recorder) as client:
            projects = await client.list_projects()
        assert [p.name for p in projects] == ["Inbox", "Work"]
        assert all(isinstance(p, RemoteProject) for p in projects)

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        recorder = Recorder({("GET", "/rest/v2/projects"): (200, [])})
        async with make_client(recorder) as client:
            await client.list_projects()
        assert recorder.last.headers["Authorization"] == "Bearer tok-123"

    @pytest.mark.asyncio
    async def test_create_project_sends_name_only(self):
        recorder = Recorder({
            ("POST", "/rest/v2/projects"): (200, {"id": "9", "name": "Home"}),
        })
        async with make_client(recorder) as client:
            project = await client.create_project("Home", "chores and such")
        assert project.id == "9"
        assert json.loads(recorder.last.content) == {"name": "Home"}

    @pytest.mark.asyncio
    async def test_update_and_delete_project(self):
        recorder = Recorder({
            ("POST", "/rest/v2/projects/9"): (200, {"id": "9", "name": "House"}),
        })
        async with make_client(recorder) as client:
            await client.update_project("9", "House")
            await client.delete_project("9")
        assert json.loads(recorder.requests[0].content) == {"name": "House"}
        assert recorder.last.method == "DELETE"
        assert recorder.last.url.path == "/rest/v2/projects/9"


class TestTasks:
    @pytest.mark.asyncio
    async def test_list_tasks_filters_by_project(self):
        recorder = Recorder({("GET", "/rest/v2/tasks"): (200, [FAKE_TASK])})
        async with make_client(recorder) as client:
            tasks = await client.list_tasks(project_id="2203306141")
        assert recorder.last.url.params["project_id"] == "2203306141"
        assert isinstance(tasks[0], RemoteTask)
        assert tasks[0].content == "Buy milk"

    @pytest.mark.asyncio
    async def test_list_tasks_without_filter_sends_no_params(self):
        recorder = Recorder({("GET", "/rest/v2/tasks"): (200, [])})
        async with make_client(recorder) as client:
            await client.list_tasks()
        assert "project_id" not in recorder.last.url.params

    @pytest.mark.asyncio
    async def test_create_task_payload(self):
        recorder = Recorder({("POST", "/rest/v2/tasks"): (200, FAKE_TASK)})
        async with make_client(recorder) as client:
            await client.create_task("Buy milk", "whole", project_id="2203306141")
        assert json.loads(recorder.last.content) == {
            "content": "Buy milk",
            "description": "whole",
            "project_id": "2203306141",
        }

    @pytest.mark.asyncio
    async def test_create_task_without_project_omits_key(self):
        recorder = Recorder({("POST", "/rest/v2/tasks"): (200, FAKE_TASK)})
        async with make_client(recorder) as client:
            await client.create_task("Buy milk", "")
        assert "project_id" not in json.loads(recorder.last.content)

    @pytest.mark.asyncio
    async def test_update_task_payload(self):
        recorder = Recorder({
            ("POST", "/rest/v2/tasks/2995104339"): (200, FAKE_TASK),
        })
        async with make_client(recorder) as client:
            await client.update_task("2995104339", "Buy oat milk", "")
        assert json.loads(recorder.last.content) == {
            "content": "Buy oat milk",
            "description": "",
        }

    @pytest.mark.asyncio
    async def test_close_and_reopen_handle_empty_body(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            assert await client.complete_task("5") is None
            assert await client.reopen_task("5") is None
            await client.delete_task("5")
        paths = [(r.method, r.url.path) for r in recorder.requests]
        assert paths == [
            ("POST", "/rest/v2/tasks/5/close"),
            ("POST", "/rest/v2/tasks/5/reopen"),
            ("DELETE", "/rest/v2/tasks/5"),
        ]


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_status_becomes_remote_operation_error(self):
        recorder = Recorder({("POST", "/rest/v2/tasks"): (400, {"error": "bad"})})
        async with make_client(recorder) as client:
            with pytest.raises(RemoteOperationError) as exc_info:
                await client.create_task("", "")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_auth_failure_becomes_remote_operation_error(self):
        recorder = Recorder({("GET", "/rest/v2/projects"): (401, {"error": "nope"})})
        async with make_client(recorder) as client:
            with pytest.raises(RemoteOperationError) as exc_info:
                await client.list_projects()
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_transport_error_becomes_remote_operation_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = TodoistClient(
            "tok", base_url=BASE_URL, transport=httpx.MockTransport(handler)
        )
        with pytest.raises(RemoteOperationError) as exc_info:
            await client.list_tasks()
        await client.aclose()
        assert exc_info.value.status_code is None
        assert "connection refused" in str(exc_info.value)
