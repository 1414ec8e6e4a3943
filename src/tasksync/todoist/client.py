"""
Async client for the Todoist REST v2 API.

Only the project/task operations the sync engine and the API layer need are
wrapped. Every failure (transport error, timeout, non-2xx response) surfaces as
a single RemoteOperationError so callers never have to know about httpx.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from tasksync.config import get_settings
from tasksync.sync.exceptions import RemoteOperationError
from tasksync.todoist.schemas import RemoteProject, RemoteTask

logger = logging.getLogger(__name__)


class TodoistClient:
    """
    Thin async wrapper over httpx.AsyncClient, authenticated per user.

    Usage:
        async with TodoistClient(user.remote_token) as client:
            projects = await client.list_projects()
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            token: The user's Todoist API token.
            base_url: API root. Defaults to settings.todoist_base_url.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        settings = get_settings()
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.todoist_base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.todoist_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "TodoistClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request; return decoded JSON, or None for empty bodies."""
        logger.debug("Todoist %s %s", method, path)
        try:
            response = await self._http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteOperationError(
                f"Todoist {method} {path} failed with "
                f"{exc.response.status_code}: {exc.response.text}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteOperationError(
                f"Todoist {method} {path} failed: {exc}"
            ) from exc

        if not response.content:
            return None
        return response.json()

    # ── Projects ──────────────────────────────────────────────────────────────

    async def list_projects(self) -> List[RemoteProject]:
        data = await self._request("GET", "/projects")
        return [RemoteProject.model_validate(p) for p in data or []]

    async def create_project(
        self, name: str, description: Optional[str] = None
    ) -> RemoteProject:
        """Create a remote project.

        Todoist projects have no description field, so description is accepted
        for interface symmetry with create_task but not sent.
        """
        data = await self._request("POST", "/projects", json={"name": name})
        return RemoteProject.model_validate(data)

    async def update_project(self, project_id: str, name: str) -> RemoteProject:
        data = await self._request(
            "POST", f"/projects/{project_id}", json={"name": name}
        )
        return RemoteProject.model_validate(data)

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")

    # ── Tasks ─────────────────────────────────────────────────────────────────

    async def list_tasks(self, project_id: Optional[str] = None) -> List[RemoteTask]:
        params = {"project_id": project_id} if project_id else {}
        data = await self._request("GET", "/tasks", params=params)
        return [RemoteTask.model_validate(t) for t in data or []]

    async def create_task(
        self,
        title: str,
        description: str,
        project_id: Optional[str] = None,
    ) -> RemoteTask:
        payload: Dict[str, Any] = {"content": title, "description": description}
        if project_id:
            payload["project_id"] = project_id
        data = await self._request("POST", "/tasks", json=payload)
        return RemoteTask.model_validate(data)

    async def update_task(
        self, task_id: str, title: str, description: str
    ) -> RemoteTask:
        data = await self._request(
            "POST",
            f"/tasks/{task_id}",
            json={"content": title, "description": description},
        )
        return RemoteTask.model_validate(data)

    async def complete_task(self, task_id: str) -> None:
        await self._request("POST", f"/tasks/{task_id}/close")

    async def reopen_task(self, task_id: str) -> None:
        await self._request("POST", f"/tasks/{task_id}/reopen")

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")
