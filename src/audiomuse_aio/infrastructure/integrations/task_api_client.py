"""Client for the Task API, used by the status poller and the CLI."""

import logging
from typing import Any

import httpx

from audiomuse_aio.domain.entities import TaskSnapshot, TaskType
from audiomuse_aio.domain.exceptions import ExternalServiceError, TaskConflictError
from audiomuse_aio.domain.ports import ITaskStatusSource

logger = logging.getLogger(__name__)


class TaskApiClient(ITaskStatusSource):
    """httpx client for ``/api/tasks``."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        return await client.request(method, f"{self.base_url}{path}", **kwargs)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Task API {response.request.method} {response.request.url.path} "
                f"returned {response.status_code}: {response.text[:200]}"
            )

    async def start(
        self, task_type: TaskType, params: dict[str, Any] | None = None
    ) -> str:
        """Start a task and return its id.

        Raises:
            TaskConflictError: If a task of that type is still active
            ExternalServiceError: On any other error status
        """
        response = await self._request(
            "POST", f"/api/tasks/{task_type.value}/start", json={"params": params or {}}
        )
        if response.status_code == 409:
            body = response.json()
            detail = body.get("detail") if isinstance(body, dict) else None
            active_id = body.get("active_task_id", "") if isinstance(body, dict) else ""
            logger.info(f"{task_type.value} start rejected: {detail}")
            raise TaskConflictError(task_type.value, str(active_id))
        self._raise_for_status(response)
        return str(response.json()["task_id"])

    async def get_status(self, task_type: TaskType) -> TaskSnapshot | None:
        response = await self._request("GET", f"/api/tasks/{task_type.value}/status")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return TaskSnapshot.from_dict(response.json())

    async def get_task(self, task_id: str) -> TaskSnapshot | None:
        response = await self._request("GET", f"/api/tasks/{task_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return TaskSnapshot.from_dict(response.json())

    async def last_task(self) -> TaskSnapshot | None:
        response = await self._request("GET", "/api/tasks/last")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return TaskSnapshot.from_dict(response.json())

    async def cancel(self, task_id: str) -> bool:
        response = await self._request("POST", f"/api/tasks/{task_id}/cancel")
        if response.status_code == 404:
            return False
        self._raise_for_status(response)
        return bool(response.json().get("accepted", True))
