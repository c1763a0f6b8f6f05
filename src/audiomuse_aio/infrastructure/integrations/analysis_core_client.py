"""HTTP client for the analysis core (sonic analysis, clustering, cleaning)."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from audiomuse_aio.domain.entities import TaskStatus, TaskType
from audiomuse_aio.domain.exceptions import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

START_PATHS: dict[TaskType, str] = {
    TaskType.SONIC_ANALYSIS: "/api/analysis/start",
    TaskType.CLUSTERING: "/api/clustering/start",
    TaskType.CLEANING: "/api/cleaning/start",
}

# The core reports its queue's job states; REVOKED is its word for cancelled.
_REMOTE_STATUS = {
    "PENDING": TaskStatus.PENDING,
    "QUEUED": TaskStatus.PENDING,
    "STARTED": TaskStatus.STARTED,
    "PROGRESS": TaskStatus.PROGRESS,
    "SUCCESS": TaskStatus.SUCCESS,
    "FINISHED": TaskStatus.SUCCESS,
    "FAILURE": TaskStatus.FAILURE,
    "FAILED": TaskStatus.FAILURE,
    "REVOKED": TaskStatus.CANCELLED,
    "CANCELLED": TaskStatus.CANCELLED,
    "CANCELED": TaskStatus.CANCELLED,
}


@dataclass(frozen=True)
class RemoteTaskStatus:
    """Status of a job inside the analysis core."""

    task_id: str
    status: TaskStatus
    progress: float
    message: str

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "RemoteTaskStatus":
        raw_status = str(data.get("status") or data.get("state") or "PENDING").upper()
        status = _REMOTE_STATUS.get(raw_status)
        if status is None:
            raise ExternalServiceError(f"Analysis core reported unknown status {raw_status}")
        details = data.get("details")
        message = ""
        if isinstance(details, dict):
            message = str(details.get("status_message") or details.get("message") or "")
        elif isinstance(details, str):
            message = details
        return cls(
            task_id=str(data.get("task_id") or ""),
            status=status,
            progress=float(data.get("progress") or 0.0),
            message=message,
        )


class AnalysisCoreClient:
    """Starts, observes and cancels analysis core jobs."""

    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise ExternalServiceError(f"Analysis core unreachable at {url}: {e}") from e
        return response

    async def start(self, task_type: TaskType, params: dict[str, Any] | None = None) -> str:
        """Start a job and return the core's task id.

        Raises:
            ValidationError: For task types the core does not run
            ExternalServiceError: On transport errors or a rejected start
        """
        path = START_PATHS.get(task_type)
        if path is None:
            raise ValidationError(f"Analysis core does not run {task_type.value} tasks")
        response = await self._request("POST", path, json=params or {})
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Analysis core rejected {task_type.value} start: "
                f"HTTP {response.status_code} {response.text[:200]}"
            )
        data = response.json()
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise ExternalServiceError("Analysis core start response carried no task_id")
        logger.info(
            f"Analysis core started {task_type.value}",
            extra={"remote_task_id": task_id},
        )
        return str(task_id)

    async def get_status(self, remote_task_id: str) -> RemoteTaskStatus | None:
        """Status of a core job; None if the core does not know it."""
        response = await self._request("GET", f"/api/status/{remote_task_id}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Analysis core status failed: HTTP {response.status_code}"
            )
        data = response.json()
        if not isinstance(data, dict):
            raise ExternalServiceError("Analysis core status response is not an object")
        data.setdefault("task_id", remote_task_id)
        return RemoteTaskStatus.from_payload(data)

    async def cancel(self, remote_task_id: str) -> bool:
        """Forward a cancellation. False if the core does not know the job."""
        response = await self._request("POST", f"/api/cancel/{remote_task_id}")
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Analysis core cancel failed: HTTP {response.status_code}"
            )
        return True
