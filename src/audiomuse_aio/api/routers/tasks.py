"""Task endpoints: start, status and cancel of background jobs."""

import logging

from fastapi import APIRouter, Depends, status

from audiomuse_aio.api.dependencies import get_task_manager
from audiomuse_aio.api.schemas.tasks import (
    CancelTaskResponse,
    StartTaskRequest,
    StartTaskResponse,
    TaskSnapshotResponse,
)
from audiomuse_aio.application.tasks.manager import TaskLifecycleManager
from audiomuse_aio.domain.entities import TaskType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks")


# Hey future me - route ORDER matters: /last has to be registered before /{task_id} or
# "last" is looked up as a task id and 404s.
@router.post(
    "/{task_type}/start",
    response_model=StartTaskResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_task(
    task_type: str,
    body: StartTaskRequest | None = None,
    manager: TaskLifecycleManager = Depends(get_task_manager),
) -> StartTaskResponse:
    """Start a task. 409 when a task of that type is still running."""
    snapshot = await manager.start(TaskType.parse(task_type), body.params if body else None)
    return StartTaskResponse(
        task_id=snapshot.task_id,
        task_type=snapshot.task_type.value,
        status=snapshot.status.value,
    )


@router.get("/{task_type}/status", response_model=TaskSnapshotResponse)
async def get_task_status(
    task_type: str,
    manager: TaskLifecycleManager = Depends(get_task_manager),
) -> TaskSnapshotResponse:
    """Latest task of a type. 404 if that type never ran."""
    snapshot = await manager.status(TaskType.parse(task_type))
    return TaskSnapshotResponse.from_snapshot(snapshot)


@router.get("/last", response_model=TaskSnapshotResponse)
async def get_last_task(
    manager: TaskLifecycleManager = Depends(get_task_manager),
) -> TaskSnapshotResponse:
    """Most recently started task of any type."""
    return TaskSnapshotResponse.from_snapshot(await manager.latest())


@router.get("/{task_id}", response_model=TaskSnapshotResponse)
async def get_task(
    task_id: str,
    manager: TaskLifecycleManager = Depends(get_task_manager),
) -> TaskSnapshotResponse:
    return TaskSnapshotResponse.from_snapshot(await manager.get(task_id))


@router.post(
    "/{task_id}/cancel",
    response_model=CancelTaskResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def cancel_task(
    task_id: str,
    manager: TaskLifecycleManager = Depends(get_task_manager),
) -> CancelTaskResponse:
    """Request cooperative cancellation. Finished tasks are left unchanged."""
    result = await manager.cancel(task_id)
    return CancelTaskResponse(
        task_id=result.task_id, status=result.status.value, accepted=result.accepted
    )
