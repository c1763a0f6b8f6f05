"""API schemas for tasks and library paths."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from audiomuse_aio.domain.entities import LibraryPath, TaskSnapshot


class TaskDetails(BaseModel):
    status_message: str = Field(default="", description="Human-readable progress message")


class TaskSnapshotResponse(BaseModel):
    """Status of one task at the time of the request."""

    task_id: str
    task_type: str
    status: str = Field(description="PENDING, STARTED, PROGRESS, SUCCESS, FAILURE or CANCELLED")
    progress: float = Field(ge=0, le=100)
    details: TaskDetails
    running_time_seconds: float
    started_at: datetime
    ended_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: TaskSnapshot) -> "TaskSnapshotResponse":
        return cls.model_validate(snapshot.to_dict())


class StartTaskRequest(BaseModel):
    params: dict[str, Any] = Field(
        default_factory=dict, description="Task parameters, e.g. {'path_id': 1} for scan"
    )


class StartTaskResponse(BaseModel):
    task_id: str
    task_type: str
    status: str


class CancelTaskResponse(BaseModel):
    task_id: str
    status: str
    accepted: bool


class LibraryPathResponse(BaseModel):
    id: int
    path: str
    song_count: int
    last_scan_ended: datetime | None = None

    @classmethod
    def from_entity(cls, library_path: LibraryPath) -> "LibraryPathResponse":
        return cls(
            id=library_path.id or 0,
            path=library_path.path,
            song_count=library_path.song_count,
            last_scan_ended=library_path.last_scan_ended,
        )


class AddLibraryPathRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Absolute folder path")
