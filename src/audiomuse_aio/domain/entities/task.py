"""Task entity and its state machine."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from audiomuse_aio.domain.exceptions import InvalidStateException, ValidationError


class TaskType(str, Enum):
    """Named job types. At most one non-terminal task per type."""

    SCAN = "scan"
    SONIC_ANALYSIS = "sonicAnalysis"
    CLUSTERING = "clustering"
    CLEANING = "cleaning"

    @classmethod
    def parse(cls, value: str) -> "TaskType":
        """Parse a wire value, raising ValidationError for unknown types."""
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Unknown task type: {value}") from exc


class TaskStatus(str, Enum):
    """Task status.

    Flow: PENDING → STARTED → PROGRESS → SUCCESS | FAILURE,
    or any non-terminal state → CANCELLED.
    """

    PENDING = "PENDING"
    STARTED = "STARTED"
    PROGRESS = "PROGRESS"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TaskStatus.SUCCESS, TaskStatus.FAILURE, TaskStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset(
    {TaskStatus.PENDING, TaskStatus.STARTED, TaskStatus.PROGRESS}
)


# Hey future me - Task is mutated ONLY through these methods. The transition table is the
# whole state machine: PROGRESS → PROGRESS is allowed (incremental updates), nothing ever
# leaves a terminal state. The manager stores copies, so a half-applied change is never
# visible to status readers.
@dataclass
class Task:
    """A named, cancellable, long-running background job."""

    id: str
    task_type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    progress: float = 0.0
    message: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    ended_at: datetime | None = None

    _TRANSITIONS: ClassVar[dict[TaskStatus, frozenset[TaskStatus]]] = {
        TaskStatus.PENDING: frozenset({TaskStatus.STARTED, TaskStatus.CANCELLED}),
        TaskStatus.STARTED: frozenset({TaskStatus.PROGRESS, TaskStatus.CANCELLED}),
        TaskStatus.PROGRESS: frozenset(
            {
                TaskStatus.PROGRESS,
                TaskStatus.SUCCESS,
                TaskStatus.FAILURE,
                TaskStatus.CANCELLED,
            }
        ),
        TaskStatus.SUCCESS: frozenset(),
        TaskStatus.FAILURE: frozenset(),
        TaskStatus.CANCELLED: frozenset(),
    }

    def __post_init__(self) -> None:
        """Validate task data."""
        if self.progress < 0.0 or self.progress > 100.0:
            raise ValueError("Progress must be between 0 and 100")

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def can_transition(self, target: TaskStatus) -> bool:
        return target in self._TRANSITIONS[self.status]

    def _transition(self, target: TaskStatus) -> None:
        if not self.can_transition(target):
            raise InvalidStateException(
                f"Task {self.id}: illegal transition {self.status.value} → {target.value}"
            )
        self.status = target
        if target.is_terminal:
            self.ended_at = datetime.now(UTC)

    def start(self, message: str = "Task started") -> None:
        """Mark the task as picked up by its worker."""
        self._transition(TaskStatus.STARTED)
        self.message = message

    def update_progress(self, percent: float, message: str | None = None) -> None:
        """Record incremental progress; clamps to 0-100."""
        self._transition(TaskStatus.PROGRESS)
        self.progress = min(100.0, max(0.0, float(percent)))
        if message is not None:
            self.message = message

    def complete(self, message: str = "Task completed") -> None:
        """Mark task as successfully finished."""
        self._ensure_progress()
        self._transition(TaskStatus.SUCCESS)
        self.progress = 100.0
        self.message = message

    def fail(self, error_message: str) -> None:
        """Mark task as failed. Failed tasks are never retried automatically."""
        self._ensure_progress()
        self._transition(TaskStatus.FAILURE)
        self.message = error_message

    def cancel(self, message: str = "Task cancelled") -> None:
        """Mark task as cancelled."""
        self._transition(TaskStatus.CANCELLED)
        self.message = message

    def interrupt(self, message: str) -> None:
        """Fail a task whose worker is gone (shutdown or crash).

        Walks the regular path, so a PENDING task passes STARTED and PROGRESS
        on its way to FAILURE.
        """
        if self.status == TaskStatus.PENDING:
            self._transition(TaskStatus.STARTED)
        self.fail(message)

    def _ensure_progress(self) -> None:
        # SUCCESS/FAILURE are only reachable from PROGRESS
        if self.status == TaskStatus.STARTED:
            self._transition(TaskStatus.PROGRESS)

    def running_time_seconds(self, now: datetime | None = None) -> float:
        end = self.ended_at or now or datetime.now(UTC)
        return max(0.0, (end - self.started_at).total_seconds())

    def snapshot(self) -> "TaskSnapshot":
        """Freeze the current state for readers."""
        return TaskSnapshot(
            task_id=self.id,
            task_type=self.task_type,
            status=self.status,
            progress=self.progress,
            message=self.message,
            started_at=self.started_at,
            ended_at=self.ended_at,
            running_time_seconds=self.running_time_seconds(),
        )


@dataclass(frozen=True)
class TaskSnapshot:
    """Read-only view of a task at one point in time."""

    task_id: str
    task_type: TaskType
    status: TaskStatus
    progress: float
    message: str
    started_at: datetime
    ended_at: datetime | None
    running_time_seconds: float

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Wire format shared by the Task API and its clients."""
        return {
            "task_id": self.task_id,
            "task_type": self.task_type.value,
            "status": self.status.value,
            "progress": self.progress,
            "details": {"status_message": self.message},
            "running_time_seconds": round(self.running_time_seconds, 3),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskSnapshot":
        """Parse the wire format produced by ``to_dict``."""
        ended_at = data.get("ended_at")
        details = data.get("details") or {}
        return cls(
            task_id=str(data["task_id"]),
            task_type=TaskType.parse(data["task_type"]),
            status=TaskStatus(data["status"]),
            progress=float(data.get("progress") or 0.0),
            message=str(details.get("status_message") or ""),
            started_at=datetime.fromisoformat(data["started_at"]),
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
            running_time_seconds=float(data.get("running_time_seconds") or 0.0),
        )
