"""Task lifecycle: one active task per type, cooperative cancellation."""

from audiomuse_aio.application.tasks.cancellation import CancellationToken, TaskContext
from audiomuse_aio.application.tasks.manager import (
    CancelResult,
    TaskHandler,
    TaskLifecycleManager,
)

__all__ = [
    "CancelResult",
    "CancellationToken",
    "TaskContext",
    "TaskHandler",
    "TaskLifecycleManager",
]
