"""Domain entities."""

from audiomuse_aio.domain.entities.services import (
    CheckKind,
    Credential,
    LibraryPath,
    ReadinessCheckSpec,
    ServiceDescriptor,
)
from audiomuse_aio.domain.entities.task import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Task,
    TaskSnapshot,
    TaskStatus,
    TaskType,
)

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "CheckKind",
    "Credential",
    "LibraryPath",
    "ReadinessCheckSpec",
    "ServiceDescriptor",
    "Task",
    "TaskSnapshot",
    "TaskStatus",
    "TaskType",
]
