"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so handlers can read it without
    # parsing str(exc). Never raise this class directly, always a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found.

    HTTP Status: 404
    """

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class TaskConflictError(DomainException):
    """A task of the same type is still active.

    This is a defined rejection of ``start``, not a system failure. The caller
    gets the id of the active task so it can poll that one instead.

    HTTP Status: 409
    """

    def __init__(self, task_type: str, active_task_id: str) -> None:
        super().__init__(
            f"A {task_type} task is already active (task_id={active_task_id})"
        )
        self.task_type = task_type
        self.active_task_id = active_task_id


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: a task moving from SUCCESS back to PROGRESS, or a poller asked
    to cancel while it is not watching any task.

    HTTP Status: 409
    """

    pass


class ValidationError(DomainException):
    """Input validation failed.

    HTTP Status: 422

    Example:
        raise ValidationError("Unknown task type: indexing")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)

    Example:
        raise ConfigurationError("No handler registered for task type 'scan'")
    """

    pass


class ExternalServiceError(DomainException):
    """An external service (music server, analysis core) returned an error.

    HTTP Status: 502 (Bad Gateway)
    """

    pass


class TaskCancelled(DomainException):
    """Raised inside a worker at a checkpoint once cancellation was requested."""

    def __init__(self, task_id: str, reason: str | None = None) -> None:
        super().__init__(reason or f"Task {task_id} cancelled")
        self.task_id = task_id


# =============================================================================
# Bootstrap failures
# Hey future me - everything below ends the bootstrap sequencer in FAILED.
# The sequencer catches BootstrapError only; anything else is a bug and crashes loudly.
# =============================================================================


class BootstrapError(DomainException):
    """Base class for failures that end bootstrap in the FAILED state."""

    pass


class ProbeTimeoutError(BootstrapError):
    """A dependency did not become ready within its attempt bound."""

    def __init__(self, dependency: str, attempts: int) -> None:
        super().__init__(f"{dependency} not ready after {attempts} attempts")
        self.dependency = dependency
        self.attempts = attempts


class DatastoreInitError(BootstrapError):
    """Datastore creation or role/database setup failed. Never retried."""

    pass


class CredentialExchangeError(BootstrapError):
    """No usable credential could be obtained from the primary service."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class SupervisorError(BootstrapError):
    """The process supervisor rejected a start or restart command."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


__all__ = [
    # Base
    "DomainException",
    # Entity / state
    "EntityNotFoundException",
    "InvalidStateException",
    "ValidationError",
    "TaskConflictError",
    "TaskCancelled",
    # Infrastructure-facing
    "ConfigurationError",
    "ExternalServiceError",
    # Bootstrap
    "BootstrapError",
    "ProbeTimeoutError",
    "DatastoreInitError",
    "CredentialExchangeError",
    "SupervisorError",
]
