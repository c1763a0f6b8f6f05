"""Domain ports (interfaces) for dependency inversion.

Implementations live in the infrastructure layer; tests provide fakes.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from audiomuse_aio.domain.entities import (
    LibraryPath,
    Task,
    TaskSnapshot,
    TaskType,
)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ICommandRunner(ABC):
    """Runs external commands (initdb, psql, supervisorctl, pg_isready)."""

    @abstractmethod
    async def run(
        self,
        argv: Sequence[str],
        *,
        user: str | None = None,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``argv`` (optionally as another OS user) and wait for it."""
        pass


class IProcessSupervisor(ABC):
    """Process supervision layer (supervisord in the container).

    The bootstrap sequencer never spawns or signals processes itself; it asks
    this layer to start or restart named programs.
    """

    @abstractmethod
    async def start(self, names: Sequence[str]) -> None:
        """Start the named programs (fire-and-forget)."""
        pass

    @abstractmethod
    async def restart(self, name: str) -> None:
        """Restart one named program."""
        pass


class ICredentialStore(ABC):
    """Where the consumer process reads its service environment from."""

    @abstractmethod
    def publish(self, values: Mapping[str, str]) -> None:
        """Replace the published environment in one atomic step."""
        pass

    @abstractmethod
    def read(self) -> dict[str, str]:
        """Return the currently published environment (empty if none)."""
        pass


class ITaskStore(ABC):
    """Persistence for tasks.

    Implementations store copies: callers mutate their own Task instance and
    call save(); readers never see a partially applied update.
    """

    @abstractmethod
    async def add(self, task: Task) -> None:
        """Store a new task as the current one for its type.

        The previous (terminal) task of that type is archived.

        Raises:
            TaskConflictError: The current task of that type is still active
        """
        pass

    @abstractmethod
    async def save(self, task: Task) -> None:
        """Persist the full state of an existing task."""
        pass

    @abstractmethod
    async def get(self, task_id: str) -> Task | None:
        """Get a task (current or archived) by id."""
        pass

    @abstractmethod
    async def current(self, task_type: TaskType) -> Task | None:
        """Get the current task of a type, if any ever ran."""
        pass

    @abstractmethod
    async def latest(self) -> Task | None:
        """Get the most recently started current task of any type."""
        pass

    @abstractmethod
    async def fail_interrupted(self, message: str) -> int:
        """Move tasks left non-terminal by a crash to FAILURE. Returns count."""
        pass


class ILibraryPathRepository(ABC):
    """Repository for library paths."""

    @abstractmethod
    async def list_all(self) -> list[LibraryPath]:
        pass

    @abstractmethod
    async def get(self, path_id: int) -> LibraryPath | None:
        pass

    @abstractmethod
    async def add(self, path: str) -> LibraryPath:
        pass

    @abstractmethod
    async def record_scan(self, library_path: LibraryPath) -> None:
        """Persist song_count and last_scan_ended."""
        pass


class ITaskStatusSource(ABC):
    """Client-side view of the Task API used by the status poller."""

    @abstractmethod
    async def get_status(self, task_type: TaskType) -> TaskSnapshot | None:
        """Latest snapshot for a type, None if that type never ran."""
        pass

    @abstractmethod
    async def cancel(self, task_id: str) -> bool:
        """Request cancellation. False if the task is unknown."""
        pass


__all__ = [
    "CommandResult",
    "ICommandRunner",
    "ICredentialStore",
    "ILibraryPathRepository",
    "IProcessSupervisor",
    "ITaskStatusSource",
    "ITaskStore",
]
