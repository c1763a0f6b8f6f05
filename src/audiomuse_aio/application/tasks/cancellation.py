"""Cooperative cancellation token and the execution context handed to task handlers."""

import asyncio
from collections.abc import Awaitable, Callable

from audiomuse_aio.domain.exceptions import TaskCancelled


class CancellationToken:
    """A flag the worker polls at its checkpoints. Setting it never interrupts anything."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> bool:
        """Request cancellation. Returns False if it was already requested."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()


ProgressCallback = Callable[[float, str | None], Awaitable[None]]


# Hey future me - this is ALL a handler gets to talk to the manager. report_progress()
# persists a PROGRESS update; checkpoint() raises TaskCancelled once cancel was requested.
# Call checkpoint() between units of work (files, remote polls) and nowhere else.
class TaskContext:
    """Execution context passed into a task handler."""

    def __init__(
        self,
        task_id: str,
        params: dict,
        token: CancellationToken,
        on_progress: ProgressCallback,
    ) -> None:
        self.task_id = task_id
        self.params = params
        self.token = token
        self._on_progress = on_progress

    @property
    def cancel_requested(self) -> bool:
        return self.token.is_cancelled

    def checkpoint(self) -> None:
        """Raise TaskCancelled if cancellation was requested."""
        if self.token.is_cancelled:
            raise TaskCancelled(self.task_id, self.token.reason)

    async def report_progress(self, percent: float, message: str | None = None) -> None:
        await self._on_progress(percent, message)
