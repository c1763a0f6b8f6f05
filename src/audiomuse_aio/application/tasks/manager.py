"""Task Lifecycle Manager: start, observe and cancel named background jobs."""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from audiomuse_aio.application.tasks.cancellation import CancellationToken, TaskContext
from audiomuse_aio.domain.entities import Task, TaskSnapshot, TaskStatus, TaskType
from audiomuse_aio.domain.exceptions import (
    ConfigurationError,
    EntityNotFoundException,
    TaskCancelled,
    TaskConflictError,
)
from audiomuse_aio.domain.ports import ITaskStore

logger = logging.getLogger(__name__)

# A handler may return a completion message
TaskHandler = Callable[[TaskContext], Awaitable[str | None]]

INTERRUPTED_BY_SHUTDOWN = "Interrupted by shutdown"
INTERRUPTED_BY_RESTART = "Interrupted by restart"


@dataclass(frozen=True)
class CancelResult:
    """Answer to a cancel request. ``status`` is the task's status after the request."""

    task_id: str
    status: TaskStatus
    accepted: bool = True


# Hey future me - the rules live here:
# 1. start() is serialized PER TYPE (one asyncio.Lock each). The "is a task of this type
#    still active?" check and the insert of the new PENDING task happen under that lock,
#    so two concurrent starts can't both pass the check.
# 2. The manager holds the live Task of each running job; every mutation + store.save()
#    happens under _write_lock, so a cancel request and a progress update never interleave.
# 3. Readers (status/get/latest) go straight to the store, which hands out copies.
# 4. Cancellation is cooperative: cancel() only sets the token. The worker sees it at its
#    next checkpoint and the task ends CANCELLED, never SUCCESS or FAILURE.
class TaskLifecycleManager:
    """Owns all task state transitions."""

    def __init__(
        self,
        store: ITaskStore,
        handlers: Mapping[TaskType, TaskHandler],
        shutdown_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.handlers = dict(handlers)
        self.shutdown_timeout = shutdown_timeout
        self._start_locks = {task_type: asyncio.Lock() for task_type in TaskType}
        self._write_lock = asyncio.Lock()
        self._live: dict[str, Task] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._runners: dict[str, asyncio.Task[None]] = {}

    def register_handler(self, task_type: TaskType, handler: TaskHandler) -> None:
        self.handlers[task_type] = handler

    async def recover(self) -> int:
        """Fail tasks a previous process left non-terminal. Call once at startup."""
        count = await self.store.fail_interrupted(INTERRUPTED_BY_RESTART)
        if count:
            logger.warning(f"Marked {count} interrupted task(s) as FAILURE")
        return count

    async def start(
        self, task_type: TaskType, params: dict[str, Any] | None = None
    ) -> TaskSnapshot:
        """Create a PENDING task and schedule it. Returns without waiting for it.

        Raises:
            TaskConflictError: A task of this type is still non-terminal
            ConfigurationError: No handler is registered for the type
        """
        handler = self.handlers.get(task_type)
        if handler is None:
            raise ConfigurationError(f"No handler registered for task type '{task_type.value}'")

        async with self._start_locks[task_type]:
            current = await self.store.current(task_type)
            if current is not None and current.is_active:
                logger.info(
                    f"Rejected {task_type.value} start, {current.id} still {current.status.value}"
                )
                raise TaskConflictError(task_type.value, current.id)

            task = Task(id=str(uuid.uuid4()), task_type=task_type, params=dict(params or {}))
            await self.store.add(task)
            token = CancellationToken()
            self._live[task.id] = task
            self._tokens[task.id] = token
            runner = asyncio.create_task(
                self._execute(task, handler, token), name=f"task-{task_type.value}-{task.id}"
            )
            self._runners[task.id] = runner
            runner.add_done_callback(lambda _: self._runners.pop(task.id, None))
            logger.info(
                f"Started {task_type.value} task {task.id}",
                extra={"task_id": task.id, "task_type": task_type.value},
            )
            return task.snapshot()

    async def _save(self, task: Task, mutate: Callable[[Task], None]) -> None:
        async with self._write_lock:
            mutate(task)
            await self.store.save(task)

    async def _execute(self, task: Task, handler: TaskHandler, token: CancellationToken) -> None:
        context = TaskContext(
            task.id,
            dict(task.params),
            token,
            lambda percent, message: self._save(
                task, lambda t: t.update_progress(percent, message)
            ),
        )
        try:
            if token.is_cancelled:
                raise TaskCancelled(task.id, token.reason)
            await self._save(task, lambda t: t.start())
            message = await handler(context)
            # final checkpoint: a cancel that arrived during the last unit still wins
            context.checkpoint()
            await self._save(task, lambda t: t.complete(message or "Task completed"))
            logger.info(f"Task {task.id} ({task.task_type.value}) succeeded")
        except TaskCancelled as e:
            await self._save(task, lambda t: t.cancel(e.message))
            logger.info(f"Task {task.id} ({task.task_type.value}) cancelled")
        except asyncio.CancelledError:
            await self._save(task, lambda t: t.interrupt(INTERRUPTED_BY_SHUTDOWN))
            logger.warning(f"Task {task.id} ({task.task_type.value}) interrupted by shutdown")
            raise
        except Exception as e:
            error_message = str(e) or type(e).__name__
            if token.is_cancelled:
                # the cancel was accepted first, so it decides the outcome
                logger.warning(
                    f"Task {task.id} ({task.task_type.value}) raised while cancelling: "
                    f"{error_message}"
                )
                reason = token.reason or "Task cancelled"
                await self._save(task, lambda t: t.cancel(reason))
                return
            logger.exception(f"Task {task.id} ({task.task_type.value}) failed")
            await self._save(task, lambda t: t.fail(error_message))
        finally:
            self._live.pop(task.id, None)
            self._tokens.pop(task.id, None)

    async def cancel(self, task_id: str) -> CancelResult:
        """Request cooperative cancellation.

        Terminal or already-cancelling tasks are left as they are.

        Raises:
            EntityNotFoundException: Unknown task id
        """
        token = self._tokens.get(task_id)
        live = self._live.get(task_id)
        if token is not None and live is not None and live.is_active:
            if token.cancel("Task cancelled by request"):

                def mark(t: Task) -> None:
                    if t.is_active:
                        t.message = "Cancellation requested"

                await self._save(live, mark)
                logger.info(f"Cancellation requested for task {task_id}")
            return CancelResult(task_id, live.status)

        task = await self.store.get(task_id)
        if task is None:
            raise EntityNotFoundException("Task", task_id)
        if task.is_active:
            # active in the store but not running in this process
            async with self._write_lock:
                task.cancel("Task cancelled by request")
                await self.store.save(task)
        return CancelResult(task_id, task.status)

    async def status(self, task_type: TaskType) -> TaskSnapshot:
        """Current task of a type. Raises EntityNotFoundException if it never ran."""
        task = await self.store.current(task_type)
        if task is None:
            raise EntityNotFoundException("Task", task_type.value)
        return task.snapshot()

    async def get(self, task_id: str) -> TaskSnapshot:
        task = await self.store.get(task_id)
        if task is None:
            raise EntityNotFoundException("Task", task_id)
        return task.snapshot()

    async def latest(self) -> TaskSnapshot:
        task = await self.store.latest()
        if task is None:
            raise EntityNotFoundException("Task", "last")
        return task.snapshot()

    def running_task_ids(self) -> list[str]:
        return list(self._runners)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until every running task finished (tests, graceful shutdown)."""
        runners = list(self._runners.values())
        if runners:
            await asyncio.wait(runners, timeout=timeout)

    async def shutdown(self) -> None:
        """Cancel running tasks cooperatively, then forcefully after the timeout."""
        runners = list(self._runners.values())
        if not runners:
            return
        logger.info(f"Stopping {len(runners)} running task(s)")
        for token in list(self._tokens.values()):
            token.cancel("Application shutting down")
        _, pending = await asyncio.wait(runners, timeout=self.shutdown_timeout)
        for runner in pending:
            runner.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"{len(pending)} task(s) did not stop within {self.shutdown_timeout}s")
