"""Client-side task status poller with completion edge detection."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from audiomuse_aio.domain.entities import TaskSnapshot, TaskType
from audiomuse_aio.domain.exceptions import InvalidStateException
from audiomuse_aio.domain.ports import ITaskStatusSource

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[TaskSnapshot], Awaitable[None]]


class PollerState(str, Enum):
    IDLE = "IDLE"
    POLLING = "POLLING"


# Hey future me - previous_active is the whole point of this class. The completion side
# effect fires on the tick where previous_active is True and the fresh snapshot is
# terminal, and nowhere else. Ticks are single-flight: if one is still waiting on the
# network, the next timer tick is skipped instead of racing it, so the edge is seen once.
# Errors never leave the loop; they end up in last_error and the next tick tries again.
class TaskStatusPoller:
    """Watches one task type through the Task API."""

    def __init__(
        self,
        source: ITaskStatusSource,
        task_type: TaskType,
        on_complete: CompletionCallback,
        interval: float = 3.0,
    ) -> None:
        self.source = source
        self.task_type = task_type
        self.on_complete = on_complete
        self.interval = interval

        self.state = PollerState.IDLE
        self.previous_active = False
        self.last_snapshot: TaskSnapshot | None = None
        self.last_error: Exception | None = None
        self.completions = 0
        self._watched_task_id: str | None = None
        self._tick_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def can_cancel(self) -> bool:
        return self.state == PollerState.POLLING

    def notify_started(self, task_id: str | None = None) -> None:
        """Switch to POLLING right after a successful start, before the first tick."""
        self.state = PollerState.POLLING
        self.previous_active = True
        if task_id is not None:
            self._watched_task_id = task_id

    async def tick(self) -> bool:
        """Poll once. Returns False when skipped because a tick is still running."""
        if self._tick_lock.locked():
            logger.debug(f"{self.task_type.value} poll skipped, previous tick still running")
            return False

        async with self._tick_lock:
            try:
                snapshot = await self.source.get_status(self.task_type)
            except Exception as e:
                self.last_error = e
                logger.warning(f"{self.task_type.value} status poll failed: {e}")
                return True

            self.last_error = None
            self.last_snapshot = snapshot
            active = snapshot is not None and snapshot.is_active

            if snapshot is None:
                # type never ran (yet); keep whatever we were expecting
                return True

            if active:
                self.state = PollerState.POLLING
                self._watched_task_id = snapshot.task_id
                self.previous_active = True
                return True

            was_active = self.previous_active
            self.previous_active = False
            self.state = PollerState.IDLE
            self._watched_task_id = None
            if was_active:
                await self._fire_completion(snapshot)
            return True

    async def _fire_completion(self, snapshot: TaskSnapshot) -> None:
        self.completions += 1
        logger.info(
            f"{self.task_type.value} task {snapshot.task_id} finished with {snapshot.status.value}"
        )
        try:
            await self.on_complete(snapshot)
        except Exception as e:
            self.last_error = e
            logger.exception("Completion callback failed")

    async def request_cancel(self) -> bool:
        """Cancel the watched task. Only allowed while POLLING.

        Returns:
            False if the server no longer knows the task

        Raises:
            InvalidStateException: When not POLLING or no task id is known yet
        """
        if self.state != PollerState.POLLING:
            raise InvalidStateException(
                f"Cannot cancel {self.task_type.value}: no task is being watched"
            )
        task_id = self._watched_task_id
        if task_id is None:
            raise InvalidStateException(
                f"Cannot cancel {self.task_type.value}: task id not known yet"
            )
        return await self.source.cancel(task_id)

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                pass

    def start(self) -> None:
        """Start polling in the background."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(
            self._run(self._stop_event), name=f"poller-{self.task_type.value}"
        )

    async def stop(self) -> None:
        if self._loop_task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._loop_task
        self._loop_task = None
