"""Tests for the client-side status poller."""

import asyncio
from datetime import UTC, datetime

import pytest

from audiomuse_aio.application.workers.status_poller import PollerState, TaskStatusPoller
from audiomuse_aio.domain.entities import TaskSnapshot, TaskStatus, TaskType
from audiomuse_aio.domain.exceptions import ExternalServiceError, InvalidStateException
from audiomuse_aio.domain.ports import ITaskStatusSource


def _snapshot(status: TaskStatus, progress: float = 0.0) -> TaskSnapshot:
    return TaskSnapshot(
        task_id="t-1",
        task_type=TaskType.SCAN,
        status=status,
        progress=progress,
        message="",
        started_at=datetime(2024, 1, 1, tzinfo=UTC),
        ended_at=None,
        running_time_seconds=0.0,
    )


class ScriptedSource(ITaskStatusSource):
    """Returns scripted snapshots in order, repeating the last one."""

    def __init__(self, *answers) -> None:
        self.answers = list(answers)
        self.calls = 0
        self.cancelled: list[str] = []
        self.gate: asyncio.Event | None = None

    async def get_status(self, task_type: TaskType) -> TaskSnapshot | None:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        answer = self.answers[min(self.calls, len(self.answers)) - 1]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def cancel(self, task_id: str) -> bool:
        self.cancelled.append(task_id)
        return True


class Refreshes:
    def __init__(self) -> None:
        self.snapshots: list[TaskSnapshot] = []

    async def __call__(self, snapshot: TaskSnapshot) -> None:
        self.snapshots.append(snapshot)


class TestTaskStatusPoller:
    @pytest.mark.asyncio
    async def test_completion_fires_exactly_once(self) -> None:
        source = ScriptedSource(
            _snapshot(TaskStatus.PROGRESS, 40),
            _snapshot(TaskStatus.PROGRESS, 90),
            _snapshot(TaskStatus.SUCCESS, 100),
        )
        refreshes = Refreshes()
        poller = TaskStatusPoller(source, TaskType.SCAN, refreshes, interval=0)

        for _ in range(5):
            await poller.tick()

        assert poller.completions == 1
        assert [s.status for s in refreshes.snapshots] == [TaskStatus.SUCCESS]
        assert poller.state == PollerState.IDLE

    @pytest.mark.asyncio
    async def test_terminal_without_active_phase_does_not_fire(self) -> None:
        source = ScriptedSource(_snapshot(TaskStatus.SUCCESS, 100))
        refreshes = Refreshes()
        poller = TaskStatusPoller(source, TaskType.SCAN, refreshes)

        await poller.tick()

        assert refreshes.snapshots == []

    @pytest.mark.asyncio
    async def test_notify_started_catches_fast_tasks(self) -> None:
        source = ScriptedSource(_snapshot(TaskStatus.SUCCESS, 100))
        refreshes = Refreshes()
        poller = TaskStatusPoller(source, TaskType.SCAN, refreshes)

        poller.notify_started("t-1")
        await poller.tick()

        assert poller.completions == 1

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self) -> None:
        source = ScriptedSource(_snapshot(TaskStatus.PROGRESS, 10))
        source.gate = asyncio.Event()
        poller = TaskStatusPoller(source, TaskType.SCAN, Refreshes())

        first = asyncio.create_task(poller.tick())
        await asyncio.sleep(0)
        assert await poller.tick() is False
        source.gate.set()

        assert await first is True
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_errors_are_kept_and_polling_continues(self) -> None:
        source = ScriptedSource(
            _snapshot(TaskStatus.PROGRESS, 10),
            ExternalServiceError("Task API down"),
            _snapshot(TaskStatus.SUCCESS, 100),
        )
        refreshes = Refreshes()
        poller = TaskStatusPoller(source, TaskType.SCAN, refreshes)

        await poller.tick()
        await poller.tick()
        assert isinstance(poller.last_error, ExternalServiceError)
        assert poller.state == PollerState.POLLING

        await poller.tick()
        assert poller.last_error is None
        assert poller.completions == 1

    @pytest.mark.asyncio
    async def test_cancel_only_while_polling(self) -> None:
        source = ScriptedSource(_snapshot(TaskStatus.PROGRESS, 10))
        poller = TaskStatusPoller(source, TaskType.SCAN, Refreshes())

        with pytest.raises(InvalidStateException):
            await poller.request_cancel()

        await poller.tick()
        assert await poller.request_cancel() is True
        assert source.cancelled == ["t-1"]

    @pytest.mark.asyncio
    async def test_background_loop_start_stop(self) -> None:
        source = ScriptedSource(_snapshot(TaskStatus.PROGRESS, 10))
        poller = TaskStatusPoller(source, TaskType.SCAN, Refreshes(), interval=0.01)

        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert source.calls >= 2
