"""Tests for the task lifecycle manager."""

import asyncio

import pytest

from audiomuse_aio.application.tasks.cancellation import TaskContext
from audiomuse_aio.application.tasks.manager import (
    INTERRUPTED_BY_RESTART,
    TaskLifecycleManager,
)
from audiomuse_aio.domain.entities import Task, TaskStatus, TaskType
from audiomuse_aio.domain.exceptions import (
    ConfigurationError,
    EntityNotFoundException,
    TaskConflictError,
)
from audiomuse_aio.infrastructure.persistence.task_store import InMemoryTaskStore


class GatedHandler:
    """Reports progress, then blocks on a gate, checkpointing while it waits."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.calls = 0

    async def __call__(self, ctx: TaskContext) -> str:
        self.calls += 1
        await ctx.report_progress(40, "Working")
        self.entered.set()
        while not self.gate.is_set():
            ctx.checkpoint()
            await asyncio.sleep(0.01)
        return "All done"


async def _failing(ctx: TaskContext) -> str:
    await ctx.report_progress(10)
    raise RuntimeError("disk on fire")


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def handler() -> GatedHandler:
    return GatedHandler()


@pytest.fixture
def manager(store: InMemoryTaskStore, handler: GatedHandler) -> TaskLifecycleManager:
    return TaskLifecycleManager(
        store, {TaskType.SCAN: handler, TaskType.CLEANING: _failing}, shutdown_timeout=1.0
    )


class TestStart:
    @pytest.mark.asyncio
    async def test_task_runs_to_success(self, manager, handler) -> None:
        snapshot = await manager.start(TaskType.SCAN)
        assert snapshot.status == TaskStatus.PENDING

        await handler.entered.wait()
        progress = await manager.status(TaskType.SCAN)
        assert progress.status == TaskStatus.PROGRESS
        assert progress.progress == 40.0

        handler.gate.set()
        await manager.wait_idle(timeout=5)

        done = await manager.get(snapshot.task_id)
        assert done.status == TaskStatus.SUCCESS
        assert done.message == "All done"
        assert done.progress == 100.0

    @pytest.mark.asyncio
    async def test_second_start_of_same_type_conflicts(self, manager, handler) -> None:
        first = await manager.start(TaskType.SCAN)

        with pytest.raises(TaskConflictError) as exc_info:
            await manager.start(TaskType.SCAN)

        assert exc_info.value.active_task_id == first.task_id
        handler.gate.set()
        await manager.wait_idle(timeout=5)
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_starts_create_one_task(self, manager, handler) -> None:
        results = await asyncio.gather(
            *(manager.start(TaskType.SCAN) for _ in range(5)), return_exceptions=True
        )

        started = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, TaskConflictError)]
        assert len(started) == 1
        assert len(conflicts) == 4
        handler.gate.set()
        await manager.wait_idle(timeout=5)

    @pytest.mark.asyncio
    async def test_new_start_allowed_after_terminal(self, manager, handler) -> None:
        handler.gate.set()
        first = await manager.start(TaskType.SCAN)
        await manager.wait_idle(timeout=5)

        second = await manager.start(TaskType.SCAN)
        await manager.wait_idle(timeout=5)

        assert second.task_id != first.task_id
        assert (await manager.get(first.task_id)).status == TaskStatus.SUCCESS
        assert (await manager.status(TaskType.SCAN)).task_id == second.task_id

    @pytest.mark.asyncio
    async def test_unregistered_type_is_configuration_error(self, manager) -> None:
        with pytest.raises(ConfigurationError):
            await manager.start(TaskType.CLUSTERING)

    @pytest.mark.asyncio
    async def test_store_refuses_second_active_task(self, store) -> None:
        await store.add(Task(id="active", task_type=TaskType.SCAN))

        with pytest.raises(TaskConflictError) as exc_info:
            await store.add(Task(id="late", task_type=TaskType.SCAN))

        assert exc_info.value.active_task_id == "active"
        assert await store.get("late") is None

    @pytest.mark.asyncio
    async def test_handler_error_ends_failure(self, manager) -> None:
        snapshot = await manager.start(TaskType.CLEANING)
        await manager.wait_idle(timeout=5)

        failed = await manager.get(snapshot.task_id)
        assert failed.status == TaskStatus.FAILURE
        assert failed.message == "disk on fire"
        # failures are not retried
        assert manager.running_task_ids() == []


class TestCancel:
    @pytest.mark.asyncio
    async def test_cooperative_cancel_ends_cancelled(self, manager, handler) -> None:
        snapshot = await manager.start(TaskType.SCAN)
        await handler.entered.wait()

        result = await manager.cancel(snapshot.task_id)
        assert result.accepted
        await manager.wait_idle(timeout=5)

        cancelled = await manager.get(snapshot.task_id)
        assert cancelled.status == TaskStatus.CANCELLED
        assert cancelled.ended_at is not None

    @pytest.mark.asyncio
    async def test_error_after_cancel_still_ends_cancelled(self, store) -> None:
        entered = asyncio.Event()

        async def stopping_badly(ctx: TaskContext) -> str:
            await ctx.report_progress(10, "Polling remote job")
            entered.set()
            await ctx.token.wait()
            raise RuntimeError("status endpoint unreachable")

        manager = TaskLifecycleManager(store, {TaskType.CLUSTERING: stopping_badly})
        snapshot = await manager.start(TaskType.CLUSTERING)
        await entered.wait()

        await manager.cancel(snapshot.task_id)
        await manager.wait_idle(timeout=5)

        cancelled = await manager.get(snapshot.task_id)
        assert cancelled.status == TaskStatus.CANCELLED
        assert cancelled.message == "Task cancelled by request"

    @pytest.mark.asyncio
    async def test_cancel_terminal_task_leaves_it_unchanged(self, manager, handler) -> None:
        handler.gate.set()
        snapshot = await manager.start(TaskType.SCAN)
        await manager.wait_idle(timeout=5)
        before = await manager.get(snapshot.task_id)

        result = await manager.cancel(snapshot.task_id)

        after = await manager.get(snapshot.task_id)
        assert result.status == TaskStatus.SUCCESS
        assert after.status == TaskStatus.SUCCESS
        assert after.message == before.message

    @pytest.mark.asyncio
    async def test_cancel_unknown_task(self, manager) -> None:
        with pytest.raises(EntityNotFoundException):
            await manager.cancel("does-not-exist")

    @pytest.mark.asyncio
    async def test_cancel_orphaned_active_task(self, manager, store) -> None:
        orphan = Task(id="orphan", task_type=TaskType.CLUSTERING)
        await store.add(orphan)

        result = await manager.cancel("orphan")

        assert result.status == TaskStatus.CANCELLED


class TestReadsAndRecovery:
    @pytest.mark.asyncio
    async def test_missing_status_and_latest(self, manager) -> None:
        with pytest.raises(EntityNotFoundException):
            await manager.status(TaskType.SCAN)
        with pytest.raises(EntityNotFoundException):
            await manager.latest()

    @pytest.mark.asyncio
    async def test_latest_is_most_recently_started(self, manager, handler) -> None:
        handler.gate.set()
        await manager.start(TaskType.SCAN)
        await manager.wait_idle(timeout=5)
        cleaning = await manager.start(TaskType.CLEANING)
        await manager.wait_idle(timeout=5)

        assert (await manager.latest()).task_id == cleaning.task_id

    @pytest.mark.asyncio
    async def test_recover_fails_leftover_tasks(self, manager, store) -> None:
        leftover = Task(id="old", task_type=TaskType.SCAN)
        leftover.start()
        await store.add(leftover)

        assert await manager.recover() == 1

        recovered = await manager.get("old")
        assert recovered.status == TaskStatus.FAILURE
        assert recovered.message == INTERRUPTED_BY_RESTART

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_tasks(self, manager, handler) -> None:
        snapshot = await manager.start(TaskType.SCAN)
        await handler.entered.wait()

        await manager.shutdown()

        stopped = await manager.get(snapshot.task_id)
        assert stopped.status == TaskStatus.CANCELLED
        assert manager.running_task_ids() == []
