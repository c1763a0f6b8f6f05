"""Task stores: in-memory and SQLAlchemy-backed implementations of ITaskStore."""

import asyncio
import copy
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from audiomuse_aio.domain.entities import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Task,
    TaskStatus,
    TaskType,
)
from audiomuse_aio.domain.exceptions import EntityNotFoundException, TaskConflictError
from audiomuse_aio.domain.ports import ITaskStore
from audiomuse_aio.infrastructure.persistence.database import Database
from audiomuse_aio.infrastructure.persistence.models import TaskModel, ensure_utc_aware

logger = logging.getLogger(__name__)


# Hey future me - everything in and out is deep-copied. The manager mutates its own Task
# instance and calls save(); a status reader gets a copy taken between two saves, never a
# Task a worker is halfway through updating.
class InMemoryTaskStore(ITaskStore):
    """Process-local task store (tests, single-process deployments)."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._current: dict[TaskType, str] = {}
        self._lock = asyncio.Lock()

    async def add(self, task: Task) -> None:
        async with self._lock:
            previous = self._current.get(task.task_type)
            if previous and self._tasks[previous].is_active:
                raise TaskConflictError(task.task_type.value, previous)
            self._tasks[task.id] = copy.deepcopy(task)
            self._current[task.task_type] = task.id
            if previous:
                logger.debug(f"Archived {task.task_type.value} task {previous}")

    async def save(self, task: Task) -> None:
        async with self._lock:
            if task.id not in self._tasks:
                raise EntityNotFoundException("Task", task.id)
            self._tasks[task.id] = copy.deepcopy(task)

    async def get(self, task_id: str) -> Task | None:
        async with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    async def current(self, task_type: TaskType) -> Task | None:
        async with self._lock:
            task_id = self._current.get(task_type)
            return copy.deepcopy(self._tasks[task_id]) if task_id else None

    async def latest(self) -> Task | None:
        async with self._lock:
            current = [self._tasks[i] for i in self._current.values()]
            if not current:
                return None
            return copy.deepcopy(max(current, key=lambda t: t.started_at))

    async def fail_interrupted(self, message: str) -> int:
        async with self._lock:
            count = 0
            for task in self._tasks.values():
                if task.status in ACTIVE_STATUSES:
                    task.interrupt(message)
                    count += 1
            return count


def _to_entity(model: TaskModel) -> Task:
    return Task(
        id=model.id,
        task_type=TaskType(model.task_type),
        status=TaskStatus(model.status),
        progress=model.progress,
        message=model.message,
        params=dict(model.params or {}),
        started_at=ensure_utc_aware(model.started_at),
        ended_at=ensure_utc_aware(model.ended_at) if model.ended_at else None,
    )


def _apply(model: TaskModel, task: Task) -> None:
    model.status = task.status.value
    model.progress = task.progress
    model.message = task.message
    model.params = dict(task.params)
    model.ended_at = task.ended_at


class SqlTaskStore(ITaskStore):
    """Task store persisted through SQLAlchemy (survives restarts)."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def add(self, task: Task) -> None:
        """Insert ``task`` as the current task of its type.

        Raises:
            TaskConflictError: Another process already holds an active current task
        """
        try:
            async with self.database.session_scope() as session:
                # only a finished task is archived; an active one keeps the index slot
                await session.execute(
                    update(TaskModel)
                    .where(TaskModel.task_type == task.task_type.value)
                    .where(TaskModel.is_current.is_(True))
                    .where(TaskModel.status.in_([s.value for s in TERMINAL_STATUSES]))
                    .values(is_current=False)
                )
                model = TaskModel(
                    id=task.id,
                    task_type=task.task_type.value,
                    is_current=True,
                    started_at=task.started_at,
                )
                _apply(model, task)
                session.add(model)
                await session.flush()
        except IntegrityError as e:
            active = await self.current(task.task_type)
            logger.info(
                f"Rejected {task.task_type.value} insert, another writer holds the current slot"
            )
            raise TaskConflictError(task.task_type.value, active.id if active else "") from e

    async def save(self, task: Task) -> None:
        async with self.database.session_scope() as session:
            model = await session.get(TaskModel, task.id)
            if model is None:
                raise EntityNotFoundException("Task", task.id)
            _apply(model, task)

    async def get(self, task_id: str) -> Task | None:
        async with self.database.session_scope() as session:
            model = await session.get(TaskModel, task_id)
            return _to_entity(model) if model else None

    async def current(self, task_type: TaskType) -> Task | None:
        async with self.database.session_scope() as session:
            result = await session.execute(
                select(TaskModel)
                .where(TaskModel.task_type == task_type.value)
                .where(TaskModel.is_current.is_(True))
            )
            model = result.scalar_one_or_none()
            return _to_entity(model) if model else None

    async def latest(self) -> Task | None:
        async with self.database.session_scope() as session:
            result = await session.execute(
                select(TaskModel)
                .where(TaskModel.is_current.is_(True))
                .order_by(TaskModel.started_at.desc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return _to_entity(model) if model else None

    async def fail_interrupted(self, message: str) -> int:
        async with self.database.session_scope() as session:
            result = await session.execute(
                select(TaskModel).where(
                    TaskModel.status.in_([s.value for s in ACTIVE_STATUSES])
                )
            )
            models = list(result.scalars().all())
            for model in models:
                task = _to_entity(model)
                task.interrupt(message)
                _apply(model, task)
            return len(models)
