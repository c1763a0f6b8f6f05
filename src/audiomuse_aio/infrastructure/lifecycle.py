"""Application lifecycle management for the Task API."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy.engine import make_url

from audiomuse_aio.application.tasks.manager import TaskHandler, TaskLifecycleManager
from audiomuse_aio.application.workers.analysis_core_worker import AnalysisCoreWorker
from audiomuse_aio.application.workers.library_scan_worker import LibraryScanWorker
from audiomuse_aio.config.settings import Settings, get_settings
from audiomuse_aio.domain.entities import TaskType
from audiomuse_aio.domain.exceptions import ConfigurationError
from audiomuse_aio.domain.ports import ILibraryPathRepository
from audiomuse_aio.infrastructure.integrations.analysis_core_client import (
    START_PATHS,
    AnalysisCoreClient,
)
from audiomuse_aio.infrastructure.integrations.http_pool import HttpClientPool
from audiomuse_aio.infrastructure.observability.logging import configure_logging
from audiomuse_aio.infrastructure.persistence.database import Database
from audiomuse_aio.infrastructure.persistence.library_paths import LibraryPathRepository
from audiomuse_aio.infrastructure.persistence.task_store import SqlTaskStore

logger = logging.getLogger(__name__)


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite") or not url.database:
        return
    if url.database == ":memory:":
        return
    parent = Path(url.database).parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{parent}': {exc}"
        ) from exc


def build_task_handlers(
    settings: Settings,
    library_paths: ILibraryPathRepository,
    core_client: AnalysisCoreClient,
) -> dict[TaskType, TaskHandler]:
    """One handler per task type: local scan, everything else on the analysis core."""
    handlers: dict[TaskType, TaskHandler] = {TaskType.SCAN: LibraryScanWorker(library_paths)}
    for task_type in START_PATHS:
        handlers[task_type] = AnalysisCoreWorker(
            core_client, task_type, poll_interval=settings.tasks.remote_poll_interval
        )
    return handlers


# Listen future me - everything before `yield` is startup, after is shutdown. Startup order:
# logging, database + tables, crash recovery of tasks, then the manager goes on app.state
# where the dependencies in api/dependencies.py find it. Shutdown cancels running tasks
# cooperatively first (they end CANCELLED), then closes HTTP and DB.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()
    app.state.settings = settings

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    _ensure_sqlite_dir(settings.tasks.database_url)
    db = Database(settings.tasks)
    manager: TaskLifecycleManager | None = None
    try:
        await db.create_tables()
        library_paths = LibraryPathRepository(db)
        for path in settings.tasks.library_paths:
            await library_paths.add(str(path))

        client = await HttpClientPool.get_client(timeout=settings.analysis_core.timeout)
        core_client = AnalysisCoreClient(settings.analysis_core.url, client)
        manager = TaskLifecycleManager(
            SqlTaskStore(db),
            build_task_handlers(settings, library_paths, core_client),
            shutdown_timeout=settings.tasks.shutdown_timeout,
        )
        await manager.recover()

        app.state.db = db
        app.state.library_paths = library_paths
        app.state.task_manager = manager
        logger.info("Task API ready")

        yield
    finally:
        logger.info("Shutting down application")
        if manager is not None:
            await manager.shutdown()
        await HttpClientPool.close()
        await db.close()
