"""FastAPI dependencies pulling shared services from app.state."""

from fastapi import HTTPException, Request

from audiomuse_aio.application.tasks.manager import TaskLifecycleManager
from audiomuse_aio.config.settings import Settings
from audiomuse_aio.domain.ports import ILibraryPathRepository
from audiomuse_aio.infrastructure.persistence.database import Database


# Hey future me - app.state is filled by the lifespan in main.py. A missing attribute means
# startup didn't finish (or failed); answer 503 instead of an AttributeError 500.
def get_task_manager(request: Request) -> TaskLifecycleManager:
    """Get the task lifecycle manager.

    Raises:
        HTTPException: 503 if not initialized
    """
    manager = getattr(request.app.state, "task_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Task manager not initialized")
    return manager


def get_library_paths(request: Request) -> ILibraryPathRepository:
    repository = getattr(request.app.state, "library_paths", None)
    if repository is None:
        raise HTTPException(status_code=503, detail="Library path repository not initialized")
    return repository


def get_database(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="Database not initialized")
    return db


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(status_code=503, detail="Settings not initialized")
    return settings
