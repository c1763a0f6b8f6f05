"""Infrastructure persistence layer."""

from .database import Database
from .library_paths import LibraryPathRepository
from .models import Base, LibraryPathModel, TaskModel
from .task_store import InMemoryTaskStore, SqlTaskStore

__all__ = [
    "Base",
    "Database",
    "InMemoryTaskStore",
    "LibraryPathModel",
    "LibraryPathRepository",
    "SqlTaskStore",
    "TaskModel",
]
