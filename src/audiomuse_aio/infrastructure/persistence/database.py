"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from audiomuse_aio.config.settings import TaskSettings

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager for task bookkeeping."""

    def __init__(self, settings: TaskSettings) -> None:
        """Initialize database with settings."""
        self.url = settings.database_url

        engine_kwargs: dict[str, Any] = {"echo": settings.database_echo}
        if "sqlite" in self.url:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}

        self._engine = create_async_engine(self.url, **engine_kwargs)

        if "sqlite" in self.url:
            self._configure_sqlite()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # Hey future me - WAL lets status readers run while a worker commits a progress update.
    # Without it every poll from every browser tab queues behind the writer.
    def _configure_sqlite(self) -> None:
        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables. The schema is small and additive, so no migrations."""
        from audiomuse_aio.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready", extra={"url": self.url.split("///")[-1]})
