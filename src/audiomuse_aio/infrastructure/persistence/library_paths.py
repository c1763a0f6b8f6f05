"""Library path repository."""

from sqlalchemy import select

from audiomuse_aio.domain.entities import LibraryPath
from audiomuse_aio.domain.exceptions import EntityNotFoundException, ValidationError
from audiomuse_aio.domain.ports import ILibraryPathRepository
from audiomuse_aio.infrastructure.persistence.database import Database
from audiomuse_aio.infrastructure.persistence.models import (
    LibraryPathModel,
    ensure_utc_aware,
)


def _to_entity(model: LibraryPathModel) -> LibraryPath:
    return LibraryPath(
        id=model.id,
        path=model.path,
        song_count=model.song_count,
        last_scan_ended=(
            ensure_utc_aware(model.last_scan_ended) if model.last_scan_ended else None
        ),
    )


class LibraryPathRepository(ILibraryPathRepository):
    """SQLAlchemy-backed library path repository."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def list_all(self) -> list[LibraryPath]:
        async with self.database.session_scope() as session:
            result = await session.execute(
                select(LibraryPathModel).order_by(LibraryPathModel.id)
            )
            return [_to_entity(m) for m in result.scalars().all()]

    async def get(self, path_id: int) -> LibraryPath | None:
        async with self.database.session_scope() as session:
            model = await session.get(LibraryPathModel, path_id)
            return _to_entity(model) if model else None

    async def add(self, path: str) -> LibraryPath:
        """Add a folder; adding an existing folder returns the stored row."""
        normalized = path.strip().rstrip("/") or "/"
        if not normalized.startswith("/"):
            raise ValidationError(f"Library path must be absolute: {path}")
        async with self.database.session_scope() as session:
            result = await session.execute(
                select(LibraryPathModel).where(LibraryPathModel.path == normalized)
            )
            model = result.scalar_one_or_none()
            if model is None:
                model = LibraryPathModel(path=normalized, song_count=0)
                session.add(model)
                await session.flush()
            return _to_entity(model)

    async def record_scan(self, library_path: LibraryPath) -> None:
        if library_path.id is None:
            raise ValidationError("Cannot record a scan for an unsaved library path")
        async with self.database.session_scope() as session:
            model = await session.get(LibraryPathModel, library_path.id)
            if model is None:
                raise EntityNotFoundException("LibraryPath", library_path.id)
            model.song_count = library_path.song_count
            model.last_scan_ended = library_path.last_scan_ended
