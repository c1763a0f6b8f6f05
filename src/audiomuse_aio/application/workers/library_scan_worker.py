"""Handler for the ``scan`` task: count audio files in the configured library paths."""

import asyncio
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from audiomuse_aio.application.tasks.cancellation import TaskContext
from audiomuse_aio.domain.entities import LibraryPath
from audiomuse_aio.domain.exceptions import EntityNotFoundException, ValidationError
from audiomuse_aio.domain.ports import ILibraryPathRepository

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".mp3", ".flac", ".m4a", ".ogg"})


def collect_audio_files(root: Path, extensions: Iterable[str] = SUPPORTED_EXTENSIONS) -> list[Path]:
    """All audio files below ``root``, sorted. Symlinked directories are not followed."""
    wanted = {e.lower() for e in extensions}
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in filenames:
            if Path(name).suffix.lower() in wanted:
                found.append(Path(dirpath) / name)
    found.sort()
    return found


# Hey future me - directory walking is blocking I/O, so it runs in a thread via
# asyncio.to_thread. Counting happens back on the loop, one file at a time with a
# checkpoint in between: that's where cancellation lands. Progress is reported every
# `progress_every` files, not per file, so the store isn't hammered on big libraries.
class LibraryScanWorker:
    """Walks library paths and records song counts."""

    def __init__(
        self,
        repository: ILibraryPathRepository,
        extensions: Iterable[str] = SUPPORTED_EXTENSIONS,
        progress_every: int = 50,
    ) -> None:
        self.repository = repository
        self.extensions = frozenset(e.lower() for e in extensions)
        self.progress_every = max(1, progress_every)

    async def _select_paths(self, context: TaskContext) -> list[LibraryPath]:
        path_id = context.params.get("path_id")
        if path_id is None:
            return await self.repository.list_all()
        try:
            path_id = int(path_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"path_id must be an integer, got {path_id!r}") from e
        library_path = await self.repository.get(path_id)
        if library_path is None:
            raise EntityNotFoundException("LibraryPath", path_id)
        return [library_path]

    async def __call__(self, context: TaskContext) -> str:
        paths = await self._select_paths(context)
        if not paths:
            await context.report_progress(100.0, "No library paths configured")
            return "No library paths configured"

        await context.report_progress(0.0, f"Listing {len(paths)} library path(s)")
        listings: list[tuple[LibraryPath, list[Path]]] = []
        for library_path in paths:
            context.checkpoint()
            root = Path(library_path.path)
            if not root.is_dir():
                logger.warning(f"Library path {root} does not exist, skipping")
                continue
            files = await asyncio.to_thread(collect_audio_files, root, self.extensions)
            listings.append((library_path, files))

        total = sum(len(files) for _, files in listings)
        processed = 0
        for library_path, files in listings:
            song_count = 0
            for _ in files:
                context.checkpoint()
                song_count += 1
                processed += 1
                if processed % self.progress_every == 0:
                    await context.report_progress(
                        processed / total * 100.0,
                        f"Scanning {library_path.path}: {processed}/{total} files",
                    )
                await asyncio.sleep(0)
            library_path.record_scan(song_count)
            await self.repository.record_scan(library_path)
            logger.info(
                f"Scanned {library_path.path}: {song_count} songs",
                extra={"path_id": library_path.id, "song_count": song_count},
            )

        return f"Scan complete: {total} songs in {len(listings)} library path(s)"
