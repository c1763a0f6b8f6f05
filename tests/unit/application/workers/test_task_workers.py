"""Tests for the library scan worker and the analysis core worker."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from audiomuse_aio.application.tasks.cancellation import CancellationToken, TaskContext
from audiomuse_aio.application.workers.analysis_core_worker import AnalysisCoreWorker
from audiomuse_aio.application.workers.library_scan_worker import (
    LibraryScanWorker,
    collect_audio_files,
)
from audiomuse_aio.domain.entities import LibraryPath, TaskStatus, TaskType
from audiomuse_aio.domain.exceptions import (
    EntityNotFoundException,
    ExternalServiceError,
    TaskCancelled,
    ValidationError,
)
from audiomuse_aio.domain.ports import ILibraryPathRepository
from audiomuse_aio.infrastructure.integrations.analysis_core_client import (
    AnalysisCoreClient,
    RemoteTaskStatus,
)


class MemoryLibraryPaths(ILibraryPathRepository):
    def __init__(self, *paths: str) -> None:
        self.paths = [LibraryPath(id=i + 1, path=p) for i, p in enumerate(paths)]
        self.recorded: list[tuple[str, int]] = []

    async def list_all(self) -> list[LibraryPath]:
        return list(self.paths)

    async def get(self, path_id: int) -> LibraryPath | None:
        return next((p for p in self.paths if p.id == path_id), None)

    async def add(self, path: str) -> LibraryPath:
        raise NotImplementedError

    async def record_scan(self, library_path: LibraryPath) -> None:
        self.recorded.append((library_path.path, library_path.song_count))


class ProgressLog:
    def __init__(self) -> None:
        self.updates: list[tuple[float, str | None]] = []

    async def __call__(self, percent: float, message: str | None) -> None:
        self.updates.append((percent, message))


def _context(params: dict | None = None, token: CancellationToken | None = None):
    log = ProgressLog()
    ctx = TaskContext("t-1", params or {}, token or CancellationToken(), log)
    return ctx, log


def _library(root: Path) -> Path:
    (root / "a").mkdir(parents=True)
    (root / "b").mkdir()
    for name in ("a/one.mp3", "a/two.FLAC", "a/cover.jpg", "b/three.m4a", "b/notes.txt"):
        (root / name).write_text("x")
    return root


class TestLibraryScanWorker:
    def test_collect_audio_files_filters_by_extension(self, tmp_path: Path) -> None:
        root = _library(tmp_path / "music")
        names = [p.name for p in collect_audio_files(root)]
        assert names == ["one.mp3", "two.FLAC", "three.m4a"]

    @pytest.mark.asyncio
    async def test_scan_counts_songs_per_path(self, tmp_path: Path) -> None:
        root = _library(tmp_path / "music")
        other = tmp_path / "more"
        other.mkdir()
        (other / "x.ogg").write_text("x")
        repo = MemoryLibraryPaths(str(root), str(other))
        ctx, log = _context()

        message = await LibraryScanWorker(repo, progress_every=1)(ctx)

        assert message == "Scan complete: 4 songs in 2 library path(s)"
        assert repo.recorded == [(str(root), 3), (str(other), 1)]
        assert log.updates[-1][0] == 100.0

    @pytest.mark.asyncio
    async def test_missing_directory_is_skipped(self, tmp_path: Path) -> None:
        repo = MemoryLibraryPaths(str(tmp_path / "nope"))
        ctx, _ = _context()

        message = await LibraryScanWorker(repo)(ctx)

        assert message == "Scan complete: 0 songs in 0 library path(s)"
        assert repo.recorded == []

    @pytest.mark.asyncio
    async def test_no_paths_configured(self) -> None:
        ctx, _ = _context()
        assert await LibraryScanWorker(MemoryLibraryPaths())(ctx) == "No library paths configured"

    @pytest.mark.asyncio
    async def test_single_path_selection(self, tmp_path: Path) -> None:
        root = _library(tmp_path / "music")
        repo = MemoryLibraryPaths(str(tmp_path / "other"), str(root))
        ctx, _ = _context({"path_id": "2"})

        await LibraryScanWorker(repo)(ctx)

        assert repo.recorded == [(str(root), 3)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("path_id", "error"), [("abc", ValidationError), (99, EntityNotFoundException)]
    )
    async def test_bad_path_id(self, path_id, error) -> None:
        ctx, _ = _context({"path_id": path_id})
        with pytest.raises(error):
            await LibraryScanWorker(MemoryLibraryPaths("/music"))(ctx)

    @pytest.mark.asyncio
    async def test_cancelled_scan_stops_at_checkpoint(self, tmp_path: Path) -> None:
        repo = MemoryLibraryPaths(str(_library(tmp_path / "music")))
        token = CancellationToken()
        token.cancel()
        ctx, _ = _context(token=token)

        with pytest.raises(TaskCancelled):
            await LibraryScanWorker(repo)(ctx)

        assert repo.recorded == []


def _remote(status: TaskStatus, progress: float = 0.0, message: str = "") -> RemoteTaskStatus:
    return RemoteTaskStatus("r-1", status, progress, message)


@pytest.fixture
def core_client() -> AsyncMock:
    client = AsyncMock(spec=AnalysisCoreClient)
    client.start.return_value = "r-1"
    client.cancel.return_value = True
    return client


class TestAnalysisCoreWorker:
    @pytest.mark.asyncio
    async def test_mirrors_remote_progress_until_success(self, core_client) -> None:
        core_client.get_status.side_effect = [
            _remote(TaskStatus.PROGRESS, 40, "Analyzing"),
            _remote(TaskStatus.PROGRESS, 40, "Analyzing"),
            _remote(TaskStatus.PROGRESS, 90, "Almost"),
            _remote(TaskStatus.SUCCESS, 100, "Analysis complete"),
        ]
        worker = AnalysisCoreWorker(core_client, TaskType.SONIC_ANALYSIS, poll_interval=0)
        ctx, log = _context({"albums": 10})

        message = await worker(ctx)

        assert message == "Analysis complete"
        core_client.start.assert_awaited_once_with(TaskType.SONIC_ANALYSIS, {"albums": 10})
        # unchanged progress is not reported twice
        assert [u[0] for u in log.updates] == [0.0, 40, 90]

    @pytest.mark.asyncio
    async def test_remote_failure_raises(self, core_client) -> None:
        core_client.get_status.return_value = _remote(TaskStatus.FAILURE, message="OOM")
        worker = AnalysisCoreWorker(core_client, TaskType.CLUSTERING, poll_interval=0)
        ctx, _ = _context()

        with pytest.raises(ExternalServiceError, match="OOM"):
            await worker(ctx)

    @pytest.mark.asyncio
    async def test_lost_remote_task_raises(self, core_client) -> None:
        core_client.get_status.return_value = None
        ctx, _ = _context()

        with pytest.raises(ExternalServiceError):
            await AnalysisCoreWorker(core_client, TaskType.CLEANING, poll_interval=0)(ctx)

    @pytest.mark.asyncio
    async def test_cancel_is_forwarded_to_core(self, core_client) -> None:
        token = CancellationToken()

        async def status_then_cancel(remote_id: str) -> RemoteTaskStatus:
            token.cancel("stop")
            return _remote(TaskStatus.PROGRESS, 10)

        core_client.get_status.side_effect = status_then_cancel
        worker = AnalysisCoreWorker(core_client, TaskType.CLUSTERING, poll_interval=5)
        ctx, _ = _context(token=token)

        with pytest.raises(TaskCancelled):
            await worker(ctx)

        core_client.cancel.assert_awaited_once_with("r-1")

    @pytest.mark.asyncio
    async def test_remote_cancellation_ends_cancelled(self, core_client) -> None:
        core_client.get_status.return_value = _remote(TaskStatus.CANCELLED)
        ctx, _ = _context()

        with pytest.raises(TaskCancelled):
            await AnalysisCoreWorker(core_client, TaskType.CLUSTERING, poll_interval=0)(ctx)
