"""Shared fixtures and fakes.

Hey future me - nothing here touches real processes or sockets. The fakes record
what they were asked to do so tests can assert on exact call counts.
"""

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from audiomuse_aio.config.settings import (
    DatastoreSettings,
    MusicServerSettings,
    Settings,
    TaskSettings,
)
from audiomuse_aio.domain.ports import (
    CommandResult,
    ICommandRunner,
    ICredentialStore,
    IProcessSupervisor,
)


class FakeRunner(ICommandRunner):
    """Records argv; answers from a responder callback (default: exit 0)."""

    def __init__(
        self, responder: Callable[[list[str]], CommandResult] | None = None
    ) -> None:
        self.calls: list[dict] = []
        self.responder = responder or (lambda argv: CommandResult(0))

    async def run(
        self,
        argv: Sequence[str],
        *,
        user: str | None = None,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        argv = list(argv)
        self.calls.append({"argv": argv, "user": user, "stdin": stdin})
        return self.responder(argv)

    def programs(self) -> list[str]:
        return [Path(call["argv"][0]).name for call in self.calls]


class FakeSupervisor(IProcessSupervisor):
    def __init__(self) -> None:
        self.started: list[list[str]] = []
        self.restarted: list[str] = []

    async def start(self, names: Sequence[str]) -> None:
        self.started.append(list(names))

    async def restart(self, name: str) -> None:
        self.restarted.append(name)


class MemoryCredentialStore(ICredentialStore):
    def __init__(self) -> None:
        self.published: list[dict[str, str]] = []

    def publish(self, values: Mapping[str, str]) -> None:
        self.published.append(dict(values))

    def read(self) -> dict[str, str]:
        return dict(self.published[-1]) if self.published else {}


class SleepRecorder:
    """Drop-in for asyncio.sleep that returns immediately."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def music_server_settings() -> MusicServerSettings:
    return MusicServerSettings(
        url="http://music.test",
        bootstrap_user="admin",
        bootstrap_password="secret",
    )


@pytest.fixture
def datastore_settings(tmp_path: Path) -> DatastoreSettings:
    return DatastoreSettings(
        data_dir=tmp_path / "pgdata",
        bin_dir=Path("/pg/bin"),
        socket_dir=tmp_path / "sock",
        os_user=None,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every file at tmp_path; no env/.env lookups."""
    return Settings(
        _env_file=None,
        tasks=TaskSettings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}",
            remote_poll_interval=0.01,
            shutdown_timeout=2.0,
        ),
        music_server=MusicServerSettings(url="http://music.test"),
    )


@pytest.fixture
def memory_store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def runner_factory() -> Callable[..., FakeRunner]:
    """Build a FakeRunner with a custom responder."""
    return FakeRunner
