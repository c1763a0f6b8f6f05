"""Tests for the command line entry point."""

from pathlib import Path

import pytest

from audiomuse_aio.application.bootstrap.sequencer import BootstrapResult, BootstrapState
from audiomuse_aio.cli import build_parser, build_sequencer, consumer_static_env, main
from audiomuse_aio.config.settings import BootstrapSettings, Settings
from audiomuse_aio.domain.exceptions import ConfigurationError


class TestParser:
    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_serve_options(self) -> None:
        args = build_parser().parse_args(["serve", "--port", "9000"])
        assert args.command == "serve"
        assert args.port == 9000
        assert args.host is None


class TestMain:
    def test_render_supervisor_config_to_file(self, tmp_path: Path) -> None:
        output = tmp_path / "supervisord.conf"

        assert main(["render-supervisor-config", "--output", str(output)]) == 0

        content = output.read_text()
        assert "[program:bootstrap]" in content
        assert "[program:audiomuse-worker]" in content

    def test_bootstrap_failure_exits_1(self, mocker) -> None:
        sequencer = mocker.patch("audiomuse_aio.cli.build_sequencer").return_value
        sequencer.run = mocker.AsyncMock(
            return_value=BootstrapResult(state=BootstrapState.FAILED, history=[])
        )
        mocker.patch("audiomuse_aio.cli.configure_logging")

        assert main(["bootstrap", "--no-block"]) == 1

    def test_bootstrap_ready_exits_0(self, mocker) -> None:
        sequencer = mocker.patch("audiomuse_aio.cli.build_sequencer").return_value
        sequencer.run = mocker.AsyncMock(
            return_value=BootstrapResult(state=BootstrapState.READY, history=[])
        )
        mocker.patch("audiomuse_aio.cli.configure_logging")

        assert main(["bootstrap", "--no-block"]) == 0


class TestBuildSequencer:
    def test_wires_consumers_and_static_env(self, fake_runner) -> None:
        settings = Settings(_env_file=None)

        sequencer = build_sequencer(settings, runner=fake_runner)

        assert sequencer.consumer_processes == ["audiomuse-core", "audiomuse-worker"]
        assert [s.name for s in sequencer.services] == ["postgres", "redis", "music-server"]
        assert [s.name for s in sequencer.consumer_services] == ["audiomuse-core"]
        env = consumer_static_env(settings)
        assert env["POSTGRES_PORT"] == "5432"
        assert env["REDIS_URL"] == "redis://127.0.0.1:6379/0"

    def test_unbounded_probe_without_opt_in_is_rejected(self, fake_runner) -> None:
        settings = Settings(_env_file=None, bootstrap=BootstrapSettings(probe_max_attempts=0))

        with pytest.raises(ConfigurationError):
            build_sequencer(settings, runner=fake_runner)
