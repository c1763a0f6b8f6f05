"""Tests for the one-time datastore initialization."""

from pathlib import Path

import pytest

from audiomuse_aio.domain.exceptions import DatastoreInitError
from audiomuse_aio.domain.ports import CommandResult
from audiomuse_aio.infrastructure.process.postgres import (
    INCLUDE_FILE,
    PostgresInitializer,
    build_setup_sql,
    quote_ident,
    quote_literal,
)


class TestSetupSql:
    def test_sql_is_guarded_for_reruns(self) -> None:
        sql = build_setup_sql("audiomuse", "pw", "audiomusedb")

        assert "IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = 'audiomuse')" in sql
        assert 'ALTER ROLE "audiomuse" WITH LOGIN PASSWORD \'pw\'' in sql
        assert "WHERE NOT EXISTS (SELECT FROM pg_database WHERE datname = 'audiomusedb')" in sql
        assert "\\gexec" in sql

    def test_quoting_escapes_embedded_quotes(self) -> None:
        assert quote_ident('we"ird') == '"we""ird"'
        assert quote_literal("o'neil") == "'o''neil'"


class TestPostgresInitializer:
    @pytest.mark.asyncio
    async def test_fresh_volume_runs_all_steps_and_writes_marker(
        self, datastore_settings, fake_runner
    ) -> None:
        initializer = PostgresInitializer(datastore_settings, fake_runner)
        assert not initializer.is_initialized()

        await initializer.initialize()

        assert fake_runner.programs() == ["initdb", "pg_ctl", "psql", "pg_ctl"]
        assert fake_runner.calls[-1]["argv"][-1] == "stop"
        psql = fake_runner.calls[2]
        assert "CREATE ROLE" in psql["stdin"]
        assert "ON_ERROR_STOP=1" in psql["argv"]
        assert initializer.is_initialized()

        data_dir: Path = datastore_settings.data_dir
        assert "host    all             all             0.0.0.0/0               md5" in (
            data_dir / "pg_hba.conf"
        ).read_text()
        assert "port = 5432" in (data_dir / INCLUDE_FILE).read_text()

    @pytest.mark.asyncio
    async def test_existing_cluster_skips_initdb(self, datastore_settings, fake_runner) -> None:
        datastore_settings.data_dir.mkdir(parents=True)
        (datastore_settings.data_dir / "PG_VERSION").write_text("14\n")

        await PostgresInitializer(datastore_settings, fake_runner).initialize()

        assert "initdb" not in fake_runner.programs()

    @pytest.mark.asyncio
    async def test_rerun_does_not_duplicate_include_line(
        self, datastore_settings, fake_runner
    ) -> None:
        initializer = PostgresInitializer(datastore_settings, fake_runner)
        await initializer.initialize()
        await initializer.initialize()

        main_conf = (datastore_settings.data_dir / "postgresql.conf").read_text()
        assert main_conf.count(INCLUDE_FILE) == 1

    @pytest.mark.asyncio
    async def test_initdb_failure_raises_and_leaves_no_marker(
        self, datastore_settings, runner_factory
    ) -> None:
        runner = runner_factory(
            lambda argv: CommandResult(1, stderr="disk full")
            if argv[0].endswith("initdb")
            else CommandResult(0)
        )
        initializer = PostgresInitializer(datastore_settings, runner)

        with pytest.raises(DatastoreInitError, match="disk full"):
            await initializer.initialize()

        assert not initializer.is_initialized()
        assert runner.programs() == ["initdb"]

    @pytest.mark.asyncio
    async def test_psql_failure_still_stops_temporary_server(
        self, datastore_settings, runner_factory
    ) -> None:
        runner = runner_factory(
            lambda argv: CommandResult(3, stderr="role error")
            if argv[0].endswith("psql")
            else CommandResult(0)
        )
        initializer = PostgresInitializer(datastore_settings, runner)

        with pytest.raises(DatastoreInitError):
            await initializer.initialize()

        assert runner.programs()[-1] == "pg_ctl"
        assert runner.calls[-1]["argv"][-1] == "stop"
        assert not initializer.is_initialized()

    @pytest.mark.asyncio
    async def test_missing_binary_is_datastore_error(
        self, datastore_settings, runner_factory
    ) -> None:
        def missing(argv: list[str]) -> CommandResult:
            raise FileNotFoundError(argv[0])

        initializer = PostgresInitializer(datastore_settings, runner_factory(missing))

        with pytest.raises(DatastoreInitError, match="could not be executed"):
            await initializer.initialize()
