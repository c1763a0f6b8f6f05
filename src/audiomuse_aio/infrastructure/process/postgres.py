"""One-time PostgreSQL datastore initialization."""

import logging
import os
import shutil
from datetime import UTC, datetime

from audiomuse_aio.config.settings import DatastoreSettings
from audiomuse_aio.domain.exceptions import DatastoreInitError
from audiomuse_aio.domain.ports import CommandResult, ICommandRunner

logger = logging.getLogger(__name__)

INCLUDE_FILE = "audiomuse.conf"

HBA_CONF = """\
# TYPE  DATABASE        USER            ADDRESS                 METHOD
local   all             all                                     trust
host    all             all             127.0.0.1/32            md5
host    all             all             ::1/128                 md5
host    all             all             0.0.0.0/0               md5
"""


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_setup_sql(app_user: str, app_password: str, app_database: str) -> str:
    """SQL creating the application role and database. Safe to run repeatedly.

    An existing role gets its password reset; an existing database is left alone.
    """
    user_ident = quote_ident(app_user)
    db_ident = quote_ident(app_database)
    password = quote_literal(app_password)
    return (
        "DO $$\n"
        "BEGIN\n"
        f"  IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = {quote_literal(app_user)}) THEN\n"
        f"    CREATE ROLE {user_ident} LOGIN PASSWORD {password};\n"
        "  ELSE\n"
        f"    ALTER ROLE {user_ident} WITH LOGIN PASSWORD {password};\n"
        "  END IF;\n"
        "END\n"
        "$$;\n"
        f"SELECT 'CREATE DATABASE {db_ident} OWNER {user_ident}' "
        f"WHERE NOT EXISTS (SELECT FROM pg_database WHERE datname = {quote_literal(app_database)})\\gexec\n"
        f"GRANT ALL PRIVILEGES ON DATABASE {db_ident} TO {user_ident};\n"
    )


# Hey future me - this is DB_INIT. Every step is idempotent on its own so a crash halfway
# leaves a volume we can initialize again: initdb only runs without PG_VERSION, the
# config files are rewritten (not appended), role/database SQL checks before creating.
# The marker file is written LAST, so is_initialized() is only true after a full run.
# Nothing here is retried; a failure ends bootstrap in FAILED.
class PostgresInitializer:
    """Creates the datastore, the admin role and the application database."""

    def __init__(self, settings: DatastoreSettings, runner: ICommandRunner) -> None:
        self.settings = settings
        self.runner = runner

    def is_initialized(self) -> bool:
        return self.settings.marker_path.exists()

    async def initialize(self) -> None:
        """Run the full initialization and write the marker.

        Raises:
            DatastoreInitError: On any failed step
        """
        s = self.settings
        logger.info(f"Initializing datastore in {s.data_dir}")

        self._prepare_directories()
        if not (s.data_dir / "PG_VERSION").exists():
            await self._check(
                "initdb",
                [
                    str(s.bin_dir / "initdb"),
                    "-D",
                    str(s.data_dir),
                    f"--username={s.admin_role}",
                    "--auth-local=trust",
                    "--auth-host=md5",
                ],
            )
        else:
            logger.info("PG_VERSION present, skipping initdb")
        self._write_config()

        await self._check(
            "pg_ctl start",
            [
                str(s.bin_dir / "pg_ctl"),
                "-D",
                str(s.data_dir),
                "-o",
                f"-p {s.port} -c listen_addresses=127.0.0.1",
                "-w",
                "-t",
                "60",
                "start",
            ],
        )
        try:
            await self._check(
                "psql setup",
                [
                    str(s.bin_dir / "psql"),
                    "-v",
                    "ON_ERROR_STOP=1",
                    "-h",
                    str(s.socket_dir),
                    "-p",
                    str(s.port),
                    "-U",
                    s.admin_role,
                    "-d",
                    "postgres",
                ],
                stdin=build_setup_sql(s.app_user, s.app_password, s.app_database),
            )
        finally:
            stop = await self._run(
                [
                    str(s.bin_dir / "pg_ctl"),
                    "-D",
                    str(s.data_dir),
                    "-m",
                    "fast",
                    "-w",
                    "stop",
                ]
            )
            if not stop.ok:
                logger.warning(f"Temporary server stop failed: {stop.stderr.strip()}")

        self._write_marker()
        logger.info(
            "Datastore initialized",
            extra={"database": s.app_database, "role": s.app_user},
        )

    def _prepare_directories(self) -> None:
        s = self.settings
        try:
            s.data_dir.mkdir(parents=True, exist_ok=True)
            s.socket_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(s.data_dir, 0o700)
            if s.os_user and hasattr(os, "geteuid") and os.geteuid() == 0:
                shutil.chown(s.data_dir, user=s.os_user, group=s.os_user)
                shutil.chown(s.socket_dir, user=s.os_user, group=s.os_user)
        except (OSError, LookupError) as e:
            raise DatastoreInitError(f"Cannot prepare {s.data_dir}: {e}") from e

    def _write_config(self) -> None:
        s = self.settings
        settings_block = (
            "listen_addresses = '*'\n"
            f"port = {s.port}\n"
            "max_connections = 100\n"
            "shared_buffers = 128MB\n"
            f"unix_socket_directories = '{s.socket_dir}'\n"
        )
        main_conf = s.data_dir / "postgresql.conf"
        include_line = f"include_if_exists = '{INCLUDE_FILE}'"
        try:
            (s.data_dir / "pg_hba.conf").write_text(HBA_CONF, encoding="utf-8")
            (s.data_dir / INCLUDE_FILE).write_text(settings_block, encoding="utf-8")
            existing = main_conf.read_text(encoding="utf-8") if main_conf.exists() else ""
            if include_line not in existing:
                with main_conf.open("a", encoding="utf-8") as fh:
                    fh.write(f"\n{include_line}\n")
        except OSError as e:
            raise DatastoreInitError(f"Cannot write datastore configuration: {e}") from e

    def _write_marker(self) -> None:
        try:
            self.settings.marker_path.write_text(
                datetime.now(UTC).isoformat() + "\n", encoding="utf-8"
            )
        except OSError as e:
            raise DatastoreInitError(f"Cannot write init marker: {e}") from e

    async def _run(self, argv: list[str], stdin: str | None = None) -> CommandResult:
        try:
            return await self.runner.run(argv, user=self.settings.os_user, stdin=stdin)
        except OSError as e:
            raise DatastoreInitError(f"{argv[0]} could not be executed: {e}") from e

    async def _check(self, step: str, argv: list[str], stdin: str | None = None) -> None:
        result = await self._run(argv, stdin=stdin)
        if not result.ok:
            logger.error(
                f"Datastore step '{step}' failed",
                extra={"step": step, "returncode": result.returncode},
            )
            raise DatastoreInitError(
                f"{step} failed (exit {result.returncode}): {result.stderr.strip()}"
            )
        logger.info(f"Datastore step '{step}' done")
