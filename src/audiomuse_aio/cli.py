"""``audiomuse-aio`` command line.

Commands:
    bootstrap: Run the bootstrap sequencer, then stay alive until SIGTERM/SIGINT.
    serve: Run the Task API with uvicorn.
    render-supervisor-config: Print (or write) the supervisord configuration.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from audiomuse_aio.application.bootstrap.credentials import (
    CredentialExchange,
    EnvFileCredentialStore,
)
from audiomuse_aio.application.bootstrap.policy import RetryPolicy
from audiomuse_aio.application.bootstrap.prober import ReadinessProber
from audiomuse_aio.application.bootstrap.sequencer import (
    BootstrapSequencer,
    BootstrapState,
    build_consumer_descriptors,
    build_service_descriptors,
)
from audiomuse_aio.config.settings import Settings, get_settings
from audiomuse_aio.domain.exceptions import ConfigurationError
from audiomuse_aio.domain.ports import ICommandRunner
from audiomuse_aio.infrastructure.integrations.subsonic_client import SubsonicClient
from audiomuse_aio.infrastructure.observability.logging import (
    configure_logging,
    set_correlation_id,
)
from audiomuse_aio.infrastructure.observability.readiness import build_check
from audiomuse_aio.infrastructure.process.commands import AsyncCommandRunner
from audiomuse_aio.infrastructure.process.postgres import PostgresInitializer
from audiomuse_aio.infrastructure.process.supervisor import (
    SupervisorctlSupervisor,
    default_processes,
    render_supervisord_config,
)

logger = logging.getLogger(__name__)


def consumer_static_env(settings: Settings) -> dict[str, str]:
    """Datastore and cache settings published next to the credential."""
    ds = settings.datastore
    return {
        "POSTGRES_HOST": ds.host,
        "POSTGRES_PORT": str(ds.port),
        "POSTGRES_USER": ds.app_user,
        "POSTGRES_PASSWORD": ds.app_password,
        "POSTGRES_DB": ds.app_database,
        "REDIS_URL": settings.cache.url,
        "TEMP_DIR": str(settings.analysis_core.temp_dir),
    }


def build_sequencer(
    settings: Settings,
    runner: ICommandRunner | None = None,
    subsonic: SubsonicClient | None = None,
) -> BootstrapSequencer:
    """Wire the bootstrap sequencer from settings."""
    runner = runner or AsyncCommandRunner()
    bs = settings.bootstrap
    probe_policy = RetryPolicy.for_probes(
        bs.probe_interval, bs.probe_max_attempts, allow_unbounded=bs.allow_unbounded_probe
    )
    exchange = CredentialExchange(
        source=subsonic or SubsonicClient(settings.music_server),
        store=EnvFileCredentialStore(settings.analysis_core.env_file),
        settings=settings.music_server,
        policy=RetryPolicy(bs.credential_retry_interval, bs.credential_max_attempts),
        extra_env=consumer_static_env(settings),
    )
    return BootstrapSequencer(
        datastore=PostgresInitializer(settings.datastore, runner),
        supervisor=SupervisorctlSupervisor(
            runner, supervisorctl=bs.supervisorctl, config_path=bs.supervisor_config
        ),
        prober=ReadinessProber(lambda spec: build_check(spec, runner)),
        services=build_service_descriptors(settings),
        probe_policy=probe_policy,
        credential_exchange=exchange,
        consumer_processes=[
            settings.analysis_core.process_name,
            settings.analysis_core.worker_process_name,
        ],
        concurrent_probes=bs.concurrent_probes,
        consumer_services=build_consumer_descriptors(settings) if bs.wait_for_consumer else (),
    )


async def _wait_for_signal() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)
    await stop.wait()


# Hey future me - supervisord runs this as its only autostart program. Exit 1 on FAILED so
# the operator sees it in `supervisorctl status`. On READY we don't exit: the sequencer's
# process stays up for the supervisory session, as the container's old entrypoint loop did.
async def run_bootstrap(settings: Settings, block: bool = True) -> int:
    set_correlation_id()
    sequencer = build_sequencer(settings)
    result = await sequencer.run()
    if result.state == BootstrapState.FAILED:
        logger.error(
            f"Bootstrap FAILED: {result.error.message if result.error else 'unknown error'}",
            extra={"history": [s.value for s in result.history]},
        )
        return 1
    logger.info(
        "Bootstrap READY",
        extra={"history": [s.value for s in result.history]},
    )
    if block:
        await _wait_for_signal()
        logger.info("Bootstrap process stopping")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="audiomuse-aio", description="AudioMuse all-in-one container control"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    bootstrap = subparsers.add_parser("bootstrap", help="Bring up all services in order")
    bootstrap.add_argument(
        "--no-block",
        action="store_true",
        help="Exit after reaching READY instead of waiting for a signal",
    )

    serve = subparsers.add_parser("serve", help="Run the Task API")
    serve.add_argument("--host", default=None, help="Bind address (default from settings)")
    serve.add_argument("--port", type=int, default=None, help="Port (default from settings)")

    render = subparsers.add_parser(
        "render-supervisor-config", help="Print the supervisord configuration"
    )
    render.add_argument("--output", type=Path, default=None, help="Write to this file")
    render.add_argument(
        "--bootstrap-command",
        default="audiomuse-aio bootstrap",
        help="Command supervisord runs for the bootstrap program",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()

    if args.command == "render-supervisor-config":
        content = render_supervisord_config(
            default_processes(settings), bootstrap_command=args.bootstrap_command
        )
        if args.output:
            args.output.write_text(content, encoding="utf-8")
        else:
            sys.stdout.write(content)
        return 0

    if args.command == "serve":
        import uvicorn

        from audiomuse_aio.main import create_app

        uvicorn.run(
            create_app(settings),
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            log_config=None,
        )
        return 0

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.log_json_format,
        app_name=settings.app_name,
    )
    try:
        return asyncio.run(run_bootstrap(settings, block=not args.no_block))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e.message}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
