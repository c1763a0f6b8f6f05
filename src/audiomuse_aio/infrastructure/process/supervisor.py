"""Process supervision through supervisord.

The container runs supervisord as PID 1's child manager. This module renders
its declarative program list and drives it with ``supervisorctl``.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from audiomuse_aio.config.settings import Settings
from audiomuse_aio.domain.exceptions import SupervisorError
from audiomuse_aio.domain.ports import ICommandRunner, IProcessSupervisor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManagedProcess:
    """One supervised program."""

    name: str
    command: str
    autostart: bool = False
    autorestart: bool = True
    priority: int = 100
    user: str | None = None
    directory: str | None = None
    environment_file: Path | None = None
    environment: dict[str, str] = field(default_factory=dict)

    def effective_command(self) -> str:
        # supervisord has no env-file option, so source it in a login-less shell
        if self.environment_file is None:
            return self.command
        return f'/bin/bash -c "set -a && . {self.environment_file} && exec {self.command}"'


def default_processes(settings: Settings) -> list[ManagedProcess]:
    """Programs of the all-in-one container, in start order.

    None of them autostart: the bootstrap sequencer starts them once the
    datastore is initialized and restarts the analysis core once its
    credential has been published.
    """
    ds = settings.datastore
    core = settings.analysis_core
    return [
        ManagedProcess(
            name="postgres",
            command=f"{ds.bin_dir / 'postgres'} -D {ds.data_dir} -p {ds.port}",
            priority=10,
            user=ds.os_user,
        ),
        ManagedProcess(
            name="redis",
            command=f"/usr/bin/redis-server --port {settings.cache.port} --loglevel warning",
            priority=10,
        ),
        ManagedProcess(
            name="music-server",
            command="/app/audiomuse-server/music-server",
            priority=20,
            directory="/app/audiomuse-server",
        ),
        ManagedProcess(
            name=core.process_name,
            command="python3 app.py",
            priority=30,
            directory=str(core.env_file.parent),
            environment_file=core.env_file,
            environment={"SERVICE_TYPE": "flask", "PYTHONUNBUFFERED": "1"},
        ),
        ManagedProcess(
            name=core.worker_process_name,
            command=f"rq worker -u {settings.cache.url} --with-scheduler",
            priority=40,
            directory=str(core.env_file.parent),
            environment_file=core.env_file,
            environment={"PYTHONUNBUFFERED": "1"},
        ),
    ]


def render_supervisord_config(
    processes: Sequence[ManagedProcess], bootstrap_command: str | None = None
) -> str:
    """Render supervisord.conf for the given programs.

    Args:
        processes: Programs to manage
        bootstrap_command: Optional command for the bootstrap program itself
            (the only one that autostarts)

    Returns:
        Configuration file content
    """
    lines = [
        "[supervisord]",
        "nodaemon=true",
        "logfile=/dev/null",
        "logfile_maxbytes=0",
        "",
        "[unix_http_server]",
        "file=/var/run/supervisor.sock",
        "",
        "[supervisorctl]",
        "serverurl=unix:///var/run/supervisor.sock",
        "",
        "[rpcinterface:supervisor]",
        "supervisor.rpcinterface_factory = supervisor.rpcinterface:make_main_rpcinterface",
        "",
    ]
    if bootstrap_command:
        lines += [
            "[program:bootstrap]",
            f"command={bootstrap_command}",
            "autostart=true",
            "autorestart=false",
            "startsecs=0",
            "priority=1",
            "stdout_logfile=/dev/stdout",
            "stdout_logfile_maxbytes=0",
            "redirect_stderr=true",
            "",
        ]
    for proc in processes:
        lines += [
            f"[program:{proc.name}]",
            f"command={proc.effective_command()}",
            f"autostart={str(proc.autostart).lower()}",
            f"autorestart={str(proc.autorestart).lower()}",
            f"priority={proc.priority}",
        ]
        if proc.user:
            lines.append(f"user={proc.user}")
        if proc.directory:
            lines.append(f"directory={proc.directory}")
        if proc.environment:
            env = ",".join(f'{k}="{v}"' for k, v in sorted(proc.environment.items()))
            lines.append(f"environment={env}")
        lines += [
            "stdout_logfile=/dev/stdout",
            "stdout_logfile_maxbytes=0",
            "redirect_stderr=true",
            "",
        ]
    return "\n".join(lines)


# Hey future me - the sequencer only ever talks to this class, never to processes. A non-zero
# supervisorctl exit is fatal for bootstrap (SupervisorError is a BootstrapError).
# "already started" is reported by supervisorctl as an error but is fine for us.
class SupervisorctlSupervisor(IProcessSupervisor):
    """IProcessSupervisor backed by the supervisorctl CLI."""

    def __init__(
        self,
        runner: ICommandRunner,
        supervisorctl: str = "supervisorctl",
        config_path: Path | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.runner = runner
        self.supervisorctl = supervisorctl
        self.config_path = config_path
        self.timeout = timeout

    def _argv(self, *args: str) -> list[str]:
        argv = [self.supervisorctl]
        if self.config_path is not None:
            argv += ["-c", str(self.config_path)]
        return argv + list(args)

    async def _ctl(self, action: str, names: Sequence[str]) -> None:
        try:
            result = await self.runner.run(self._argv(action, *names), timeout=self.timeout)
        except TimeoutError as e:
            raise SupervisorError(
                f"supervisorctl {action} {' '.join(names)} timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise SupervisorError(f"supervisorctl could not be executed: {e}") from e
        output = f"{result.stdout}\n{result.stderr}".strip()
        if result.ok or (action == "start" and _only_already_started(output)):
            logger.info(f"supervisorctl {action} {' '.join(names)}: ok")
            return
        logger.error(
            f"supervisorctl {action} failed",
            extra={"programs": list(names), "returncode": result.returncode, "output": output},
        )
        raise SupervisorError(
            f"supervisorctl {action} {' '.join(names)} failed: {output or 'no output'}",
            returncode=result.returncode,
        )

    async def start(self, names: Sequence[str]) -> None:
        if not names:
            return
        await self._ctl("start", names)

    async def restart(self, name: str) -> None:
        await self._ctl("restart", [name])


def _only_already_started(output: str) -> bool:
    errors = [line for line in output.splitlines() if "ERROR" in line]
    return bool(errors) and all("already started" in line for line in errors)
