"""Async external command runner."""

import asyncio
import logging
import os
from collections.abc import Sequence

from audiomuse_aio.domain.ports import CommandResult, ICommandRunner

logger = logging.getLogger(__name__)


# Hey future me - asyncio.create_subprocess_exec, never a shell string, so passwords in
# argv can't be interpreted by a shell. When `user` is set and we are not that user
# already, the command is wrapped in `runuser -u <user> --` (we run as root in the
# container, Postgres tools refuse to run as root).
class AsyncCommandRunner(ICommandRunner):
    """Run commands via asyncio subprocesses."""

    def __init__(self, runuser: str = "runuser") -> None:
        self.runuser = runuser

    def build_argv(self, argv: Sequence[str], user: str | None) -> list[str]:
        if user is None or _current_user() == user:
            return list(argv)
        return [self.runuser, "-u", user, "--", *argv]

    async def run(
        self,
        argv: Sequence[str],
        *,
        user: str | None = None,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        full_argv = self.build_argv(argv, user)
        logger.debug(f"Running {full_argv[0]}", extra={"argv0": full_argv[0], "user": user})

        process = await asyncio.create_subprocess_exec(
            *full_argv,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin.encode("utf-8") if stdin is not None else None),
                timeout=timeout,
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            raise

        returncode = process.returncode if process.returncode is not None else -1
        return CommandResult(
            returncode=returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


def _current_user() -> str | None:
    try:
        import pwd

        return pwd.getpwuid(os.getuid()).pw_name
    except (ImportError, KeyError, AttributeError):
        return None
