"""Single-shot readiness checks for supervised dependencies.

Each check answers "can this dependency accept requests right now?" once.
Retrying is the prober's job, not the check's.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

import httpx

from audiomuse_aio.domain.entities import CheckKind, ReadinessCheckSpec
from audiomuse_aio.domain.exceptions import ConfigurationError
from audiomuse_aio.domain.ports import ICommandRunner

logger = logging.getLogger(__name__)


class ReadinessCheck(ABC):
    """One readiness test."""

    name: str = "check"

    @abstractmethod
    async def check(self) -> bool:
        """Return True when the dependency is ready. Never raises for "not ready"."""
        pass


class TcpCheck(ReadinessCheck):
    """Port probe: ready once a TCP connection is accepted (cache)."""

    def __init__(self, host: str, port: int, timeout: float = 5.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.name = f"tcp://{host}:{port}"

    async def check(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, TimeoutError) as e:
            logger.debug(f"{self.name} not ready: {e}")
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True


class CommandCheck(ReadinessCheck):
    """Process-native readiness check, e.g. ``pg_isready`` for the datastore."""

    def __init__(
        self,
        runner: ICommandRunner,
        argv: Sequence[str],
        timeout: float = 5.0,
    ) -> None:
        if not argv:
            raise ConfigurationError("CommandCheck needs a command line")
        self.runner = runner
        self.argv = list(argv)
        self.timeout = timeout
        self.name = " ".join(self.argv)

    async def check(self) -> bool:
        try:
            result = await self.runner.run(self.argv, timeout=self.timeout)
        except (OSError, TimeoutError) as e:
            logger.debug(f"{self.name} not ready: {e}")
            return False
        return result.ok


class HttpCheck(ReadinessCheck):
    """HTTP GET expecting a 2xx answer (music server ``ping.view``)."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.name = url
        self._client = client

    async def check(self) -> bool:
        try:
            if self._client is not None:
                response = await self._client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url)
        except httpx.HTTPError as e:
            logger.debug(f"{self.name} not ready: {e}")
            return False
        return response.is_success


def build_check(spec: ReadinessCheckSpec, runner: ICommandRunner) -> ReadinessCheck:
    """Turn a declarative check spec into a runnable check."""
    if spec.kind == CheckKind.TCP:
        if spec.host is None or spec.port is None:
            raise ConfigurationError("TCP readiness check needs host and port")
        return TcpCheck(spec.host, spec.port, timeout=spec.timeout)
    if spec.kind == CheckKind.COMMAND:
        return CommandCheck(runner, spec.argv, timeout=spec.timeout)
    if spec.url is None:
        raise ConfigurationError("HTTP readiness check needs a url")
    return HttpCheck(spec.url, timeout=spec.timeout)
