"""Bootstrap sequencer: ordered, idempotent bring-up of the all-in-one container."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from audiomuse_aio.application.bootstrap.credentials import (
    CredentialExchange,
    CredentialHandoff,
)
from audiomuse_aio.application.bootstrap.policy import RetryPolicy
from audiomuse_aio.application.bootstrap.prober import ReadinessProber
from audiomuse_aio.config.settings import Settings
from audiomuse_aio.domain.entities import Credential, ReadinessCheckSpec, ServiceDescriptor
from audiomuse_aio.domain.exceptions import BootstrapError
from audiomuse_aio.domain.ports import IProcessSupervisor

logger = logging.getLogger(__name__)


class BootstrapState(str, Enum):
    """Sequencer states. READY and FAILED are terminal."""

    INIT_CHECK = "INIT_CHECK"
    DB_INIT = "DB_INIT"
    START_SERVICES = "START_SERVICES"
    WAIT_DEPENDENCIES = "WAIT_DEPENDENCIES"
    CREDENTIAL_EXCHANGE = "CREDENTIAL_EXCHANGE"
    RESTART_CONSUMER = "RESTART_CONSUMER"
    READY = "READY"
    FAILED = "FAILED"


class DatastoreInitializer(Protocol):
    def is_initialized(self) -> bool: ...

    async def initialize(self) -> None: ...


@dataclass
class BootstrapResult:
    """Where the sequencer ended and how it got there."""

    state: BootstrapState
    history: list[BootstrapState] = field(default_factory=list)
    error: BootstrapError | None = None
    credential: Credential | None = None

    @property
    def ok(self) -> bool:
        return self.state == BootstrapState.READY


def build_service_descriptors(settings: Settings) -> list[ServiceDescriptor]:
    """Datastore, cache and music server with their readiness checks, in start order."""
    ds = settings.datastore
    return [
        ServiceDescriptor(
            name="postgres",
            check=ReadinessCheckSpec.command(
                str(ds.bin_dir / "pg_isready"), "-h", ds.host, "-p", str(ds.port)
            ),
        ),
        ServiceDescriptor(
            name="redis",
            check=ReadinessCheckSpec.tcp(settings.cache.host, settings.cache.port),
        ),
        ServiceDescriptor(
            name="music-server",
            check=ReadinessCheckSpec.http(
                f"{settings.music_server.url.rstrip('/')}/rest/ping.view",
                timeout=settings.music_server.timeout,
            ),
            depends_on=("postgres",),
        ),
    ]


def build_consumer_descriptors(settings: Settings) -> list[ServiceDescriptor]:
    """Analysis core health endpoint, polled after the consumer restart."""
    core = settings.analysis_core
    return [
        ServiceDescriptor(
            name=core.process_name,
            check=ReadinessCheckSpec.http(f"{core.url.rstrip('/')}/health", timeout=core.timeout),
        )
    ]


# Hey future me - the whole startup is this one linear state machine. Each step either
# succeeds and moves on, or raises a BootstrapError which lands us in FAILED. Nothing is
# re-invoked: retries live INSIDE the prober and the credential exchange, not here.
# run() is latched: a second caller (concurrent or later) gets the first run's result,
# so DB_INIT and RESTART_CONSUMER can never happen twice in one process.
class BootstrapSequencer:
    """Drives INIT_CHECK → ... → READY (or FAILED)."""

    def __init__(
        self,
        datastore: DatastoreInitializer,
        supervisor: IProcessSupervisor,
        prober: ReadinessProber,
        services: Sequence[ServiceDescriptor],
        probe_policy: RetryPolicy,
        credential_exchange: CredentialExchange,
        consumer_processes: Sequence[str],
        concurrent_probes: bool = False,
        consumer_services: Sequence[ServiceDescriptor] = (),
    ) -> None:
        self.datastore = datastore
        self.supervisor = supervisor
        self.prober = prober
        self.services = list(services)
        self.probe_policy = probe_policy
        self.credential_exchange = credential_exchange
        self.consumer_processes = list(consumer_processes)
        self.concurrent_probes = concurrent_probes
        self.consumer_services = list(consumer_services)

        self.state = BootstrapState.INIT_CHECK
        self.history: list[BootstrapState] = []
        self._lock = asyncio.Lock()
        self._result: BootstrapResult | None = None

    def _enter(self, state: BootstrapState) -> None:
        previous = self.state
        self.state = state
        self.history.append(state)
        level = logging.ERROR if state == BootstrapState.FAILED else logging.INFO
        logger.log(
            level,
            f"Bootstrap {previous.value} → {state.value}",
            extra={"from_state": previous.value, "to_state": state.value},
        )

    async def run(self) -> BootstrapResult:
        """Run the sequence once and return its result."""
        async with self._lock:
            if self._result is None:
                self._result = await self._run()
            return self._result

    async def _run(self) -> BootstrapResult:
        handoff: CredentialHandoff | None = None
        self.history = [BootstrapState.INIT_CHECK]
        self.state = BootstrapState.INIT_CHECK
        try:
            if self.datastore.is_initialized():
                logger.info("Datastore already initialized, skipping DB_INIT")
            else:
                self._enter(BootstrapState.DB_INIT)
                await self.datastore.initialize()

            self._enter(BootstrapState.START_SERVICES)
            await self.supervisor.start([s.name for s in self.services])

            self._enter(BootstrapState.WAIT_DEPENDENCIES)
            await self.prober.wait_all(
                self.services, self.probe_policy, concurrent=self.concurrent_probes
            )

            self._enter(BootstrapState.CREDENTIAL_EXCHANGE)
            handoff = await self.credential_exchange.exchange()

            self._enter(BootstrapState.RESTART_CONSUMER)
            if handoff.fresh:
                for name in self.consumer_processes:
                    await self.supervisor.restart(name)
            else:
                logger.info("Credential unchanged, consumer restart skipped")
            if self.consumer_services:
                await self.prober.wait_all(self.consumer_services, self.probe_policy)

            self._enter(BootstrapState.READY)
        except BootstrapError as e:
            logger.error(f"Bootstrap failed in {self.state.value}: {e.message}")
            self._enter(BootstrapState.FAILED)
            return BootstrapResult(
                state=BootstrapState.FAILED,
                history=list(self.history),
                error=e,
                credential=None,
            )
        finally:
            if self.state not in (BootstrapState.READY, BootstrapState.FAILED):
                # cancelled mid-step
                logger.warning(f"Bootstrap interrupted in {self.state.value}")

        return BootstrapResult(
            state=BootstrapState.READY,
            history=list(self.history),
            credential=handoff.credential if handoff else None,
        )
