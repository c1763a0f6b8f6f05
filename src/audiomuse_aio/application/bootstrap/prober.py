"""Readiness prober: retry a readiness check until it passes or the policy runs out."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from audiomuse_aio.application.bootstrap.policy import RetryPolicy
from audiomuse_aio.domain.entities import ReadinessCheckSpec, ServiceDescriptor
from audiomuse_aio.domain.exceptions import ConfigurationError, ProbeTimeoutError
from audiomuse_aio.infrastructure.observability.readiness import ReadinessCheck

logger = logging.getLogger(__name__)

CheckFactory = Callable[[ReadinessCheckSpec], ReadinessCheck]


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of waiting on one dependency."""

    name: str
    ready: bool
    attempts: int


def dependency_levels(descriptors: Sequence[ServiceDescriptor]) -> list[list[ServiceDescriptor]]:
    """Group descriptors into levels; everything in a level only depends on earlier levels.

    Declared order is preserved inside each level.

    Raises:
        ConfigurationError: On unknown dependencies or dependency cycles
    """
    by_name = {d.name: d for d in descriptors}
    for descriptor in descriptors:
        for dep in descriptor.depends_on:
            if dep not in by_name:
                raise ConfigurationError(
                    f"{descriptor.name} depends on unknown service {dep}"
                )

    placed: set[str] = set()
    remaining = list(descriptors)
    levels: list[list[ServiceDescriptor]] = []
    while remaining:
        level = [d for d in remaining if all(dep in placed for dep in d.depends_on)]
        if not level:
            names = ", ".join(d.name for d in remaining)
            raise ConfigurationError(f"Dependency cycle between: {names}")
        levels.append(level)
        placed.update(d.name for d in level)
        remaining = [d for d in remaining if d.name not in placed]
    return levels


class ReadinessProber:
    """Runs readiness checks under a RetryPolicy.

    The only state is the attempt count of the check currently being waited on.
    """

    def __init__(self, check_factory: CheckFactory) -> None:
        self._check_factory = check_factory

    async def wait_ready(
        self, check: ReadinessCheck, policy: RetryPolicy
    ) -> ProbeOutcome:
        """Retry ``check`` at a fixed interval until it passes or attempts run out.

        Args:
            check: Readiness check to run
            policy: Interval and attempt bound

        Returns:
            ProbeOutcome with ready=False when the bound was exhausted
        """
        attempt = 0
        while policy.allows(attempt + 1):
            attempt += 1
            if await check.check():
                logger.info(
                    f"{check.name} ready after {attempt} attempt(s)",
                    extra={"dependency": check.name, "attempts": attempt},
                )
                return ProbeOutcome(check.name, True, attempt)
            if not policy.allows(attempt + 1):
                break
            logger.warning(
                f"{check.name} not ready (attempt {attempt}), retrying in {policy.interval}s",
                extra={"dependency": check.name, "attempts": attempt},
            )
            await policy.wait()

        logger.error(
            f"{check.name} not ready after {attempt} attempts",
            extra={"dependency": check.name, "attempts": attempt},
        )
        return ProbeOutcome(check.name, False, attempt)

    async def wait_service(
        self, descriptor: ServiceDescriptor, policy: RetryPolicy
    ) -> ProbeOutcome:
        """Wait for one service; raises ProbeTimeoutError if it never gets ready."""
        outcome = await self.wait_ready(self._check_factory(descriptor.check), policy)
        if not outcome.ready:
            raise ProbeTimeoutError(descriptor.name, outcome.attempts)
        return ProbeOutcome(descriptor.name, True, outcome.attempts)

    async def wait_all(
        self,
        descriptors: Sequence[ServiceDescriptor],
        policy: RetryPolicy,
        concurrent: bool = False,
    ) -> list[ProbeOutcome]:
        """Wait for every service, dependencies before dependents.

        Args:
            descriptors: Services in declared order
            policy: Retry policy applied to each service
            concurrent: Probe services of the same dependency level concurrently

        Returns:
            One outcome per service, in probing order

        Raises:
            ProbeTimeoutError: First service that did not become ready
        """
        outcomes: list[ProbeOutcome] = []
        for level in dependency_levels(descriptors):
            if concurrent and len(level) > 1:
                outcomes.extend(
                    await asyncio.gather(*(self.wait_service(d, policy) for d in level))
                )
            else:
                for descriptor in level:
                    outcomes.append(await self.wait_service(descriptor, policy))
        return outcomes
