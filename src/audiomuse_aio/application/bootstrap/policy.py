"""Retry policy shared by readiness probes and the credential exchange."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from audiomuse_aio.domain.exceptions import ConfigurationError

Sleep = Callable[[float], Awaitable[None]]


# Hey future me - this replaces the "until X; do sleep 2; done" loops of the container
# scripts. Fixed interval, no backoff growth. max_attempts=None means unbounded, and the
# only way to get that is RetryPolicy.unbounded() so nobody blocks forever by accident.
# Tests pass a fake `sleep` to run k failures without real delays.
@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry with an attempt bound."""

    interval: float = 2.0
    max_attempts: int | None = 60
    sleep: Sleep = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ConfigurationError("Retry interval must not be negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")

    @classmethod
    def unbounded(cls, interval: float = 2.0, sleep: Sleep = asyncio.sleep) -> "RetryPolicy":
        """Retry forever. Only used when explicitly enabled in settings."""
        return cls(interval=interval, max_attempts=None, sleep=sleep)

    @classmethod
    def for_probes(
        cls,
        interval: float,
        max_attempts: int,
        allow_unbounded: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> "RetryPolicy":
        """Build the probe policy from settings.

        Args:
            interval: Seconds between attempts
            max_attempts: Attempt bound; 0 means unbounded
            allow_unbounded: Opt-in flag required for max_attempts == 0
            sleep: Sleep coroutine (injectable for tests)

        Returns:
            Retry policy

        Raises:
            ConfigurationError: If unbounded retry is requested without opt-in
        """
        if max_attempts <= 0:
            if not allow_unbounded:
                raise ConfigurationError(
                    "Unbounded readiness probing requires allow_unbounded_probe=true"
                )
            return cls.unbounded(interval=interval, sleep=sleep)
        return cls(interval=interval, max_attempts=max_attempts, sleep=sleep)

    @property
    def is_unbounded(self) -> bool:
        return self.max_attempts is None

    def allows(self, attempt: int) -> bool:
        """Whether attempt number ``attempt`` (1-based) may run."""
        return self.max_attempts is None or attempt <= self.max_attempts

    async def wait(self) -> None:
        await self.sleep(self.interval)
