"""Credential exchange: fetch a scoped API key and hand it to the consumer process.

Hey future me - the consumer (analysis core) does NOT read its music server
credentials from our process environment. It reads an env file that we replace
atomically, then supervisord restarts it. That file is the whole handoff
contract: four variables plus static datastore/cache settings.
"""

import asyncio
import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

import httpx

from audiomuse_aio.application.bootstrap.policy import RetryPolicy
from audiomuse_aio.config.settings import MusicServerSettings
from audiomuse_aio.domain.entities import Credential
from audiomuse_aio.domain.exceptions import (
    CredentialExchangeError,
    ExternalServiceError,
)
from audiomuse_aio.domain.ports import ICredentialStore

logger = logging.getLogger(__name__)

ENV_URL = "NAVIDROME_URL"
ENV_USER = "NAVIDROME_USER"
ENV_SECRET = "NAVIDROME_PASSWORD"
ENV_KIND = "MEDIASERVER_TYPE"


@dataclass(frozen=True)
class ConsumerEnvironment:
    """Explicit handoff struct consumed by the analysis core at construction."""

    service_url: str
    user: str
    secret: str
    service_kind: str
    extra: Mapping[str, str] = field(default_factory=dict)

    def as_env(self) -> dict[str, str]:
        env = dict(self.extra)
        env.update(
            {
                ENV_URL: self.service_url,
                ENV_USER: self.user,
                ENV_SECRET: self.secret,
                ENV_KIND: self.service_kind,
            }
        )
        return env

    @classmethod
    def from_env(cls, values: Mapping[str, str]) -> "ConsumerEnvironment":
        """Build from a mapping; raises KeyError if one of the four is missing."""
        core = {ENV_URL, ENV_USER, ENV_SECRET, ENV_KIND}
        return cls(
            service_url=values[ENV_URL],
            user=values[ENV_USER],
            secret=values[ENV_SECRET],
            service_kind=values[ENV_KIND],
            extra={k: v for k, v in values.items() if k not in core},
        )

    @classmethod
    def load(cls, path: Path) -> "ConsumerEnvironment":
        """Read the published env file (what the consumer does on startup)."""
        return cls.from_env(parse_env_file(path.read_text(encoding="utf-8")))

    def __repr__(self) -> str:
        return (
            f"ConsumerEnvironment(service_url={self.service_url!r}, user={self.user!r}, "
            f"secret='***', service_kind={self.service_kind!r})"
        )


def parse_env_file(content: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
        values[key.strip()] = value
    return values


def render_env_file(values: Mapping[str, str]) -> str:
    lines = []
    for key in sorted(values):
        escaped = values[key].replace("\\", "\\\\").replace('"', '\\"')
        lines.append(f'{key}="{escaped}"')
    return "\n".join(lines) + "\n"


class EnvFileCredentialStore(ICredentialStore):
    """Publishes the consumer environment as an env file, atomically."""

    def __init__(self, path: Path) -> None:
        self.path = path

    # Listen future me, write-temp-then-os.replace in the SAME directory. os.replace is
    # an atomic rename on POSIX, so the consumer sees the old file or the new one.
    # The temp file is created 0600 by mkstemp; the secret is never world-readable.
    def publish(self, values: Mapping[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(render_env_file(values))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(
            f"Published consumer environment to {self.path}",
            extra={"variables": sorted(values)},
        )

    def read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        return parse_env_file(self.path.read_text(encoding="utf-8"))


class ApiKeySource(Protocol):
    async def get_api_key(self, user: str, password: str) -> str | None: ...

    async def revoke_api_key(self, user: str, password: str) -> bool: ...


@dataclass(frozen=True)
class CredentialHandoff:
    """Result of an exchange. ``fresh`` is False when a cached handoff was reused."""

    credential: Credential
    environment: ConsumerEnvironment
    attempts: int
    fresh: bool = True


class CredentialExchange:
    """Single-flight fetch-validate-publish of the consumer's credential."""

    def __init__(
        self,
        source: ApiKeySource,
        store: ICredentialStore,
        settings: MusicServerSettings,
        policy: RetryPolicy,
        extra_env: Mapping[str, str] | None = None,
    ) -> None:
        self.source = source
        self.store = store
        self.settings = settings
        self.policy = policy
        self.extra_env = dict(extra_env or {})
        self._lock = asyncio.Lock()
        self._handoff: CredentialHandoff | None = None
        self._revoked_tokens: set[str] = set()

    @property
    def current(self) -> CredentialHandoff | None:
        return self._handoff

    async def fetch_credential(self) -> tuple[Credential, int]:
        """Fetch a usable credential with bounded retries.

        Returns:
            The credential and the number of attempts it took

        Raises:
            CredentialExchangeError: When every attempt gave no usable key
        """
        user = self.settings.bootstrap_user
        attempt = 0
        while self.policy.allows(attempt + 1):
            attempt += 1
            try:
                key = await self.source.get_api_key(user, self.settings.bootstrap_password)
            except (httpx.HTTPError, ExternalServiceError) as e:
                logger.warning(f"Credential fetch attempt {attempt} failed: {e}")
                key = None
            else:
                if key is None:
                    logger.warning(f"Credential fetch attempt {attempt}: no key returned")
                elif key in self._revoked_tokens:
                    logger.warning(f"Credential fetch attempt {attempt}: revoked key returned")
                    key = None
            if key is not None:
                return Credential(subject=user, token=key), attempt
            if self.policy.allows(attempt + 1):
                await self.policy.wait()

        logger.error(f"No usable credential after {attempt} attempts")
        raise CredentialExchangeError(
            f"{self.settings.url} returned no usable API key after {attempt} attempts",
            attempts=attempt,
        )

    # Hey future me - the lock + cache is the single in-flight latch. Whoever gets the lock
    # second finds the handoff already published and gets fresh=False, and the sequencer
    # only restarts the consumer for fresh=True. So one restart, no matter how many callers.
    async def exchange(self) -> CredentialHandoff:
        """Fetch, validate and publish the credential once.

        Raises:
            CredentialExchangeError: On exhausted retries or a failed publish
        """
        async with self._lock:
            if self._handoff is not None and not self._handoff.credential.revoked:
                return replace(self._handoff, fresh=False)

            credential, attempts = await self.fetch_credential()
            environment = ConsumerEnvironment(
                service_url=self.settings.url,
                user=credential.subject,
                secret=credential.token,
                service_kind=self.settings.service_kind,
                extra=self.extra_env,
            )
            try:
                self.store.publish(environment.as_env())
            except OSError as e:
                raise CredentialExchangeError(
                    f"Could not publish consumer environment: {e}", attempts=attempts
                ) from e
            self._handoff = CredentialHandoff(credential, environment, attempts, fresh=True)
            logger.info(
                f"Credential exchanged after {attempts} attempt(s)",
                extra={"subject": credential.subject, "attempts": attempts},
            )
            return self._handoff

    async def revoke(self) -> None:
        """Revoke the current credential; its token is never accepted again."""
        async with self._lock:
            if self._handoff is None:
                return
            credential = self._handoff.credential
            credential.revoke()
            self._revoked_tokens.add(credential.token)
            self._handoff = None
            try:
                await self.source.revoke_api_key(
                    self.settings.bootstrap_user, self.settings.bootstrap_password
                )
            except (httpx.HTTPError, ExternalServiceError) as e:
                logger.warning(f"Server-side revoke failed: {e}")
