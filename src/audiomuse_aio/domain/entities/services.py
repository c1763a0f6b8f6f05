"""Service, credential and library entities used during bootstrap and scanning."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class CheckKind(str, Enum):
    """How a dependency's readiness is tested."""

    TCP = "tcp"
    COMMAND = "command"
    HTTP = "http"


@dataclass(frozen=True)
class ReadinessCheckSpec:
    """Declarative readiness check: a TCP target, a command line, or a URL."""

    kind: CheckKind
    host: str | None = None
    port: int | None = None
    argv: tuple[str, ...] = ()
    url: str | None = None
    timeout: float = 5.0

    @classmethod
    def tcp(cls, host: str, port: int, timeout: float = 5.0) -> "ReadinessCheckSpec":
        return cls(kind=CheckKind.TCP, host=host, port=port, timeout=timeout)

    @classmethod
    def command(cls, *argv: str, timeout: float = 5.0) -> "ReadinessCheckSpec":
        return cls(kind=CheckKind.COMMAND, argv=tuple(argv), timeout=timeout)

    @classmethod
    def http(cls, url: str, timeout: float = 5.0) -> "ReadinessCheckSpec":
        return cls(kind=CheckKind.HTTP, url=url, timeout=timeout)

    def describe(self) -> str:
        if self.kind == CheckKind.TCP:
            return f"tcp://{self.host}:{self.port}"
        if self.kind == CheckKind.COMMAND:
            return " ".join(self.argv)
        return str(self.url)


@dataclass(frozen=True)
class ServiceDescriptor:
    """A supervised service: name, readiness check and ordered dependencies."""

    name: str
    check: ReadinessCheckSpec
    depends_on: tuple[str, ...] = ()


@dataclass
class Credential:
    """A scoped access token issued by the primary service.

    Hey future me - the bootstrap side only holds this long enough to publish it
    for the consumer process. Never persist it from here.
    """

    subject: str
    token: str
    issued_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    revoked: bool = False

    def revoke(self) -> None:
        self.revoked = True

    def __repr__(self) -> str:
        # keep tokens out of logs and tracebacks
        return (
            f"Credential(subject={self.subject!r}, token='***', "
            f"issued_at={self.issued_at.isoformat()}, revoked={self.revoked})"
        )


@dataclass
class LibraryPath:
    """A music folder scanned by the ``scan`` task."""

    id: int | None
    path: str
    song_count: int = 0
    last_scan_ended: datetime | None = None

    def record_scan(self, song_count: int, ended_at: datetime | None = None) -> None:
        self.song_count = song_count
        self.last_scan_ended = ended_at or datetime.now(UTC)
