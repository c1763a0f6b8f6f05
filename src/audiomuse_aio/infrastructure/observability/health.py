"""Health checks for the Task API's /ready endpoint."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from sqlalchemy import text

from audiomuse_aio.infrastructure.observability.readiness import TcpCheck
from audiomuse_aio.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheck:
    """Result of a health check."""

    name: str
    status: HealthStatus
    message: str | None = None
    details: dict[str, Any] | None = None


async def check_database_health(db: Database) -> HealthCheck:
    """Check the task database with ``SELECT 1``."""
    try:
        async with db.session_scope() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
    except Exception as e:
        logger.exception("Database health check failed")
        return HealthCheck(
            name="database",
            status=HealthStatus.UNHEALTHY,
            message=f"Database connection failed: {e}",
        )
    return HealthCheck(
        name="database",
        status=HealthStatus.HEALTHY,
        message="Database connection successful",
    )


async def check_cache_health(host: str, port: int, timeout: float = 2.0) -> HealthCheck:
    """Check that the cache accepts TCP connections."""
    ok = await TcpCheck(host, port, timeout=timeout).check()
    return HealthCheck(
        name="cache",
        # the Task API keeps working without the cache, only analysis jobs stall
        status=HealthStatus.HEALTHY if ok else HealthStatus.DEGRADED,
        message="Cache reachable" if ok else "Cache not reachable",
        details={"host": host, "port": port},
    )


async def check_music_server_health(
    client: httpx.AsyncClient, base_url: str, timeout: float = 5.0
) -> HealthCheck:
    """Check the music server's Subsonic ``ping.view``."""
    url = f"{base_url.rstrip('/')}/rest/ping.view"
    try:
        response = await client.get(url, timeout=timeout)
    except httpx.RequestError as e:
        logger.warning("Music server health check failed", extra={"error": str(e)})
        return HealthCheck(
            name="music_server",
            status=HealthStatus.UNHEALTHY,
            message=f"Music server unreachable: {e}",
            details={"url": base_url},
        )
    if response.is_success:
        return HealthCheck(
            name="music_server",
            status=HealthStatus.HEALTHY,
            message="Music server is accessible",
            details={"url": base_url},
        )
    return HealthCheck(
        name="music_server",
        status=HealthStatus.DEGRADED,
        message=f"Music server returned status {response.status_code}",
        details={"url": base_url, "status_code": response.status_code},
    )


def aggregate_status(checks: list[HealthCheck]) -> HealthStatus:
    """Worst status wins."""
    statuses = {c.status for c in checks}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
