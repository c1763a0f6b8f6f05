"""Liveness and readiness endpoints."""

import asyncio
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from audiomuse_aio import __version__
from audiomuse_aio.api.dependencies import get_app_settings, get_database
from audiomuse_aio.config.settings import Settings
from audiomuse_aio.infrastructure.integrations.http_pool import HttpClientPool
from audiomuse_aio.infrastructure.observability.health import (
    HealthStatus,
    aggregate_status,
    check_cache_health,
    check_database_health,
    check_music_server_health,
)
from audiomuse_aio.infrastructure.persistence.database import Database

router = APIRouter()


class LivenessStatus(BaseModel):
    status: str = Field(description="alive")
    timestamp: str
    version: str = __version__


class ReadinessStatus(BaseModel):
    status: str = Field(description="healthy, degraded or unhealthy")
    timestamp: str
    checks: dict[str, Any] = Field(default_factory=dict)


@router.get("/health", response_model=LivenessStatus)
async def liveness_probe() -> LivenessStatus:
    """Returns 200 while the process is running. No dependency checks."""
    return LivenessStatus(status="alive", timestamp=datetime.now(UTC).isoformat())


# Hey future me - /ready is 503 only for UNHEALTHY. A DEGRADED cache or music server
# still lets clients poll task status, which is what the UI needs most.
@router.get("/ready", response_model=ReadinessStatus)
async def readiness_probe(
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    client = await HttpClientPool.get_client()
    checks = await asyncio.gather(
        check_database_health(db),
        check_cache_health(settings.cache.host, settings.cache.port),
        check_music_server_health(
            client, settings.music_server.url, timeout=settings.music_server.timeout
        ),
    )
    overall = aggregate_status(list(checks))
    body = ReadinessStatus(
        status=overall.value,
        timestamp=datetime.now(UTC).isoformat(),
        checks={
            c.name: {"status": c.status.value, "message": c.message, "details": c.details}
            for c in checks
        },
    )
    code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if overall == HealthStatus.UNHEALTHY
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=code, content=body.model_dump())
