"""Shared HTTP client pool for the Task API process.

Hey future me - health checks and the analysis core worker share one
httpx.AsyncClient so polling every few seconds reuses keep-alive connections
to localhost services instead of opening a new socket per request.

    client = await HttpClientPool.get_client()
    response = await client.get("http://localhost:8000/api/status/abc")

The FastAPI lifespan calls HttpClientPool.close() on shutdown.
"""

import asyncio
import logging
from typing import ClassVar

import httpx

logger = logging.getLogger(__name__)


class HttpClientPool:
    """Process-wide lazily created httpx.AsyncClient."""

    _client: ClassVar[httpx.AsyncClient | None] = None
    _lock: ClassVar[asyncio.Lock | None] = None

    DEFAULT_TIMEOUT: ClassVar[float] = 20.0
    DEFAULT_MAX_KEEPALIVE: ClassVar[int] = 10
    DEFAULT_MAX_CONNECTIONS: ClassVar[int] = 20

    @classmethod
    def _ensure_lock(cls) -> asyncio.Lock:
        # created lazily: asyncio.Lock must be made inside the running loop
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        return cls._lock

    @classmethod
    async def get_client(cls, timeout: float | None = None) -> httpx.AsyncClient:
        """Get the shared client, creating it on first use.

        Args:
            timeout: Default request timeout; only applied on the first call

        Returns:
            Shared httpx.AsyncClient instance
        """
        async with cls._ensure_lock():
            if cls._client is None or cls._client.is_closed:
                effective_timeout = timeout or cls.DEFAULT_TIMEOUT
                cls._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(effective_timeout),
                    limits=httpx.Limits(
                        max_keepalive_connections=cls.DEFAULT_MAX_KEEPALIVE,
                        max_connections=cls.DEFAULT_MAX_CONNECTIONS,
                    ),
                    follow_redirects=True,
                )
                logger.info(
                    "HTTP client pool initialized (timeout=%.1fs)", effective_timeout
                )
            return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close the shared client. A later get_client() creates a new one."""
        async with cls._ensure_lock():
            if cls._client is not None:
                await cls._client.aclose()
                cls._client = None
                logger.info("HTTP client pool closed")
        cls._lock = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None and not cls._client.is_closed
