"""Middleware for observability: request/response logging."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from audiomuse_aio.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

# Status polling hits these every few seconds from every open browser tab.
_QUIET_SUFFIXES = ("/status", "/last", "/health", "/ready")


# Hey future me, this runs around every route handler. The correlation id comes from the
# X-Correlation-ID request header (or is generated) and is echoed back on the response.
# Poll endpoints are logged at DEBUG so a UI left open doesn't flood the log.
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses."""

    def __init__(self, app: ASGIApp, log_request_body: bool = False) -> None:
        """Initialize middleware.

        Args:
            app: ASGI application
            log_request_body: Whether to log request body (can be verbose)
        """
        super().__init__(app)
        self.log_request_body = log_request_body

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Process request and log details.

        Args:
            request: Incoming request
            call_next: Next middleware/handler in chain

        Returns:
            Response from application
        """
        set_correlation_id(request.headers.get("X-Correlation-ID"))

        method = request.method
        path = request.url.path
        level = logging.DEBUG if path.endswith(_QUIET_SUFFIXES) else logging.INFO

        extra = {
            "method": method,
            "path": path,
            "client_ip": request.client.host if request.client else "unknown",
        }
        if self.log_request_body and method in ("POST", "PUT", "PATCH"):
            body = await request.body()
            extra["body"] = body.decode("utf-8", errors="replace")[:1000]
        logger.log(level, f"→ {method} {path}", extra=extra)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"Request failed: {method} {path}",
                extra={
                    "method": method,
                    "path": path,
                    "duration_seconds": time.monotonic() - start_time,
                    "error_type": type(e).__name__,
                },
            )
            raise

        duration_ms = int((time.monotonic() - start_time) * 1000)
        status_mark = "✓" if response.status_code < 400 else "✗"
        logger.log(
            level,
            f"{status_mark} {method} {path} → {response.status_code} ({duration_ms}ms)",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Correlation-ID"] = get_correlation_id()
        return response
