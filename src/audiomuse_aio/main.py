"""FastAPI application factory for the Task API."""

from fastapi import FastAPI

from audiomuse_aio import __version__
from audiomuse_aio.api.exception_handlers import register_exception_handlers
from audiomuse_aio.api.routers import api_router, health
from audiomuse_aio.config.settings import Settings, get_settings
from audiomuse_aio.infrastructure.lifecycle import lifespan
from audiomuse_aio.infrastructure.observability.middleware import RequestLoggingMiddleware


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; defaults to get_settings()

    Returns:
        Configured application (startup happens in the lifespan)
    """
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Start, observe and cancel AudioMuse background tasks",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(api_router, prefix="/api")
    return app
