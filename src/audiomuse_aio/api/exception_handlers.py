"""Exception handlers mapping domain exceptions to JSON HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from audiomuse_aio.domain.exceptions import (
    ConfigurationError,
    DomainException,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidStateException,
    TaskConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# Hey future me, every body is {"detail": ...} like FastAPI's own HTTPException, so clients
# parse one shape. 409 for a start conflict also carries active_task_id so a UI can attach
# its poller to the task that is already running instead of showing an error.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for domain exceptions.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(TaskConflictError)
    async def task_conflict_handler(request: Request, exc: TaskConflictError) -> JSONResponse:
        logger.info(
            f"Conflict at {request.url.path}: {exc.message}",
            extra={"path": request.url.path, "active_task_id": exc.active_task_id},
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": exc.message,
                "task_type": exc.task_type,
                "active_task_id": exc.active_task_id,
            },
        )

    @app.exception_handler(EntityNotFoundException)
    async def not_found_handler(request: Request, exc: EntityNotFoundException) -> JSONResponse:
        logger.info(f"Not found at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message}
        )

    @app.exception_handler(InvalidStateException)
    async def invalid_state_handler(request: Request, exc: InvalidStateException) -> JSONResponse:
        logger.warning(f"Invalid state at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message}
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning(f"Validation error at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": exc.message}
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error(f"Configuration error at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": exc.message}
        )

    @app.exception_handler(ExternalServiceError)
    async def external_service_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        logger.error(f"External service error at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": exc.message}
        )

    @app.exception_handler(DomainException)
    async def domain_handler(request: Request, exc: DomainException) -> JSONResponse:
        logger.error(f"Unhandled domain error at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": exc.message}
        )
