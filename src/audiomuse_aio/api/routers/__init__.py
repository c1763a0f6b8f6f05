"""API router initialization."""

# Mounted at /api in main.py; health lives outside the prefix.
from fastapi import APIRouter

from audiomuse_aio.api.routers import health, library, tasks

api_router = APIRouter()
api_router.include_router(tasks.router, tags=["Tasks"])
api_router.include_router(library.router, tags=["Library"])

__all__ = ["api_router", "health"]
