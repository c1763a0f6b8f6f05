"""Task API.

Hey future me - `api_router` from routers/ aggregates the task and library
routers and is mounted under /api in main.py. Health endpoints sit at the root.
"""

from audiomuse_aio.api.routers import api_router, health

__all__ = ["api_router", "health"]
