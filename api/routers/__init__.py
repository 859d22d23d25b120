"""API Routers for Campaign Reports."""

from .reports import router as reports_router
from .system import router as system_router

__all__ = [
    "reports_router",
    "system_router",
]
