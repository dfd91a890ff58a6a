"""API routes."""

from .projects import router as projects_router
from .generation import router as generation_router
from .assets import router as assets_router
from .jobs import router as jobs_router

__all__ = [
    "projects_router",
    "generation_router",
    "assets_router",
    "jobs_router",
]
