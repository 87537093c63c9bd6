"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
"""

from fastapi import APIRouter

from devcollab.api.routes.chats import router as chats_router
from devcollab.api.routes.health import router as health_router
from devcollab.api.routes.me import router as me_router
from devcollab.api.routes.projects import router as projects_router
from devcollab.api.routes.realtime import router as realtime_router


def create_api_router() -> APIRouter:
    """Create and configure the API router with all routes registered."""
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(chats_router)
    api_router.include_router(projects_router)
    api_router.include_router(realtime_router, tags=["realtime"])
    return api_router


__all__ = ["create_api_router"]
