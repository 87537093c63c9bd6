"""FastAPI dependencies for route handlers.

Shared objects (realtime gateway, storage client) are created once per app
and stored on app.state.
"""

from fastapi import Request

from devcollab.db.session import get_db, get_session_factory
from devcollab.realtime.gateway import RealtimeGateway
from devcollab.storage import StorageClientBase

__all__ = ["get_db", "get_gateway", "get_session_factory", "get_storage"]


def get_gateway(request: Request) -> RealtimeGateway:
    """Get the process-wide realtime gateway from app state."""
    return request.app.state.gateway


def get_storage(request: Request) -> StorageClientBase:
    """Get the attachment storage client from app state."""
    return request.app.state.storage
