"""Realtime WebSocket endpoint.

Authentication happens inside the handshake (token query parameter), not in
the HTTP auth middleware.
"""

from fastapi import APIRouter, WebSocket

from devcollab.db.session import get_session_factory
from devcollab.realtime.handler import RealtimeHandler

router = APIRouter()


@router.websocket("/realtime")
async def realtime(websocket: WebSocket) -> None:
    """One realtime connection per client session: /realtime?token=<jwt>."""
    handler = RealtimeHandler(
        websocket,
        gateway=websocket.app.state.gateway,
        verifier=websocket.app.state.token_verifier,
        session_factory=get_session_factory(),
    )
    await handler.run(websocket.query_params.get("token"))
