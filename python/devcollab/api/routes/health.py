"""Liveness endpoint. Public: the auth middleware lets /health through."""

from typing import Annotated

from fastapi import APIRouter, Depends

from devcollab.api.deps import get_gateway
from devcollab.realtime.gateway import RealtimeGateway
from devcollab.responses import success_response

router = APIRouter()


@router.get("/health")
async def health_check(gateway: Annotated[RealtimeGateway, Depends(get_gateway)]) -> dict:
    """200 while the process serves requests. Does not touch the database.

    Reports the number of open realtime connections on this process.
    """
    return success_response({"status": "ok", "realtime_connections": gateway.connection_count})
