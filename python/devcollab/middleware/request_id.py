"""X-Request-ID correlation and access logging.

Installed outermost, so the header and the bound request_id are in place
before auth runs and 401 bodies carry the same ID as the response header.
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from devcollab.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"

_TOKEN_ID = re.compile(r"[A-Za-z0-9._-]{1,128}")
_UUID_ID = re.compile(r"[0-9a-fA-F]{8}(-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12}")

logger = get_logger(__name__)


def resolve_request_id(incoming: str | None) -> str:
    """The caller's ID if it is usable, otherwise a new UUID4.

    Usable means 1-128 chars of [A-Za-z0-9._-]. UUIDs are lowercased so the
    same trace matches however the client formatted it.
    """
    if not incoming or not _TOKEN_ID.fullmatch(incoming):
        return str(uuid.uuid4())
    if _UUID_ID.fullmatch(incoming):
        return incoming.lower()
    return incoming


class RequestIDMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.monotonic()
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed")
            raise
        else:
            # Context bound inside call_next does not flow back here.
            viewer = getattr(request.state, "viewer", None)
            if viewer is not None:
                set_request_context(request_id, user_id=str(viewer.user_id))
            response.headers[REQUEST_ID_HEADER] = request_id
            if self.log_requests:
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round((time.monotonic() - started) * 1000, 2),
                )
            return response
        finally:
            clear_request_context()
