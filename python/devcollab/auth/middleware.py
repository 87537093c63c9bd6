"""Bearer-token authentication for the HTTP API.

AuthMiddleware verifies `Authorization: Bearer <jwt>` on every non-public
request, makes sure the user row exists, and attaches a Viewer that route
handlers receive through the get_viewer dependency.

The middleware only sees HTTP requests. The /realtime WebSocket carries its
token in the handshake query string and is verified by the realtime handler
with the same TokenVerifier.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from devcollab.auth.verifier import TokenVerifier, parse_user_id
from devcollab.errors import ApiError, ApiErrorCode, AuthenticationError
from devcollab.logging import get_request_id, set_request_context
from devcollab.responses import error_response

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

BootstrapCallback = Callable[[UUID, dict[str, Any]], None]


@dataclass(frozen=True)
class Viewer:
    """The authenticated user behind a request."""

    user_id: UUID


def bearer_token(header: str | None) -> str:
    """Token part of an Authorization header value.

    The scheme is matched case-insensitively.

    Raises:
        AuthenticationError: If the header is missing, not a Bearer
            credential, or has an empty token.
    """
    if not header:
        raise AuthenticationError()
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError(message="Invalid authorization header format")
    return token


def _reject(e: ApiError) -> JSONResponse:
    return JSONResponse(status_code=e.status_code, content=error_response(e.code, e.message))


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticates every request outside PUBLIC_PATHS.

    1. Parse the bearer token and verify it.
    2. Run the bootstrap callback (user row upsert) in the threadpool.
    3. Attach the Viewer and tag the log context with the user id.
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        bootstrap_callback: BootstrapCallback | None = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        try:
            claims = self.verifier.verify(bearer_token(request.headers.get("authorization")))
            user_id = parse_user_id(claims)
        except ApiError as e:
            logger.warning("auth_failure path=%s reason=%s", request.url.path, e.message)
            return _reject(e)

        if self.bootstrap_callback is not None:
            try:
                await run_in_threadpool(self.bootstrap_callback, user_id, claims)
            except Exception:
                logger.exception("User bootstrap failed for %s", user_id)
                return _reject(ApiError(ApiErrorCode.E_INTERNAL, "Internal server error"))

        request.state.viewer = Viewer(user_id=user_id)
        set_request_context(get_request_id(), user_id=str(user_id))
        return await call_next(request)


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency: the Viewer set by AuthMiddleware.

    Raises:
        AuthenticationError: If no viewer is attached (public path, or the
            middleware is not installed).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise AuthenticationError()
    return viewer
