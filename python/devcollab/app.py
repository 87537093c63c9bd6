"""DevCollab API application factory.

create_app() wires settings, logging, the process-wide realtime gateway and
attachment storage onto app.state, then the routes, exception handlers and
middleware. Starlette runs middleware in reverse order of registration, so
per HTTP request the order is:

    RequestIDMiddleware -> CORSMiddleware -> AuthMiddleware -> route

WebSocket handshakes skip the HTTP middleware; /realtime verifies its query
token with the verifier kept on app.state.
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from devcollab.api.routes import create_api_router
from devcollab.auth.middleware import AuthMiddleware
from devcollab.auth.verifier import JwtSecretVerifier, TokenVerifier
from devcollab.config import Settings, get_settings
from devcollab.errors import ApiError
from devcollab.logging import configure_logging, get_logger
from devcollab.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from devcollab.realtime.gateway import RealtimeGateway
from devcollab.responses import (
    api_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_error_handler,
)
from devcollab.services.bootstrap import create_bootstrap_callback
from devcollab.storage import StorageClientBase, get_storage_client

logger = get_logger(__name__)


def create_token_verifier(settings: Settings) -> TokenVerifier:
    return JwtSecretVerifier(
        secret=settings.jwt_secret,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
    )


def create_app(
    token_verifier: TokenVerifier | None = None,
    storage: StorageClientBase | None = None,
    log_requests: bool = True,
) -> FastAPI:
    """Build the API.

    Args:
        token_verifier: Replaces the settings-based JWT verifier.
        storage: Attachment storage; tests pass a FakeStorageClient.
        log_requests: Emit one request_completed entry per HTTP request.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="DevCollab API",
        description="Direct and project chats with realtime delivery",
        version="0.1.0",
    )

    verifier = token_verifier or create_token_verifier(settings)
    app.state.token_verifier = verifier
    app.state.gateway = RealtimeGateway()
    app.state.storage = storage or get_storage_client()

    for exc_class, handler in (
        (ApiError, api_error_handler),
        (RequestValidationError, validation_error_handler),
        (StarletteHTTPException, http_exception_handler),
        (Exception, unhandled_exception_handler),
    ):
        app.add_exception_handler(exc_class, handler)

    app.include_router(create_api_router())

    app.add_middleware(
        AuthMiddleware, verifier=verifier, bootstrap_callback=create_bootstrap_callback()
    )
    if settings.cors_origin_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origin_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER],
        )
    # Outermost: auth failures still get X-Request-ID.
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)

    logger.info("app_created", env=settings.devcollab_env.value)
    return app
