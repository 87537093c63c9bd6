"""structlog setup and the per-request / per-connection log context.

Context is kept in structlog's contextvars store, so anything bound while
handling an HTTP request or a realtime connection shows up on every entry
logged from that task:

    request_id, path, method   HTTP requests (RequestIDMiddleware)
    user_id                    once the caller is authenticated
    connection_id              realtime connections

    logger = get_logger(__name__)
    logger.info("chat_message_appended", chat_id=str(chat_id), seq=seq)
"""

import logging
import sys

import structlog
from structlog.contextvars import (
    bind_contextvars,
    clear_contextvars,
    get_contextvars,
    merge_contextvars,
)

QUIET_LOGGERS = ("httpx", "websockets", "uvicorn.access", "sqlalchemy.engine")


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Install structlog and route stdlib loggers (uvicorn, sqlalchemy) through it.

    Call once at startup. json_format=False gives the colored console renderer
    for local development.
    """
    pre_chain = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def _bind(**values: str | None) -> None:
    bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind HTTP request fields. None leaves a field as it was."""
    _bind(request_id=request_id, user_id=user_id, path=path, method=method)


def set_connection_context(connection_id: str | None, user_id: str | None = None) -> None:
    """Bind realtime connection fields for the socket handler's task."""
    _bind(connection_id=connection_id, user_id=user_id)


def clear_request_context() -> None:
    clear_contextvars()


def get_request_id() -> str | None:
    return get_contextvars().get("request_id")
