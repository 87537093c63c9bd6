"""Response envelopes and the exception handlers that produce them.

Every HTTP body is either {"data": ...} or
{"error": {"code", "message", "request_id"}}. Realtime error events reuse the
same codes but are framed by the realtime protocol.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from devcollab.errors import ApiError, ApiErrorCode
from devcollab.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Status codes raised by the framework itself (routing, method checks).
_FRAMEWORK_STATUS_CODES = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_UNAUTHENTICATED,
    403: ApiErrorCode.E_FORBIDDEN,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    409: ApiErrorCode.E_CONFLICT,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Error envelope. request_id defaults to the one bound for this request
    and is left out when there is none (e.g. outside a request)."""
    body: dict[str, Any] = {"code": code.value, "message": message}
    rid = request_id if request_id is not None else get_request_id()
    if rid:
        body["request_id"] = rid
    return {"error": body}


def _envelope(status_code: int, code: ApiErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


def _describe_validation(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = first.get("msg", "invalid value")
    return f"Invalid request: {location}: {detail}" if location else f"Invalid request: {detail}"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _envelope(exc.status_code, exc.code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Bad path params, query values or bodies. Rendered as 400, not FastAPI's 422."""
    return _envelope(400, ApiErrorCode.E_INVALID_REQUEST, _describe_validation(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _FRAMEWORK_STATUS_CODES.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    return _envelope(exc.status_code, code, str(exc.detail or "Request failed"))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log with traceback, answer 500 without any detail."""
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
    )
    return _envelope(500, ApiErrorCode.E_INTERNAL, "Internal server error")
