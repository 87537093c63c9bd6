"""Error codes and the exceptions services raise.

Services validate and raise before touching the database. Routes let these
propagate; the handlers in devcollab.responses render them as envelopes, and
the realtime handler turns them into error events.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    E_FORBIDDEN = "E_FORBIDDEN"
    E_NOT_PARTICIPANT = "E_NOT_PARTICIPANT"

    E_NOT_FOUND = "E_NOT_FOUND"
    E_CHAT_NOT_FOUND = "E_CHAT_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_PROJECT_NOT_FOUND = "E_PROJECT_NOT_FOUND"

    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_EMPTY_MESSAGE = "E_EMPTY_MESSAGE"
    E_INVALID_PERCENTAGE = "E_INVALID_PERCENTAGE"
    E_INVALID_OPERATION = "E_INVALID_OPERATION"
    E_INVALID_EVENT = "E_INVALID_EVENT"
    E_FILE_TOO_LARGE = "E_FILE_TOO_LARGE"

    E_CONFLICT = "E_CONFLICT"
    E_PROJECT_CHAT_EXISTS = "E_PROJECT_CHAT_EXISTS"

    E_INTERNAL = "E_INTERNAL"
    E_STORAGE_ERROR = "E_STORAGE_ERROR"


def _status_for(codes: tuple[ApiErrorCode, ...], status: int) -> dict[ApiErrorCode, int]:
    return dict.fromkeys(codes, status)


C = ApiErrorCode
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    **_status_for((C.E_UNAUTHENTICATED,), 401),
    **_status_for((C.E_FORBIDDEN, C.E_NOT_PARTICIPANT), 403),
    **_status_for(
        (C.E_NOT_FOUND, C.E_CHAT_NOT_FOUND, C.E_USER_NOT_FOUND, C.E_PROJECT_NOT_FOUND), 404
    ),
    **_status_for(
        (
            C.E_INVALID_REQUEST,
            C.E_EMPTY_MESSAGE,
            C.E_INVALID_PERCENTAGE,
            C.E_INVALID_OPERATION,
            C.E_INVALID_EVENT,
            C.E_FILE_TOO_LARGE,
        ),
        400,
    ),
    **_status_for((C.E_CONFLICT, C.E_PROJECT_CHAT_EXISTS), 409),
    **_status_for((C.E_INTERNAL, C.E_STORAGE_ERROR), 500),
}
del C


class ApiError(Exception):
    """A failure with a stable code. status_code is derived from the code.

    Subclasses only pick defaults, so `NotFoundError(E_CHAT_NOT_FOUND, "...")`
    and `ApiError(E_CHAT_NOT_FOUND, "...")` are interchangeable.
    """

    default_code = ApiErrorCode.E_INTERNAL
    default_message = "Internal server error"

    def __init__(self, code: ApiErrorCode | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.status_code = ERROR_CODE_TO_STATUS.get(self.code, 500)
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value}, {self.message!r})"


class AuthenticationError(ApiError):
    default_code = ApiErrorCode.E_UNAUTHENTICATED
    default_message = "Authentication required"


class NotFoundError(ApiError):
    default_code = ApiErrorCode.E_NOT_FOUND
    default_message = "Not found"


class ForbiddenError(ApiError):
    default_code = ApiErrorCode.E_FORBIDDEN
    default_message = "Forbidden"


class InvalidRequestError(ApiError):
    default_code = ApiErrorCode.E_INVALID_REQUEST
    default_message = "Invalid request"


class ConflictError(ApiError):
    default_code = ApiErrorCode.E_CONFLICT
    default_message = "Conflict"
