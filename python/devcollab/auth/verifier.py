"""JWT verification for REST requests and the realtime handshake.

Tokens are HS256, signed by the login service with a secret it shares with
this API. The `sub` claim is the user's UUID.
"""

from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
)

from devcollab.errors import AuthenticationError
from devcollab.logging import get_logger

logger = get_logger(__name__)

ALGORITHM = "HS256"
CLOCK_SKEW_SECONDS = 60

# Checked in order: InvalidSignatureError is a DecodeError, and everything
# is an InvalidTokenError.
_FAILURES: tuple[tuple[type[InvalidTokenError], str, str], ...] = (
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
    (InvalidTokenError, "invalid_token", "Invalid token"),
)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict[str, Any]:
        """Decoded claims of a valid token.

        Raises:
            AuthenticationError: The token is missing, malformed, expired, or
                signed with another key.
        """
        ...


class JwtSecretVerifier:
    """HS256 verifier.

    exp and sub are required; exp gets CLOCK_SKEW_SECONDS of leeway. iss and
    aud are only checked when configured.
    """

    def __init__(self, secret: str, issuer: str | None = None, audience: str | None = None):
        self.secret = secret
        self.issuer = issuer.rstrip("/") if issuer else None
        self.audience = audience

    def verify(self, token: str) -> dict[str, Any]:
        if not token:
            raise self._fail("missing_token", "Authentication required")

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                audience=self.audience,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "sub"], "verify_aud": self.audience is not None},
            )
        except InvalidTokenError as e:
            reason, message = next(
                (reason, message) for cls, reason, message in _FAILURES if isinstance(e, cls)
            )
            raise self._fail(reason, message, error=str(e)) from e

        try:
            parse_user_id(claims)
        except (ValueError, TypeError) as e:
            raise self._fail("invalid_sub", "Invalid token: sub is not a valid UUID") from e
        return claims

    @staticmethod
    def _fail(reason: str, message: str, **extra: str) -> AuthenticationError:
        logger.warning("token_rejected", reason=reason, **extra)
        return AuthenticationError(message=message)


def parse_user_id(claims: dict[str, Any]) -> UUID:
    return UUID(str(claims["sub"]))
