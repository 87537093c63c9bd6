"""Tokens and headers for authenticated test requests.

Tokens look like the login service's: HS256, `sub` is the user UUID, profile
fields (name, username, avatar_url) ride along as extra claims.
"""

import time
from uuid import UUID

import jwt

TEST_JWT_SECRET = "test-secret-for-devcollab-tests-only-0123456789"


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = 3600,
    secret: str = TEST_JWT_SECRET,
    **claims,
) -> str:
    """Signed token for user_id.

    A negative expires_in gives an already-expired token; another secret gives
    a signature the app rejects.
    """
    issued_at = int(time.time())
    return jwt.encode(
        {"sub": str(user_id), "iat": issued_at, "exp": issued_at + expires_in, **claims},
        secret,
        algorithm="HS256",
    )


def auth_headers(user_id: UUID | str, **token_kwargs) -> dict[str, str]:
    return {"Authorization": "Bearer " + mint_test_token(user_id, **token_kwargs)}
