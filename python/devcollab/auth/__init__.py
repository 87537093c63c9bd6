"""Bearer-token auth: the JWT verifier, the HTTP middleware and the viewer dependency."""

from devcollab.auth.middleware import AuthMiddleware, Viewer, get_viewer
from devcollab.auth.verifier import JwtSecretVerifier, TokenVerifier, parse_user_id

__all__ = [
    "AuthMiddleware",
    "JwtSecretVerifier",
    "TokenVerifier",
    "Viewer",
    "get_viewer",
    "parse_user_id",
]
