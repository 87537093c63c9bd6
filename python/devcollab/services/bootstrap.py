"""User bootstrap service.

Provides race-safe creation of the user directory row on first login.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from devcollab.db.models import User
from devcollab.db.session import session_scope, transaction
from devcollab.services.upsert import insert_ignore

logger = logging.getLogger(__name__)


def ensure_user(db: Session, user_id: UUID, claims: dict[str, Any] | None = None) -> None:
    """Ensure a user row exists for an authenticated subject.

    Idempotent and race-safe: the insert is ON CONFLICT DO NOTHING, so two
    concurrent first requests converge on one row. Display fields are taken
    from the token claims when present and refreshed on later logins.

    Args:
        db: Database session.
        user_id: The user's ID (from JWT sub claim).
        claims: Verified token claims (name, username, avatar_url are read).
    """
    claims = claims or {}
    profile = {
        key: claims[key]
        for key in ("name", "username", "avatar_url")
        if isinstance(claims.get(key), str)
    }

    with transaction(db):
        result = db.execute(
            insert_ignore(db, User, index_elements=["id"]).values(id=user_id, **profile)
        )
        if result.rowcount:
            logger.info("Created user %s", user_id)
        elif profile:
            user = db.get(User, user_id)
            for key, value in profile.items():
                setattr(user, key, value)


def create_bootstrap_callback(session_factory: sessionmaker[Session] | None = None):
    """Auth middleware hook: ensure_user in a fresh session per request.

    Without a factory, the process-wide one is looked up at call time.
    """

    def bootstrap(user_id: UUID, claims: dict[str, Any]) -> None:
        with session_scope(session_factory) as db:
            ensure_user(db, user_id, claims)

    return bootstrap
