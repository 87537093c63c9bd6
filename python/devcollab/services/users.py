"""User directory lookups."""

from uuid import UUID

from sqlalchemy.orm import Session

from devcollab.db.models import User
from devcollab.errors import ApiErrorCode, NotFoundError
from devcollab.schemas.chat import ParticipantOut


def get_user_profile(db: Session, user_id: UUID) -> ParticipantOut:
    """Display fields of a user.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): If the user doesn't exist.
    """
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return ParticipantOut.model_validate(user)
