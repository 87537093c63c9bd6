"""Current user endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from devcollab.api.deps import get_db
from devcollab.auth.middleware import Viewer, get_viewer
from devcollab.responses import success_response
from devcollab.services import users as users_service

router = APIRouter()


@router.get("/me")
def get_me(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get the authenticated user's directory entry."""
    result = users_service.get_user_profile(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))
