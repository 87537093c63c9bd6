"""Project service layer.

Projects are owned by the wider platform; the chat core only needs to create
them, read them, and store their derived progress.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from devcollab.db.models import ModuleSubmission, Project
from devcollab.db.session import transaction
from devcollab.errors import ApiErrorCode, ForbiddenError, NotFoundError
from devcollab.logging import get_logger
from devcollab.schemas.project import ProjectOut
from devcollab.services import chats as chats_service

logger = get_logger(__name__)


def count_submissions(db: Session, project_id: UUID) -> int:
    result = db.scalar(
        select(func.count())
        .select_from(ModuleSubmission)
        .where(ModuleSubmission.project_id == project_id)
    )
    return result or 0


def project_to_out(project: Project, module_count: int) -> ProjectOut:
    """Convert Project ORM model to ProjectOut schema."""
    return ProjectOut(
        id=project.id,
        name=project.name,
        description=project.description,
        owner_id=project.owner_id,
        deadline=project.deadline,
        completion_percentage=project.completion_percentage,
        last_updated=project.last_updated,
        module_count=module_count,
    )


def get_project_or_404(db: Session, project_id: UUID) -> Project:
    """Load a project.

    Raises:
        NotFoundError(E_PROJECT_NOT_FOUND): If the project doesn't exist.
    """
    project = db.get(Project, project_id, populate_existing=True)
    if project is None:
        raise NotFoundError(ApiErrorCode.E_PROJECT_NOT_FOUND, "Project not found")
    return project


def is_project_member(db: Session, project: Project, user_id: UUID) -> bool:
    """Owner, or a participant of the project's chat."""
    if project.owner_id == user_id:
        return True
    chat_id = chats_service.get_project_chat_id(db, project.id)
    return chat_id is not None and chats_service.is_participant(db, chat_id, user_id)


def create_project(
    db: Session,
    owner_id: UUID,
    name: str,
    description: str = "",
    deadline: datetime | None = None,
) -> ProjectOut:
    """Create a project owned by the viewer with no progress yet."""
    project = Project(
        owner_id=owner_id,
        name=name,
        description=description,
        deadline=deadline,
        completion_percentage=0,
    )
    with transaction(db):
        db.add(project)
        db.flush()

    logger.info("project_created", project_id=str(project.id))
    return project_to_out(project, module_count=0)


def get_project(db: Session, project_id: UUID, viewer_id: UUID) -> ProjectOut:
    """Get a project with its derived progress.

    Raises:
        NotFoundError(E_PROJECT_NOT_FOUND): If the project doesn't exist.
        ForbiddenError: If the viewer is neither the owner nor a chat participant.
    """
    project = get_project_or_404(db, project_id)
    if not is_project_member(db, project, viewer_id):
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Not a member of this project")
    return project_to_out(project, count_submissions(db, project_id))
