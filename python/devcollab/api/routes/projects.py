"""Project and module submission API routes.

A module submission answers 201 in both outcomes. The body's status field
tells them apart: "complete" when the chat notification was written,
"partial" when only the project progress was.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from devcollab.api.deps import get_db, get_gateway, get_storage
from devcollab.api.routes.chats import read_upload, schedule_broadcast
from devcollab.auth.middleware import Viewer, get_viewer
from devcollab.config import get_settings
from devcollab.realtime.gateway import RealtimeGateway
from devcollab.responses import success_response
from devcollab.schemas.project import CreateProjectRequest, ModuleSubmissionResponse
from devcollab.services import progress as progress_service
from devcollab.services import projects as projects_service
from devcollab.storage import StorageClientBase

router = APIRouter(tags=["projects"])


@router.post("/projects", status_code=201)
def create_project(
    body: CreateProjectRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a project owned by the viewer."""
    result = projects_service.create_project(
        db,
        viewer.user_id,
        body.name,
        description=body.description,
        deadline=body.deadline,
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get a project with its aggregate completion (owner or chat participant)."""
    result = projects_service.get_project(db, project_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/projects/{project_id}/modules", status_code=201)
def submit_module(
    project_id: UUID,
    background_tasks: BackgroundTasks,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
    gateway: Annotated[RealtimeGateway, Depends(get_gateway)],
    title: Annotated[str, Form()],
    completion_percentage: Annotated[int, Form()],
    description: Annotated[str, Form()] = "",
    github_link: Annotated[str | None, Form()] = None,
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> dict:
    """Submit a module: update project progress, then announce it in the project chat.

    Errors:
        E_INVALID_PERCENTAGE (400): completion_percentage outside [0, 100].
        E_PROJECT_NOT_FOUND (404): Project doesn't exist.
        E_FORBIDDEN (403): Viewer is neither the owner nor a chat participant.
    """
    max_bytes = get_settings().max_upload_bytes
    uploads = [read_upload(f, max_bytes) for f in files or []]
    result = progress_service.submit_module(
        db,
        project_id,
        viewer.user_id,
        title,
        completion_percentage,
        description=description,
        github_link=github_link,
        files=uploads,
        storage=storage,
        max_bytes=max_bytes,
    )
    if result.chat_message is not None:
        schedule_broadcast(background_tasks, gateway, result.chat_message)

    body = ModuleSubmissionResponse(
        status=result.status,
        submission=result.submission,
        project=result.project,
        chat_message=result.chat_message,
        chat_error=result.chat_error,
    )
    return success_response(body.model_dump(mode="json"))
