"""Chat and Message API routes.

Routes are transport-only: each calls exactly one service function. Writes
that create a message schedule a `receive_message` broadcast to the chat's
room as a background task, which runs after the response is produced and
therefore after the write committed.

All routes require authentication.
Response envelope: {"data": ...}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from devcollab.api.deps import get_db, get_gateway, get_storage
from devcollab.auth.middleware import Viewer, get_viewer
from devcollab.config import get_settings
from devcollab.errors import ApiErrorCode, InvalidRequestError
from devcollab.realtime.gateway import RealtimeGateway
from devcollab.responses import success_response
from devcollab.schemas.chat import MarkReadOut, MessageOut, ProjectProgressIn
from devcollab.schemas.realtime import ReceiveMessageEvent
from devcollab.services import attachments as attachments_service
from devcollab.services import chats as chats_service
from devcollab.storage import StorageClientBase

router = APIRouter(tags=["chats"])


def read_upload(upload: UploadFile, max_bytes: int) -> attachments_service.UploadedFile:
    """Read an uploaded file, refusing anything over max_bytes."""
    data = upload.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise InvalidRequestError(
            ApiErrorCode.E_FILE_TOO_LARGE, f"File exceeds {max_bytes} bytes: {upload.filename}"
        )
    return attachments_service.UploadedFile(
        filename=upload.filename or "",
        data=data,
        content_type=upload.content_type,
    )


def parse_project_progress(raw: str | None) -> ProjectProgressIn | None:
    """Parse the JSON-encoded project_progress form field."""
    if not raw:
        return None
    try:
        return ProjectProgressIn.model_validate_json(raw)
    except ValidationError as e:
        if any(err["loc"][:1] == ("completion_percentage",) for err in e.errors()):
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_PERCENTAGE,
                "Completion percentage must be between 0 and 100",
            ) from None
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Invalid project_progress"
        ) from None


def schedule_broadcast(
    background_tasks: BackgroundTasks, gateway: RealtimeGateway, message: MessageOut
) -> None:
    event = ReceiveMessageEvent(chat_id=message.chat_id, message=message)
    background_tasks.add_task(gateway.publish, message.chat_id, event)


# =============================================================================
# Chat Endpoints
# =============================================================================


@router.get("/chats")
def list_chats(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the viewer's chats, most recently active first.

    Each chat carries its participants, project summary and last message.
    """
    result = chats_service.list_chats_for_user(db, viewer.user_id)
    return success_response([c.model_dump(mode="json") for c in result])


@router.post("/chats/direct/{user_id}")
def open_direct_chat(
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get or create the direct chat between the viewer and another user.

    Errors:
        E_INVALID_REQUEST (400): user_id is the viewer.
        E_USER_NOT_FOUND (404): Other user doesn't exist.
    """
    result = chats_service.get_or_create_direct_chat(db, viewer.user_id, user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/chats/project/{project_id}", status_code=201)
def create_project_chat(
    project_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create the chat of a project, with the viewer as its first participant.

    Errors:
        E_PROJECT_NOT_FOUND (404): Project doesn't exist.
        E_FORBIDDEN (403): Viewer doesn't own the project.
        E_PROJECT_CHAT_EXISTS (409): The project already has a chat.
    """
    result = chats_service.create_project_chat(db, project_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/chats/{chat_id}")
def get_chat(
    chat_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get one chat the viewer participates in."""
    result = chats_service.get_chat_for_participant(db, chat_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/chats/{chat_id}/participants/{user_id}")
def add_participant(
    chat_id: UUID,
    user_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Add a user to a project chat (project owner only).

    Errors:
        E_INVALID_OPERATION (400): Chat is a direct chat.
        E_FORBIDDEN (403): Viewer doesn't own the chat's project.
    """
    result = chats_service.add_participant(db, chat_id, viewer.user_id, user_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/chats/{chat_id}/participants/{user_id}")
def remove_participant(
    chat_id: UUID,
    user_id: UUID,
    background_tasks: BackgroundTasks,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    gateway: Annotated[RealtimeGateway, Depends(get_gateway)],
) -> dict:
    """Remove a user from a project chat (project owner only).

    The removed user's open connections are evicted from the chat's room
    once the removal has committed.

    Errors:
        E_INVALID_OPERATION (400): Chat is a direct chat, or the user is its last participant.
        E_FORBIDDEN (403): Viewer doesn't own the chat's project.
    """
    result = chats_service.remove_participant(db, chat_id, viewer.user_id, user_id)
    background_tasks.add_task(gateway.evict, chat_id, user_id)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Message Endpoints
# =============================================================================


@router.get("/chats/{chat_id}/messages")
def list_messages(
    chat_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    after_seq: int | None = Query(default=None, ge=0, description="Only messages after this seq"),
) -> dict:
    """List messages in seq order and mark them all read for the viewer.

    Errors:
        E_CHAT_NOT_FOUND (404): Chat doesn't exist.
        E_NOT_PARTICIPANT (403): Viewer is not a participant.
    """
    result = chats_service.read_messages(db, chat_id, viewer.user_id, after_seq=after_seq)
    return success_response([m.model_dump(mode="json") for m in result])


@router.post("/chats/{chat_id}/messages", status_code=201)
def send_message(
    chat_id: UUID,
    background_tasks: BackgroundTasks,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
    gateway: Annotated[RealtimeGateway, Depends(get_gateway)],
    content: Annotated[str, Form()] = "",
    github_link: Annotated[str | None, Form()] = None,
    project_progress: Annotated[str | None, Form()] = None,
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> dict:
    """Send a message with optional files (multipart form).

    project_progress is a JSON object {project_id, completion_percentage, deadline?}
    and is only accepted on the chat of that project.

    Errors:
        E_EMPTY_MESSAGE (400): No content and no files.
        E_INVALID_PERCENTAGE (400): completion_percentage outside [0, 100].
        E_FILE_TOO_LARGE (400): A file exceeds the upload limit.
        E_NOT_PARTICIPANT (403): Viewer is not a participant.
    """
    max_bytes = get_settings().max_upload_bytes
    uploads = [read_upload(f, max_bytes) for f in files or []]
    result = attachments_service.send_message_with_files(
        db,
        storage,
        chat_id,
        viewer.user_id,
        content,
        files=uploads,
        github_link=github_link,
        project_progress=parse_project_progress(project_progress),
        max_bytes=max_bytes,
    )
    schedule_broadcast(background_tasks, gateway, result)
    return success_response(result.model_dump(mode="json"))


@router.post("/chats/{chat_id}/upload", status_code=201)
def upload_file(
    chat_id: UUID,
    background_tasks: BackgroundTasks,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
    gateway: Annotated[RealtimeGateway, Depends(get_gateway)],
    file: Annotated[UploadFile, File()],
) -> dict:
    """Share a single file as a message.

    Code files get a language and a preview of their first lines.
    """
    max_bytes = get_settings().max_upload_bytes
    result = attachments_service.share_file(
        db,
        storage,
        chat_id,
        viewer.user_id,
        read_upload(file, max_bytes),
        max_bytes=max_bytes,
    )
    schedule_broadcast(background_tasks, gateway, result)
    return success_response(result.model_dump(mode="json"))


@router.post("/chats/{chat_id}/read")
def mark_read(
    chat_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Mark every message of the chat read by the viewer.

    Returns the number of newly marked messages (0 when nothing was unread).
    """
    marked = chats_service.mark_read(db, chat_id, viewer.user_id)
    return success_response(MarkReadOut(marked=marked).model_dump(mode="json"))
