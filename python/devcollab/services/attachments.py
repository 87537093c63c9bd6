"""Attachment building and file-sharing service.

Uploaded files are classified by extension (code, image, or plain file),
written to the storage sink, and wrapped into message attachments. Code
files carry a short text preview.
"""

import mimetypes
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from devcollab.errors import ApiError, ApiErrorCode, InvalidRequestError
from devcollab.logging import get_logger
from devcollab.schemas.chat import Attachment, MessageOut, ModuleData, ProjectProgressIn
from devcollab.services import chats as chats_service
from devcollab.storage import StorageClientBase, StorageError, build_storage_path
from devcollab.storage.paths import get_file_extension

logger = get_logger(__name__)

CODE_LANGUAGES = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".html": "html",
    ".css": "css",
    ".json": "json",
    ".py": "python",
    ".java": "java",
    ".cpp": "cpp",
    ".c": "c",
    ".php": "php",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
}

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"}

PREVIEW_LINES = 5

# Storage category per attachment kind
_CATEGORIES = {"code": "code", "image": "images", "file": "files", "module": "modules"}


@dataclass(frozen=True)
class UploadedFile:
    """A file received from a client, already read into memory."""

    filename: str
    data: bytes
    content_type: str | None = None


def infer_kind(filename: str) -> tuple[str, str | None]:
    """Classify a file by extension.

    Returns:
        (kind, language) where kind is "code", "image" or "file" and
        language is set only for code.
    """
    ext = get_file_extension(filename)
    if ext in CODE_LANGUAGES:
        return "code", CODE_LANGUAGES[ext]
    if ext in IMAGE_EXTENSIONS:
        return "image", None
    return "file", None


def code_preview(data: bytes) -> str:
    """First lines of a text file."""
    text = data.decode("utf-8", errors="replace")
    return "\n".join(text.split("\n")[:PREVIEW_LINES])


def describe_upload(attachment: Attachment) -> str:
    """Message text announcing a shared file."""
    if attachment.kind == "code":
        return f"Shared a {attachment.language} file: {attachment.filename}"
    return f"Shared a {attachment.kind}: {attachment.filename}"


def store_file(
    storage: StorageClientBase,
    upload: UploadedFile,
    *,
    max_bytes: int,
    kind: str | None = None,
    module_data: ModuleData | None = None,
) -> Attachment:
    """Write one file to storage and build its attachment.

    Args:
        kind: Force the attachment kind (module uploads); inferred when None.

    Raises:
        InvalidRequestError(E_FILE_TOO_LARGE): If the file exceeds max_bytes.
        ApiError(E_STORAGE_ERROR): If the storage write fails.
    """
    if len(upload.data) > max_bytes:
        raise InvalidRequestError(
            ApiErrorCode.E_FILE_TOO_LARGE, f"File exceeds {max_bytes} bytes: {upload.filename}"
        )

    inferred_kind, language = infer_kind(upload.filename)
    kind = kind or inferred_kind
    mime_type = (
        upload.content_type
        or mimetypes.guess_type(upload.filename)[0]
        or "application/octet-stream"
    )

    path = build_storage_path(_CATEGORIES[kind], upload.filename)
    try:
        storage_ref = storage.put_object(path, upload.data, mime_type)
    except StorageError as e:
        logger.error("attachment_store_failed", path=path, error=e.message)
        raise ApiError(ApiErrorCode.E_STORAGE_ERROR, "Failed to store file") from e

    return Attachment(
        kind=kind,
        filename=upload.filename,
        storage_ref=storage_ref,
        mime_type=mime_type,
        size=len(upload.data),
        language=language if kind == "code" else None,
        preview=code_preview(upload.data) if kind == "code" else None,
        module_data=module_data,
    )


def discard_attachments(storage: StorageClientBase, attachments: Sequence[Attachment]) -> None:
    """Best-effort removal of stored files whose message was never written."""
    for attachment in attachments:
        if attachment.storage_ref:
            storage.delete_object(attachment.storage_ref)


# =============================================================================
# Service Functions
# =============================================================================


def send_message_with_files(
    db: Session,
    storage: StorageClientBase,
    chat_id: UUID,
    sender_id: UUID,
    content: str | None,
    files: Sequence[UploadedFile] = (),
    github_link: str | None = None,
    project_progress: ProjectProgressIn | None = None,
    *,
    max_bytes: int,
) -> MessageOut:
    """Send a message with optional file attachments.

    Participation is checked before anything is written to storage; stored
    files are discarded again if the append fails.
    """
    chats_service.get_participant_chat_or_raise(db, chat_id, sender_id)
    files = [f for f in files if f.filename]
    if not (content or "").strip() and not files:
        raise InvalidRequestError(ApiErrorCode.E_EMPTY_MESSAGE, "Message cannot be empty")
    for upload in files:
        if len(upload.data) > max_bytes:
            raise InvalidRequestError(
                ApiErrorCode.E_FILE_TOO_LARGE,
                f"File exceeds {max_bytes} bytes: {upload.filename}",
            )

    attachments: list[Attachment] = []
    try:
        for upload in files:
            attachments.append(store_file(storage, upload, max_bytes=max_bytes))
        return chats_service.append_message(
            db,
            chat_id,
            sender_id,
            content,
            attachments=attachments,
            github_link=github_link,
            project_progress=project_progress,
        )
    except Exception:
        discard_attachments(storage, attachments)
        raise


def share_file(
    db: Session,
    storage: StorageClientBase,
    chat_id: UUID,
    sender_id: UUID,
    upload: UploadedFile,
    *,
    max_bytes: int,
) -> MessageOut:
    """Share a single file as its own message ("Shared a python file: main.py")."""
    chats_service.get_participant_chat_or_raise(db, chat_id, sender_id)
    if not upload.filename:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "No file uploaded")

    attachment = store_file(storage, upload, max_bytes=max_bytes)
    try:
        return chats_service.append_message(
            db,
            chat_id,
            sender_id,
            describe_upload(attachment),
            attachments=[attachment],
        )
    except Exception:
        discard_attachments(storage, [attachment])
        raise
