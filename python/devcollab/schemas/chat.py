"""Chat and Message Pydantic schemas.

Contains request and response models for chat and message endpoints, and the
message payload that is fanned out over the realtime channel.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# Valid chat kinds - must match DB constraint
CHAT_KINDS = Literal["direct", "project"]

# Valid attachment kinds
ATTACHMENT_KINDS = Literal["file", "image", "code", "module"]

# Max content length
MAX_MESSAGE_CONTENT_LENGTH = 20000


# =============================================================================
# Shared building blocks
# =============================================================================


class ParticipantOut(BaseModel):
    """Display fields for a user taking part in a chat."""

    id: UUID
    name: str | None = None
    username: str | None = None
    avatar_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ModuleData(BaseModel):
    """Module submission details embedded in a `module` attachment."""

    title: str
    description: str = ""
    completion_percentage: int = Field(ge=0, le=100)
    github_link: str | None = None


class Attachment(BaseModel):
    """An attachment of a message. Immutable once appended."""

    kind: ATTACHMENT_KINDS
    filename: str | None = None
    storage_ref: str | None = None
    mime_type: str | None = None
    size: int | None = None
    language: str | None = None
    preview: str | None = None
    module_data: ModuleData | None = None


class ProjectProgressIn(BaseModel):
    """Progress snapshot supplied by a client when sending a message."""

    project_id: UUID
    completion_percentage: int = Field(ge=0, le=100)
    deadline: datetime | None = None


class ProjectProgressOut(BaseModel):
    """Point-in-time copy of a project's progress, embedded in a message."""

    project_id: UUID
    completion_percentage: int
    deadline: datetime | None = None
    captured_at: datetime


class ReadReceiptOut(BaseModel):
    """One (user, read_at) pair of a message's read set."""

    user_id: UUID
    read_at: datetime


# =============================================================================
# Response Schemas
# =============================================================================


class LastMessageOut(BaseModel):
    """Denormalized preview of a chat's most recent message."""

    content: str
    sender_id: UUID
    created_at: datetime
    has_attachments: bool = False


class ProjectSummaryOut(BaseModel):
    """Project fields shown next to a project chat."""

    id: UUID
    name: str
    deadline: datetime | None = None
    completion_percentage: int = 0

    model_config = ConfigDict(from_attributes=True)


class ChatOut(BaseModel):
    """Response schema for a chat."""

    id: UUID
    kind: str  # "direct" | "project"
    participants: list[ParticipantOut]
    project: ProjectSummaryOut | None = None
    last_message: LastMessageOut | None = None
    created_at: datetime
    updated_at: datetime


class MessageOut(BaseModel):
    """Response schema for a message.

    Messages are ordered by seq within a chat and never edited.
    """

    id: UUID
    chat_id: UUID
    seq: int
    sender: ParticipantOut
    content: str
    github_link: str | None = None
    attachments: list[Attachment] = []
    read_by: list[ReadReceiptOut] = []
    project_progress: ProjectProgressOut | None = None
    created_at: datetime


class MarkReadOut(BaseModel):
    """Result of marking a chat as read."""

    marked: int
