"""Project and module submission schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from devcollab.schemas.chat import MessageOut

SUBMISSION_STATUSES = Literal["complete", "partial"]


class CreateProjectRequest(BaseModel):
    """Request schema for creating a project."""

    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    deadline: datetime | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class ProjectOut(BaseModel):
    """Response schema for a project with its derived progress."""

    id: UUID
    name: str
    description: str
    owner_id: UUID
    deadline: datetime | None = None
    completion_percentage: int
    last_updated: datetime | None = None
    module_count: int = 0


class ModuleSubmissionOut(BaseModel):
    """Response schema for one module submission."""

    id: UUID
    project_id: UUID
    title: str
    description: str
    github_link: str | None = None
    completion_percentage: int
    files: list[dict] = []
    submitted_by: UUID
    submitted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ModuleSubmissionResponse(BaseModel):
    """Response for a module submission.

    status is "partial" when the project was updated but the chat notification
    could not be appended; chat_error then carries the error code.
    """

    status: SUBMISSION_STATUSES
    submission: ModuleSubmissionOut
    project: ProjectOut
    chat_message: MessageOut | None = None
    chat_error: str | None = None
