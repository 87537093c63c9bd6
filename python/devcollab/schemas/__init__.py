"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from devcollab.schemas.chat import (
    Attachment,
    ChatOut,
    LastMessageOut,
    MarkReadOut,
    MessageOut,
    ModuleData,
    ParticipantOut,
    ProjectProgressIn,
    ProjectProgressOut,
    ProjectSummaryOut,
    ReadReceiptOut,
)
from devcollab.schemas.project import (
    CreateProjectRequest,
    ModuleSubmissionOut,
    ModuleSubmissionResponse,
    ProjectOut,
)

__all__ = [
    # Chat
    "Attachment",
    "ChatOut",
    "LastMessageOut",
    "MarkReadOut",
    "MessageOut",
    "ModuleData",
    "ParticipantOut",
    "ProjectProgressIn",
    "ProjectProgressOut",
    "ProjectSummaryOut",
    "ReadReceiptOut",
    # Project
    "CreateProjectRequest",
    "ModuleSubmissionOut",
    "ModuleSubmissionResponse",
    "ProjectOut",
]
