"""Progress propagation service.

A project's completion is derived from its module submissions: the mean of
their percentages, rounded half up, with "last updated" taken from the most
recent submission time (not the most recently inserted row).

Submitting a module performs two independent writes:
1. the submission and the recomputed project progress (one transaction)
2. a message in the project's chat embedding a snapshot of that progress

There is no transaction spanning both. When the second write fails the
result is a partial success that names the failure, rather than an error
for the whole call.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devcollab.db.models import ModuleSubmission, Project, utcnow
from devcollab.db.session import transaction
from devcollab.errors import ApiError, ApiErrorCode, ForbiddenError, InvalidRequestError
from devcollab.logging import get_logger
from devcollab.schemas.chat import Attachment, MessageOut, ModuleData, ProjectProgressIn
from devcollab.schemas.project import ModuleSubmissionOut, ProjectOut
from devcollab.services import chats as chats_service
from devcollab.services.attachments import UploadedFile, discard_attachments, store_file
from devcollab.services.projects import get_project_or_404, is_project_member, project_to_out
from devcollab.storage import StorageClientBase

logger = get_logger(__name__)


class Submission(Protocol):
    completion_percentage: int
    submitted_at: datetime


@dataclass(frozen=True)
class ProgressAggregate:
    completion_percentage: int
    last_updated: datetime | None


@dataclass(frozen=True)
class ModuleSubmissionResult:
    """Outcome of a module submission.

    chat_message is None when the chat notification could not be written;
    chat_error then holds the error code of that failure.
    """

    submission: ModuleSubmissionOut
    project: ProjectOut
    chat_message: MessageOut | None = None
    chat_error: str | None = None

    @property
    def status(self) -> str:
        return "complete" if self.chat_message is not None else "partial"


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_progress(submissions: Iterable[Submission]) -> ProgressAggregate:
    """Aggregate progress of a project's submissions.

    Independent of submission order: [20, 60, 100] in any permutation gives 60.
    No submissions gives 0 and no last-updated time.
    """
    submissions = list(submissions)
    if not submissions:
        return ProgressAggregate(completion_percentage=0, last_updated=None)

    total = sum(Decimal(s.completion_percentage) for s in submissions)
    mean = round_half_up(total / len(submissions))
    return ProgressAggregate(
        completion_percentage=max(0, min(100, mean)),
        last_updated=max(s.submitted_at for s in submissions),
    )


def submission_message_text(title: str, completion_percentage: int) -> str:
    return f'Module "{title}" submitted with {completion_percentage}% completion.'


def _validate_percentage(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_PERCENTAGE, "Completion percentage must be an integer"
        )
    if not 0 <= value <= 100:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_PERCENTAGE, "Completion percentage must be between 0 and 100"
        )
    return value


# =============================================================================
# Service Functions
# =============================================================================


def submit_module(
    db: Session,
    project_id: UUID,
    submitter_id: UUID,
    title: str,
    completion_percentage: int,
    description: str = "",
    github_link: str | None = None,
    files: Sequence[UploadedFile] = (),
    *,
    storage: StorageClientBase | None = None,
    max_bytes: int = 0,
) -> ModuleSubmissionResult:
    """Record a module submission and announce it in the project's chat.

    Raises:
        InvalidRequestError: Blank title, or E_INVALID_PERCENTAGE for a bad percentage.
        NotFoundError(E_PROJECT_NOT_FOUND): If the project doesn't exist.
        ForbiddenError: If the submitter is neither the owner nor a chat participant.
    """
    title = (title or "").strip()
    if not title:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Module title is required")
    completion_percentage = _validate_percentage(completion_percentage)
    description = (description or "").strip()
    github_link = (github_link or "").strip() or None

    project = get_project_or_404(db, project_id)
    chat_id = chats_service.get_project_chat_id(db, project_id)
    if not is_project_member(db, project, submitter_id):
        raise ForbiddenError(
            ApiErrorCode.E_FORBIDDEN, "Not authorized to submit modules to this project"
        )
    if files and storage is None:
        raise ValueError("storage is required when submitting files")
    for upload in files:
        if len(upload.data) > max_bytes:
            raise InvalidRequestError(
                ApiErrorCode.E_FILE_TOO_LARGE,
                f"File exceeds {max_bytes} bytes: {upload.filename}",
            )

    module_data = ModuleData(
        title=title,
        description=description,
        completion_percentage=completion_percentage,
        github_link=github_link,
    )
    stored: list[Attachment] = []
    try:
        for upload in files:
            attachment = store_file(
                storage, upload, max_bytes=max_bytes, kind="module", module_data=module_data
            )
            stored.append(attachment)

        # Write 1: submission + recomputed project progress
        with transaction(db):
            # Serializes concurrent submissions to one project (no-op on SQLite)
            project = db.scalar(
                select(Project)
                .where(Project.id == project_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            submission = ModuleSubmission(
                project_id=project_id,
                title=title,
                description=description,
                github_link=github_link,
                completion_percentage=completion_percentage,
                files=[a.model_dump(mode="json", exclude_none=True) for a in stored],
                submitted_by=submitter_id,
                submitted_at=utcnow(),
            )
            db.add(submission)
            db.flush()

            all_submissions = db.scalars(
                select(ModuleSubmission).where(ModuleSubmission.project_id == project_id)
            ).all()
            aggregate = compute_progress(all_submissions)
            project.completion_percentage = aggregate.completion_percentage
            project.last_updated = aggregate.last_updated
            module_count = len(all_submissions)
    except Exception:
        discard_attachments(storage, stored)
        raise

    logger.info(
        "module_submitted",
        project_id=str(project_id),
        submission_id=str(submission.id),
        completion_percentage=aggregate.completion_percentage,
    )

    project_out = project_to_out(project, module_count)
    submission_out = ModuleSubmissionOut.model_validate(submission)

    # Write 2: chat notification with an immutable progress snapshot
    chat_message, chat_error = None, None
    if chat_id is None:
        chat_error = ApiErrorCode.E_CHAT_NOT_FOUND.value
    else:
        attachments = stored or [Attachment(kind="module", module_data=module_data)]
        snapshot = ProjectProgressIn(
            project_id=project_id,
            completion_percentage=aggregate.completion_percentage,
            deadline=project.deadline,
        )
        try:
            chat_message = chats_service.append_message(
                db,
                chat_id,
                submitter_id,
                submission_message_text(title, completion_percentage),
                attachments=attachments,
                github_link=github_link,
                project_progress=snapshot,
            )
        except ApiError as e:
            chat_error = e.code.value
        except SQLAlchemyError:
            logger.exception("module_chat_notification_error", project_id=str(project_id))
            chat_error = ApiErrorCode.E_INTERNAL.value

    if chat_error is not None:
        logger.warning(
            "module_chat_notification_failed",
            project_id=str(project_id),
            submission_id=str(submission.id),
            chat_error=chat_error,
        )

    return ModuleSubmissionResult(
        submission=submission_out,
        project=project_out,
        chat_message=chat_message,
        chat_error=chat_error,
    )
