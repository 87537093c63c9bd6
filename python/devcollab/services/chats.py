"""Chat and Message service layer.

The chat store: direct and project chats, their participant sets, and the
append-only message log with read receipts.

All operations:
- Check existence (404) and participation (403) before mutating anything
- Keep every append a single transaction: seq + preview update, message row,
  and the sender's read receipt
- Use INSERT ... ON CONFLICT DO NOTHING wherever two callers may race to
  create the same row

Routes are transport-only and call exactly one service function.
"""

from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, exists, func, select
from sqlalchemy.orm import Session, selectinload

from devcollab.db.models import (
    Chat,
    ChatKind,
    ChatParticipant,
    Message,
    MessageRead,
    Project,
    User,
    utcnow,
)
from devcollab.db.session import transaction
from devcollab.errors import (
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from devcollab.logging import get_logger
from devcollab.schemas.chat import (
    MAX_MESSAGE_CONTENT_LENGTH,
    Attachment,
    ChatOut,
    LastMessageOut,
    MessageOut,
    ParticipantOut,
    ProjectProgressIn,
    ProjectProgressOut,
    ProjectSummaryOut,
    ReadReceiptOut,
)
from devcollab.services.seq import assign_next_message_seq
from devcollab.services.upsert import insert_ignore

logger = get_logger(__name__)

# Rows per multi-row INSERT (keeps SQLite under its bound-parameter limit)
INSERT_CHUNK_SIZE = 300


# =============================================================================
# Helper Functions
# =============================================================================


def direct_key_for(user_a: UUID, user_b: UUID) -> str:
    """Canonical key of an unordered user pair."""
    low, high = sorted((str(user_a), str(user_b)))
    return f"{low}:{high}"


def _clamp_percentage(value: int) -> int:
    return max(0, min(100, int(value)))


def _load_chat(db: Session, chat_id: UUID) -> Chat | None:
    """Load a chat with participants and project, overwriting stale identity-map state."""
    return db.scalar(
        select(Chat)
        .where(Chat.id == chat_id)
        .options(
            selectinload(Chat.participants).selectinload(ChatParticipant.user),
            selectinload(Chat.project),
        )
        .execution_options(populate_existing=True)
    )


def _load_message(db: Session, message_id: UUID) -> Message:
    return db.scalar(
        select(Message)
        .where(Message.id == message_id)
        .options(selectinload(Message.sender), selectinload(Message.reads))
        .execution_options(populate_existing=True)
    )


def is_participant(db: Session, chat_id: UUID, user_id: UUID) -> bool:
    """Whether the user is currently a participant of the chat."""
    return db.get(ChatParticipant, (chat_id, user_id)) is not None


def get_chat_or_404(db: Session, chat_id: UUID) -> Chat:
    """Load a chat.

    Raises:
        NotFoundError(E_CHAT_NOT_FOUND): If the chat doesn't exist.
    """
    chat = _load_chat(db, chat_id)
    if chat is None:
        raise NotFoundError(ApiErrorCode.E_CHAT_NOT_FOUND, "Chat not found")
    return chat


def get_participant_chat_or_raise(db: Session, chat_id: UUID, user_id: UUID) -> Chat:
    """Load a chat and verify participation.

    Raises:
        NotFoundError(E_CHAT_NOT_FOUND): If the chat doesn't exist.
        ForbiddenError(E_NOT_PARTICIPANT): If the user is not a participant.
    """
    chat = get_chat_or_404(db, chat_id)
    if not any(p.user_id == user_id for p in chat.participants):
        raise ForbiddenError(ApiErrorCode.E_NOT_PARTICIPANT, "Not a participant of this chat")
    return chat


def get_display_name(db: Session, user_id: UUID) -> str:
    """Best display name for a user: name, then username, then the id."""
    user = db.get(User, user_id)
    if user is None:
        return str(user_id)
    return user.name or user.username or str(user_id)


def participant_to_out(user: User) -> ParticipantOut:
    return ParticipantOut.model_validate(user)


def chat_to_out(chat: Chat) -> ChatOut:
    """Convert Chat ORM model (participants and project loaded) to ChatOut schema."""
    last_message = None
    if chat.last_message_at is not None and chat.last_message_sender_id is not None:
        last_message = LastMessageOut(
            content=chat.last_message_content or "",
            sender_id=chat.last_message_sender_id,
            created_at=chat.last_message_at,
            has_attachments=chat.last_message_has_attachments,
        )

    project = None
    if chat.project is not None:
        project = ProjectSummaryOut.model_validate(chat.project)

    return ChatOut(
        id=chat.id,
        kind=chat.kind,
        participants=[participant_to_out(p.user) for p in chat.participants],
        project=project,
        last_message=last_message,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


def message_to_out(message: Message) -> MessageOut:
    """Convert Message ORM model (sender and reads loaded) to MessageOut schema."""
    progress = None
    if message.progress_project_id is not None:
        progress = ProjectProgressOut(
            project_id=message.progress_project_id,
            completion_percentage=message.progress_completion_percentage or 0,
            deadline=message.progress_deadline,
            captured_at=message.progress_captured_at or message.created_at,
        )

    return MessageOut(
        id=message.id,
        chat_id=message.chat_id,
        seq=message.seq,
        sender=participant_to_out(message.sender),
        content=message.content,
        github_link=message.github_link,
        attachments=[Attachment.model_validate(a) for a in message.attachments or []],
        read_by=[ReadReceiptOut(user_id=r.user_id, read_at=r.read_at) for r in message.reads],
        project_progress=progress,
        created_at=message.created_at,
    )


# =============================================================================
# Chat Service Functions
# =============================================================================


def get_or_create_direct_chat(db: Session, viewer_id: UUID, peer_id: UUID) -> ChatOut:
    """Return the direct chat of an unordered user pair, creating it if needed.

    Safe under concurrent calls for the same pair: the chat insert is
    ON CONFLICT (direct_key) DO NOTHING, so every caller ends up selecting the
    single row that won.

    Raises:
        InvalidRequestError: If viewer and peer are the same user.
        NotFoundError(E_USER_NOT_FOUND): If the peer doesn't exist.
    """
    if viewer_id == peer_id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Cannot open a direct chat with yourself"
        )
    if db.get(User, peer_id) is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")

    key = direct_key_for(viewer_id, peer_id)
    now = utcnow()

    with transaction(db):
        created = db.execute(
            insert_ignore(db, Chat, index_elements=["direct_key"]).values(
                id=uuid4(),
                kind=ChatKind.direct.value,
                direct_key=key,
                next_seq=1,
                last_message_has_attachments=False,
                created_at=now,
                updated_at=now,
            )
        ).rowcount
        chat_id = db.scalar(select(Chat.id).where(Chat.direct_key == key))
        db.execute(
            insert_ignore(db, ChatParticipant, index_elements=["chat_id", "user_id"]).values(
                [
                    {"chat_id": chat_id, "user_id": viewer_id, "joined_at": now},
                    {"chat_id": chat_id, "user_id": peer_id, "joined_at": now},
                ]
            )
        )

    if created:
        logger.info("direct_chat_created", chat_id=str(chat_id))

    return chat_to_out(_load_chat(db, chat_id))


def create_project_chat(db: Session, project_id: UUID, creator_id: UUID) -> ChatOut:
    """Create the chat of a project. One chat per project.

    Raises:
        NotFoundError(E_PROJECT_NOT_FOUND): If the project doesn't exist.
        ForbiddenError: If the creator is not the project owner.
        ConflictError(E_PROJECT_CHAT_EXISTS): If the project already has a chat.
    """
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError(ApiErrorCode.E_PROJECT_NOT_FOUND, "Project not found")
    if project.owner_id != creator_id:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Only the project owner can create its chat")

    now = utcnow()
    chat_id = uuid4()
    with transaction(db):
        created = db.execute(
            insert_ignore(db, Chat, index_elements=["project_id"]).values(
                id=chat_id,
                kind=ChatKind.project.value,
                project_id=project_id,
                next_seq=1,
                last_message_has_attachments=False,
                created_at=now,
                updated_at=now,
            )
        ).rowcount
        if not created:
            raise ConflictError(
                ApiErrorCode.E_PROJECT_CHAT_EXISTS, "Project chat already exists"
            )
        db.add(ChatParticipant(chat_id=chat_id, user_id=creator_id, joined_at=now))

    logger.info("project_chat_created", chat_id=str(chat_id), project_id=str(project_id))
    return chat_to_out(_load_chat(db, chat_id))


def get_project_chat_id(db: Session, project_id: UUID) -> UUID | None:
    """ID of a project's chat, if it has one."""
    return db.scalar(select(Chat.id).where(Chat.project_id == project_id))


def list_chats_for_user(db: Session, user_id: UUID) -> list[ChatOut]:
    """List the user's chats, most recently active first."""
    chats = db.scalars(
        select(Chat)
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .where(ChatParticipant.user_id == user_id)
        .options(
            selectinload(Chat.participants).selectinload(ChatParticipant.user),
            selectinload(Chat.project),
        )
        .order_by(Chat.updated_at.desc(), Chat.id.desc())
        .execution_options(populate_existing=True)
    ).all()
    return [chat_to_out(chat) for chat in chats]


def get_chat_for_participant(db: Session, chat_id: UUID, user_id: UUID) -> ChatOut:
    """Get one chat the user participates in."""
    return chat_to_out(get_participant_chat_or_raise(db, chat_id, user_id))


def _get_managed_project_chat(db: Session, chat_id: UUID, actor_id: UUID) -> Chat:
    chat = get_chat_or_404(db, chat_id)
    if chat.kind == ChatKind.direct.value:
        if not any(p.user_id == actor_id for p in chat.participants):
            raise ForbiddenError(ApiErrorCode.E_NOT_PARTICIPANT, "Not a participant of this chat")
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_OPERATION, "Direct chat participants cannot change"
        )
    if chat.project is None or chat.project.owner_id != actor_id:
        raise ForbiddenError(
            ApiErrorCode.E_FORBIDDEN, "Only the project owner can manage participants"
        )
    return chat


def add_participant(db: Session, chat_id: UUID, actor_id: UUID, user_id: UUID) -> ChatOut:
    """Add a user to a project chat. Adding an existing participant is a no-op.

    Raises:
        NotFoundError: If the chat or the user doesn't exist.
        InvalidRequestError(E_INVALID_OPERATION): If the chat is a direct chat.
        ForbiddenError: If the actor is not the project owner.
    """
    _get_managed_project_chat(db, chat_id, actor_id)
    if db.get(User, user_id) is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")

    with transaction(db):
        added = db.execute(
            insert_ignore(db, ChatParticipant, index_elements=["chat_id", "user_id"]).values(
                chat_id=chat_id, user_id=user_id, joined_at=utcnow()
            )
        ).rowcount

    if added:
        logger.info("chat_participant_added", chat_id=str(chat_id), user_id=str(user_id))
    return chat_to_out(_load_chat(db, chat_id))


def remove_participant(db: Session, chat_id: UUID, actor_id: UUID, user_id: UUID) -> ChatOut:
    """Remove a user from a project chat. The participant set never becomes empty.

    Raises:
        NotFoundError(E_CHAT_NOT_FOUND): If the chat doesn't exist.
        InvalidRequestError(E_INVALID_OPERATION): If the chat is a direct chat, or the
            user is its last participant.
        ForbiddenError: If the actor is not the project owner.
    """
    _get_managed_project_chat(db, chat_id, actor_id)

    with transaction(db):
        removed = db.execute(
            delete(ChatParticipant).where(
                ChatParticipant.chat_id == chat_id, ChatParticipant.user_id == user_id
            )
        ).rowcount
        remaining = db.scalar(
            select(func.count())
            .select_from(ChatParticipant)
            .where(ChatParticipant.chat_id == chat_id)
        )
        if remaining == 0:
            # Raising rolls the delete back
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_OPERATION, "Cannot remove the last participant"
            )

    if removed:
        logger.info("chat_participant_removed", chat_id=str(chat_id), user_id=str(user_id))
    return chat_to_out(_load_chat(db, chat_id))


# =============================================================================
# Message Service Functions
# =============================================================================


def append_message(
    db: Session,
    chat_id: UUID,
    sender_id: UUID,
    content: str | None,
    attachments: Sequence[Attachment] = (),
    github_link: str | None = None,
    project_progress: ProjectProgressIn | None = None,
) -> MessageOut:
    """Append a message to a chat.

    In one transaction: assign seq and refresh the chat's last-message preview,
    insert the message, and mark it read by the sender.

    Raises:
        NotFoundError(E_CHAT_NOT_FOUND): If the chat doesn't exist.
        ForbiddenError(E_NOT_PARTICIPANT): If the sender is not a participant.
        InvalidRequestError(E_EMPTY_MESSAGE): If there is neither content nor an attachment.
        InvalidRequestError: If a progress snapshot does not belong to the chat's project.
    """
    chat = get_participant_chat_or_raise(db, chat_id, sender_id)

    content = (content or "").strip()
    if not content and not attachments:
        raise InvalidRequestError(ApiErrorCode.E_EMPTY_MESSAGE, "Message cannot be empty")
    if len(content) > MAX_MESSAGE_CONTENT_LENGTH:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"Message content exceeds {MAX_MESSAGE_CONTENT_LENGTH} characters",
        )
    github_link = (github_link or "").strip() or None

    if project_progress is not None and project_progress.project_id != chat.project_id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Project progress does not belong to this chat"
        )

    now = utcnow()
    message_id = uuid4()

    with transaction(db):
        seq = assign_next_message_seq(
            db,
            chat_id,
            sender_id=sender_id,
            content=content,
            created_at=now,
            has_attachments=bool(attachments),
        )
        message = Message(
            id=message_id,
            chat_id=chat_id,
            seq=seq,
            sender_id=sender_id,
            content=content,
            github_link=github_link,
            attachments=[a.model_dump(mode="json", exclude_none=True) for a in attachments],
            created_at=now,
        )
        if project_progress is not None:
            message.progress_project_id = project_progress.project_id
            message.progress_completion_percentage = _clamp_percentage(
                project_progress.completion_percentage
            )
            message.progress_deadline = project_progress.deadline
            message.progress_captured_at = now
        db.add(message)
        db.flush()
        db.add(MessageRead(message_id=message_id, user_id=sender_id, read_at=now))

    logger.info(
        "chat_message_appended",
        chat_id=str(chat_id),
        message_id=str(message_id),
        seq=seq,
        attachments=len(attachments),
    )
    return message_to_out(_load_message(db, message_id))


def list_messages(
    db: Session, chat_id: UUID, user_id: UUID, after_seq: int | None = None
) -> list[MessageOut]:
    """List a chat's messages in seq order, optionally only those after `after_seq`."""
    get_participant_chat_or_raise(db, chat_id, user_id)

    query = (
        select(Message)
        .where(Message.chat_id == chat_id)
        .options(selectinload(Message.sender), selectinload(Message.reads))
        .order_by(Message.seq.asc())
        .execution_options(populate_existing=True)
    )
    if after_seq is not None:
        query = query.where(Message.seq > after_seq)

    return [message_to_out(m) for m in db.scalars(query).all()]


def mark_read(db: Session, chat_id: UUID, user_id: UUID) -> int:
    """Mark every message of the chat read by the user.

    Idempotent: receipts are inserted with ON CONFLICT DO NOTHING and only
    newly created ones are counted, so a second call returns 0.

    Returns:
        Number of newly marked messages.
    """
    get_participant_chat_or_raise(db, chat_id, user_id)

    already_read = exists().where(
        MessageRead.message_id == Message.id, MessageRead.user_id == user_id
    )
    unread_ids = db.scalars(
        select(Message.id).where(Message.chat_id == chat_id, ~already_read)
    ).all()
    if not unread_ids:
        return 0

    now = utcnow()
    marked = 0
    with transaction(db):
        for start in range(0, len(unread_ids), INSERT_CHUNK_SIZE):
            rows = [
                {"message_id": message_id, "user_id": user_id, "read_at": now}
                for message_id in unread_ids[start : start + INSERT_CHUNK_SIZE]
            ]
            marked += db.execute(
                insert_ignore(db, MessageRead, index_elements=["message_id", "user_id"]).values(
                    rows
                )
            ).rowcount

    logger.info("chat_marked_read", chat_id=str(chat_id), marked=marked)
    return marked


def read_messages(
    db: Session, chat_id: UUID, user_id: UUID, after_seq: int | None = None
) -> list[MessageOut]:
    """Fetch history for a chat view: mark everything read, then list.

    Marking first means the returned read sets already include the reader.
    """
    mark_read(db, chat_id, user_id)
    return list_messages(db, chat_id, user_id, after_seq=after_seq)
