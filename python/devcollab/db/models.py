"""SQLAlchemy ORM models for DevCollab.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are portable (PostgreSQL in deployment, SQLite in tests):
UUIDs use the generic Uuid type, timestamps go through UTCDateTime so values
always come back timezone-aware.
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that round-trips as UTC on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class ChatKind(str, PyEnum):
    """Kinds of conversation.

    direct: exactly two participants, one chat per unordered user pair
    project: fan-in chat for all collaborators of one project
    """

    direct = "direct"
    project = "project"


class AttachmentKind(str, PyEnum):
    """Kinds of message attachment."""

    file = "file"
    image = "image"
    code = "code"
    module = "module"


# =============================================================================
# Users & Projects
# =============================================================================


class User(Base):
    """User directory entry.

    The user ID matches the `sub` claim of the login service's tokens.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    username: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class Project(Base):
    """Project aggregate (only the fields the chat core reads or writes)."""

    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owner_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_projects_completion_range",
        ),
    )

    owner: Mapped["User"] = relationship("User")
    submissions: Mapped[list["ModuleSubmission"]] = relationship(
        "ModuleSubmission", back_populates="project", cascade="all, delete-orphan"
    )


class ModuleSubmission(Base):
    """A progress update for one module of a project."""

    __tablename__ = "module_submissions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    github_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    files: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    submitted_by: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_module_submissions_completion_range",
        ),
    )

    project: Mapped["Project"] = relationship("Project", back_populates="submissions")


# =============================================================================
# Chats & Messages
# =============================================================================


class Chat(Base):
    """Chat model - one conversation, direct or project-scoped.

    direct_key is the canonical "<min uuid>:<max uuid>" of a direct chat's two
    participants. Its unique constraint is what makes get-or-create atomic.
    """

    __tablename__ = "chats"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        unique=True,
    )
    direct_key: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    next_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Denormalized preview of the most recent message
    last_message_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_message_sender_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_message_has_attachments: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("kind IN ('direct', 'project')", name="ck_chats_kind"),
        CheckConstraint(
            "(kind = 'direct' AND direct_key IS NOT NULL AND project_id IS NULL)"
            " OR (kind = 'project' AND project_id IS NOT NULL AND direct_key IS NULL)",
            name="ck_chats_kind_shape",
        ),
        CheckConstraint("next_seq >= 1", name="ck_chats_next_seq_positive"),
    )

    project: Mapped["Project | None"] = relationship("Project")
    participants: Mapped[list["ChatParticipant"]] = relationship(
        "ChatParticipant",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="ChatParticipant.joined_at",
    )
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Message.seq",
    )


class ChatParticipant(Base):
    """Membership of a user in a chat."""

    __tablename__ = "chat_participants"

    chat_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("chats.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    chat: Mapped["Chat"] = relationship("Chat", back_populates="participants")
    user: Mapped["User"] = relationship("User")


class Message(Base):
    """Message model - one immutable entry in a chat.

    The progress_* columns hold a point-in-time snapshot of project progress;
    they are written once at insert and never updated.
    """

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    chat_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    sender_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    github_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    progress_project_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    progress_completion_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    progress_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    progress_captured_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("seq >= 1", name="ck_messages_seq_positive"),
        CheckConstraint(
            "progress_completion_percentage IS NULL"
            " OR (progress_completion_percentage >= 0 AND progress_completion_percentage <= 100)",
            name="ck_messages_progress_range",
        ),
        UniqueConstraint("chat_id", "seq", name="uix_messages_chat_seq"),
    )

    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")
    sender: Mapped["User"] = relationship("User")
    reads: Mapped[list["MessageRead"]] = relationship(
        "MessageRead",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageRead.read_at",
    )


class MessageRead(Base):
    """Read receipt - a user appears at most once per message."""

    __tablename__ = "message_reads"

    message_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("messages.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    read_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    message: Mapped["Message"] = relationship("Message", back_populates="reads")
