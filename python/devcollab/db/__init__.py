"""Database module for DevCollab.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from devcollab.db.engine import create_db_engine, get_engine
from devcollab.db.models import (
    AttachmentKind,
    Base,
    Chat,
    ChatKind,
    ChatParticipant,
    Message,
    MessageRead,
    ModuleSubmission,
    Project,
    User,
)
from devcollab.db.session import get_db, session_scope, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "session_scope",
    "transaction",
    # Base
    "Base",
    # Enums
    "ChatKind",
    "AttachmentKind",
    # Models
    "User",
    "Project",
    "ModuleSubmission",
    "Chat",
    "ChatParticipant",
    "Message",
    "MessageRead",
]
