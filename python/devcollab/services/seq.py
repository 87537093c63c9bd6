"""Sequence assignment helper for message ordering.

Each chat has a `next_seq` counter (starts at 1). Assigning a seq is a single
UPDATE ... RETURNING statement that also refreshes the chat's last-message
preview, so concurrent appends to one chat are serialized by the row write
and can neither reuse a seq nor lose a preview update.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from devcollab.db.models import Chat
from devcollab.logging import get_logger

logger = get_logger(__name__)


def assign_next_message_seq(
    db: Session,
    chat_id: UUID,
    *,
    sender_id: UUID,
    content: str,
    created_at: datetime,
    has_attachments: bool,
) -> int:
    """Atomically assign the next message sequence number for a chat.

    This function MUST be called within an existing transaction context.
    It does NOT open or commit its own transaction.

    Args:
        db: Database session (must be in a transaction)
        chat_id: UUID of the chat to assign seq for
        sender_id, content, created_at, has_attachments: The new last-message preview

    Returns:
        The sequence number to use for the new message

    Raises:
        ValueError: If the chat does not exist
    """
    stmt = (
        update(Chat)
        .where(Chat.id == chat_id)
        .values(
            next_seq=Chat.next_seq + 1,
            last_message_content=content,
            last_message_sender_id=sender_id,
            last_message_at=created_at,
            last_message_has_attachments=has_attachments,
            updated_at=created_at,
        )
        .returning(Chat.next_seq)
        .execution_options(synchronize_session=False)
    )
    new_next_seq = db.execute(stmt).scalar_one_or_none()

    if new_next_seq is None:
        raise ValueError(f"Chat {chat_id} not found")

    seq = new_next_seq - 1
    logger.debug("assigned_message_seq", chat_id=str(chat_id), seq=seq)
    return seq
