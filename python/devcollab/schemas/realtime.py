"""Realtime channel event schemas.

Every event is a JSON object with a "type" discriminator. Client events are
validated at ingestion; anything that does not match one of the schemas below
is rejected with an E_INVALID_EVENT error event and never reaches the store.
"""

from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from devcollab.schemas.chat import MAX_MESSAGE_CONTENT_LENGTH, MessageOut

# =============================================================================
# Client -> server
# =============================================================================


class _ClientEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class JoinChatEvent(_ClientEvent):
    type: Literal["join_chat"]
    chat_id: UUID


class LeaveChatEvent(_ClientEvent):
    type: Literal["leave_chat"]
    chat_id: UUID


class TypingEvent(_ClientEvent):
    type: Literal["typing"]
    chat_id: UUID


class SendMessageEvent(_ClientEvent):
    type: Literal["message"]
    chat_id: UUID
    content: str = Field(max_length=MAX_MESSAGE_CONTENT_LENGTH)
    github_link: str | None = None


class PingEvent(_ClientEvent):
    type: Literal["ping"]


ClientEvent = Annotated[
    JoinChatEvent | LeaveChatEvent | TypingEvent | SendMessageEvent | PingEvent,
    Field(discriminator="type"),
]

client_event_adapter: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)


# =============================================================================
# Server -> client
# =============================================================================


class JoinedEvent(BaseModel):
    type: Literal["joined"] = "joined"
    chat_id: UUID


class LeftEvent(BaseModel):
    type: Literal["left"] = "left"
    chat_id: UUID


class ReceiveMessageEvent(BaseModel):
    """New message fan-out. Sent to every room member, including the sender."""

    type: Literal["receive_message"] = "receive_message"
    chat_id: UUID
    message: MessageOut


class UserTypingEvent(BaseModel):
    """Ephemeral typing presence. Receivers expire it on their own timer."""

    type: Literal["user_typing"] = "user_typing"
    chat_id: UUID
    user_id: UUID
    display_name: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str


class PongEvent(BaseModel):
    type: Literal["pong"] = "pong"
