"""Realtime connection handler.

Drives one WebSocket through its states:

    connecting -> authenticating -> authenticated -> disconnected

The handshake token is verified before any event is read. Afterwards every
inbound frame is validated against the client event schemas; invalid frames
are answered with an E_INVALID_EVENT error and dropped. Database work runs in
the threadpool with its own session so the event loop keeps serving other
connections.
"""

from collections.abc import Callable
from typing import Any, TypeVar
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from devcollab.auth.verifier import TokenVerifier, parse_user_id
from devcollab.db.session import session_scope
from devcollab.errors import ApiError, ApiErrorCode
from devcollab.logging import clear_request_context, get_logger, set_connection_context
from devcollab.realtime.gateway import Connection, RealtimeGateway
from devcollab.schemas.realtime import (
    ErrorEvent,
    JoinChatEvent,
    JoinedEvent,
    LeaveChatEvent,
    LeftEvent,
    PingEvent,
    PongEvent,
    ReceiveMessageEvent,
    SendMessageEvent,
    TypingEvent,
    client_event_adapter,
)
from devcollab.services import chats as chats_service
from devcollab.services.bootstrap import ensure_user

logger = get_logger(__name__)

T = TypeVar("T")


class RealtimeHandler:
    """Serves one realtime connection end to end."""

    def __init__(
        self,
        websocket: WebSocket,
        gateway: RealtimeGateway,
        verifier: TokenVerifier,
        session_factory: sessionmaker[Session],
    ):
        self.websocket = websocket
        self.gateway = gateway
        self.verifier = verifier
        self.session_factory = session_factory
        self.conn: Connection | None = None

    async def _db(self, fn: Callable[..., T], *args: Any) -> T:
        def call() -> T:
            with session_scope(self.session_factory) as db:
                return fn(db, *args)

        return await run_in_threadpool(call)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self, token: str | None) -> None:
        await self.websocket.accept()

        conn = await self._authenticate(token)
        if conn is None:
            return

        self.conn = conn
        self.gateway.register(conn)
        set_connection_context(conn.id, str(conn.user_id))
        logger.info("realtime_connected")

        try:
            while True:
                raw = await self.websocket.receive_text()
                await self._dispatch(raw)
        except WebSocketDisconnect as e:
            logger.info("realtime_disconnected", code=e.code, rooms=len(conn.rooms))
        except Exception:
            logger.exception("realtime_handler_failed")
            raise
        finally:
            await self.gateway.unregister(conn)
            clear_request_context()

    async def _authenticate(self, token: str | None) -> Connection | None:
        try:
            payload = self.verifier.verify(token or "")
        except ApiError as e:
            logger.warning("realtime_auth_failed", reason=e.message)
            await self.websocket.send_json(
                ErrorEvent(code=e.code.value, message=e.message).model_dump(mode="json")
            )
            await self.websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        user_id = parse_user_id(payload)
        try:
            await self._db(ensure_user, user_id, payload)
            display_name = await self._db(chats_service.get_display_name, user_id)
        except SQLAlchemyError:
            logger.exception("realtime_bootstrap_failed", user_id=str(user_id))
            await self.websocket.send_json(
                ErrorEvent(
                    code=ApiErrorCode.E_INTERNAL.value, message="Internal server error"
                ).model_dump(mode="json")
            )
            await self.websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return None
        return Connection(websocket=self.websocket, user_id=user_id, display_name=display_name)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _error(self, code: ApiErrorCode, message: str) -> None:
        self.gateway.send(self.conn, ErrorEvent(code=code.value, message=message))

    async def _dispatch(self, raw: str) -> None:
        try:
            event = client_event_adapter.validate_json(raw)
        except ValidationError:
            logger.info("realtime_invalid_event")
            self._error(ApiErrorCode.E_INVALID_EVENT, "Malformed event")
            return

        if isinstance(event, JoinChatEvent):
            await self._join(event.chat_id)
        elif isinstance(event, LeaveChatEvent):
            self.gateway.leave_room(self.conn, event.chat_id)
            self.gateway.send(self.conn, LeftEvent(chat_id=event.chat_id))
        elif isinstance(event, TypingEvent):
            if event.chat_id not in self.conn.rooms:
                self._error(ApiErrorCode.E_INVALID_EVENT, "Join the chat before typing")
                return
            self.gateway.typing(self.conn, event.chat_id)
        elif isinstance(event, SendMessageEvent):
            await self._send_message(event)
        elif isinstance(event, PingEvent):
            self.gateway.send(self.conn, PongEvent())

    async def _join(self, chat_id: UUID) -> None:
        try:
            await self._db(chats_service.get_participant_chat_or_raise, chat_id, self.conn.user_id)
        except ApiError as e:
            self._error(e.code, e.message)
            return
        except SQLAlchemyError:
            logger.exception("realtime_join_failed", chat_id=str(chat_id))
            self._error(ApiErrorCode.E_INTERNAL, "Internal server error")
            return

        self.gateway.join_room(self.conn, chat_id)
        self.gateway.send(self.conn, JoinedEvent(chat_id=chat_id))
        logger.info("realtime_room_joined", chat_id=str(chat_id))

    async def _send_message(self, event: SendMessageEvent) -> None:
        try:
            message = await self._db(
                chats_service.append_message,
                event.chat_id,
                self.conn.user_id,
                event.content,
                (),
                event.github_link,
            )
        except ApiError as e:
            self._error(e.code, e.message)
            return
        except SQLAlchemyError:
            logger.exception("realtime_message_failed", chat_id=str(event.chat_id))
            self._error(ApiErrorCode.E_INTERNAL, "Internal server error")
            return

        self.gateway.broadcast(
            event.chat_id, ReceiveMessageEvent(chat_id=event.chat_id, message=message)
        )
