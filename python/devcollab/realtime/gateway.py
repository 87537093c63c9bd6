"""In-process realtime gateway.

Owns the registry of live connections and the rooms they joined. One room
corresponds to one chat. The registry lives for the process lifetime only;
clients rebuild their memberships by re-joining after a reconnect.

Every connection has its own outbound queue drained by a writer task.
Broadcasting enqueues synchronously, so each connection receives events in
exactly the order they were broadcast.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

from fastapi import WebSocket
from pydantic import BaseModel

from devcollab.logging import get_logger
from devcollab.schemas.realtime import LeftEvent, UserTypingEvent

logger = get_logger(__name__)

_CLOSE = object()


@dataclass(eq=False)
class Connection:
    """One authenticated realtime connection."""

    websocket: WebSocket
    user_id: UUID
    display_name: str
    id: str = field(default_factory=lambda: uuid4().hex)
    rooms: set[UUID] = field(default_factory=set)
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    writer: asyncio.Task | None = None


def _payload(event: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(event, BaseModel):
        return event.model_dump(mode="json")
    return event


class RealtimeGateway:
    """Room membership and fan-out for realtime connections."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[UUID, set[Connection]] = {}

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def register(self, conn: Connection) -> None:
        """Admit an authenticated connection and start its writer."""
        self._connections[conn.id] = conn
        conn.writer = asyncio.create_task(self._write_loop(conn))

    async def unregister(self, conn: Connection) -> None:
        """Drop a connection and every room membership it held."""
        self._connections.pop(conn.id, None)
        for room_id in list(conn.rooms):
            self.leave_room(conn, room_id)
        if conn.writer is not None:
            conn.queue.put_nowait(_CLOSE)
            try:
                await asyncio.wait_for(conn.writer, timeout=1.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                conn.writer.cancel()

    async def _write_loop(self, conn: Connection) -> None:
        while True:
            event = await conn.queue.get()
            if event is _CLOSE:
                return
            try:
                await conn.websocket.send_json(event)
            except Exception as e:
                # Socket already gone; the reader side unregisters it
                logger.info(
                    "realtime_send_failed",
                    connection_id=conn.id,
                    error_type=type(e).__name__,
                )
                return

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    def join_room(self, conn: Connection, room_id: UUID) -> None:
        conn.rooms.add(room_id)
        self._rooms.setdefault(room_id, set()).add(conn)

    def leave_room(self, conn: Connection, room_id: UUID) -> None:
        conn.rooms.discard(room_id)
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(conn)
        if not members:
            del self._rooms[room_id]

    async def evict(self, room_id: UUID, user_id: UUID) -> int:
        """Drop every connection of a user from a room and tell each one it left.

        Scheduled after a participant is removed, so later broadcasts to the
        room no longer reach that user.

        Returns:
            Number of connections evicted.
        """
        evicted = [conn for conn in self.room_members(room_id) if conn.user_id == user_id]
        for conn in evicted:
            self.leave_room(conn, room_id)
            self.send(conn, LeftEvent(chat_id=room_id))
        if evicted:
            logger.info(
                "realtime_room_evicted",
                room_id=str(room_id),
                user_id=str(user_id),
                connections=len(evicted),
            )
        return len(evicted)

    def room_members(self, room_id: UUID) -> list[Connection]:
        return list(self._rooms.get(room_id, ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def send(self, conn: Connection, event: BaseModel | dict[str, Any]) -> None:
        """Queue an event for a single connection."""
        conn.queue.put_nowait(_payload(event))

    def broadcast(
        self,
        room_id: UUID,
        event: BaseModel | dict[str, Any],
        exclude: Connection | None = None,
    ) -> int:
        """Queue an event for every connection in a room.

        The originating connection is included unless passed as `exclude`.

        Returns:
            Number of connections the event was queued for.
        """
        payload = _payload(event)
        delivered = 0
        for conn in self._rooms.get(room_id, ()):
            if conn is exclude:
                continue
            conn.queue.put_nowait(payload)
            delivered += 1
        return delivered

    async def publish(self, room_id: UUID, event: BaseModel | dict[str, Any]) -> None:
        """Broadcast from request handlers (scheduled as a background task after commit)."""
        delivered = self.broadcast(room_id, event)
        logger.debug("realtime_published", room_id=str(room_id), delivered=delivered)

    def typing(self, conn: Connection, room_id: UUID) -> int:
        """Relay a typing notice to the room's other connections. Nothing is stored."""
        event = UserTypingEvent(
            chat_id=room_id, user_id=conn.user_id, display_name=conn.display_name
        )
        return self.broadcast(room_id, event, exclude=conn)
