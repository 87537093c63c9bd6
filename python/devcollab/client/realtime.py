"""Realtime channel client.

Keeps one WebSocket to /realtime open for as long as it runs. Room
memberships live on the server only for the lifetime of a connection, so
the client remembers the chats it joined and joins them again after every
reconnect. Events missed while disconnected are not replayed; the
on_reconnect callback is where callers fetch them (see ChatSession.resync).
"""

import asyncio
import inspect
import json
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from devcollab.logging import get_logger

logger = get_logger(__name__)

BACKOFF_BASE_S = 0.5
BACKOFF_FACTOR = 2
BACKOFF_CAP_S = 30.0

# Close code the server uses when the handshake token is rejected
POLICY_VIOLATION = 1008

EventHandler = Callable[[dict[str, Any]], Any]


def backoff_delay(attempt: int) -> float:
    """Delay before reconnect attempt `attempt` (0-based)."""
    if attempt < 0:
        attempt = 0
    # Past this the cap applies anyway; avoids huge powers
    if attempt > 16:
        return BACKOFF_CAP_S
    return min(BACKOFF_CAP_S, BACKOFF_BASE_S * BACKOFF_FACTOR**attempt)


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class RealtimeClient:
    """Reconnecting client for the realtime channel."""

    def __init__(
        self,
        url: str,
        token: str,
        on_event: EventHandler,
        *,
        on_reconnect: Callable[[], Any] | None = None,
        max_attempts: int | None = None,
        connect: Callable[..., Any] = websockets.connect,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.url = url
        self.token = token
        self.on_event = on_event
        self.on_reconnect = on_reconnect
        self.max_attempts = max_attempts
        self.rooms: set[str] = set()
        self.auth_failed = False
        self._connect = connect
        self._sleep = sleep
        self._ws: Any = None
        self._closing = False
        self._heard_from_server = False

    def _handshake_url(self) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'token': self.token})}"

    @property
    def connected(self) -> bool:
        return self._ws is not None

    # -------------------------------------------------------------------------
    # Outbound events
    # -------------------------------------------------------------------------

    async def _send(self, event: dict[str, Any]) -> bool:
        if self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(event))
        except ConnectionClosed:
            return False
        return True

    async def join(self, chat_id: UUID | str) -> None:
        """Join a chat room now (if connected) and after every reconnect."""
        self.rooms.add(str(chat_id))
        await self._send({"type": "join_chat", "chat_id": str(chat_id)})

    async def leave(self, chat_id: UUID | str) -> None:
        self.rooms.discard(str(chat_id))
        await self._send({"type": "leave_chat", "chat_id": str(chat_id)})

    async def typing(self, chat_id: UUID | str) -> bool:
        return await self._send({"type": "typing", "chat_id": str(chat_id)})

    async def send_message(
        self, chat_id: UUID | str, content: str, github_link: str | None = None
    ) -> bool:
        """Send a text message over the socket. Returns False when not connected."""
        event: dict[str, Any] = {"type": "message", "chat_id": str(chat_id), "content": content}
        if github_link:
            event["github_link"] = github_link
        return await self._send(event)

    async def ping(self) -> bool:
        return await self._send({"type": "ping"})

    # -------------------------------------------------------------------------
    # Connection loop
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        self._closing = True
        if self._ws is not None:
            await self._ws.close()

    async def _session(self, reconnected: bool) -> int | None:
        """Serve one connection until it closes. Returns the close code."""
        async with self._connect(self._handshake_url()) as ws:
            self._ws = ws
            self._heard_from_server = False
            try:
                for chat_id in sorted(self.rooms):
                    await ws.send(json.dumps({"type": "join_chat", "chat_id": chat_id}))
                if reconnected and self.on_reconnect is not None:
                    await _maybe_await(self.on_reconnect())
                try:
                    async for raw in ws:
                        self._heard_from_server = True
                        await self._dispatch(raw)
                except ConnectionClosed:
                    pass
            finally:
                self._ws = None
            return ws.close_code

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            event = json.loads(raw)
        except ValueError:
            logger.warning("realtime_client_bad_frame")
            return
        if isinstance(event, dict):
            await _maybe_await(self.on_event(event))

    async def run(self) -> None:
        """Connect and keep reconnecting until close(), an auth rejection, or max_attempts."""
        attempt = 0
        connected_once = False
        while not self._closing:
            try:
                close_code = await self._session(reconnected=connected_once)
                connected_once = True
                # Only a session that delivered a frame resets the backoff
                if self._heard_from_server:
                    attempt = 0
                if close_code == POLICY_VIOLATION:
                    self.auth_failed = True
                    logger.warning("realtime_client_auth_rejected")
                    return
            except (OSError, WebSocketException) as e:
                logger.info(
                    "realtime_client_connect_failed",
                    attempt=attempt,
                    error_type=type(e).__name__,
                )

            if self._closing:
                return
            if self.max_attempts is not None and attempt >= self.max_attempts:
                logger.warning("realtime_client_gave_up", attempts=attempt)
                return

            delay = backoff_delay(attempt)
            attempt += 1
            await _maybe_await(self._sleep(delay))
