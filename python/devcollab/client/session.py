"""One open chat view: timeline, typing presence and scroll state.

ChatSession glues the REST client and realtime events together for a single
chat. History comes from REST; live messages come from `receive_message`
events; after a reconnect, resync() fetches whatever was missed.
"""

import time
from collections.abc import Callable
from typing import Any
from uuid import UUID

from devcollab.client.api import DevCollabClient
from devcollab.client.presence import AutoScrollPolicy, TypingIndicator
from devcollab.client.timeline import MessageTimeline, ProgressReading


class ChatSession:
    def __init__(
        self,
        chat_id: UUID | str,
        api: DevCollabClient,
        *,
        typing_timeout: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        scroll_threshold: int = 50,
    ):
        self.chat_id = str(chat_id)
        self.api = api
        self.timeline = MessageTimeline()
        self.typing = TypingIndicator(timeout=typing_timeout, clock=clock)
        self.scroll = AutoScrollPolicy(threshold=scroll_threshold)

    def load_history(self) -> list[dict[str, Any]]:
        self.timeline.merge_many(self.api.fetch_messages(self.chat_id))
        return self.timeline.messages()

    def resync(self) -> int:
        """Fetch messages after the highest known seq. Returns how many were new."""
        return self.timeline.merge_many(
            self.api.fetch_messages(self.chat_id, after_seq=self.timeline.max_seq)
        )

    def send(self, content: str, **kwargs: Any) -> dict[str, Any]:
        """Send through REST and merge the result (the broadcast copy dedupes)."""
        message = self.api.send_message(self.chat_id, content, **kwargs)
        self.timeline.merge(message)
        return message

    def handle_event(self, event: dict[str, Any]) -> bool:
        """Apply a realtime event addressed to this chat.

        Returns:
            True when the view should scroll to the newest message.
        """
        if str(event.get("chat_id")) != self.chat_id:
            return False

        kind = event.get("type")
        if kind == "receive_message":
            message = event["message"]
            is_new = self.timeline.merge(message)
            sender = message.get("sender") or {}
            name = sender.get("name") or sender.get("username")
            if name:
                # A message ends that user's typing
                self.typing.clear(name)
            return is_new and self.scroll.should_scroll_on_new_message()
        if kind == "user_typing":
            self.typing.mark(event.get("display_name") or str(event.get("user_id")))
        return False

    def progress(self) -> ProgressReading | None:
        return self.timeline.latest_progress()
