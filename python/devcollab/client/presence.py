"""Typing presence and auto-scroll state for a chat view."""

import time
from collections.abc import Callable


class TypingIndicator:
    """Names of users currently typing.

    Each `user_typing` event (re)schedules the user's expiry at now + timeout,
    so a user who keeps typing stays present and one who stops drops out.
    """

    def __init__(self, timeout: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._expires: dict[str, float] = {}

    def mark(self, username: str) -> None:
        self._expires[username] = self._clock() + self.timeout

    def clear(self, username: str) -> None:
        self._expires.pop(username, None)

    def active(self) -> list[str]:
        now = self._clock()
        self._expires = {name: at for name, at in self._expires.items() if at > now}
        return sorted(self._expires)


class AutoScrollPolicy:
    """Follow new messages only while the viewport sits near the bottom."""

    def __init__(self, threshold: int = 50):
        self.threshold = threshold
        self.at_bottom = True

    def update(self, scroll_top: float, scroll_height: float, client_height: float) -> bool:
        """Record the viewport after a scroll. Returns whether it is near the bottom."""
        self.at_bottom = abs(scroll_height - scroll_top - client_height) < self.threshold
        return self.at_bottom

    def should_scroll_on_new_message(self) -> bool:
        return self.at_bottom
