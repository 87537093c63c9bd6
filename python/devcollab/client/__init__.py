"""Python client for DevCollab chat.

- DevCollabClient: REST calls (httpx)
- RealtimeClient: reconnecting realtime channel (websockets)
- ChatSession: per-chat timeline, typing presence and scroll state
"""

from devcollab.client.api import ClientApiError, DevCollabClient
from devcollab.client.presence import AutoScrollPolicy, TypingIndicator
from devcollab.client.realtime import RealtimeClient, backoff_delay
from devcollab.client.session import ChatSession
from devcollab.client.timeline import MessageTimeline, ProgressReading

__all__ = [
    "AutoScrollPolicy",
    "ChatSession",
    "ClientApiError",
    "DevCollabClient",
    "MessageTimeline",
    "ProgressReading",
    "RealtimeClient",
    "TypingIndicator",
    "backoff_delay",
]
