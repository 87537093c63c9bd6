"""Business logic services.

Services are called by route handlers (and the realtime gateway) and
orchestrate database operations. They raise ApiError subclasses and never
return error values.
"""

from devcollab.services.bootstrap import ensure_user
from devcollab.services.chats import append_message, get_or_create_direct_chat, mark_read
from devcollab.services.progress import compute_progress, submit_module

__all__ = [
    "ensure_user",
    "append_message",
    "get_or_create_direct_chat",
    "mark_read",
    "compute_progress",
    "submit_module",
]
