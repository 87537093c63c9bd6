"""Client-side message timeline for one chat.

A message can reach the client more than once: the REST response to a send,
the realtime `receive_message` broadcast of the same write, and history
fetched after a reconnect all carry it. The timeline keeps exactly one entry
per message id and merges later copies into the existing entry.

Messages are plain dicts as decoded from the API's JSON.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

# Fallback for messages that predate the structured project_progress field
PROGRESS_TEXT_PATTERN = re.compile(r"submitted with (\d+)% completion")


@dataclass(frozen=True)
class ProgressReading:
    """Project progress as last announced in a chat."""

    completion_percentage: int
    deadline: str | None
    message_id: str


def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def progress_of(message: dict[str, Any]) -> ProgressReading | None:
    """Progress carried by one message, structured field first, then text."""
    progress = message.get("project_progress")
    if progress:
        return ProgressReading(
            completion_percentage=int(progress["completion_percentage"]),
            deadline=progress.get("deadline"),
            message_id=str(message["id"]),
        )

    match = PROGRESS_TEXT_PATTERN.search(message.get("content") or "")
    if match is None:
        return None
    return ProgressReading(
        completion_percentage=min(100, int(match.group(1))),
        deadline=None,
        message_id=str(message["id"]),
    )


class MessageTimeline:
    """Ordered, deduplicated messages of one chat."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        self._arrival: dict[str, int] = {}
        self._counter = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return str(message_id) in self._entries

    def merge(self, message: dict[str, Any]) -> bool:
        """Insert a message, or update the entry with the same id in place.

        Fields present (and not None) in the incoming copy overwrite the
        stored ones; fields it lacks are preserved.

        Returns:
            True if the message was not in the timeline before.
        """
        message_id = str(message["id"])
        incoming = {k: v for k, v in message.items() if v is not None}

        existing = self._entries.get(message_id)
        if existing is not None:
            existing.update(incoming)
            return False

        self._entries[message_id] = dict(incoming)
        self._arrival[message_id] = self._counter
        self._counter += 1
        return True

    def merge_many(self, messages: Iterable[dict[str, Any]]) -> int:
        """Merge a page of history. Returns how many messages were new."""
        return sum(1 for m in messages if self.merge(m))

    def _sort_key(self, message_id: str) -> tuple[int, int, int]:
        seq = self._entries[message_id].get("seq")
        arrival = self._arrival[message_id]
        if seq is None:
            return (1, 0, arrival)
        return (0, int(seq), arrival)

    def messages(self) -> list[dict[str, Any]]:
        """Messages by seq; those without a seq follow in arrival order."""
        return [self._entries[i] for i in sorted(self._entries, key=self._sort_key)]

    @property
    def max_seq(self) -> int | None:
        seqs = [m["seq"] for m in self._entries.values() if m.get("seq") is not None]
        return max(seqs) if seqs else None

    def latest_progress(self) -> ProgressReading | None:
        """Progress from the latest message (by seq, then created_at) that carries any."""
        latest_key = None
        latest = None
        for message_id, message in self._entries.items():
            reading = progress_of(message)
            if reading is None:
                continue
            created_at = _parse_time(message.get("created_at"))
            key = (
                message.get("seq") if message.get("seq") is not None else -1,
                created_at.timestamp() if created_at else float("-inf"),
                self._arrival[message_id],
            )
            if latest_key is None or key > latest_key:
                latest_key, latest = key, reading
        return latest
