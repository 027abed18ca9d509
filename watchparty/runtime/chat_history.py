from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Collection, Dict

from watchparty.schemas.ws import ChatMessageOut


class ChatHistory:
    """Per-room ring buffer of the most recent chat messages (memory only)."""

    def __init__(self, capacity: int = 50):
        self.capacity = capacity
        self._buffers: Dict[str, deque[ChatMessageOut]] = {}

    def append(self, room_id: str, message: ChatMessageOut) -> None:
        buf = self._buffers.get(room_id)
        if buf is None:
            buf = deque(maxlen=self.capacity)
            self._buffers[room_id] = buf
        buf.append(message)  # oldest falls off at capacity

    def recent(self, room_id: str) -> list[ChatMessageOut]:
        return list(self._buffers.get(room_id, ()))

    def clear(self, room_id: str) -> None:
        self._buffers.pop(room_id, None)

    def room_ids(self) -> list[str]:
        return list(self._buffers)

    def prune(self, *, older_than: datetime, keep_rooms: Collection[str]) -> int:
        """Drop buffers of rooms outside `keep_rooms` whose newest message predates `older_than`."""
        dropped = 0
        for room_id, buf in list(self._buffers.items()):
            if room_id in keep_rooms:
                continue
            if not buf or buf[-1].timestamp < older_than:
                del self._buffers[room_id]
                dropped += 1
        return dropped
