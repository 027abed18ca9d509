from __future__ import annotations

import asyncio
from typing import Any

from watchparty.core.errors import StoreUnavailableError
from watchparty.services.room_store import MemoryRoomStore


class FakeSocket:
    """Stands in for a starlette WebSocket; records every JSON payload sent."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send_json(self, data: Any) -> None:
        if self.closed:
            raise RuntimeError("websocket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == event_type]

    def clear(self) -> None:
        self.sent.clear()


class FlakyStore(MemoryRoomStore):
    """Memory store that raises StoreUnavailableError while `down` is set."""

    def __init__(self):
        super().__init__()
        self.down = False
        self.touches = 0

    def _check(self) -> None:
        if self.down:
            raise StoreUnavailableError("store is down")

    async def upsert_room(self, room_id, *, video_link=None):
        self._check()
        return await super().upsert_room(room_id, video_link=video_link)

    async def get_room(self, room_id):
        self._check()
        return await super().get_room(room_id)

    async def upsert_participant(self, participant_id, room_id, username):
        self._check()
        return await super().upsert_participant(participant_id, room_id, username)

    async def touch_participant(self, participant_id):
        self._check()
        self.touches += 1
        return await super().touch_participant(participant_id)

    async def list_participants(self, room_id):
        self._check()
        return await super().list_participants(room_id)

    async def remove_participant(self, participant_id):
        self._check()
        return await super().remove_participant(participant_id)

    async def remove_stale_participants(self, threshold, *, keep=()):
        self._check()
        return await super().remove_stale_participants(threshold, keep=keep)


class GatedStore(MemoryRoomStore):
    """Memory store whose upsert_participant parks on `gate` until it is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.entered = asyncio.Event()

    async def upsert_participant(self, participant_id, room_id, username):
        self.entered.set()
        await self.gate.wait()
        return await super().upsert_participant(participant_id, room_id, username)
