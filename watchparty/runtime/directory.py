from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RoomEntry:
    room_id: str
    # conn_id -> display name, insertion order == join order
    participants: Dict[str, str] = field(default_factory=dict)
    video_link: str | None = None
    video_set_by: str | None = None
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def participant_count(self) -> int:
        return len(self.participants)


class RoomDirectory:
    """
    Live room membership and current video link, keyed by room id.

    An entry exists while the room has at least one connected participant,
    or after set-video / get-video pinned it. Removing the last participant
    evicts the entry; the store keeps its room row.
    """

    def __init__(self):
        self._rooms: Dict[str, RoomEntry] = {}

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rooms))

    def get(self, room_id: str) -> RoomEntry | None:
        return self._rooms.get(room_id)

    def ensure_room(self, room_id: str) -> RoomEntry:
        entry = self._rooms.get(room_id)
        if entry is None:
            entry = RoomEntry(room_id=room_id)
            self._rooms[room_id] = entry
        return entry

    def add_participant(self, room_id: str, conn_id: str, name: str) -> RoomEntry:
        entry = self.ensure_room(room_id)
        entry.participants[conn_id] = name
        return entry

    def remove_participant(self, room_id: str, conn_id: str) -> bool:
        """Returns True when the room entry was evicted."""
        entry = self._rooms.get(room_id)
        if entry is None or conn_id not in entry.participants:
            return False
        del entry.participants[conn_id]
        if not entry.participants:
            del self._rooms[room_id]
            return True
        return False

    def set_video_link(self, room_id: str, link: str, set_by: str | None = None) -> RoomEntry:
        entry = self.ensure_room(room_id)
        entry.video_link = link
        if set_by:
            entry.video_set_by = set_by
        return entry

    def get_video_link(self, room_id: str) -> str | None:
        entry = self._rooms.get(room_id)
        return None if entry is None else entry.video_link

    def list_participant_names(self, room_id: str) -> list[str]:
        entry = self._rooms.get(room_id)
        return [] if entry is None else list(entry.participants.values())

    def participant_ids(self, room_id: str) -> set[str]:
        entry = self._rooms.get(room_id)
        return set() if entry is None else set(entry.participants)
