from __future__ import annotations

import abc
import logging
from collections.abc import Collection
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from watchparty.core.config import Settings
from watchparty.core.db import create_tables, make_engine, make_session_factory
from watchparty.core.errors import StoreUnavailableError
from watchparty.models import Participant, Room
from watchparty.repos.participant_repo import ParticipantRepo
from watchparty.repos.room_repo import RoomRepo


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes; everything we write is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RoomRecord:
    id: str
    video_link: str | None
    created_at: datetime


@dataclass(frozen=True)
class ParticipantRecord:
    id: str
    room_id: str
    username: str
    joined_at: datetime
    last_active: datetime


class RoomStore(abc.ABC):
    """
    Durable record of rooms and room membership.

    The coordinator is the only writer apart from the reaper, whose deletes
    are a single conditional statement so both can run concurrently.
    Implementations raise StoreUnavailableError when the backend fails.
    """

    @abc.abstractmethod
    async def upsert_room(self, room_id: str, *, video_link: str | None = None) -> RoomRecord:
        """Create the room if absent; overwrite video_link only when one is given."""

    @abc.abstractmethod
    async def get_room(self, room_id: str) -> RoomRecord | None: ...

    @abc.abstractmethod
    async def upsert_participant(self, participant_id: str, room_id: str, username: str) -> ParticipantRecord:
        """Insert or replace a participant row (creating the room row if needed)."""

    @abc.abstractmethod
    async def touch_participant(self, participant_id: str) -> bool: ...

    @abc.abstractmethod
    async def list_participants(self, room_id: str) -> list[ParticipantRecord]:
        """Rows for the room in join order."""

    @abc.abstractmethod
    async def remove_participant(self, participant_id: str) -> bool: ...

    @abc.abstractmethod
    async def remove_stale_participants(self, threshold: datetime, *, keep: Collection[str] = ()) -> int:
        """Delete rows idle since before `threshold`, except ids in `keep`. Returns the count."""

    async def prepare(self) -> None:
        """Create backing tables or connections; called once at startup."""
        return None

    async def close(self) -> None:
        return None


class MemoryRoomStore(RoomStore):
    """Cache-only backend. Rows live as long as the process."""

    def __init__(self):
        self._rooms: dict[str, RoomRecord] = {}
        self._participants: dict[str, ParticipantRecord] = {}

    async def upsert_room(self, room_id: str, *, video_link: str | None = None) -> RoomRecord:
        room = self._rooms.get(room_id)
        if room is None:
            room = RoomRecord(id=room_id, video_link=None, created_at=_utc_now())
        if video_link is not None:
            room = replace(room, video_link=video_link)
        self._rooms[room_id] = room
        return room

    async def get_room(self, room_id: str) -> RoomRecord | None:
        return self._rooms.get(room_id)

    async def upsert_participant(self, participant_id: str, room_id: str, username: str) -> ParticipantRecord:
        await self.upsert_room(room_id)
        now = _utc_now()
        existing = self._participants.get(participant_id)
        if existing is not None and existing.room_id == room_id:
            joined_at = existing.joined_at
        else:
            # re-insert so dict order tracks join order
            self._participants.pop(participant_id, None)
            joined_at = now
        record = ParticipantRecord(
            id=participant_id,
            room_id=room_id,
            username=username,
            joined_at=joined_at,
            last_active=now,
        )
        self._participants[participant_id] = record
        return record

    async def touch_participant(self, participant_id: str) -> bool:
        record = self._participants.get(participant_id)
        if record is None:
            return False
        self._participants[participant_id] = replace(record, last_active=_utc_now())
        return True

    async def list_participants(self, room_id: str) -> list[ParticipantRecord]:
        return [p for p in self._participants.values() if p.room_id == room_id]

    async def remove_participant(self, participant_id: str) -> bool:
        return self._participants.pop(participant_id, None) is not None

    async def remove_stale_participants(self, threshold: datetime, *, keep: Collection[str] = ()) -> int:
        stale = [
            pid for pid, p in self._participants.items()
            if p.last_active < threshold and pid not in keep
        ]
        for pid in stale:
            del self._participants[pid]
        return len(stale)


class SqlRoomStore(RoomStore):
    """
    SQLAlchemy backend (sqlite+aiosqlite locally, postgresql+asyncpg in prod).

    Every operation runs in its own session and transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, engine: AsyncEngine | None = None):
        self.session_factory = session_factory
        self.engine = engine
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @staticmethod
    def _room_record(room: Room) -> RoomRecord:
        return RoomRecord(id=room.id, video_link=room.video_link, created_at=_as_utc(room.created_at))

    @staticmethod
    def _participant_record(p: Participant) -> ParticipantRecord:
        return ParticipantRecord(
            id=p.id,
            room_id=p.room_id,
            username=p.username,
            joined_at=_as_utc(p.joined_at),
            last_active=_as_utc(p.last_active),
        )

    def _unavailable(self, op: str, exc: Exception) -> StoreUnavailableError:
        self.logger.debug("Store operation %s failed: %s", op, exc)
        return StoreUnavailableError(f"{op} failed: {exc}")

    async def upsert_room(self, room_id: str, *, video_link: str | None = None) -> RoomRecord:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    rooms = RoomRepo(db)
                    if video_link is None:
                        room = await rooms.get_or_create_room(room_id)
                    else:
                        room = await rooms.set_video_link(room_id, video_link)
                    return self._room_record(room)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("upsert_room", e) from e

    async def get_room(self, room_id: str) -> RoomRecord | None:
        try:
            async with self.session_factory() as db:
                room = await RoomRepo(db).get_room(room_id)
                return None if room is None else self._room_record(room)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("get_room", e) from e

    async def upsert_participant(self, participant_id: str, room_id: str, username: str) -> ParticipantRecord:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await RoomRepo(db).get_or_create_room(room_id)
                    participant = await ParticipantRepo(db).upsert(
                        participant_id=participant_id,
                        room_id=room_id,
                        username=username,
                        now=_utc_now(),
                    )
                    return self._participant_record(participant)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("upsert_participant", e) from e

    async def touch_participant(self, participant_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    return await ParticipantRepo(db).touch(participant_id, now=_utc_now())
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("touch_participant", e) from e

    async def list_participants(self, room_id: str) -> list[ParticipantRecord]:
        try:
            async with self.session_factory() as db:
                rows = await ParticipantRepo(db).list_for_room(room_id)
                return [self._participant_record(p) for p in rows]
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("list_participants", e) from e

    async def remove_participant(self, participant_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    return await ParticipantRepo(db).delete(participant_id)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("remove_participant", e) from e

    async def remove_stale_participants(self, threshold: datetime, *, keep: Collection[str] = ()) -> int:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    return await ParticipantRepo(db).delete_stale(threshold=threshold, keep=keep)
        except (SQLAlchemyError, OSError) as e:
            raise self._unavailable("remove_stale_participants", e) from e

    async def prepare(self) -> None:
        if self.engine is not None:
            await create_tables(self.engine)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def build_store(settings: Settings) -> RoomStore:
    """Pick the store backend configured for this process."""
    if settings.STORE_BACKEND == "memory":
        return MemoryRoomStore()

    engine = make_engine(settings.DATABASE_URL_ASYNC)
    return SqlRoomStore(make_session_factory(engine), engine=engine)
