from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from watchparty.core.errors import StoreUnavailableError, ValidationError
from watchparty.runtime.chat_history import ChatHistory
from watchparty.runtime.connections import ConnectionHub
from watchparty.runtime.directory import RoomDirectory
from watchparty.schemas.ws import (
    CLIENT_EVENTS,
    ChatHistoryOut,
    ChatMessageIn,
    ChatMessageOut,
    ErrorOut,
    GetVideoIn,
    HeartbeatIn,
    JoinRoomIn,
    RequestSyncIn,
    RoomJoinedOut,
    RoomLeftOut,
    SetVideoIn,
    SyncRequestOut,
    SyncResponseIn,
    SyncResponseOut,
    VideoPauseIn,
    VideoPauseOut,
    VideoPlayIn,
    VideoPlayOut,
    VideoSeekIn,
    VideoSeekOut,
    VideoSetOut,
    VoiceSignalIn,
    VoiceSignalOut,
    VoiceStateChangeIn,
    VoiceStateChangeOut,
)
from watchparty.services.room_store import RoomRecord, RoomStore

# setBy reported when a remembered link is replayed and nobody is known to have set it
UNKNOWN_SETTER = "someone in the room"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    CONNECTED = "connected"
    IN_ROOM = "in_room"
    CLOSED = "closed"


@dataclass
class Session:
    conn_id: str
    state: SessionState = SessionState.CONNECTED
    room_id: str | None = None
    username: str | None = None
    last_touch: float = 0.0


class SessionCoordinator:
    """
    Owns connection lifecycle and every room protocol: join/leave, video state,
    playback relays, clock sync, chat and voice signaling.

    Membership changes for one room run under that room's asyncio.Lock so a
    join and a disconnect never interleave on the directory. The store is a
    backstop: when it fails the event is still handled from the directory.
    """

    def __init__(
        self,
        *,
        directory: RoomDirectory,
        chat_history: ChatHistory,
        store: RoomStore,
        hub: ConnectionHub,
        touch_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.directory = directory
        self.chat_history = chat_history
        self.store = store
        self.hub = hub
        self.touch_interval = touch_interval
        self.clock = clock

        self._sessions: dict[str, Session] = {}
        # locks vanish once no coroutine holds or awaits them
        self._room_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self._handlers: dict[str, Callable[[Session, Any], Awaitable[None]]] = {
            "join-room": self._on_join_room,
            "set-video": self._on_set_video,
            "get-video": self._on_get_video,
            "video-play": self._on_video_play,
            "video-pause": self._on_video_pause,
            "video-seek": self._on_video_seek,
            "request-sync": self._on_request_sync,
            "sync-response": self._on_sync_response,
            "chat-message": self._on_chat_message,
            "voice-signal": self._on_voice_signal,
            "voice-state-change": self._on_voice_state_change,
            "heartbeat": self._on_heartbeat,
        }

    # ---------- lifecycle ----------

    def connect(self, conn_id: str) -> Session:
        session = Session(conn_id=conn_id)
        self._sessions[conn_id] = session
        self.logger.info("User connected: %s", conn_id)
        return session

    async def disconnect(self, conn_id: str) -> None:
        session = self._sessions.pop(conn_id, None)
        if session is None:
            return
        self.logger.info("User disconnected: %s", conn_id)
        if session.room_id is not None:
            await self._leave(session)
        session.state = SessionState.CLOSED

    def session(self, conn_id: str) -> Session | None:
        return self._sessions.get(conn_id)

    def live_participant_ids(self) -> set[str]:
        return {s.conn_id for s in self._sessions.values() if s.state is SessionState.IN_ROOM}

    # ---------- dispatch ----------

    async def handle(self, conn_id: str, data: Any) -> None:
        """Process one decoded client event. Never raises for bad input or store failures."""
        session = self._sessions.get(conn_id)
        if session is None or session.state is SessionState.CLOSED:
            self.logger.debug("Ignoring event from closed connection %s", conn_id)
            return

        event_type = data.get("type") if isinstance(data, dict) else None
        handler = self._handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            self.logger.debug("Ignoring unknown event type %r from %s", event_type, conn_id)
            return

        try:
            event = self._parse(event_type, data)
            if not isinstance(event, HeartbeatIn):
                await self._touch(session)
            await handler(session, event)
        except ValidationError as e:
            self.logger.info("Rejected %s from %s: %s", event_type, conn_id, e.message)
            await self.hub.send(conn_id, ErrorOut(code=e.code, message=e.message))
        except Exception:
            self.logger.exception("Error handling %s from %s", event_type, conn_id)

    @staticmethod
    def _parse(event_type: str, data: dict) -> BaseModel:
        model = CLIENT_EVENTS[event_type]
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            code = "join-rejected" if event_type == "join-room" else "invalid-event"
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(code, f"invalid {event_type}: {details}") from e

    def _is_open(self, session: Session) -> bool:
        return self._sessions.get(session.conn_id) is session

    def _room_lock(self, room_id: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[room_id] = lock
        return lock

    async def _touch(self, session: Session, *, force: bool = False) -> None:
        if session.state is not SessionState.IN_ROOM:
            return
        now = self.clock()
        if not force and now - session.last_touch < self.touch_interval:
            return
        session.last_touch = now
        try:
            await self.store.touch_participant(session.conn_id)
        except StoreUnavailableError as e:
            self.logger.warning("Could not refresh last_active for %s: %s", session.conn_id, e)

    async def _participant_names(self, room_id: str) -> list[str]:
        """Names from the store (covers every session); falls back to the directory."""
        try:
            rows = await self.store.list_participants(room_id)
        except StoreUnavailableError as e:
            self.logger.warning("Listing participants of %s from store failed, using cache: %s", room_id, e)
            return self.directory.list_participant_names(room_id)
        return [row.username for row in rows]

    # ---------- membership ----------

    async def _on_join_room(self, session: Session, event: JoinRoomIn) -> None:
        room_id, username = event.roomId, event.username
        conn_id = session.conn_id

        if session.room_id is not None and session.room_id != room_id:
            self.logger.info("%s switching from room %s to %s", conn_id, session.room_id, room_id)
            await self._leave(session)

        async with self._room_lock(room_id):
            if not self._is_open(session):
                self.logger.info("Dropping join of %s to %s: connection closed while waiting", conn_id, room_id)
                return

            # bound before any store I/O so a disconnect mid-join still cleans up
            session.state = SessionState.IN_ROOM
            session.room_id = room_id
            session.username = username
            session.last_touch = self.clock()

            self.logger.info("User %s (%s) joining room: %s", username, conn_id, room_id)

            stored_room: RoomRecord | None = None
            persisted = False
            try:
                stored_room = await self.store.upsert_room(room_id)
                await self.store.upsert_participant(conn_id, room_id, username)
                persisted = True
            except StoreUnavailableError as e:
                self.logger.warning("Persisting join of %s to %s failed, continuing cache-only: %s", conn_id, room_id, e)

            if not self._is_open(session):
                # disconnect is queued on this lock; its leave deletes the row
                self.logger.info("Connection %s closed during join of %s", conn_id, room_id)
                return

            entry = self.directory.add_participant(room_id, conn_id, username)
            if entry.video_link is None and stored_room is not None and stored_room.video_link:
                self.directory.set_video_link(room_id, stored_room.video_link)
            self.hub.join(room_id, conn_id)

            if persisted:
                participants = await self._participant_names(room_id)
            else:
                participants = self.directory.list_participant_names(room_id)

            await self.hub.broadcast(room_id, RoomJoinedOut(username=username, participants=participants))

            if entry.video_link:
                self.logger.info("Sending existing video to new participant: %s", username)
                await self.hub.send(conn_id, VideoSetOut(
                    videoLink=entry.video_link,
                    setBy=entry.video_set_by or UNKNOWN_SETTER,
                ))

            messages = self.chat_history.recent(room_id)
            if messages:
                self.logger.info("Sending %d chat messages to new participant: %s", len(messages), username)
                await self.hub.send(conn_id, ChatHistoryOut(messages=messages))

    async def _leave(self, session: Session) -> None:
        room_id, username, conn_id = session.room_id, session.username, session.conn_id
        if room_id is None:
            return

        async with self._room_lock(room_id):
            session.room_id = None
            if session.state is SessionState.IN_ROOM:
                session.state = SessionState.CONNECTED

            try:
                await self.store.remove_participant(conn_id)
            except StoreUnavailableError as e:
                self.logger.warning("Removing participant %s from store failed: %s", conn_id, e)

            # false when the join was abandoned before it reached the directory
            was_member = conn_id in self.directory.participant_ids(room_id)
            evicted = self.directory.remove_participant(room_id, conn_id)
            self.hub.leave(room_id, conn_id)
            self.logger.info("User %s (%s) left room: %s", username, conn_id, room_id)
            if evicted:
                self.logger.info("Room %s is empty, evicted from cache", room_id)

            if not was_member or not self.hub.members(room_id):
                return
            participants = await self._participant_names(room_id)
            await self.hub.broadcast(room_id, RoomLeftOut(username=username or "", participants=participants))

    # ---------- video state ----------

    async def _on_set_video(self, session: Session, event: SetVideoIn) -> None:
        room_id = event.roomId
        set_by = event.setBy or session.username or UNKNOWN_SETTER
        self.logger.info("Setting video for room %s by %s: %s", room_id, set_by, event.videoLink)

        async with self._room_lock(room_id):
            try:
                await self.store.upsert_room(room_id, video_link=event.videoLink)
            except StoreUnavailableError as e:
                self.logger.warning("Persisting video link for %s failed: %s", room_id, e)

            self.directory.set_video_link(room_id, event.videoLink, set_by=set_by)
            await self.hub.broadcast(room_id, VideoSetOut(videoLink=event.videoLink, setBy=set_by))

    async def _on_get_video(self, session: Session, event: GetVideoIn) -> None:
        room_id = event.roomId

        async with self._room_lock(room_id):
            entry = self.directory.get(room_id)
            link = entry.video_link if entry is not None else None
            set_by = entry.video_set_by if entry is not None else None

            if link is None:
                try:
                    record = await self.store.get_room(room_id)
                except StoreUnavailableError as e:
                    self.logger.warning("Reading video link for %s failed: %s", room_id, e)
                    record = None
                if record is not None and record.video_link:
                    link = record.video_link
                    self.directory.set_video_link(room_id, link)

        if link:
            await self.hub.send(session.conn_id, VideoSetOut(videoLink=link, setBy=set_by or UNKNOWN_SETTER))

    # ---------- relays (sender excluded, nothing persisted) ----------

    async def _on_video_play(self, session: Session, event: VideoPlayIn) -> None:
        await self.hub.broadcast(event.roomId, VideoPlayOut(), exclude=session.conn_id)

    async def _on_video_pause(self, session: Session, event: VideoPauseIn) -> None:
        await self.hub.broadcast(event.roomId, VideoPauseOut(), exclude=session.conn_id)

    async def _on_video_seek(self, session: Session, event: VideoSeekIn) -> None:
        await self.hub.broadcast(event.roomId, VideoSeekOut(currentTime=event.currentTime), exclude=session.conn_id)

    async def _on_request_sync(self, session: Session, event: RequestSyncIn) -> None:
        await self.hub.broadcast(event.roomId, SyncRequestOut(), exclude=session.conn_id)

    async def _on_sync_response(self, session: Session, event: SyncResponseIn) -> None:
        await self.hub.broadcast(
            event.roomId,
            SyncResponseOut.model_validate(event.model_dump()),
            exclude=session.conn_id,
        )

    # ---------- chat ----------

    async def _on_chat_message(self, session: Session, event: ChatMessageIn) -> None:
        message = ChatMessageOut(
            sender=event.sender,
            message=event.message,
            timestamp=_utc_now(),
            senderId=session.conn_id,
        )
        self.logger.debug("Chat message in room %s from %s", event.roomId, event.sender)

        # history order and broadcast order must agree
        async with self._room_lock(event.roomId):
            self.chat_history.append(event.roomId, message)
            await self.hub.broadcast(event.roomId, message)

    # ---------- voice ----------

    async def _on_voice_signal(self, session: Session, event: VoiceSignalIn) -> None:
        target = self._sessions.get(event.to)
        if (
            session.room_id is None
            or session.room_id != event.roomId
            or target is None
            or target.room_id != session.room_id
        ):
            self.logger.debug("Dropping voice signal from %s to %s outside a shared room", session.conn_id, event.to)
            return
        self.logger.debug("Voice signal from %s to %s in room %s", session.conn_id, event.to, event.roomId)
        await self.hub.send(event.to, VoiceSignalOut(signal=event.signal, from_=session.conn_id))

    async def _on_voice_state_change(self, session: Session, event: VoiceStateChangeIn) -> None:
        await self.hub.broadcast(
            event.roomId,
            VoiceStateChangeOut(userId=session.conn_id, username=session.username, isMuted=event.isMuted),
            exclude=session.conn_id,
        )

    async def _on_heartbeat(self, session: Session, event: HeartbeatIn) -> None:
        await self._touch(session, force=True)
