from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, List, Union
from pydantic import BaseModel, ConfigDict, Field


# ---- client -> server ----

class JoinRoomIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Literal["join-room"] = "join-room"
    roomId: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=100)


class SetVideoIn(BaseModel):
    type: Literal["set-video"] = "set-video"
    roomId: str = Field(..., min_length=1, max_length=255)
    videoLink: str = Field(..., min_length=1, max_length=2048)
    setBy: str = ""


class GetVideoIn(BaseModel):
    type: Literal["get-video"] = "get-video"
    roomId: str = Field(..., min_length=1)


class VideoPlayIn(BaseModel):
    type: Literal["video-play"] = "video-play"
    roomId: str = Field(..., min_length=1)


class VideoPauseIn(BaseModel):
    type: Literal["video-pause"] = "video-pause"
    roomId: str = Field(..., min_length=1)


class VideoSeekIn(BaseModel):
    type: Literal["video-seek"] = "video-seek"
    roomId: str = Field(..., min_length=1)
    currentTime: float = Field(..., ge=0)


class RequestSyncIn(BaseModel):
    type: Literal["request-sync"] = "request-sync"
    roomId: str = Field(..., min_length=1)


class SyncResponseIn(BaseModel):
    # forwarded to the room as-is, extra fields included
    model_config = ConfigDict(extra="allow")

    type: Literal["sync-response"] = "sync-response"
    roomId: str = Field(..., min_length=1)
    currentTime: float = Field(..., ge=0)
    isPaused: bool
    videoLink: str | None = None


class ChatMessageIn(BaseModel):
    type: Literal["chat-message"] = "chat-message"
    roomId: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=1000)
    sender: str = Field(..., min_length=1, max_length=100)


class VoiceSignalIn(BaseModel):
    type: Literal["voice-signal"] = "voice-signal"
    roomId: str = Field(..., min_length=1)
    to: str = Field(..., min_length=1)
    signal: dict[str, Any]  # offer | answer | ice-candidate, opaque to the server


class VoiceStateChangeIn(BaseModel):
    type: Literal["voice-state-change"] = "voice-state-change"
    roomId: str = Field(..., min_length=1)
    isMuted: bool


class HeartbeatIn(BaseModel):
    type: Literal["heartbeat"] = "heartbeat"


ClientToServer = Union[
    JoinRoomIn,
    SetVideoIn,
    GetVideoIn,
    VideoPlayIn,
    VideoPauseIn,
    VideoSeekIn,
    RequestSyncIn,
    SyncResponseIn,
    ChatMessageIn,
    VoiceSignalIn,
    VoiceStateChangeIn,
    HeartbeatIn,
]

CLIENT_EVENTS: dict[str, type[BaseModel]] = {
    model.model_fields["type"].default: model
    for model in ClientToServer.__args__
}


# ---- server -> clients ----

class RoomJoinedOut(BaseModel):
    type: Literal["room-joined"] = "room-joined"
    username: str
    participants: List[str]


class RoomLeftOut(BaseModel):
    type: Literal["room-left"] = "room-left"
    username: str
    participants: List[str]


class VideoSetOut(BaseModel):
    type: Literal["video-set"] = "video-set"
    videoLink: str
    setBy: str


class VideoPlayOut(BaseModel):
    type: Literal["video-play"] = "video-play"


class VideoPauseOut(BaseModel):
    type: Literal["video-pause"] = "video-pause"


class VideoSeekOut(BaseModel):
    type: Literal["video-seek"] = "video-seek"
    currentTime: float


class SyncRequestOut(BaseModel):
    type: Literal["sync-request"] = "sync-request"


class SyncResponseOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["sync-response"] = "sync-response"
    roomId: str
    currentTime: float
    isPaused: bool
    videoLink: str | None = None


class ChatMessageOut(BaseModel):
    type: Literal["chat-message"] = "chat-message"
    sender: str
    message: str
    timestamp: datetime
    senderId: str


class ChatHistoryOut(BaseModel):
    type: Literal["chat-history"] = "chat-history"
    messages: List[ChatMessageOut] = []


class VoiceSignalOut(BaseModel):
    type: Literal["voice-signal"] = "voice-signal"
    signal: dict[str, Any]
    # always the sender's connection id, never client-supplied
    from_: str = Field(..., serialization_alias="from")


class VoiceStateChangeOut(BaseModel):
    type: Literal["voice-state-change"] = "voice-state-change"
    userId: str
    username: str | None
    isMuted: bool


class ErrorOut(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str


ServerToClient = Union[
    RoomJoinedOut,
    RoomLeftOut,
    VideoSetOut,
    VideoPlayOut,
    VideoPauseOut,
    VideoSeekOut,
    SyncRequestOut,
    SyncResponseOut,
    ChatMessageOut,
    ChatHistoryOut,
    VoiceSignalOut,
    VoiceStateChangeOut,
    ErrorOut,
]
