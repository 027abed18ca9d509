from __future__ import annotations

import logging
import secrets
import string
import time

from fastapi import APIRouter, HTTPException, Request

from watchparty.core.errors import StoreUnavailableError
from watchparty.schemas.room import RoomOut
from watchparty.services.room_store import RoomRecord
from watchparty.services.session_coordinator import SessionCoordinator

router = APIRouter()
logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(n: int) -> str:
    out = ""
    while True:
        n, rem = divmod(n, 36)
        out = _BASE36[rem] + out
        if n == 0:
            return out


def generate_room_id() -> str:
    """room-<epoch ms in base36>-<6 random base36 chars>"""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"room-{stamp}-{suffix}"


def _coordinator(request: Request) -> SessionCoordinator:
    return request.app.state.coordinator


def _build_room_out(coordinator: SessionCoordinator, room_id: str, record: RoomRecord | None) -> RoomOut:
    """Live membership from the directory, durable fields from the store."""
    entry = coordinator.directory.get(room_id)
    video_link = entry.video_link if entry is not None and entry.video_link else None
    if video_link is None and record is not None:
        video_link = record.video_link
    participants = coordinator.directory.list_participant_names(room_id)
    return RoomOut(
        room_id=room_id,
        video_link=video_link,
        created_at=record.created_at if record is not None else (entry.created_at if entry else None),
        participants=participants,
        participant_count=len(participants),
    )


@router.post("", response_model=RoomOut)
async def create_room(request: Request) -> RoomOut:
    coordinator = _coordinator(request)
    room_id = generate_room_id()
    try:
        record = await coordinator.store.upsert_room(room_id)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _build_room_out(coordinator, room_id, record)


@router.get("/{room_id}", response_model=RoomOut)
async def get_room(room_id: str, request: Request) -> RoomOut:
    coordinator = _coordinator(request)
    try:
        record = await coordinator.store.get_room(room_id)
    except StoreUnavailableError as e:
        logger.warning("Reading room %s from store failed, using cache: %s", room_id, e)
        record = None
    if record is None and room_id not in coordinator.directory:
        raise HTTPException(status_code=404, detail="room not found")
    return _build_room_out(coordinator, room_id, record)
