from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from watchparty.models import Room


class RoomRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_room(self, room_id: str) -> Room | None:
        res = await self.db.execute(select(Room).where(Room.id == room_id))
        return res.scalar_one_or_none()

    async def get_or_create_room(self, room_id: str) -> Room:
        room = await self.get_room(room_id)
        if room is None:
            room = Room(id=room_id)
            self.db.add(room)
            await self.db.flush()
            await self.db.refresh(room)  # load server-side created_at
        return room

    async def set_video_link(self, room_id: str, video_link: str) -> Room:
        room = await self.get_or_create_room(room_id)
        if room.video_link != video_link:
            room.video_link = video_link
            await self.db.flush()
        return room
