from __future__ import annotations

from collections.abc import Collection
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from watchparty.models import Participant


class ParticipantRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, participant_id: str) -> Participant | None:
        res = await self.db.execute(select(Participant).where(Participant.id == participant_id))
        return res.scalar_one_or_none()

    async def upsert(self, *, participant_id: str, room_id: str, username: str, now: datetime) -> Participant:
        participant = await self.get(participant_id)
        if participant is None:
            participant = Participant(
                id=participant_id,
                room_id=room_id,
                username=username,
                joined_at=now,
                last_active=now,
            )
            self.db.add(participant)
        else:
            # moving rooms counts as a fresh join for ordering
            if participant.room_id != room_id:
                participant.joined_at = now
            participant.room_id = room_id
            participant.username = username
            participant.last_active = now
        await self.db.flush()
        return participant

    async def touch(self, participant_id: str, *, now: datetime) -> bool:
        res = await self.db.execute(
            update(Participant)
            .where(Participant.id == participant_id)
            .values(last_active=now)
        )
        return res.rowcount > 0

    async def list_for_room(self, room_id: str) -> list[Participant]:
        res = await self.db.execute(
            select(Participant)
            .where(Participant.room_id == room_id)
            .order_by(Participant.joined_at.asc(), Participant.id.asc())
        )
        return list(res.scalars().all())

    async def delete(self, participant_id: str) -> bool:
        res = await self.db.execute(delete(Participant).where(Participant.id == participant_id))
        return res.rowcount > 0

    async def delete_stale(self, *, threshold: datetime, keep: Collection[str] = ()) -> int:
        """
        Conditional delete of every row idle since before `threshold`.
        Rows whose id is in `keep` survive regardless of last_active.
        """
        stmt = delete(Participant).where(Participant.last_active < threshold)
        if keep:
            stmt = stmt.where(Participant.id.not_in(list(keep)))
        res = await self.db.execute(stmt)
        return res.rowcount or 0
