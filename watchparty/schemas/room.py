from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel
from typing import List


class RoomOut(BaseModel):
    room_id: str
    video_link: str | None = None
    created_at: datetime | None = None
    participants: List[str] = []
    participant_count: int = 0
