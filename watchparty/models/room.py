from datetime import datetime
from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from watchparty.models.base import Base

class Room(Base):
    __tablename__ = "rooms"

    # opaque, client-supplied or generated by POST /v1/rooms
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    video_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    participants: Mapped[list["Participant"]] = relationship(back_populates="room", passive_deletes=True)
