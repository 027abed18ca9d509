from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from watchparty.models.base import Base

class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        Index("ix_participants_room_id_joined_at", "room_id", "joined_at"),
        Index("ix_participants_last_active", "last_active"),
    )

    # connection id issued by the websocket endpoint
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    room_id: Mapped[str] = mapped_column(String(255), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False)

    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_active: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    room: Mapped["Room"] = relationship(back_populates="participants")
