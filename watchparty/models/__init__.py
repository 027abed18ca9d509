from watchparty.models.base import Base
from watchparty.models.room import Room
from watchparty.models.participant import Participant

__all__ = [
    "Base",
    "Room",
    "Participant",
]
