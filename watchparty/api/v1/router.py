from fastapi import APIRouter
from watchparty.api.v1 import rooms, ws_rooms

router = APIRouter()
router.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
router.include_router(ws_rooms.router, tags=["rooms-ws"])
