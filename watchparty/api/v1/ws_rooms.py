from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from watchparty.runtime.connections import ConnectionHub
from watchparty.services.session_coordinator import SessionCoordinator


router = APIRouter(tags=["rooms-ws"])
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def room_ws(websocket: WebSocket):
    coordinator: SessionCoordinator = websocket.app.state.coordinator
    hub: ConnectionHub = websocket.app.state.hub

    await websocket.accept()

    conn_id = uuid.uuid4().hex
    hub.register(conn_id, websocket)
    coordinator.connect(conn_id)

    try:
        while True:
            raw = await websocket.receive_text()

            # Parse incoming message
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON frame from %s", conn_id)
                continue

            # one event at a time keeps each sender's order intact
            await coordinator.handle(conn_id, data)

    except WebSocketDisconnect:
        pass
    finally:
        await coordinator.disconnect(conn_id)
        hub.unregister(conn_id)
