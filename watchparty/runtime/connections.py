from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, DefaultDict, Dict, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder


class ConnectionHub:
    """
    Open websockets keyed by connection id, plus room-scoped delivery groups.

    Delivery to an unknown connection or an empty room is a silent no-op.
    """

    def __init__(self):
        self._sockets: Dict[str, WebSocket] = {}
        self._rooms: DefaultDict[str, Set[str]] = defaultdict(set)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def register(self, conn_id: str, websocket: WebSocket) -> None:
        self._sockets[conn_id] = websocket

    def unregister(self, conn_id: str) -> None:
        self._prune(conn_id)

    def is_connected(self, conn_id: str) -> bool:
        return conn_id in self._sockets

    def join(self, room_id: str, conn_id: str) -> None:
        self._rooms[room_id].add(conn_id)

    def leave(self, room_id: str, conn_id: str) -> None:
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(conn_id)
        if not members:
            del self._rooms[room_id]

    def members(self, room_id: str) -> Set[str]:
        return set(self._rooms.get(room_id, ()))

    async def send(self, conn_id: str, model: Any) -> bool:
        ws = self._sockets.get(conn_id)
        if ws is None:
            self.logger.debug("Dropping %s for unknown connection %s", getattr(model, "type", "event"), conn_id)
            return False
        try:
            await ws.send_json(jsonable_encoder(model))
            return True
        except Exception as e:
            self.logger.info("Send to %s failed, pruning socket: %s", conn_id, e)
            self._prune(conn_id)
            return False

    async def broadcast(self, room_id: str, model: Any, *, exclude: str | None = None) -> int:
        """
        Send a pydantic model to every connection in the room except `exclude`.
        Uses jsonable_encoder to safely serialize datetimes. Returns the number delivered.
        """
        payload = jsonable_encoder(model)
        dead: list[str] = []
        delivered = 0

        # sorted for a stable fan-out order
        for conn_id in sorted(self._rooms.get(room_id, ())):
            if conn_id == exclude:
                continue
            ws = self._sockets.get(conn_id)
            if ws is None:
                dead.append(conn_id)
                continue
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception:
                dead.append(conn_id)

        for conn_id in dead:
            self._prune(conn_id)
        return delivered

    async def close_all(self, code: int = 1001, reason: str = "server shutdown") -> None:
        for conn_id, ws in list(self._sockets.items()):
            try:
                await ws.close(code=code, reason=reason)
            except Exception as e:
                self.logger.warning("Error closing websocket %s: %s", conn_id, e)
        self._sockets.clear()
        self._rooms.clear()

    def _prune(self, conn_id: str) -> None:
        # the websocket endpoint still owns disconnect handling for this id
        self._sockets.pop(conn_id, None)
        for room_id in [r for r, members in self._rooms.items() if conn_id in members]:
            self.leave(room_id, conn_id)
