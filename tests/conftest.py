from __future__ import annotations

import pytest

from watchparty.core.db import make_engine, make_session_factory
from watchparty.runtime.chat_history import ChatHistory
from watchparty.runtime.connections import ConnectionHub
from watchparty.runtime.directory import RoomDirectory
from watchparty.services.room_store import MemoryRoomStore, SqlRoomStore
from watchparty.services.session_coordinator import SessionCoordinator

from tests.fakes import FakeSocket, FlakyStore


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def hub() -> ConnectionHub:
    return ConnectionHub()


@pytest.fixture
def coordinator(store, hub) -> SessionCoordinator:
    return SessionCoordinator(
        directory=RoomDirectory(),
        chat_history=ChatHistory(capacity=50),
        store=store,
        hub=hub,
    )


@pytest.fixture
def connect(coordinator, hub):
    def _connect(conn_id: str) -> FakeSocket:
        ws = FakeSocket()
        hub.register(conn_id, ws)
        coordinator.connect(conn_id)
        return ws

    return _connect


@pytest.fixture
def join(coordinator):
    async def _join(conn_id: str, room_id: str, username: str) -> None:
        await coordinator.handle(conn_id, {"type": "join-room", "roomId": room_id, "username": username})

    return _join


@pytest.fixture
async def sql_store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'watchparty.db'}")
    store = SqlRoomStore(make_session_factory(engine), engine=engine)
    await store.prepare()
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sql"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryRoomStore()
        return
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'watchparty.db'}")
    store = SqlRoomStore(make_session_factory(engine), engine=engine)
    await store.prepare()
    yield store
    await store.close()
