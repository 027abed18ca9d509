from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from watchparty.core.config import Settings
from watchparty.main import create_app

VIDEO = "https://example.com/a.mp4"


@pytest.fixture
def client():
    app = create_app(Settings(STORE_BACKEND="memory", REAPER_INTERVAL_SECONDS=3600))
    with TestClient(app) as c:
        yield c


def _join(ws, room_id: str, username: str) -> None:
    ws.send_json({"type": "join-room", "roomId": room_id, "username": username})


def test_room_session_over_websocket(client):
    with client.websocket_connect("/v1/ws") as alice:
        _join(alice, "r1", "Alice")
        assert alice.receive_json() == {"type": "room-joined", "username": "Alice", "participants": ["Alice"]}

        with client.websocket_connect("/v1/ws") as bob:
            _join(bob, "r1", "Bob")
            joined = {"type": "room-joined", "username": "Bob", "participants": ["Alice", "Bob"]}
            assert alice.receive_json() == joined
            assert bob.receive_json() == joined

            alice.send_json({"type": "set-video", "roomId": "r1", "videoLink": VIDEO, "setBy": "Alice"})
            video_set = {"type": "video-set", "videoLink": VIDEO, "setBy": "Alice"}
            assert alice.receive_json() == video_set
            assert bob.receive_json() == video_set

            bob.send_json({"type": "video-seek", "roomId": "r1", "currentTime": 42.5})
            assert alice.receive_json() == {"type": "video-seek", "currentTime": 42.5}

            room = client.get("/v1/rooms/r1").json()
            assert room["participants"] == ["Alice", "Bob"]
            assert room["video_link"] == VIDEO

        assert alice.receive_json() == {"type": "room-left", "username": "Bob", "participants": ["Alice"]}


def test_bad_frames_do_not_close_the_connection(client):
    with client.websocket_connect("/v1/ws") as ws:
        ws.send_text("not json")
        ws.send_json({"type": "no-such-event"})
        _join(ws, "r1", "")
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "join-rejected"

        _join(ws, "r1", "Alice")
        assert ws.receive_json()["type"] == "room-joined"


def test_create_and_fetch_room(client):
    res = client.post("/v1/rooms")
    assert res.status_code == 200
    room_id = res.json()["room_id"]
    assert room_id.startswith("room-")

    fetched = client.get(f"/v1/rooms/{room_id}").json()
    assert fetched["room_id"] == room_id
    assert fetched["participants"] == []
    assert fetched["video_link"] is None


def test_unknown_room_is_404(client):
    assert client.get("/v1/rooms/missing").status_code == 404


def test_generated_room_ids_are_unique():
    from watchparty.api.v1.rooms import generate_room_id

    ids = {generate_room_id() for _ in range(200)}
    assert len(ids) == 200
