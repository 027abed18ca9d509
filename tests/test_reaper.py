from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from watchparty.runtime.chat_history import ChatHistory
from watchparty.schemas.ws import ChatMessageOut
from watchparty.services.reaper import StaleParticipantReaper


def _future(minutes: int = 10):
    return lambda: datetime.now(timezone.utc) + timedelta(minutes=minutes)


async def test_run_once_removes_orphans_and_keeps_live(store):
    await store.upsert_participant("live", "r1", "Alice")
    await store.upsert_participant("orphan", "r1", "Ghost")

    reaper = StaleParticipantReaper(store, threshold=300, live_ids=lambda: {"live"}, now=_future())

    assert await reaper.run_once() == 1
    assert [p.id for p in await store.list_participants("r1")] == ["live"]


async def test_recent_rows_survive(store):
    await store.upsert_participant("c1", "r1", "Alice")

    reaper = StaleParticipantReaper(store, threshold=300)

    assert await reaper.run_once() == 0
    assert len(await store.list_participants("r1")) == 1


async def test_store_errors_do_not_escape(store):
    store.down = True
    reaper = StaleParticipantReaper(store, threshold=0)

    assert await reaper.run_once() == 0


async def test_idle_chat_buffers_are_pruned(store):
    history = ChatHistory()
    old = datetime.now(timezone.utc) - timedelta(hours=3)
    for room_id in ("empty", "busy"):
        history.append(room_id, ChatMessageOut(sender="A", message="m", timestamp=old, senderId="c"))

    reaper = StaleParticipantReaper(
        store,
        chat_history=history,
        live_rooms=lambda: ["busy"],
        chat_ttl=3600,
    )
    await reaper.run_once()

    assert history.room_ids() == ["busy"]


async def test_background_loop_runs_and_stops(store):
    await store.upsert_participant("orphan", "r1", "Ghost")
    reaper = StaleParticipantReaper(store, interval=0.01, threshold=0, now=_future())

    reaper.start()
    assert reaper.running
    for _ in range(100):
        if not await store.list_participants("r1"):
            break
        await asyncio.sleep(0.01)
    await reaper.stop()

    assert not reaper.running
    assert await store.list_participants("r1") == []


async def test_background_loop_survives_a_failing_sweep(store):
    await store.upsert_participant("orphan", "r1", "Ghost")
    calls = []

    def live_ids():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("session table unavailable")
        return set()

    reaper = StaleParticipantReaper(store, interval=0.01, threshold=0, live_ids=live_ids, now=_future())
    reaper.start()
    for _ in range(100):
        if not await store.list_participants("r1"):
            break
        await asyncio.sleep(0.01)
    await reaper.stop()

    assert len(calls) >= 2
    assert await store.list_participants("r1") == []
