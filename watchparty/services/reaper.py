from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Collection

from watchparty.core.errors import StoreUnavailableError
from watchparty.runtime.chat_history import ChatHistory
from watchparty.services.room_store import RoomStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StaleParticipantReaper:
    """
    Background task: every `interval` seconds delete participant rows whose
    last_active is older than `threshold` seconds.

    Disconnects are not always delivered, so orphaned rows pile up in the
    store. Connections that are still open (`live_ids`) are never reaped.
    The in-memory directory is left alone; it only ever holds live connections.
    """

    def __init__(
        self,
        store: RoomStore,
        *,
        interval: float = 300,
        threshold: float = 300,
        live_ids: Callable[[], Collection[str]] = frozenset,
        chat_history: ChatHistory | None = None,
        live_rooms: Callable[[], Collection[str]] = frozenset,
        chat_ttl: float = 3600,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.interval = interval
        self.threshold = threshold
        self.live_ids = live_ids
        self.chat_history = chat_history
        self.live_rooms = live_rooms
        self.chat_ttl = chat_ttl
        self.now = now

        self._task: asyncio.Task | None = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                self.logger.exception("Reaper sweep failed")

    async def run_once(self) -> int:
        """One sweep. Store errors are logged; the loop keeps going."""
        now = self.now()
        removed = 0
        try:
            removed = await self.store.remove_stale_participants(
                now - timedelta(seconds=self.threshold),
                keep=set(self.live_ids()),
            )
        except StoreUnavailableError as e:
            self.logger.error("Error cleaning up inactive participants: %s", e)

        if removed > 0:
            self.logger.info("Cleaned up %d inactive participants", removed)

        if self.chat_history is not None:
            dropped = self.chat_history.prune(
                older_than=now - timedelta(seconds=self.chat_ttl),
                keep_rooms=set(self.live_rooms()),
            )
            if dropped:
                self.logger.info("Dropped chat history of %d idle rooms", dropped)

        return removed
