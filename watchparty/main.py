from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from watchparty.api.v1.router import router as v1_router
from watchparty.core import Settings, settings as default_settings
from watchparty.runtime.chat_history import ChatHistory
from watchparty.runtime.connections import ConnectionHub
from watchparty.runtime.directory import RoomDirectory
from watchparty.services.reaper import StaleParticipantReaper
from watchparty.services.room_store import RoomStore, build_store
from watchparty.services.session_coordinator import SessionCoordinator


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(settings: Settings | None = None, *, store: RoomStore | None = None) -> FastAPI:
    settings = settings or default_settings
    _configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("watchparty")

    store = store or build_store(settings)
    hub = ConnectionHub()
    coordinator = SessionCoordinator(
        directory=RoomDirectory(),
        chat_history=ChatHistory(capacity=settings.CHAT_HISTORY_SIZE),
        store=store,
        hub=hub,
        touch_interval=settings.TOUCH_INTERVAL_SECONDS,
    )
    reaper = StaleParticipantReaper(
        store,
        interval=settings.REAPER_INTERVAL_SECONDS,
        threshold=settings.STALE_PARTICIPANT_SECONDS,
        live_ids=coordinator.live_participant_ids,
        chat_history=coordinator.chat_history,
        live_rooms=lambda: list(coordinator.directory),
        chat_ttl=settings.CHAT_HISTORY_TTL_SECONDS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables, start the stale-participant reaper; undo on shutdown."""
        if settings.CREATE_TABLES:
            await store.prepare()
        reaper.start()
        logger.info("Watchparty server started (store=%s)", settings.STORE_BACKEND)
        try:
            yield
        finally:
            await reaper.stop()
            await hub.close_all()
            await store.close()
            logger.info("Watchparty server stopped")

    app = FastAPI(title="watchparty API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.coordinator = coordinator
    app.state.reaper = reaper
    app.include_router(v1_router, prefix="/v1")
    return app


app = create_app()
