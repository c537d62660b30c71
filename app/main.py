# app/main.py
from __future__ import annotations

import asyncio
import contextlib

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from app.domain.rooms.coordinator import RoomCoordinator
from app.domain.rooms.sweeper import sweep_forever
from app.logging_config import configure_logging
from app.settings import get_settings
from app.store.redis_repo import RedisRepo
from app.store.snapshots import SnapshotWriter
from app.transport.admin import router as admin_router
from app.transport.ws import router as ws_router
from app.transport.ws_manager import WSManager

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)

    app = FastAPI(title=settings.APP_NAME)
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        app.state.redis = None
        repo = None
        if settings.PERSISTENCE_ENABLED:
            app.state.redis = Redis.from_url(settings.REDIS_URL, decode_responses=False)
            repo = RedisRepo(app.state.redis)

        app.state.rooms = RoomCoordinator(stale_after_sec=settings.STALE_ROOM_SEC)
        app.state.snapshots = SnapshotWriter(repo)
        app.state.wsman = WSManager()

        if repo is not None:
            try:
                restored = app.state.rooms.restore(await repo.load_all())
                logger.info("startup_restore", rooms=restored)
            except Exception:
                logger.exception("startup_restore_failed")

        app.state.sweeper = asyncio.create_task(
            sweep_forever(app, settings.SWEEP_INTERVAL_SEC, settings.STALE_ROOM_SEC)
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        app.state.sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await app.state.sweeper
        await app.state.snapshots.drain()
        r = app.state.redis
        if r is not None:
            await r.close()

    @app.get("/health")
    async def health():
        out = {"ok": True, "rooms": len(app.state.rooms)}
        r = app.state.redis
        if r is not None:
            try:
                out["redis"] = str(await r.ping())
            except Exception:
                out["redis"] = "unavailable"
        return out

    app.include_router(ws_router)
    app.include_router(admin_router)
    return app


app = create_app()
