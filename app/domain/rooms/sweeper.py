# app/domain/rooms/sweeper.py
from __future__ import annotations

import asyncio
from typing import List

import structlog

logger = structlog.get_logger(__name__)


async def run_sweep(app, stale_after_sec: int) -> List[str]:
    """One pass: evict stale rooms from memory, then from storage."""
    swept = app.state.rooms.sweep()
    for code in swept:
        app.state.snapshots.delete(code)
        await app.state.wsman.close_room(code)

    repo = app.state.snapshots.repo
    if repo is not None:
        try:
            removed = await repo.delete_stale(stale_after_sec)
            if removed:
                logger.info("stale_snapshots_deleted", count=removed)
        except Exception:
            logger.exception("stale_snapshot_cleanup_failed")
    return swept


async def sweep_forever(app, interval_sec: int, stale_after_sec: int) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        await run_sweep(app, stale_after_sec)
