# app/store/snapshots.py
from __future__ import annotations

import asyncio
from typing import Optional, Set

import structlog

from app.store.models import Room
from app.store.redis_repo import RedisRepo

logger = structlog.get_logger(__name__)


class SnapshotWriter:
    """
    Fire-and-forget persistence.

    The room is copied synchronously, then written from a background task.
    Failures are logged; they never reach the in-memory room.
    """

    def __init__(self, repo: Optional[RedisRepo]) -> None:
        self.repo = repo
        self._pending: Set[asyncio.Task] = set()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def save(self, room: Optional[Room]) -> Optional[asyncio.Task]:
        if self.repo is None or room is None:
            return None
        return self._spawn(self._save(room.model_copy(deep=True)))

    def delete(self, room_code: str) -> Optional[asyncio.Task]:
        if self.repo is None:
            return None
        return self._spawn(self._delete(room_code))

    async def _save(self, room: Room) -> None:
        try:
            await self.repo.save_room(room)
        except Exception:
            logger.exception("room_save_failed", room_code=room.id)

    async def _delete(self, room_code: str) -> None:
        try:
            await self.repo.delete_room(room_code)
        except Exception:
            logger.exception("room_delete_failed", room_code=room_code)

    async def drain(self) -> None:
        """Wait for outstanding writes (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
