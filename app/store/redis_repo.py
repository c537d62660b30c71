# app/store/redis_repo.py
from __future__ import annotations

from typing import List, Optional

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis

from app.store.models import Room
from app.store.redis_keys import RK
from app.util.timeutil import now_ts

logger = structlog.get_logger(__name__)


class RedisRepo:
    """
    Durable room snapshots. One JSON document per room plus an index of
    codes scored by last save time.
    """

    def __init__(self, r: Redis):
        self.r = r

    def _dec(self, x):
        """Decode redis bytes -> str; pass through str/None safely."""
        if x is None:
            return None
        if isinstance(x, bytes):
            return x.decode("utf-8")
        return x

    def _parse(self, raw) -> Optional[Room]:
        if raw is None:
            return None
        try:
            return Room.model_validate_json(self._dec(raw))
        except ValidationError:
            logger.warning("room_snapshot_unreadable", exc_info=True)
            return None

    # ----------------------------
    # Rooms
    # ----------------------------
    async def save_room(self, room: Room) -> None:
        pipe = self.r.pipeline()
        pipe.set(RK(room.id).room(), room.model_dump_json())
        pipe.zadd(RK.index(), {room.id: room.updated_at})
        await pipe.execute()

    async def load_room(self, room_code: str) -> Optional[Room]:
        return self._parse(await self.r.get(RK(room_code).room()))

    async def load_all(self) -> List[Room]:
        codes = [self._dec(c) for c in await self.r.zrange(RK.index(), 0, -1)]
        if not codes:
            return []
        raws = await self.r.mget([RK(c).room() for c in codes])
        rooms: List[Room] = []
        for raw in raws:
            room = self._parse(raw)
            if room is not None:
                rooms.append(room)
        return rooms

    async def delete_room(self, room_code: str) -> None:
        pipe = self.r.pipeline()
        pipe.delete(RK(room_code).room())
        pipe.zrem(RK.index(), room_code)
        await pipe.execute()

    async def delete_stale(self, max_age_sec: int, now: Optional[int] = None) -> int:
        """Delete rooms not saved within `max_age_sec`. Returns how many went."""
        cutoff = (now if now is not None else now_ts()) - max_age_sec
        codes = [self._dec(c) for c in await self.r.zrangebyscore(RK.index(), "-inf", cutoff)]
        if not codes:
            return 0
        pipe = self.r.pipeline()
        pipe.delete(*[RK(c).room() for c in codes])
        pipe.zrem(RK.index(), *codes)
        await pipe.execute()
        return len(codes)
