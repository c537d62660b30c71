# app/store/redis_keys.py
from __future__ import annotations

from dataclasses import dataclass

# ZSET code -> updated_at, used for load-all and stale cleanup
ROOMS_INDEX = "rooms:updated"


@dataclass(frozen=True)
class RK:
    """
    Redis key builder for room-scoped keys.
    """
    room_code: str

    def room(self) -> str:
        return f"room:{self.room_code}"  # STRING room JSON

    @staticmethod
    def index() -> str:
        return ROOMS_INDEX
