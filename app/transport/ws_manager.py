# app/transport/ws_manager.py
from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set

import structlog
from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class WSManager:
    """
    In-memory connection registry.
    - conn_id -> websocket
    - room_code -> {conn_id}
    Transport-only: no Redis, no domain rules.
    """
    def __init__(self) -> None:
        self._conns: Dict[str, WebSocket] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def add(self, conn_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._conns[conn_id] = ws

    async def remove(self, conn_id: str) -> None:
        async with self._lock:
            self._conns.pop(conn_id, None)
            self._unbind_all(conn_id)

    def _unbind_all(self, conn_id: str) -> None:
        for code in [c for c, members in self._rooms.items() if conn_id in members]:
            self._rooms[code].discard(conn_id)
            if not self._rooms[code]:
                self._rooms.pop(code, None)

    async def bind(self, room_code: str, conn_id: str) -> None:
        """Subscribe a connection to one room (and only that room)."""
        async with self._lock:
            self._unbind_all(conn_id)
            self._rooms.setdefault(room_code, set()).add(conn_id)

    async def unbind(self, room_code: str, conn_id: str) -> None:
        async with self._lock:
            members = self._rooms.get(room_code)
            if not members:
                return
            members.discard(conn_id)
            if not members:
                self._rooms.pop(room_code, None)

    async def rename_room(self, old_code: str, new_code: str) -> None:
        async with self._lock:
            members = self._rooms.pop(old_code, set())
            if members:
                self._rooms.setdefault(new_code, set()).update(members)

    async def broadcast(self, room_code: str, event: dict, exclude_conn: Optional[str] = None) -> None:
        # copy conns under lock, send outside lock
        async with self._lock:
            targets = [(cid, self._conns.get(cid)) for cid in self._rooms.get(room_code, set())]

        for cid, ws in targets:
            if ws is None or cid == exclude_conn:
                continue
            try:
                await ws.send_json(event)
            except Exception:
                # dead socket; ws.py cleans up on disconnect
                logger.warning("broadcast_send_failed", room_code=room_code, conn_id=cid)

    async def close_room(self, room_code: str, code: int = 4000) -> None:
        """
        Close every websocket subscribed to a room and forget the room.
        """
        async with self._lock:
            conn_ids = list(self._rooms.pop(room_code, set()))
            sockets = [self._conns.get(cid) for cid in conn_ids]
        for ws in sockets:
            if ws is None:
                continue
            try:
                await ws.close(code=code)
            except Exception:
                logger.warning("socket_close_failed", room_code=room_code)
