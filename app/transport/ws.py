# app/transport/ws.py
from __future__ import annotations

import ipaddress
import json
import uuid
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.settings import get_settings
from app.domain.lifecycle.handlers import handle_disconnect
from app.transport.dispatcher import dispatch_message
from app.transport.protocols import OutError, OutHello

router = APIRouter()
logger = structlog.get_logger(__name__)


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = get_settings()
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}

    origin = websocket.headers.get("origin")
    if origin is not None:
        if origin in allowed:
            return True
        if settings.WS_ALLOW_LAN_ORIGINS:
            o = urlparse(origin)
            host = o.hostname or ""
            port = o.port
            if _is_private_ip(host) and port == 5173:
                return True
        logger.warning("ws_origin_rejected", origin=origin)
        await websocket.close(code=1008)
        return False
    return True


async def _fan_out(websocket: WebSocket, conn_id: str, to_sender, to_room, room_code) -> None:
    wsman = websocket.app.state.wsman

    # unicast
    for e in to_sender:
        await websocket.send_json(e)

    # broadcast (exclude sender; handlers already put what it needs in to_sender)
    if room_code:
        for e in to_room:
            await wsman.broadcast(room_code, e, exclude_conn=conn_id)


async def _drop(websocket: WebSocket, conn_id: str) -> None:
    """Release the seat bound to a closed socket and tell the rest of the room."""
    _, to_room, room_code = await handle_disconnect(app=websocket.app, conn_id=conn_id)
    if room_code:
        for e in to_room:
            await websocket.app.state.wsman.broadcast(room_code, e.model_dump(mode="json"), exclude_conn=conn_id)
    logger.debug("ws_disconnected", conn_id=conn_id)


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()

    conn_id = uuid.uuid4().hex[:10]
    wsman = websocket.app.state.wsman
    await wsman.add(conn_id, websocket)
    await websocket.send_json(OutHello(conn_id=conn_id).model_dump())
    logger.debug("ws_connected", conn_id=conn_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                await websocket.send_json(
                    OutError(code="BAD_MESSAGE", message="Expected a text frame").model_dump()
                )
                continue
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                await websocket.send_json(OutError(code="BAD_MESSAGE", message="Invalid JSON").model_dump())
                continue

            try:
                to_sender, to_room, room_code = await dispatch_message(
                    app=websocket.app,
                    conn_id=conn_id,
                    raw=raw,
                )
            except Exception:
                logger.exception("dispatch_failed", conn_id=conn_id)
                to_sender = [OutError(code="INTERNAL", message="Request failed").model_dump()]
                to_room, room_code = [], None

            await _fan_out(websocket, conn_id, to_sender, to_room, room_code)

    except WebSocketDisconnect:
        logger.debug("ws_closed_mid_send", conn_id=conn_id)

    finally:
        await _drop(websocket, conn_id)
        await wsman.remove(conn_id)
