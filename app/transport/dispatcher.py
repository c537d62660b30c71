# app/transport/dispatcher.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from app.domain.lifecycle.handlers import (
    handle_create_room,
    handle_find_active_game,
    handle_join_room,
    handle_leave_room,
    handle_reconnect,
)
from app.domain.lobby.handlers import handle_change_room_code, handle_start_game
from app.domain.play.handlers import handle_make_move, handle_restart_game
from app.transport.protocols import (
    InChangeRoomCode,
    InCreateRoom,
    InFindActiveGame,
    InJoinRoom,
    InLeaveRoom,
    InMakeMove,
    InReconnect,
    InRestartGame,
    InStartGame,
    OutError,
    OutgoingEvent,
    parse_incoming,
)

DispatchResult = Tuple[List[Dict[str, Any]], List[Dict[str, Any]], Optional[str]]
# (to_sender_events, to_room_events, room_code), each event is a JSON dict

_ROUTES = {
    InCreateRoom: handle_create_room,
    InJoinRoom: handle_join_room,
    InLeaveRoom: handle_leave_room,
    InReconnect: handle_reconnect,
    InFindActiveGame: handle_find_active_game,
    InStartGame: handle_start_game,
    InChangeRoomCode: handle_change_room_code,
    InMakeMove: handle_make_move,
    InRestartGame: handle_restart_game,
}


async def dispatch_message(
    *,
    app,
    conn_id: Optional[str],
    raw: Dict[str, Any],
) -> DispatchResult:
    """
    Transport layer calls this.
    - Parses + validates raw JSON against the closed message union
    - Routes to the matching domain handler
    - Returns (to_sender, to_room, room_code) with events as JSON dicts

    NOTE: This file contains NO Redis usage and NO game rules.
    """
    try:
        msg = parse_incoming(raw)
    except (ValidationError, ValueError) as e:
        err = OutError(code="BAD_MESSAGE", message=str(e)).model_dump()
        return [err], [], None

    handler = _ROUTES.get(type(msg))
    if handler is None:
        err = OutError(code="NOT_IMPLEMENTED", message=f"Handler not implemented for type={msg.type}").model_dump()
        return [err], [], None

    to_sender, to_room, room_code = await handler(app=app, conn_id=conn_id, msg=msg)
    return _dump(to_sender), _dump(to_room), room_code


def _dump(events: List[OutgoingEvent]) -> List[Dict[str, Any]]:
    """
    Convert pydantic events -> JSON dicts.
    """
    return [e.model_dump(mode="json") for e in events]
