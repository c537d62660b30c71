# app/domain/lifecycle/handlers.py
from __future__ import annotations

from typing import List, Optional, Tuple

from app.domain.common.errors import RoomError
from app.domain.common.views import game_view, player_view, room_view
from app.domain.rooms.codes import normalize_code
from app.transport.protocols import (
    InCreateRoom,
    InFindActiveGame,
    InJoinRoom,
    InLeaveRoom,
    InReconnect,
    OutActiveGameResult,
    OutError,
    OutgoingEvent,
    OutPlayerDisconnected,
    OutPlayerJoined,
    OutPlayerLeft,
    OutRoomCreated,
    OutRoomJoined,
    OutRoomUpdated,
)

# Returns: (to_sender, to_room, room_code to broadcast to)
Result = Tuple[List[OutgoingEvent], List[OutgoingEvent], Optional[str]]


def _err(e: RoomError) -> Result:
    return [OutError(code=e.code, message=e.message)], [], None


async def handle_create_room(*, app, conn_id: Optional[str], msg: InCreateRoom) -> Result:
    rooms = app.state.rooms
    try:
        room, host = rooms.create_room(msg.name, msg.max_players, conn_id=conn_id, identity=msg.identity)
    except RoomError as e:
        return _err(e)

    app.state.snapshots.save(room)
    if conn_id:
        await app.state.wsman.bind(room.id, conn_id)
    return [OutRoomCreated(room=room_view(room), seat_id=host.id)], [], room.id


async def handle_join_room(*, app, conn_id: Optional[str], msg: InJoinRoom) -> Result:
    """
    Join or rejoin:
    - a known seat id / matching email takes the old seat back
    - otherwise a new seat in a waiting room
    - joiner gets the room, everybody else gets player_joined + room_updated
    """
    rooms = app.state.rooms
    try:
        room, seat, rejoined = rooms.join_room(
            msg.room_code,
            msg.name,
            conn_id=conn_id,
            identity=msg.identity,
            seat_id=msg.seat_id,
        )
    except RoomError as e:
        return _err(e)

    app.state.snapshots.save(room)
    if conn_id:
        await app.state.wsman.bind(room.id, conn_id)

    view = room_view(room)
    to_room: List[OutgoingEvent] = [OutRoomUpdated(room=view)]
    if not rejoined:
        to_room.insert(0, OutPlayerJoined(player=player_view(seat)))
    return [OutRoomJoined(room=view, seat_id=seat.id, rejoined=rejoined)], to_room, room.id


async def handle_reconnect(*, app, conn_id: Optional[str], msg: InReconnect) -> Result:
    """
    Reconnect using a previously issued seat id (stable across refresh).
    """
    rooms = app.state.rooms
    try:
        room, seat = rooms.reconnect(msg.room_code, msg.seat_id, conn_id)
    except RoomError as e:
        return _err(e)

    app.state.snapshots.save(room)
    if conn_id:
        await app.state.wsman.bind(room.id, conn_id)

    view = room_view(room)
    return [OutRoomJoined(room=view, seat_id=seat.id, rejoined=True)], [OutRoomUpdated(room=view)], room.id


async def handle_leave_room(*, app, conn_id: Optional[str], msg: InLeaveRoom) -> Result:
    rooms = app.state.rooms
    try:
        room, seat = rooms.leave_room(msg.room_code, conn_id)
    except RoomError as e:
        return _err(e)

    code = normalize_code(msg.room_code)
    if conn_id:
        await app.state.wsman.unbind(code, conn_id)

    if room is None:
        app.state.snapshots.delete(code)
        return [], [], None

    app.state.snapshots.save(room)
    return [], [OutPlayerLeft(seat_id=seat.id), OutRoomUpdated(room=room_view(room))], room.id


async def handle_disconnect(*, app, conn_id: Optional[str]) -> Result:
    """
    Called by transport when a socket goes away.
    The seat is kept for reconnect; only the handle is dropped.
    """
    if not conn_id:
        return [], [], None

    found = app.state.rooms.find_by_conn(conn_id)
    if found is None:
        return [], [], None

    room, seat = found
    was_host = seat.is_host
    app.state.rooms.disconnect(conn_id)
    app.state.snapshots.save(room)

    to_room: List[OutgoingEvent] = [OutPlayerDisconnected(seat_id=seat.id)]
    if was_host and not seat.is_host:
        to_room.append(OutRoomUpdated(room=room_view(room)))
    return [], to_room, room.id


async def handle_find_active_game(*, app, conn_id: Optional[str], msg: InFindActiveGame) -> Result:
    found = app.state.rooms.find_active_game(msg.name)
    if found is None:
        return [OutActiveGameResult(found=False)], [], None

    room, seat = found
    return [
        OutActiveGameResult(
            found=True,
            room_code=room.id,
            seat_id=seat.id,
            game_state=game_view(room.game_state),
        )
    ], [], None
