from __future__ import annotations

from typing import List, Optional, Tuple

from app.domain.common.errors import RoomError
from app.domain.common.views import game_view, room_view
from app.transport.protocols import (
    InChangeRoomCode,
    InStartGame,
    OutError,
    OutgoingEvent,
    OutGameStarted,
    OutRoomCodeChanged,
)

Result = Tuple[List[OutgoingEvent], List[OutgoingEvent], Optional[str]]


async def handle_start_game(*, app, conn_id: Optional[str], msg: InStartGame) -> Result:
    try:
        room = app.state.rooms.start_game(msg.room_code, conn_id)
    except RoomError as e:
        return [OutError(code=e.code, message=e.message)], [], None

    app.state.snapshots.save(room)
    events = [OutGameStarted(game_state=game_view(room.game_state))]
    return list(events), events, room.id


async def handle_change_room_code(*, app, conn_id: Optional[str], msg: InChangeRoomCode) -> Result:
    try:
        room, old_code = app.state.rooms.change_room_code(msg.room_code, conn_id, msg.new_code)
    except RoomError as e:
        return [OutError(code=e.code, message=e.message)], [], None

    app.state.snapshots.delete(old_code)
    app.state.snapshots.save(room)
    await app.state.wsman.rename_room(old_code, room.id)

    events = [OutRoomCodeChanged(room=room_view(room), old_code=old_code)]
    return list(events), events, room.id
