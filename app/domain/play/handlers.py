# app/domain/play/handlers.py
from __future__ import annotations

from typing import List, Optional, Tuple

from app.domain.common.errors import RoomError
from app.domain.common.views import game_view
from app.store.models import Room
from app.transport.protocols import (
    InMakeMove,
    InRestartGame,
    OutError,
    OutgoingEvent,
    OutGameFinished,
    OutGameStarted,
    OutGameStateUpdated,
)

Result = Tuple[List[OutgoingEvent], List[OutgoingEvent], Optional[str]]


def _state_events(room: Room) -> List[OutgoingEvent]:
    state = room.game_state
    view = game_view(state)
    events: List[OutgoingEvent] = [OutGameStateUpdated(game_state=view)]
    if state.phase == "finished":
        events.append(
            OutGameFinished(
                game_state=view,
                winner=state.winner,
                final_scores=[s.model_dump() for s in state.final_scores],
            )
        )
    return events


async def handle_make_move(*, app, conn_id: Optional[str], msg: InMakeMove) -> Result:
    try:
        room = app.state.rooms.make_move(msg.room_code, conn_id, msg.move)
    except RoomError as e:
        return [OutError(code=e.code, message=e.message)], [], None

    app.state.snapshots.save(room)
    events = _state_events(room)
    return list(events), events, room.id


async def handle_restart_game(*, app, conn_id: Optional[str], msg: InRestartGame) -> Result:
    try:
        room = app.state.rooms.restart_game(msg.room_code, conn_id)
    except RoomError as e:
        return [OutError(code=e.code, message=e.message)], [], None

    app.state.snapshots.save(room)
    events = [OutGameStarted(game_state=game_view(room.game_state))]
    return list(events), events, room.id
