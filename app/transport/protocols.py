# app/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from app.domain.game.constants import MAX_PLAYERS, MIN_PLAYERS
from app.store.models import Identity, Move

NAME_FIELD = Field(min_length=1, max_length=20)


# =========================
# Incoming (Client -> Server)
# =========================

class InBase(BaseModel):
    type: str


# ---- Lifecycle ----

class InCreateRoom(InBase):
    type: Literal["create_room"] = "create_room"
    name: str = NAME_FIELD
    max_players: int = Field(default=MAX_PLAYERS, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    identity: Optional[Identity] = None


class InJoinRoom(InBase):
    type: Literal["join_room"] = "join_room"
    room_code: str = Field(min_length=1, max_length=16)
    name: str = NAME_FIELD
    identity: Optional[Identity] = None
    seat_id: Optional[str] = None  # previously issued seat id, if any


class InLeaveRoom(InBase):
    type: Literal["leave_room"] = "leave_room"
    room_code: str


class InReconnect(InBase):
    type: Literal["reconnect"] = "reconnect"
    room_code: str
    seat_id: str = Field(min_length=1)


class InFindActiveGame(InBase):
    type: Literal["find_active_game"] = "find_active_game"
    name: str = NAME_FIELD


# ---- Lobby ----

class InStartGame(InBase):
    type: Literal["start_game"] = "start_game"
    room_code: str


class InChangeRoomCode(InBase):
    type: Literal["change_room_code"] = "change_room_code"
    room_code: str
    new_code: str


# ---- Play ----

class InMakeMove(InBase):
    type: Literal["make_move"] = "make_move"
    room_code: str
    move: Move


class InRestartGame(InBase):
    type: Literal["restart_game"] = "restart_game"
    room_code: str


IncomingMessage = Union[
    InCreateRoom,
    InJoinRoom,
    InLeaveRoom,
    InReconnect,
    InFindActiveGame,
    InStartGame,
    InChangeRoomCode,
    InMakeMove,
    InRestartGame,
]


# =========================
# Outgoing (Server -> Client)
# =========================

class OutBase(BaseModel):
    type: str


class OutHello(OutBase):
    type: Literal["hello"] = "hello"
    conn_id: str


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str


class OutRoomCreated(OutBase):
    type: Literal["room_created"] = "room_created"
    room: Dict[str, Any]
    seat_id: str


class OutRoomJoined(OutBase):
    type: Literal["room_joined"] = "room_joined"
    room: Dict[str, Any]
    seat_id: str
    rejoined: bool = False


class OutRoomUpdated(OutBase):
    type: Literal["room_updated"] = "room_updated"
    room: Dict[str, Any]


class OutPlayerJoined(OutBase):
    type: Literal["player_joined"] = "player_joined"
    player: Dict[str, Any]


class OutPlayerLeft(OutBase):
    type: Literal["player_left"] = "player_left"
    seat_id: str


class OutPlayerDisconnected(OutBase):
    type: Literal["player_disconnected"] = "player_disconnected"
    seat_id: str


class OutGameStarted(OutBase):
    type: Literal["game_started"] = "game_started"
    game_state: Dict[str, Any]


class OutGameStateUpdated(OutBase):
    type: Literal["game_state_updated"] = "game_state_updated"
    game_state: Dict[str, Any]


class OutGameFinished(OutBase):
    type: Literal["game_finished"] = "game_finished"
    game_state: Dict[str, Any]
    winner: Optional[str] = None
    final_scores: List[Dict[str, Any]] = Field(default_factory=list)


class OutRoomCodeChanged(OutBase):
    type: Literal["room_code_changed"] = "room_code_changed"
    room: Dict[str, Any]
    old_code: str


class OutActiveGameResult(OutBase):
    type: Literal["active_game_result"] = "active_game_result"
    found: bool
    room_code: Optional[str] = None
    seat_id: Optional[str] = None
    game_state: Optional[Dict[str, Any]] = None


OutgoingEvent = Union[
    OutHello,
    OutError,
    OutRoomCreated,
    OutRoomJoined,
    OutRoomUpdated,
    OutPlayerJoined,
    OutPlayerLeft,
    OutPlayerDisconnected,
    OutGameStarted,
    OutGameStateUpdated,
    OutGameFinished,
    OutRoomCodeChanged,
    OutActiveGameResult,
]


# =========================
# Parser helpers
# =========================

_INCOMING_BY_TYPE = {
    "create_room": InCreateRoom,
    "join_room": InJoinRoom,
    "leave_room": InLeaveRoom,
    "reconnect": InReconnect,
    "find_active_game": InFindActiveGame,
    "start_game": InStartGame,
    "change_room_code": InChangeRoomCode,
    "make_move": InMakeMove,
    "restart_game": InRestartGame,
}


def parse_incoming(payload: Dict[str, Any]) -> IncomingMessage:
    """
    Convert raw dict -> validated message model.
    Raises ValidationError or ValueError if invalid.
    """
    if not isinstance(payload, dict):
        raise ValueError("Message must be a JSON object")

    t = payload.get("type")
    if not isinstance(t, str):
        raise ValueError("Missing/invalid type")

    cls = _INCOMING_BY_TYPE.get(t)
    if cls is None:
        raise ValueError(f"Unknown message type: {t}")

    return cls.model_validate(payload)
