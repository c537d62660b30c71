# app/domain/common/views.py
"""
What clients get to see of a room.

The bag is reduced to a count (its order is the future), and transport
handles and emails never leave the server.
"""
from __future__ import annotations

from typing import Any, Dict

from app.store.models import GameState, Player, Room

_PRIVATE_PLAYER_FIELDS = {"conn_id", "email"}


def player_view(player: Player) -> Dict[str, Any]:
    return player.model_dump(exclude=_PRIVATE_PLAYER_FIELDS)


def game_view(state: GameState) -> Dict[str, Any]:
    data = state.model_dump(exclude={"bag", "players"})
    data["bag_count"] = len(state.bag)
    data["players"] = [player_view(p) for p in state.players]
    return data


def room_view(room: Room) -> Dict[str, Any]:
    return {
        "id": room.id,
        "created_at": room.created_at,
        "updated_at": room.updated_at,
        "max_players": room.max_players,
        "game_state": game_view(room.game_state),
    }
