from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/rooms")
async def list_rooms(request: Request):
    """
    List all live rooms (debug/admin).
    """
    rooms = []
    for room in sorted(request.app.state.rooms.rooms(), key=lambda r: r.id):
        players = room.players
        rooms.append(
            {
                "room_code": room.id,
                "phase": room.phase,
                "round": room.game_state.round,
                "max_players": room.max_players,
                "players": len(players),
                "connected": len([p for p in players if p.connected]),
                "created_at": room.created_at,
                "updated_at": room.updated_at,
            }
        )

    return {"rooms": rooms}


@router.post("/rooms/{room_code}/close")
async def close_room(room_code: str, request: Request):
    """
    Force close a room (debug/admin). Drops it from memory and storage and closes websockets.
    """
    rooms = request.app.state.rooms
    room = rooms.get_room(room_code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    rooms.delete_room(room.id)
    request.app.state.snapshots.delete(room.id)
    await request.app.state.wsman.close_room(room.id, code=4000)

    return {"ok": True, "room_code": room.id}
