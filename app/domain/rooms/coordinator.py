# app/domain/rooms/coordinator.py
"""
RoomCoordinator: the authoritative in-memory table of rooms.

Every mutating method runs to completion without awaiting, so on a single
event loop two requests can never interleave on the same room. Methods
raise RoomError for requests that cannot be honoured; the room is left in
its last valid state.
"""
from __future__ import annotations

import random
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from app.domain.common.errors import RoomError, TileConservationError
from app.domain.game import engine
from app.domain.game.constants import MAX_PLAYERS, MIN_PLAYERS
from app.domain.rooms.codes import gen_room_code, is_valid_code, normalize_code
from app.store.models import GameState, Identity, Move, Player, Room
from app.util.timeutil import now_ts

logger = structlog.get_logger(__name__)

MAX_NAME_LENGTH = 20
STALE_ROOM_SEC = 48 * 3600


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned or len(cleaned) > MAX_NAME_LENGTH:
        raise RoomError("INVALID_NAME", f"Name must be 1-{MAX_NAME_LENGTH} characters")
    return cleaned


def _same_name(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().casefold() == b.strip().casefold()


def _forget_seat(state: GameState, seat_id: str) -> None:
    """Drop a removed seat from the last game's results."""
    state.round_scores = [s for s in state.round_scores if s.player_id != seat_id]
    state.final_scores = [s for s in state.final_scores if s.player_id != seat_id]
    if state.winner == seat_id:
        state.winner = None


class RoomCoordinator:
    def __init__(
        self,
        *,
        clock: Callable[[], int] = now_ts,
        rng: Optional[random.Random] = None,
        stale_after_sec: int = STALE_ROOM_SEC,
        new_seat_id: Optional[Callable[[], str]] = None,
    ) -> None:
        self._rooms: Dict[str, Room] = {}
        self._clock = clock
        self._rng = rng or random.Random()
        self.stale_after_sec = stale_after_sec
        self._new_seat_id = new_seat_id or (lambda: uuid.uuid4().hex[:10])

    # ----------------------------
    # Lookup
    # ----------------------------
    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def get_room(self, code: str) -> Optional[Room]:
        return self._rooms.get(normalize_code(code))

    def require_room(self, code: str) -> Room:
        room = self.get_room(code)
        if room is None:
            raise RoomError("ROOM_NOT_FOUND", f"Room {code} not found")
        return room

    @staticmethod
    def seat_for_conn(room: Room, conn_id: Optional[str]) -> Optional[Player]:
        if not conn_id:
            return None
        return next((p for p in room.players if p.conn_id == conn_id), None)

    def _require_seat(self, room: Room, conn_id: Optional[str]) -> Player:
        seat = self.seat_for_conn(room, conn_id)
        if seat is None:
            raise RoomError("SEAT_NOT_FOUND", "You are not seated in this room")
        return seat

    def _require_host(self, room: Room, conn_id: Optional[str], action: str) -> Player:
        seat = self._require_seat(room, conn_id)
        if not seat.is_host:
            raise RoomError("NOT_HOST", f"Only the host can {action}")
        return seat

    def find_by_conn(self, conn_id: str) -> Optional[Tuple[Room, Player]]:
        for room in self._rooms.values():
            seat = self.seat_for_conn(room, conn_id)
            if seat is not None:
                return room, seat
        return None

    def find_active_game(self, name: str) -> Optional[Tuple[Room, Player]]:
        """A seat named `name` in a game that is currently being played."""
        wanted = (name or "").strip()
        if not wanted:
            return None
        for room in self._rooms.values():
            if room.phase != "playing":
                continue
            for seat in room.players:
                if _same_name(seat.name, wanted):
                    return room, seat
        return None

    def _touch(self, room: Room) -> None:
        room.updated_at = self._clock()

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def create_room(
        self,
        host_name: str,
        max_players: int,
        *,
        conn_id: Optional[str] = None,
        identity: Optional[Identity] = None,
    ) -> Tuple[Room, Player]:
        name = _clean_name(host_name)
        if not MIN_PLAYERS <= max_players <= MAX_PLAYERS:
            raise RoomError("INVALID_MAX_PLAYERS", f"Rooms seat {MIN_PLAYERS}-{MAX_PLAYERS} players")

        code = gen_room_code(self._rng, self._rooms)
        host = self._new_seat(name, conn_id, identity, is_host=True)
        ts = self._clock()
        room = Room(
            id=code,
            created_at=ts,
            updated_at=ts,
            max_players=max_players,
            game_state=GameState(id=code, players=[host]),
        )
        self._rooms[code] = room
        logger.info("room_created", room_code=code, host=host.id, max_players=max_players)
        return room, host

    def _new_seat(
        self, name: str, conn_id: Optional[str], identity: Optional[Identity], is_host: bool = False
    ) -> Player:
        identity = identity or Identity()
        return Player(
            id=self._new_seat_id(),
            conn_id=conn_id,
            name=name,
            user_id=identity.user_id,
            email=identity.email,
            image=identity.image,
            connected=True,
            is_host=is_host,
        )

    def _rebind(
        self, room: Room, seat: Player, conn_id: Optional[str], name: Optional[str], identity: Optional[Identity]
    ) -> None:
        seat.conn_id = conn_id
        seat.connected = True
        host = room.host
        if host is not None and host is not seat and not host.connected:
            host.is_host = False
            seat.is_host = True
        if name and not any(p is not seat and _same_name(p.name, name) for p in room.players):
            seat.name = name
        if identity is not None:
            seat.user_id = identity.user_id or seat.user_id
            seat.email = identity.email or seat.email
            seat.image = identity.image or seat.image
        self._touch(room)

    @staticmethod
    def _check_claim(seat: Player, conn_id: Optional[str]) -> None:
        """A bare seat id only reclaims a seat nobody is currently connected to."""
        if seat.connected and seat.conn_id and seat.conn_id != conn_id:
            raise RoomError("SEAT_TAKEN", "That seat is already connected")

    def join_room(
        self,
        code: str,
        name: str,
        *,
        conn_id: Optional[str] = None,
        identity: Optional[Identity] = None,
        seat_id: Optional[str] = None,
    ) -> Tuple[Room, Player, bool]:
        """
        Seat a participant. Returns (room, seat, rejoined).

        A participant carrying a known seat id, or an email matching a seated
        player's, takes that seat back in any phase. Fresh joins need a
        waiting room with a free seat and an unused name.
        """
        name = _clean_name(name)
        room = self.require_room(code)

        seat = None
        if seat_id:
            seat = next((p for p in room.players if p.id == seat_id), None)
            if seat is not None and not _same_email(seat.email, identity.email if identity else None):
                self._check_claim(seat, conn_id)
        if seat is None and identity is not None and identity.email:
            seat = next((p for p in room.players if _same_email(p.email, identity.email)), None)
        if seat is not None:
            self._rebind(room, seat, conn_id, name, identity)
            logger.info("seat_rejoined", room_code=room.id, seat=seat.id)
            return room, seat, True

        if room.phase != "waiting":
            raise RoomError("GAME_IN_PROGRESS", "Game already in progress")
        if len(room.players) >= room.max_players:
            raise RoomError("ROOM_FULL", "Room is full")
        if any(_same_name(p.name, name) for p in room.players):
            raise RoomError("DUPLICATE_NAME", "Name already taken in this room")

        seat = self._new_seat(name, conn_id, identity)
        room.players.append(seat)
        self._touch(room)
        logger.info("seat_joined", room_code=room.id, seat=seat.id, seats=len(room.players))
        return room, seat, False

    def reconnect(self, code: str, seat_id: str, conn_id: Optional[str]) -> Tuple[Room, Player]:
        room = self.require_room(code)
        seat = next((p for p in room.players if p.id == seat_id), None)
        if seat is None:
            raise RoomError("SEAT_NOT_FOUND", "Player not found in room")
        self._check_claim(seat, conn_id)
        self._rebind(room, seat, conn_id, None, None)
        logger.info("seat_reconnected", room_code=room.id, seat=seat.id)
        return room, seat

    def leave_room(self, code: str, conn_id: Optional[str]) -> Tuple[Optional[Room], Player]:
        """
        Give up a seat. Returns (room, seat); room is None when it was deleted.

        While a game is being played the seat is kept (disconnected) so its
        board survives; otherwise it is removed.
        """
        room = self.require_room(code)
        seat = self._require_seat(room, conn_id)

        if room.phase == "playing":
            seat.connected = False
            seat.conn_id = None
            if seat.is_host:
                self._migrate_host(room, seat)
            self._touch(room)
            return room, seat

        idx = room.players.index(seat)
        room.players.pop(idx)
        _forget_seat(room.game_state, seat.id)
        if not room.players:
            self.delete_room(room.id)
            return None, seat

        if seat.is_host:
            room.players[idx % len(room.players)].is_host = True
        self._touch(room)
        logger.info("seat_left", room_code=room.id, seat=seat.id, seats=len(room.players))
        return room, seat

    def _migrate_host(self, room: Room, old: Player) -> None:
        n = len(room.players)
        start = room.players.index(old)
        for step in range(1, n):
            candidate = room.players[(start + step) % n]
            if candidate.connected:
                old.is_host = False
                candidate.is_host = True
                return

    def disconnect(self, conn_id: str) -> Optional[Tuple[Room, Player]]:
        found = self.find_by_conn(conn_id)
        if found is None:
            return None
        room, seat = found
        seat.connected = False
        seat.conn_id = None
        if seat.is_host:
            self._migrate_host(room, seat)
        self._touch(room)
        if all(not p.connected for p in room.players):
            logger.info("room_idle", room_code=room.id)
        return room, seat

    def change_room_code(self, code: str, conn_id: Optional[str], new_code: str) -> Tuple[Room, str]:
        """Rename a waiting room. Returns (room, old_code)."""
        room = self.require_room(code)
        self._require_host(room, conn_id, "change the room code")
        if room.phase != "waiting":
            raise RoomError("GAME_IN_PROGRESS", "Room code can only change before the game starts")

        target = normalize_code(new_code)
        if not is_valid_code(target):
            raise RoomError("INVALID_CODE", "Room code must be 6 letters or digits")
        if target in self._rooms:
            raise RoomError("CODE_TAKEN", f"Room code {target} is already in use")

        old = room.id
        del self._rooms[old]
        room.id = target
        room.game_state.id = target
        self._rooms[target] = room
        self._touch(room)
        logger.info("room_code_changed", old_code=old, room_code=target)
        return room, old

    def delete_room(self, code: str) -> bool:
        removed = self._rooms.pop(normalize_code(code), None)
        if removed is not None:
            logger.info("room_deleted", room_code=removed.id)
        return removed is not None

    # ----------------------------
    # Game
    # ----------------------------
    def start_game(self, code: str, conn_id: Optional[str]) -> Room:
        room = self.require_room(code)
        self._require_host(room, conn_id, "start the game")
        if room.phase != "waiting":
            raise RoomError("GAME_IN_PROGRESS", "Game already started")
        if len(room.players) < MIN_PLAYERS:
            raise RoomError("NOT_ENOUGH_PLAYERS", f"Need at least {MIN_PLAYERS} players to start")

        room.game_state = engine.initialize(room.id, room.players, self._rng)
        self._touch(room)
        logger.info("game_started", room_code=room.id, seats=len(room.players))
        return room

    def restart_game(self, code: str, conn_id: Optional[str]) -> Room:
        room = self.require_room(code)
        self._require_host(room, conn_id, "restart the game")
        if room.phase != "finished":
            raise RoomError("GAME_NOT_FINISHED", "Game is not finished yet")
        if len(room.players) < MIN_PLAYERS:
            raise RoomError("NOT_ENOUGH_PLAYERS", f"Need at least {MIN_PLAYERS} players to restart")

        # initialize() hands every seat a fresh board
        room.game_state = engine.initialize(room.id, room.players, self._rng)
        self._touch(room)
        logger.info("game_restarted", room_code=room.id)
        return room

    def make_move(self, code: str, conn_id: Optional[str], move: Move) -> Room:
        room = self.require_room(code)
        seat = self._require_seat(room, conn_id)

        ok, err_code, err_message = engine.validate_move(room.game_state, seat.id, move)
        if not ok:
            raise RoomError(err_code, err_message)

        new_state = engine.apply_move(room.game_state, seat.id, move, self._rng)
        try:
            engine.assert_tiles_conserved(new_state)
        except TileConservationError:
            logger.exception("tile_conservation_failed", room_code=room.id, seat=seat.id)
            raise RoomError("INTERNAL", "Move could not be applied")

        if new_state.round != room.game_state.round:
            logger.info("round_scored", room_code=room.id, round=room.game_state.round)
        room.game_state = new_state
        self._touch(room)
        return room

    # ----------------------------
    # Housekeeping
    # ----------------------------
    def restore(self, rooms: Iterable[Room]) -> int:
        """Adopt persisted rooms; every seat starts disconnected."""
        n = 0
        for stored in rooms:
            if stored.id in self._rooms:
                continue
            room = stored.model_copy(deep=True)
            for p in room.players:
                p.connected = False
                p.conn_id = None
            self._rooms[room.id] = room
            n += 1
        if n:
            logger.info("rooms_restored", count=n)
        return n

    def sweep(self) -> List[str]:
        """Delete rooms past the stale window whose seats are all disconnected."""
        now = self._clock()
        stale = [
            code for code, room in self._rooms.items()
            if now - room.created_at > self.stale_after_sec
            and all(not p.connected for p in room.players)
        ]
        for code in stale:
            del self._rooms[code]
        if stale:
            logger.info("stale_rooms_swept", count=len(stale), room_codes=stale)
        return stale
