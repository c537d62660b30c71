import random

import pytest

from app.domain.lifecycle.handlers import (
    handle_create_room,
    handle_disconnect,
    handle_find_active_game,
    handle_join_room,
    handle_leave_room,
    handle_reconnect,
)
from app.domain.lobby.handlers import handle_change_room_code, handle_start_game
from app.domain.play.handlers import handle_make_move, handle_restart_game
from app.domain.rooms.coordinator import RoomCoordinator
from app.store.models import Move, PatternLine, TilePlacement, TileSelection
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
)


class FakeSnapshots:
    def __init__(self):
        self.repo = None
        self.saved = []
        self.deleted = []

    def save(self, room):
        self.saved.append(room.id)

    def delete(self, room_code):
        self.deleted.append(room_code)


class FakeWSManager:
    def __init__(self):
        self.rooms = {}
        self.closed = []

    async def bind(self, room_code, conn_id):
        for members in self.rooms.values():
            members.discard(conn_id)
        self.rooms.setdefault(room_code, set()).add(conn_id)

    async def unbind(self, room_code, conn_id):
        self.rooms.get(room_code, set()).discard(conn_id)

    async def rename_room(self, old_code, new_code):
        self.rooms[new_code] = self.rooms.pop(old_code, set())

    async def close_room(self, room_code, code=4000):
        self.closed.append(room_code)
        self.rooms.pop(room_code, None)


class FakeApp:
    def __init__(self):
        ids = iter(f"seat{i}" for i in range(1000))
        self.state = type("State", (), {})()
        self.state.rooms = RoomCoordinator(rng=random.Random(3), new_seat_id=lambda: next(ids))
        self.state.snapshots = FakeSnapshots()
        self.state.wsman = FakeWSManager()


def _types(events):
    return [e.type for e in events]


async def _two_seat_room(app):
    to_sender, _, code = await handle_create_room(app=app, conn_id="c0", msg=InCreateRoom(name="Alice"))
    await handle_join_room(app=app, conn_id="c1", msg=InJoinRoom(room_code=code, name="Bob"))
    return code


@pytest.mark.asyncio
async def test_create_room_binds_and_snapshots():
    app = FakeApp()
    to_sender, to_room, code = await handle_create_room(
        app=app, conn_id="c0", msg=InCreateRoom(name="Alice", max_players=2)
    )

    assert _types(to_sender) == ["room_created"]
    assert to_room == []
    assert to_sender[0].seat_id == "seat0"
    assert to_sender[0].room["max_players"] == 2
    assert app.state.wsman.rooms[code] == {"c0"}
    assert app.state.snapshots.saved == [code]


@pytest.mark.asyncio
async def test_join_room_announces_the_newcomer():
    app = FakeApp()
    _, _, code = await handle_create_room(app=app, conn_id="c0", msg=InCreateRoom(name="Alice"))

    to_sender, to_room, room_code = await handle_join_room(
        app=app, conn_id="c1", msg=InJoinRoom(room_code=code.lower(), name="Bob")
    )

    assert room_code == code
    assert _types(to_sender) == ["room_joined"]
    assert not to_sender[0].rejoined
    assert _types(to_room) == ["player_joined", "room_updated"]
    assert to_room[0].player["name"] == "Bob"
    assert "conn_id" not in to_room[0].player
    assert app.state.wsman.rooms[code] == {"c0", "c1"}


@pytest.mark.asyncio
async def test_join_room_error_goes_to_sender_only():
    app = FakeApp()
    to_sender, to_room, code = await handle_join_room(
        app=app, conn_id="c1", msg=InJoinRoom(room_code="NOPE00", name="Bob")
    )
    assert _types(to_sender) == ["error"]
    assert to_sender[0].code == "ROOM_NOT_FOUND"
    assert to_room == []
    assert code is None


@pytest.mark.asyncio
async def test_start_game_broadcasts_public_state():
    app = FakeApp()
    code = await _two_seat_room(app)

    to_sender, to_room, room_code = await handle_start_game(app=app, conn_id="c0", msg=InStartGame(room_code=code))

    assert _types(to_sender) == ["game_started"]
    assert _types(to_room) == ["game_started"]
    state = to_room[0].game_state
    assert state["phase"] == "playing"
    assert "bag" not in state
    assert state["bag_count"] == 80


@pytest.mark.asyncio
async def test_start_game_by_guest_is_refused():
    app = FakeApp()
    code = await _two_seat_room(app)

    to_sender, to_room, _ = await handle_start_game(app=app, conn_id="c1", msg=InStartGame(room_code=code))

    assert to_sender[0].code == "NOT_HOST"
    assert to_room == []


@pytest.mark.asyncio
async def test_make_move_emits_state_update():
    app = FakeApp()
    code = await _two_seat_room(app)
    await handle_start_game(app=app, conn_id="c0", msg=InStartGame(room_code=code))
    state = app.state.rooms.get_room(code).game_state
    move = Move(
        selection=TileSelection(source="factory", factory_index=0, color=state.factories[0][0]),
        placement=TilePlacement(destination="floor"),
    )

    to_sender, to_room, _ = await handle_make_move(app=app, conn_id="c0", msg=InMakeMove(room_code=code, move=move))
    assert _types(to_room) == ["game_state_updated"]
    assert to_room[0].game_state["current_player_index"] == 1

    # same move again is now out of turn
    to_sender, to_room, _ = await handle_make_move(app=app, conn_id="c0", msg=InMakeMove(room_code=code, move=move))
    assert to_sender[0].code == "NOT_YOUR_TURN"
    assert to_room == []


@pytest.mark.asyncio
async def test_game_end_emits_game_finished_and_restart_deals_again():
    app = FakeApp()
    code = await _two_seat_room(app)
    await handle_start_game(app=app, conn_id="c0", msg=InStartGame(room_code=code))
    room = app.state.rooms.get_room(code)

    # one tile short of a full top row, with the last blue factory left to take
    state = room.game_state
    board = state.players[0].board
    for c in range(4):
        board.wall[0][c].filled = True
    board.pattern_lines[0] = PatternLine(capacity=1, color="white", count=1)
    state.factories = [[], [], [], [], ["blue"] * 4]
    state.center.has_first_player = False
    state.discard = []
    state.bag = ["blue"] * 15 + ["yellow"] * 19 + ["red"] * 19 + ["black"] * 19 + ["white"] * 19

    move = Move(
        selection=TileSelection(source="factory", factory_index=4, color="blue"),
        placement=TilePlacement(destination="pattern_line", line_index=3),
    )
    to_sender, to_room, _ = await handle_make_move(app=app, conn_id="c0", msg=InMakeMove(room_code=code, move=move))

    assert _types(to_room) == ["game_state_updated", "game_finished"]
    assert to_room[1].winner == room.players[0].id

    to_sender, to_room, _ = await handle_restart_game(app=app, conn_id="c0", msg=InRestartGame(room_code=code))
    assert _types(to_room) == ["game_started"]
    assert room.phase == "playing"


@pytest.mark.asyncio
async def test_leave_room_unbinds_and_deletes_empty_room():
    app = FakeApp()
    code = await _two_seat_room(app)

    to_sender, to_room, room_code = await handle_leave_room(app=app, conn_id="c0", msg=InLeaveRoom(room_code=code))
    assert _types(to_room) == ["player_left", "room_updated"]
    assert to_room[0].seat_id == "seat0"
    assert room_code == code
    assert app.state.wsman.rooms[code] == {"c1"}

    to_sender, to_room, room_code = await handle_leave_room(app=app, conn_id="c1", msg=InLeaveRoom(room_code=code))
    assert (to_sender, to_room, room_code) == ([], [], None)
    assert app.state.snapshots.deleted == [code]
    assert app.state.rooms.get_room(code) is None


@pytest.mark.asyncio
async def test_disconnect_then_reconnect():
    app = FakeApp()
    code = await _two_seat_room(app)

    _, to_room, room_code = await handle_disconnect(app=app, conn_id="c1")
    assert _types(to_room) == ["player_disconnected"]
    assert room_code == code

    to_sender, to_room, _ = await handle_reconnect(
        app=app, conn_id="c2", msg=InReconnect(room_code=code, seat_id="seat1")
    )
    assert _types(to_sender) == ["room_joined"]
    assert to_sender[0].rejoined
    assert _types(to_room) == ["room_updated"]
    assert "c2" in app.state.wsman.rooms[code]


@pytest.mark.asyncio
async def test_host_disconnect_announces_the_new_host():
    app = FakeApp()
    code = await _two_seat_room(app)

    _, to_room, _ = await handle_disconnect(app=app, conn_id="c0")

    assert _types(to_room) == ["player_disconnected", "room_updated"]
    hosts = [p["id"] for p in to_room[1].room["game_state"]["players"] if p["is_host"]]
    assert hosts == ["seat1"]


@pytest.mark.asyncio
async def test_disconnect_of_unseated_connection_is_quiet():
    app = FakeApp()
    assert await handle_disconnect(app=app, conn_id="ghost") == ([], [], None)
    assert await handle_disconnect(app=app, conn_id=None) == ([], [], None)


@pytest.mark.asyncio
async def test_find_active_game():
    app = FakeApp()
    code = await _two_seat_room(app)

    to_sender, _, _ = await handle_find_active_game(app=app, conn_id="c9", msg=InFindActiveGame(name="Bob"))
    assert not to_sender[0].found

    await handle_start_game(app=app, conn_id="c0", msg=InStartGame(room_code=code))
    to_sender, to_room, room_code = await handle_find_active_game(
        app=app, conn_id="c9", msg=InFindActiveGame(name="bob")
    )
    result = to_sender[0]
    assert result.found
    assert result.room_code == code
    assert result.seat_id == "seat1"
    assert result.game_state["phase"] == "playing"
    assert to_room == [] and room_code is None


@pytest.mark.asyncio
async def test_change_room_code_moves_subscriptions_and_snapshot():
    app = FakeApp()
    code = await _two_seat_room(app)

    to_sender, to_room, room_code = await handle_change_room_code(
        app=app, conn_id="c0", msg=InChangeRoomCode(room_code=code, new_code="ZZZ999")
    )

    assert _types(to_room) == ["room_code_changed"]
    assert to_room[0].old_code == code
    assert room_code == "ZZZ999"
    assert app.state.wsman.rooms["ZZZ999"] == {"c0", "c1"}
    assert code not in app.state.wsman.rooms
    assert app.state.snapshots.deleted == [code]
    assert app.state.snapshots.saved[-1] == "ZZZ999"


@pytest.mark.asyncio
async def test_change_room_code_rejects_bad_code():
    app = FakeApp()
    code = await _two_seat_room(app)

    to_sender, to_room, _ = await handle_change_room_code(
        app=app, conn_id="c0", msg=InChangeRoomCode(room_code=code, new_code="no")
    )
    assert to_sender[0].code == "INVALID_CODE"
    assert to_room == []
    assert app.state.snapshots.deleted == []
