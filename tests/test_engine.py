import random

import pytest

from app.domain.common.errors import GameRuleError
from app.domain.game import engine
from app.domain.game.board import legal_lines
from app.domain.game.constants import wall_column
from app.store.models import Move, PatternLine, Player, TilePlacement, TileSelection


def _players(n):
    return [Player(id=f"p{i}", name=f"P{i}") for i in range(n)]


def _game(n=2, seed=7):
    return engine.initialize("ROOM01", _players(n), random.Random(seed))


def _move(source, color, destination, factory_index=None, line_index=None):
    return Move(
        selection=TileSelection(source=source, factory_index=factory_index, color=color),
        placement=TilePlacement(destination=destination, line_index=line_index),
    )


def _legal_moves(state):
    board = state.current_player.board
    sources = [("factory", i, f) for i, f in enumerate(state.factories) if f]
    if state.center.tiles:
        sources.append(("center", None, state.center.tiles))

    moves = []
    for source, idx, tiles in sources:
        for color in sorted(set(tiles)):
            lines = legal_lines(board, color)
            if lines:
                moves.extend(_move(source, color, "pattern_line", idx, line) for line in lines)
            else:
                moves.append(_move(source, color, "floor", idx))
    return moves


# ----------------------------
# Setup
# ----------------------------

@pytest.mark.parametrize("seats,factories", [(2, 5), (3, 7), (4, 9)])
def test_initialize_deals_factories_per_player_count(seats, factories):
    state = _game(seats)
    assert len(state.factories) == factories
    assert all(len(f) == 4 for f in state.factories)
    assert len(state.bag) == 100 - 4 * factories
    assert state.phase == "playing"
    assert state.round == 1
    assert state.current_player_index == 0
    assert state.center.tiles == []
    assert state.center.has_first_player
    engine.assert_tiles_conserved(state)


def test_initialize_is_reproducible_with_a_seed():
    assert _game(seed=11).factories == _game(seed=11).factories


# ----------------------------
# Validation
# ----------------------------

def test_validate_rejects_wrong_seat():
    state = _game()
    color = state.factories[0][0]
    ok, code, _ = engine.validate_move(state, "p1", _move("factory", color, "floor", 0))
    assert not ok
    assert code == "NOT_YOUR_TURN"


def test_validate_rejects_outside_playing_phase():
    state = _game()
    state.phase = "finished"
    ok, code, _ = engine.validate_move(state, "p0", _move("factory", state.factories[0][0], "floor", 0))
    assert (ok, code) == (False, "BAD_PHASE")


def test_validate_rejects_bad_sources():
    state = _game()
    state.factories[0] = ["blue", "blue", "red", "red"]
    state.factories[1] = []

    assert engine.validate_move(state, "p0", _move("factory", "blue", "floor", 99))[1] == "INVALID_SOURCE"
    assert engine.validate_move(state, "p0", _move("factory", "blue", "floor", 1))[1] == "EMPTY_SOURCE"
    assert engine.validate_move(state, "p0", _move("factory", "white", "floor", 0))[1] == "COLOR_NOT_AVAILABLE"
    assert engine.validate_move(state, "p0", _move("center", "blue", "floor"))[1] == "EMPTY_SOURCE"


def test_validate_rejects_bad_destinations():
    state = _game()
    state.factories[0] = ["blue", "blue", "red", "red"]
    board = state.players[0].board
    board.pattern_lines[2] = PatternLine(capacity=3, color="red", count=1)
    board.wall[3][wall_column(3, "blue")].filled = True

    assert engine.validate_move(state, "p0", _move("factory", "blue", "pattern_line", 0, 5))[1] == "INVALID_DESTINATION"
    assert engine.validate_move(state, "p0", _move("factory", "blue", "pattern_line", 0, 2))[1] == "LINE_REJECTS_COLOR"
    assert engine.validate_move(state, "p0", _move("factory", "blue", "pattern_line", 0, 3))[1] == "LINE_REJECTS_COLOR"
    assert engine.validate_move(state, "p0", _move("factory", "red", "pattern_line", 0, 2))[0]


def test_validate_is_pure():
    state = _game()
    before = state.model_dump()
    move = _move("factory", state.factories[0][0], "floor", 0)
    assert engine.validate_move(state, "p0", move) == engine.validate_move(state, "p0", move)
    assert state.model_dump() == before


def test_apply_move_raises_on_illegal_move():
    state = _game()
    with pytest.raises(GameRuleError) as exc:
        engine.apply_move(state, "p1", _move("factory", state.factories[0][0], "floor", 0), random.Random(0))
    assert exc.value.code == "NOT_YOUR_TURN"


# ----------------------------
# Moves
# ----------------------------

def test_factory_draft_moves_leftovers_to_center():
    state = _game()
    state.factories[0] = ["blue", "blue", "red", "yellow"]

    new = engine.apply_move(state, "p0", _move("factory", "blue", "pattern_line", 0, 1), random.Random(0))

    line = new.players[0].board.pattern_lines[1]
    assert (line.color, line.count) == ("blue", 2)
    assert new.factories[0] == []
    assert sorted(new.center.tiles) == ["red", "yellow"]
    assert new.center.has_first_player
    assert new.current_player_index == 1
    # input untouched
    assert state.factories[0] == ["blue", "blue", "red", "yellow"]
    assert state.players[0].board.pattern_lines[1].count == 0


def test_excess_tiles_spill_onto_floor():
    state = _game()
    state.factories[0] = ["blue", "blue", "blue", "red"]

    new = engine.apply_move(state, "p0", _move("factory", "blue", "pattern_line", 0, 0), random.Random(0))

    board = new.players[0].board
    assert board.pattern_lines[0].count == 1
    assert board.floor_line == ["blue", "blue"]


def test_full_floor_sends_extra_tiles_to_discard():
    state = _game()
    state.factories[0] = ["blue", "blue", "blue", "red"]
    state.players[0].board.floor_line = ["black"] * 6
    discard_before = len(state.discard)

    new = engine.apply_move(state, "p0", _move("factory", "blue", "floor", 0), random.Random(0))

    assert len(new.players[0].board.floor_line) == 7
    assert new.discard[discard_before:] == ["blue", "blue"]


def test_first_center_draft_takes_the_marker():
    state = _game()
    state.center.tiles = ["red", "red", "blue"]

    new = engine.apply_move(state, "p0", _move("center", "red", "floor"), random.Random(0))

    assert new.players[0].board.floor_line == ["first_player", "red", "red"]
    assert not new.center.has_first_player
    assert new.center.tiles == ["blue"]
    assert new.first_player_index == 0

    again = engine.apply_move(new, "p1", _move("center", "blue", "pattern_line", line_index=0), random.Random(0))
    assert again.players[1].board.floor_line == []
    assert again.first_player_index == 0


def test_marker_joins_even_a_full_floor():
    state = _game()
    state.center.tiles = ["red"]
    state.players[0].board.floor_line = ["black"] * 7

    new = engine.apply_move(state, "p0", _move("center", "red", "floor"), random.Random(0))

    floor = new.players[0].board.floor_line
    assert len(floor) == 8
    assert floor[-1] == "first_player"
    assert new.discard[-1] == "red"


# ----------------------------
# Wall tiling
# ----------------------------

def _last_draft_state():
    """Every source empty except factory 4, which p0 is about to take."""
    state = _game()
    state.factories = [[], [], [], [], ["blue"] * 4]
    state.center.tiles = []
    state.center.has_first_player = False
    state.first_player_index = 1
    state.discard = []
    return state


def test_emptying_the_last_source_tiles_walls_and_starts_next_round():
    state = _last_draft_state()

    new = engine.apply_move(state, "p0", _move("factory", "blue", "pattern_line", 4, 3), random.Random(0))

    board = new.players[0].board
    cell = board.wall[3][wall_column(3, "blue")]
    assert cell.filled and cell.was_completed
    assert board.pattern_lines[3].count == 0
    assert board.score == 1
    assert new.discard == ["blue"] * 3

    assert new.phase == "playing"
    assert new.round == 2
    assert new.current_player_index == 1
    assert new.first_player_index == 0
    assert new.center.has_first_player
    assert [len(f) for f in new.factories] == [4] * 5

    scores = {s.player_id: s for s in new.round_scores}
    assert scores["p0"].round == 1
    assert scores["p0"].tiles_placed == 1
    assert scores["p0"].placements[0].points == 1
    assert scores["p1"].tiles_placed == 0


def test_rows_are_tiled_top_down_and_score_against_earlier_rows():
    state = _last_draft_state()
    board = state.players[0].board
    board.score = 10
    # both land in column 1, row 0 above row 1
    board.pattern_lines[0] = PatternLine(capacity=1, color="yellow", count=1)
    board.pattern_lines[1] = PatternLine(capacity=2, color="blue", count=1)

    new = engine.apply_move(state, "p0", _move("factory", "blue", "pattern_line", 4, 1), random.Random(0))

    score = new.round_scores[0]
    assert [p.points for p in score.placements] == [1, 2]
    assert score.floor_penalty == -4
    assert new.players[0].board.score == 9
    assert state.players[0].board.score == 10


def test_was_completed_only_marks_the_latest_pass():
    state = _last_draft_state()
    old = state.players[0].board.wall[0][0]
    old.filled = True
    old.was_completed = True

    new = engine.apply_move(state, "p0", _move("factory", "blue", "pattern_line", 4, 3), random.Random(0))

    assert not new.players[0].board.wall[0][0].was_completed
    assert new.players[0].board.wall[0][0].filled


def test_floor_penalty_never_drops_score_below_zero():
    state = _last_draft_state()
    board = state.players[0].board
    board.score = 2
    board.floor_line = ["first_player", "red", "red"]

    new = engine.apply_move(state, "p0", _move("factory", "blue", "floor", 4), random.Random(0))

    # floor now holds marker, red, red and four blue: -1-1-2-2-2-3-3
    assert new.players[0].board.score == 0
    assert new.players[0].board.floor_line == []
    assert new.round_scores[0].floor_penalty == -14
    assert "first_player" not in new.discard
    assert new.discard.count("red") == 2


def test_completed_row_ends_the_game_with_bonuses():
    state = _last_draft_state()
    board = state.players[0].board
    for c in range(4):
        board.wall[0][c].filled = True
    board.pattern_lines[0] = PatternLine(capacity=1, color="white", count=1)

    new = engine.apply_move(state, "p0", _move("factory", "blue", "pattern_line", 4, 3), random.Random(0))

    assert new.phase == "finished"
    assert new.winner == "p0"
    final = {s.player_id: s for s in new.final_scores}
    # (0, 4) closes a run of five; blue at (3, 3) stands alone
    assert final["p0"].base_score == 6
    assert final["p0"].row_bonus == 2
    assert final["p0"].final_total == 8
    assert new.players[0].board.score == 8
    assert final["p1"].final_total == 0
    assert new.round == 1


def test_ties_go_to_the_earliest_seat():
    state = _game(3)
    scores = engine.final_scores(state.players)
    assert engine.pick_winner(scores) == "p0"

    scores[2].final_total = 5
    scores[1].final_total = 5
    assert engine.pick_winner(scores) == "p1"


# ----------------------------
# Whole games
# ----------------------------

@pytest.mark.parametrize("seed", [1, 2, 3])
def test_random_game_conserves_tiles_and_respects_turn_order(seed):
    rng = random.Random(seed)
    state = engine.initialize("ROOM01", _players(2), random.Random(seed))

    for _ in range(2000):
        if state.phase == "finished":
            break
        move = rng.choice(_legal_moves(state))
        seat = state.current_player_index
        starter = state.first_player_index
        if move.selection.source == "center" and state.center.has_first_player:
            starter = seat

        new = engine.apply_move(state, state.current_player.id, move, rng)
        engine.assert_tiles_conserved(new)

        if new.phase == "playing" and new.round == state.round:
            assert new.current_player_index == (seat + 1) % 2
        elif new.phase == "playing":
            assert new.round == state.round + 1
            assert new.current_player_index == starter
            assert {s.round for s in new.round_scores} == {state.round}
        state = new

    assert state.phase == "finished"
    assert state.winner in {"p0", "p1"}
    totals = {s.player_id: s.final_total for s in state.final_scores}
    assert totals[state.winner] == max(totals.values())
