# app/domain/game/engine.py
"""
Rules engine: the game state machine.

    waiting -> playing -> (wall_tiling) -> playing | finished

Every public transition takes a GameState and returns a new one; the input
is deep-copied first and never mutated. Wall-tiling runs synchronously
inside the move that empties the last source, so callers never observe
the `wall_tiling` phase.
"""
from __future__ import annotations

import random
from typing import Dict, List, Sequence, Tuple

import structlog

from app.domain.common.errors import GameRuleError, TileConservationError
from app.domain.common.fsm import can_transition_phase
from app.domain.common.types import TileColor
from app.domain.game.board import (
    adjacency_score,
    can_accept,
    end_game_bonuses,
    floor_penalty,
    has_complete_row,
)
from app.domain.game.constants import (
    COLORS,
    FIRST_PLAYER,
    MAX_FLOOR_TILES,
    PATTERN_LINE_COUNT,
    TILES_PER_COLOR,
    factory_count_for,
    wall_column,
)
from app.domain.game.supply import new_bag, refill_factories
from app.store.models import (
    CenterPool,
    FinalScore,
    GameState,
    Move,
    PatternLine,
    Player,
    PlayerBoard,
    RoundScore,
    TilePlacementScore,
)

logger = structlog.get_logger(__name__)

Verdict = Tuple[bool, str, str]  # (ok, err_code, err_message)


def _set_phase(state: GameState, target: str) -> None:
    if not can_transition_phase(state.phase, target):
        raise GameRuleError("BAD_PHASE", f"Cannot move from {state.phase} to {target}")
    state.phase = target


# ----------------------------
# Setup
# ----------------------------

def initialize(room_id: str, players: Sequence[Player], rng: random.Random) -> GameState:
    """Deal round one for `players` (seat order is preserved)."""
    factories, bag, discard = refill_factories(new_bag(rng), [], factory_count_for(len(players)), rng)

    seated = [p.model_copy(deep=True, update={"board": PlayerBoard.empty()}) for p in players]

    return GameState(
        id=room_id,
        players=seated,
        factories=factories,
        center=CenterPool(tiles=[], has_first_player=True),
        bag=bag,
        discard=discard,
        current_player_index=0,
        first_player_index=0,
        phase="playing",
        round=1,
        winner=None,
    )


# ----------------------------
# Moves
# ----------------------------

def validate_move(state: GameState, actor_id: str, move: Move) -> Verdict:
    """Check `move` by seat `actor_id` against `state`. Pure."""
    if state.phase != "playing":
        return False, "BAD_PHASE", f"Game is not being played (phase={state.phase})"

    current = state.current_player
    if current is None or current.id != actor_id:
        return False, "NOT_YOUR_TURN", "Not your turn"

    sel = move.selection
    if sel.source == "factory":
        if sel.factory_index is None or sel.factory_index >= len(state.factories):
            return False, "INVALID_SOURCE", "Invalid factory index"
        tiles = state.factories[sel.factory_index]
        if not tiles:
            return False, "EMPTY_SOURCE", "Factory is empty"
    else:
        tiles = state.center.tiles
        if not tiles:
            return False, "EMPTY_SOURCE", "Center pool is empty"

    if sel.color not in tiles:
        return False, "COLOR_NOT_AVAILABLE", f"No {sel.color} tiles in that source"

    place = move.placement
    if place.destination == "pattern_line":
        idx = place.line_index
        if idx is None or idx >= PATTERN_LINE_COUNT:
            return False, "INVALID_DESTINATION", "Invalid pattern line index"
        board = current.board
        if not can_accept(board.pattern_lines[idx], sel.color, board.wall, idx):
            return False, "LINE_REJECTS_COLOR", f"Pattern line {idx + 1} cannot take {sel.color}"

    return True, "", ""


def apply_move(state: GameState, actor_id: str, move: Move, rng: random.Random) -> GameState:
    """
    Apply a move and return the next state.

    Raises GameRuleError if the move does not validate; callers are expected
    to run validate_move first.
    """
    ok, code, message = validate_move(state, actor_id, move)
    if not ok:
        raise GameRuleError(code, message)

    new = state.model_copy(deep=True)
    seat = new.current_player_index
    board = new.players[seat].board
    sel, place = move.selection, move.placement

    if sel.source == "factory":
        tiles = new.factories[sel.factory_index]
        picked = [t for t in tiles if t == sel.color]
        new.center.tiles.extend(t for t in tiles if t != sel.color)
        new.factories[sel.factory_index] = []
    else:
        picked = [t for t in new.center.tiles if t == sel.color]
        new.center.tiles = [t for t in new.center.tiles if t != sel.color]
        if new.center.has_first_player:
            board.floor_line.append(FIRST_PLAYER)
            new.center.has_first_player = False
            new.first_player_index = seat

    overflow: List[TileColor] = picked
    if place.destination == "pattern_line":
        line = board.pattern_lines[place.line_index]
        placed = min(len(picked), line.capacity - line.count)
        line.color = sel.color
        line.count += placed
        overflow = picked[placed:]

    for tile in overflow:
        if len(board.floor_line) < MAX_FLOOR_TILES:
            board.floor_line.append(tile)
        else:
            new.discard.append(tile)

    new.current_player_index = (seat + 1) % len(new.players)

    if all(not f for f in new.factories) and not new.center.tiles:
        _set_phase(new, "wall_tiling")
        _tile_walls(new, rng)

    return new


# ----------------------------
# Round end
# ----------------------------

def _tile_walls(state: GameState, rng: random.Random) -> None:
    discarded: List[TileColor] = []
    scores: List[RoundScore] = []

    for player in state.players:
        score, spilled = _tile_board(player, state.round)
        scores.append(score)
        discarded.extend(spilled)

    state.discard.extend(discarded)
    state.round_scores = scores

    if any(has_complete_row(p.board.wall) for p in state.players):
        _finish(state)
        return

    factories, bag, discard = refill_factories(
        state.bag, state.discard, factory_count_for(len(state.players)), rng
    )
    state.factories = factories
    state.bag = bag
    state.discard = discard
    state.center = CenterPool(tiles=[], has_first_player=True)
    state.current_player_index = state.first_player_index
    state.first_player_index = 0
    state.round += 1
    _set_phase(state, "playing")


def _tile_board(player: Player, round_no: int) -> Tuple[RoundScore, List[TileColor]]:
    board = player.board
    spilled: List[TileColor] = []
    placements: List[TilePlacementScore] = []

    for row in board.wall:
        for cell in row:
            cell.was_completed = False

    # Rows in order; each placement is visible to the rows after it.
    for r, line in enumerate(board.pattern_lines):
        if line.color is None or not line.is_full:
            continue
        c = wall_column(r, line.color)
        cell = board.wall[r][c]
        cell.filled = True
        cell.was_completed = True
        placements.append(
            TilePlacementScore(row=r, col=c, color=line.color, points=adjacency_score(board.wall, r, c))
        )
        spilled.extend([line.color] * (line.count - 1))
        board.pattern_lines[r] = PatternLine(capacity=line.capacity)

    penalty = floor_penalty(board.floor_line)
    spilled.extend(t for t in board.floor_line if t != FIRST_PLAYER)
    board.floor_line = []

    adjacency = sum(p.points for p in placements)
    total = adjacency + penalty
    board.score = max(0, board.score + total)

    return (
        RoundScore(
            player_id=player.id,
            round=round_no,
            placements=placements,
            adjacency_bonus=adjacency,
            floor_penalty=penalty,
            round_total=total,
            score_after=board.score,
        ),
        spilled,
    )


def final_scores(players: Sequence[Player]) -> List[FinalScore]:
    out: List[FinalScore] = []
    for p in players:
        bonus = end_game_bonuses(p.board.wall)
        out.append(
            FinalScore(
                player_id=p.id,
                player_name=p.name,
                base_score=p.board.score,
                row_bonus=bonus["row_bonus"],
                column_bonus=bonus["column_bonus"],
                color_bonus=bonus["color_bonus"],
                final_total=p.board.score + bonus["total"],
            )
        )
    return out


def pick_winner(scores: Sequence[FinalScore]) -> str | None:
    """Highest final total; ties go to the earliest seat."""
    best = None
    for s in scores:
        if best is None or s.final_total > best.final_total:
            best = s
    return best.player_id if best else None


def _finish(state: GameState) -> None:
    scores = final_scores(state.players)
    for player, s in zip(state.players, scores):
        player.board.score = s.final_total
    state.final_scores = scores
    state.winner = pick_winner(scores)
    _set_phase(state, "finished")
    logger.info("game_finished", room_code=state.id, round=state.round, winner=state.winner)


# ----------------------------
# Invariants
# ----------------------------

def tile_counts(state: GameState) -> Dict[str, int]:
    """Per-color totals across every place a tile can live."""
    counts: Dict[str, int] = {c: 0 for c in COLORS}

    def add(tiles) -> None:
        for t in tiles:
            if t != FIRST_PLAYER:
                counts[t] += 1

    add(state.bag)
    add(state.discard)
    add(state.center.tiles)
    for factory in state.factories:
        add(factory)
    for player in state.players:
        board = player.board
        add(board.floor_line)
        for line in board.pattern_lines:
            if line.color is not None:
                counts[line.color] += line.count
        for row in board.wall:
            add(cell.color for cell in row if cell.filled)
    return counts


def assert_tiles_conserved(state: GameState) -> None:
    if state.phase == "waiting":
        return
    counts = tile_counts(state)
    bad = {c: n for c, n in counts.items() if n != TILES_PER_COLOR}
    if bad:
        raise TileConservationError(f"tile counts drifted in room {state.id}: {bad}")
