# app/store/models.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.domain.common.types import Destination, Phase, Source, Tile, TileColor
from app.domain.game.constants import (
    MAX_PLAYERS,
    MIN_PLAYERS,
    PATTERN_LINE_COUNT,
    WALL_PATTERN,
)


# ----------------------------
# Board
# ----------------------------

class PatternLine(BaseModel):
    color: Optional[TileColor] = None  # None while empty
    count: int = 0
    capacity: int

    @property
    def is_full(self) -> bool:
        return self.count == self.capacity


class WallCell(BaseModel):
    color: TileColor
    filled: bool = False
    was_completed: bool = False  # filled during the most recent wall-tiling pass


class PlayerBoard(BaseModel):
    pattern_lines: List[PatternLine]
    wall: List[List[WallCell]]
    floor_line: List[Tile] = Field(default_factory=list)
    score: int = 0

    @classmethod
    def empty(cls) -> "PlayerBoard":
        return cls(
            pattern_lines=[PatternLine(capacity=i + 1) for i in range(PATTERN_LINE_COUNT)],
            wall=[[WallCell(color=c) for c in row] for row in WALL_PATTERN],
        )


class Player(BaseModel):
    id: str                          # stable seat id, survives reconnects
    conn_id: Optional[str] = None    # transport handle, changes on every connection
    name: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    connected: bool = True
    is_host: bool = False
    board: PlayerBoard = Field(default_factory=PlayerBoard.empty)


# ----------------------------
# Shared supply
# ----------------------------

class CenterPool(BaseModel):
    tiles: List[TileColor] = Field(default_factory=list)
    has_first_player: bool = True


# ----------------------------
# Moves
# ----------------------------

class TileSelection(BaseModel):
    source: Source
    factory_index: Optional[int] = Field(default=None, ge=0)
    color: TileColor

    @model_validator(mode="after")
    def _factory_needs_index(self) -> "TileSelection":
        if self.source == "factory" and self.factory_index is None:
            raise ValueError("factory_index is required when source is 'factory'")
        return self


class TilePlacement(BaseModel):
    destination: Destination
    line_index: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _line_needs_index(self) -> "TilePlacement":
        if self.destination == "pattern_line" and self.line_index is None:
            raise ValueError("line_index is required when destination is 'pattern_line'")
        return self


class Move(BaseModel):
    selection: TileSelection
    placement: TilePlacement


# ----------------------------
# Scoring reports
# ----------------------------

class TilePlacementScore(BaseModel):
    row: int
    col: int
    color: TileColor
    points: int


class RoundScore(BaseModel):
    player_id: str
    round: int
    placements: List[TilePlacementScore] = Field(default_factory=list)
    adjacency_bonus: int = 0
    floor_penalty: int = 0
    round_total: int = 0
    score_after: int = 0

    @property
    def tiles_placed(self) -> int:
        return len(self.placements)


class FinalScore(BaseModel):
    player_id: str
    player_name: str
    base_score: int
    row_bonus: int = 0
    column_bonus: int = 0
    color_bonus: int = 0
    final_total: int


# ----------------------------
# Game + room
# ----------------------------

class GameState(BaseModel):
    id: str
    players: List[Player] = Field(default_factory=list)
    factories: List[List[TileColor]] = Field(default_factory=list)
    center: CenterPool = Field(default_factory=CenterPool)
    bag: List[TileColor] = Field(default_factory=list)
    discard: List[TileColor] = Field(default_factory=list)
    current_player_index: int = 0
    first_player_index: int = 0
    phase: Phase = "waiting"
    round: int = 0
    winner: Optional[str] = None  # seat id
    round_scores: List[RoundScore] = Field(default_factory=list)
    final_scores: List[FinalScore] = Field(default_factory=list)

    @property
    def current_player(self) -> Optional[Player]:
        if 0 <= self.current_player_index < len(self.players):
            return self.players[self.current_player_index]
        return None


class Room(BaseModel):
    id: str
    created_at: int
    updated_at: int
    max_players: int = Field(default=MAX_PLAYERS, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    game_state: GameState

    @property
    def players(self) -> List[Player]:
        return self.game_state.players

    @property
    def phase(self) -> Phase:
        return self.game_state.phase

    @property
    def host(self) -> Optional[Player]:
        return next((p for p in self.players if p.is_host), None)


class Identity(BaseModel):
    """What the identity provider vouches for on an authenticated session."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
