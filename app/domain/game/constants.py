# app/domain/game/constants.py
from __future__ import annotations

from typing import Dict, List

from app.domain.common.types import TileColor

COLORS: List[TileColor] = ["blue", "yellow", "red", "black", "white"]
FIRST_PLAYER = "first_player"

TILES_PER_COLOR = 20
TILES_PER_FACTORY = 4

FACTORIES_BY_PLAYER_COUNT: Dict[int, int] = {2: 5, 3: 7, 4: 9}
DEFAULT_FACTORY_COUNT = 5

WALL_SIZE = 5
PATTERN_LINE_COUNT = 5

# Row r is the first row shifted right by r: cell (r, c) holds COLORS[(c - r) % 5]
WALL_PATTERN: List[List[TileColor]] = [
    [COLORS[(col - row) % WALL_SIZE] for col in range(WALL_SIZE)]
    for row in range(WALL_SIZE)
]

FLOOR_PENALTIES = [-1, -1, -2, -2, -2, -3, -3]
FLOOR_OVERFLOW_PENALTY = -3
MAX_FLOOR_TILES = 7

BONUS_COMPLETE_ROW = 2
BONUS_COMPLETE_COLUMN = 7
BONUS_COMPLETE_COLOR = 10

MIN_PLAYERS = 2
MAX_PLAYERS = 4


def factory_count_for(player_count: int) -> int:
    return FACTORIES_BY_PLAYER_COUNT.get(player_count, DEFAULT_FACTORY_COUNT)


def wall_column(row: int, color: str) -> int:
    """Column of `color` in wall row `row`."""
    return WALL_PATTERN[row].index(color)
