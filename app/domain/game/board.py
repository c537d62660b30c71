# app/domain/game/board.py
"""
Pure queries over a single player's board.

Nothing here mutates its arguments.
"""
from __future__ import annotations

from typing import Dict, List, Sequence

from app.domain.common.types import TileColor
from app.domain.game.constants import (
    BONUS_COMPLETE_COLOR,
    BONUS_COMPLETE_COLUMN,
    BONUS_COMPLETE_ROW,
    COLORS,
    FLOOR_OVERFLOW_PENALTY,
    FLOOR_PENALTIES,
    WALL_PATTERN,
    WALL_SIZE,
    wall_column,
)
from app.store.models import PatternLine, PlayerBoard, WallCell

Wall = List[List[WallCell]]


def can_accept(line: PatternLine, color: TileColor, wall: Wall, row: int) -> bool:
    """Whether pattern line `row` may receive tiles of `color`."""
    if wall[row][wall_column(row, color)].filled:
        return False
    if line.count == 0:
        return True
    return line.color == color and line.count < line.capacity


def legal_lines(board: PlayerBoard, color: TileColor) -> List[int]:
    return [
        i for i, line in enumerate(board.pattern_lines)
        if can_accept(line, color, board.wall, i)
    ]


def _run(wall: Wall, row: int, col: int, d_row: int, d_col: int) -> int:
    n = 0
    r, c = row + d_row, col + d_col
    while 0 <= r < WALL_SIZE and 0 <= c < WALL_SIZE and wall[r][c].filled:
        n += 1
        r, c = r + d_row, c + d_col
    return n


def adjacency_score(wall: Wall, row: int, col: int) -> int:
    """
    Points for the tile just placed at (row, col).

    A run only counts when the tile has a neighbor in that direction; the
    tile itself is counted once per scoring run. An isolated tile scores 1.
    """
    left, right = _run(wall, row, col, 0, -1), _run(wall, row, col, 0, 1)
    up, down = _run(wall, row, col, -1, 0), _run(wall, row, col, 1, 0)

    horizontal = left + 1 + right if (left or right) else 0
    vertical = up + 1 + down if (up or down) else 0

    if horizontal and vertical:
        return horizontal + vertical
    return horizontal or vertical or 1


def floor_penalty(floor_line: Sequence[str]) -> int:
    penalty = 0
    for i in range(len(floor_line)):
        penalty += FLOOR_PENALTIES[i] if i < len(FLOOR_PENALTIES) else FLOOR_OVERFLOW_PENALTY
    return penalty


def has_complete_row(wall: Wall) -> bool:
    return any(all(cell.filled for cell in row) for row in wall)


def complete_rows(wall: Wall) -> int:
    return sum(1 for row in wall if all(cell.filled for cell in row))


def complete_columns(wall: Wall) -> int:
    return sum(
        1 for col in range(WALL_SIZE)
        if all(wall[row][col].filled for row in range(WALL_SIZE))
    )


def complete_colors(wall: Wall) -> int:
    filled: Dict[str, int] = {c: 0 for c in COLORS}
    for r in range(WALL_SIZE):
        for c in range(WALL_SIZE):
            if wall[r][c].filled:
                filled[WALL_PATTERN[r][c]] += 1
    return sum(1 for n in filled.values() if n == WALL_SIZE)


def end_game_bonuses(wall: Wall) -> Dict[str, int]:
    row_bonus = complete_rows(wall) * BONUS_COMPLETE_ROW
    column_bonus = complete_columns(wall) * BONUS_COMPLETE_COLUMN
    color_bonus = complete_colors(wall) * BONUS_COMPLETE_COLOR
    return {
        "row_bonus": row_bonus,
        "column_bonus": column_bonus,
        "color_bonus": color_bonus,
        "total": row_bonus + column_bonus + color_bonus,
    }
