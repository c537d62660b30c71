# app/domain/common/types.py
from __future__ import annotations

from typing import Literal

TileColor = Literal["blue", "yellow", "red", "black", "white"]
Tile = Literal["blue", "yellow", "red", "black", "white", "first_player"]

Phase = Literal["waiting", "playing", "wall_tiling", "finished"]

Source = Literal["factory", "center"]
Destination = Literal["pattern_line", "floor"]
