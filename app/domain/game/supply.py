# app/domain/game/supply.py
from __future__ import annotations

import random
from typing import List, Tuple

from app.domain.common.types import TileColor
from app.domain.game.constants import COLORS, TILES_PER_COLOR, TILES_PER_FACTORY


def new_bag(rng: random.Random) -> List[TileColor]:
    """A full bag: TILES_PER_COLOR of each color, uniformly shuffled."""
    bag: List[TileColor] = [c for c in COLORS for _ in range(TILES_PER_COLOR)]
    rng.shuffle(bag)
    return bag


def refill_factories(
    bag: List[TileColor],
    discard: List[TileColor],
    factory_count: int,
    rng: random.Random,
) -> Tuple[List[List[TileColor]], List[TileColor], List[TileColor]]:
    """
    Draw up to TILES_PER_FACTORY tiles for each factory from the tail of the bag.

    When the bag runs dry mid-draw the discard pile is shuffled into a new bag.
    If both are empty the factory is left short. Inputs are not mutated;
    returns (factories, bag, discard).
    """
    current_bag = list(bag)
    current_discard = list(discard)
    factories: List[List[TileColor]] = []

    for _ in range(factory_count):
        factory: List[TileColor] = []
        for _ in range(TILES_PER_FACTORY):
            if not current_bag:
                if not current_discard:
                    break
                current_bag = current_discard
                rng.shuffle(current_bag)
                current_discard = []
            factory.append(current_bag.pop())
        factories.append(factory)

    return factories, current_bag, current_discard
