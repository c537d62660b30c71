# app/domain/common/fsm.py
from __future__ import annotations

from app.domain.common.types import Phase


def can_transition_phase(current: Phase, target: Phase) -> bool:
    """
    Validate game phase transitions.
    wall_tiling is internal: entered and left within a single move.
    """
    transitions: dict[Phase, list[Phase]] = {
        "waiting": ["playing"],
        "playing": ["wall_tiling"],
        "wall_tiling": ["playing", "finished"],
        "finished": ["playing"],
    }
    return target in transitions.get(current, [])
