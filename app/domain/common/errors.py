# app/domain/common/errors.py
from __future__ import annotations


class GameRuleError(Exception):
    """A move that violates the rules was handed to the engine."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class TileConservationError(RuntimeError):
    """Per-color tile totals drifted. Always a programming defect."""


class RoomError(Exception):
    """
    A well-formed room request that cannot be honoured (not found, full,
    not host, ...). `code` is sent to the requester verbatim.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")
