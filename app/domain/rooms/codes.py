# app/domain/rooms/codes.py
from __future__ import annotations

import random
import re
import string
from typing import Container

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
_ROOM_CODE_RE = re.compile(rf"^[A-Z0-9]{{{ROOM_CODE_LENGTH}}}$")


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def is_valid_code(code: str) -> bool:
    return bool(_ROOM_CODE_RE.match(code or ""))


def gen_room_code(rng: random.Random, taken: Container[str], n: int = ROOM_CODE_LENGTH) -> str:
    """Random code that is not in `taken`."""
    while True:
        code = "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(n))
        if code not in taken:
            return code
