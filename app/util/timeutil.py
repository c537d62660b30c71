# app/util/timeutil.py
from __future__ import annotations

import time


def now_ts() -> int:
    """Current wall-clock time in whole epoch seconds."""
    return int(time.time())
