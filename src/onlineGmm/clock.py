"""Timestamp helpers used for cluster aging."""

import time
from typing import Optional


def timestamp() -> float:
    """Monotonic time in seconds."""
    return time.monotonic()


def seconds_since(ts: float, now: Optional[float] = None) -> float:
    if now is None:
        now = timestamp()
    return now - ts


def is_timed_out(ts: float, lifetime: float, now: Optional[float] = None) -> bool:
    return seconds_since(ts, now) > lifetime
