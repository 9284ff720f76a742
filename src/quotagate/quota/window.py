"""
Sliding window arithmetic over ascending timestamp sequences.

A timestamp t is inside a window of length w ending at now when
t > now - w. Sequences are assumed sorted ascending.
"""

import math
from bisect import bisect_right
from typing import Sequence


def _first_inside(timestamps: Sequence[float], now: float, window: float) -> int:
    return bisect_right(timestamps, now - window)


def prune(timestamps: Sequence[float], now: float, horizon: float) -> list[float]:
    """
    Drop timestamps that fell out of the retention horizon.

    Args:
        timestamps: Ascending timestamps (epoch seconds)
        now: Current time
        horizon: Retention length in seconds

    Returns:
        The suffix of timestamps still inside the horizon
    """
    return list(timestamps[_first_inside(timestamps, now, horizon):])


def within(timestamps: Sequence[float], now: float, window: float) -> list[float]:
    """Timestamps inside the trailing window, oldest first."""
    return list(timestamps[_first_inside(timestamps, now, window):])


def seconds_until_expiry(oldest: float, window: float, now: float) -> int:
    """
    Whole seconds until a timestamp ages out of a window.

    Rounded up so a countdown never reports availability early.
    """
    return max(0, math.ceil(oldest + window - now))
