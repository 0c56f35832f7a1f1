from __future__ import annotations

import math
from typing import Tuple

import numpy as np

SECONDS_PER_HOUR: float = 3600.0
HOURS_PER_DAY: int = 24
SECONDS_PER_DAY: float = SECONDS_PER_HOUR * HOURS_PER_DAY
"""Length of a simulated calendar day in seconds."""


def hour_of_day(time_s: float) -> float:
    """
    Fractional hour within the day (0 <= h < 24) for an absolute time.
    """
    mod = math.fmod(time_s, SECONDS_PER_DAY)
    if mod < 0:
        mod += SECONDS_PER_DAY
    return mod / SECONDS_PER_HOUR


def day_index(time_s: float) -> int:
    """
    Calendar day number (0 for the first simulated day) of an absolute time.
    """
    return int(math.floor(time_s / SECONDS_PER_DAY))


def normalize_hour(hour: float) -> float:
    """
    Wrap any hour value into [0, 24); non-finite values map to 0.
    """
    if not math.isfinite(hour):
        return 0.0
    return math.fmod(math.fmod(hour, HOURS_PER_DAY) + HOURS_PER_DAY, HOURS_PER_DAY)


def in_hour_window(hour: float, start_hour: float, end_hour: float) -> bool:
    """
    Return True when ``hour`` lies in ``[start_hour, end_hour)``.

    Windows with ``start_hour > end_hour`` wrap past midnight, e.g. 22 -> 6.
    An empty window (start == end) never matches.
    """
    start = normalize_hour(start_hour)
    end = normalize_hour(end_hour)
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def build_time_axis(n_steps: int, dt_s: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Returns the absolute start time of each step and its fractional hour of day.

    Outputs:
      - time_s: array [n_steps] with ``i * dt_s``
      - hour_in_day: array [n_steps] with the hour of day (0..24)
    """
    if n_steps < 0:
        raise ValueError("n_steps must be >= 0")
    if dt_s <= 0:
        raise ValueError("dt_s must be > 0")
    time_s = np.arange(n_steps, dtype=float) * dt_s
    hour_in_day = np.mod(time_s, SECONDS_PER_DAY) / SECONDS_PER_HOUR
    return time_s, hour_in_day
