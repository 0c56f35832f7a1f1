"""
Synthetic PV production and household load series.

The engine consumes plain per-step arrays; this module builds them from a PV
peak power (Gaussian daylight shape) or from daily profiles projected onto the
step grid.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from ..calendar_utils import SECONDS_PER_DAY, build_time_axis

DEFAULT_BASE_LOAD_PROFILE_KW = (
    0.35, 0.30, 0.30, 0.30, 0.30, 0.35,
    0.55, 0.80, 0.70, 0.50, 0.45, 0.50,
    0.65, 0.55, 0.45, 0.45, 0.55, 0.75,
    1.10, 1.20, 1.00, 0.80, 0.60, 0.45,
)
"""Hourly base load of a typical household (kW), midnight to 23:00."""


def pv_bell_profile(
    n_steps: int,
    dt_s: float,
    peak_kw: float,
    sunrise_hour: float = 6.0,
    sunset_hour: float = 18.0,
    sigma_h: float = 3.0,
) -> np.ndarray:
    """
    Clear-sky PV power series with a Gaussian daylight shape.

    The curve peaks at ``peak_kw`` halfway between sunrise and sunset and is
    zero at night. Every simulated day repeats the same shape.

    Args:
        n_steps: Number of simulation steps.
        dt_s: Step length (s).
        peak_kw: Power at solar noon (kW).
        sunrise_hour: First hour with production.
        sunset_hour: Last hour with production.
        sigma_h: Width of the Gaussian (hours).

    Returns:
        np.ndarray: PV power per step (kW), shape ``(n_steps,)``.

    Example:
        ```python
        pv = pv_bell_profile(n_steps=96, dt_s=900, peak_kw=5.0)
        pv.max()   # 5.0 at 12:00
        pv[0]      # 0.0 at midnight
        ```
    """
    if peak_kw < 0:
        raise ValueError("peak_kw must be >= 0")
    if sunset_hour <= sunrise_hour:
        raise ValueError("sunset_hour must be after sunrise_hour")
    _, hours = build_time_axis(n_steps, dt_s)
    noon = 0.5 * (sunrise_hour + sunset_hour)
    shape = np.exp(-((hours - noon) ** 2) / (2 * sigma_h ** 2))
    daylight = (hours >= sunrise_hour) & (hours <= sunset_hour)
    return np.where(daylight, peak_kw * shape, 0.0)


def project_profile(profile: Sequence[float], n_steps: int, dt_s: float) -> np.ndarray:
    """
    Project a daily profile of any resolution onto the step grid.

    A profile whose length already equals ``n_steps`` is used as is. Otherwise
    its entries are spread evenly over one day and each step takes the entry
    covering its time of day. An empty profile gives zeros.
    """
    values = np.asarray(profile, dtype=float)
    if values.size == 0:
        return np.zeros(n_steps)
    if values.size == n_steps:
        return values.copy()
    time_s, _ = build_time_axis(n_steps, dt_s)
    ratio = np.mod(time_s, SECONDS_PER_DAY) / SECONDS_PER_DAY
    index = np.minimum(np.floor(ratio * values.size).astype(int), values.size - 1)
    return values[index]


def expand_series(
    value: Optional[Union[float, Sequence[float]]],
    n_steps: int,
    dt_s: float,
    default: float = 0.0,
) -> np.ndarray:
    """
    Turn a scalar, a daily profile or a full series into a per-step array.
    """
    if value is None:
        return np.full(n_steps, float(default))
    if isinstance(value, (int, float)):
        return np.full(n_steps, float(value))
    return project_profile(value, n_steps, dt_s)


def default_base_load(n_steps: int, dt_s: float) -> np.ndarray:
    return project_profile(DEFAULT_BASE_LOAD_PROFILE_KW, n_steps, dt_s)


def pv_sine_profile(
    n_steps: int,
    dt_s: float,
    peak_kw: float,
    sunrise_hour: float,
    sunset_hour: float,
    cloud_attenuation: float = 1.0,
) -> np.ndarray:
    """
    PV power following ``sin(pi * x) ** 1.3`` between sunrise and sunset.

    ``x`` runs from 0 at sunrise to 1 at sunset; ``cloud_attenuation`` scales
    the whole curve (1.0 for a clear day).
    """
    if peak_kw < 0 or cloud_attenuation < 0:
        raise ValueError("peak_kw and cloud_attenuation must be >= 0")
    if sunset_hour <= sunrise_hour:
        raise ValueError("sunset_hour must be after sunrise_hour")
    _, hours = build_time_axis(n_steps, dt_s)
    norm = np.clip((hours - sunrise_hour) / (sunset_hour - sunrise_hour), 0.0, 1.0)
    shaped = np.sin(np.pi * norm) ** 1.3
    daylight = (hours >= sunrise_hour) & (hours <= sunset_hour)
    return np.where(daylight, shaped * peak_kw * cloud_attenuation, 0.0)


def household_load_profile(
    n_steps: int,
    dt_s: float,
    base_kw: float,
    evening_peak_kw: float,
    noise_kw: float = 0.0,
) -> np.ndarray:
    """
    Flat base load with a small 07:00 bump, an evening peak around 19:00 and
    an optional deterministic ripple of ``noise_kw``.
    """
    time_s, hours = build_time_axis(n_steps, dt_s)
    morning = np.exp(-((hours - 7.0) ** 2) / 3.0) * 0.3
    evening = np.exp(-((hours - 19.0) ** 2) / 2.0) * evening_peak_kw
    ripple = np.sin(time_s / SECONDS_PER_DAY * 12.0 * np.pi) * noise_kw
    return base_kw + morning + evening + ripple


def dual_level_load_profile(n_steps: int, dt_s: float, day_kw: float, evening_kw: float) -> np.ndarray:
    """
    Two-level load: ``evening_kw`` from 18:00 to 06:00, ``day_kw`` in between.

    The level eases down between 06:00 and 08:00, ramps up linearly between
    17:00 and 18:00, and a short breakfast boost peaks around 07:20.
    """
    _, hours = build_time_axis(n_steps, dt_s)
    gap_kw = evening_kw - day_kw
    level = np.full(n_steps, float(day_kw))
    night = (hours >= 18.0) | (hours < 6.0)
    level[night] = evening_kw
    morning = (hours >= 6.0) & (hours < 8.0)
    easing = 1.0 - np.clip((hours[morning] - 6.0) / 2.0, 0.0, 1.0) ** 1.4
    level[morning] = day_kw + gap_kw * easing
    ramp = (hours >= 17.0) & (hours < 18.0)
    level[ramp] = day_kw + gap_kw * (hours[ramp] - 17.0)
    boost = max(gap_kw, 0.0) * 0.35 * np.exp(-((hours - 7.3) ** 2) / 0.45)
    return level + boost
