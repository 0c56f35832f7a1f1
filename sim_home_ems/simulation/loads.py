"""
Controllable electrical loads: pool filtration pump and EV charger.

The pool pump is a shiftable load that must reach a daily runtime; the EV
charger is a deferred load that must deliver a session energy before the car
leaves. Both derive their day and session bookkeeping from the simulation time
carried by the step context.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..calendar_utils import SECONDS_PER_DAY, day_index, hour_of_day, in_hour_window, normalize_hour
from .device import (
    ClockMixin,
    Device,
    DeviceKind,
    DevicePlan,
    EnvironmentContext,
    Need,
    PowerRequest,
    StateValue,
    clamp,
)

_LOGGER = logging.getLogger(__name__)

POOL_WINDOW_PRIORITY_HINT = 60.0
POOL_CATCH_UP_PRIORITY_HINT = 95.0
EV_BASE_PRIORITY_HINT = 70.0
EV_FINAL_HOUR_PRIORITY_HINT = 95.0
_EPSILON = 1e-6


@dataclass
class PoolPumpParams:
    """
    Pool filtration pump parameters.

    Attributes:
        power_kw: Nominal pump power (kW); the pump runs at full power or not.
        min_hours_per_day: Filtration runtime to reach every calendar day (h).
        preferred_windows: Hour windows ``(start, end)`` where running is
            preferred; a window with ``start > end`` wraps past midnight.
        catch_up_hour: From this hour on the pump runs whatever the window if
            the daily runtime is not reached yet.
    """

    power_kw: float = 1.5
    min_hours_per_day: float = 4.0
    preferred_windows: List[Tuple[float, float]] = field(default_factory=lambda: [(10.0, 14.0)])
    catch_up_hour: float = 18.0

    def __post_init__(self) -> None:
        if self.power_kw <= 0:
            raise ValueError("power_kw must be > 0")
        if not 0.0 <= self.min_hours_per_day <= 24.0:
            raise ValueError("min_hours_per_day must be within [0, 24]")
        self.preferred_windows = [(float(start), float(end)) for start, end in self.preferred_windows]


class PoolPump(ClockMixin, Device):
    """
    Shiftable load that must accumulate ``min_hours_per_day`` of runtime per day.

    While the daily runtime is not reached the pump asks for full power:

    - inside a preferred window, priority 60, PV only;
    - from the catch-up hour on, priority 95, PV only;
    - as soon as the time left in the day is lower than or equal to the runtime
      still missing, priority 95 and firm (served from storage/grid too).

    Runtime accrues as ``(p / power_kw) * dt_h``, so partial delivery counts
    as a fraction of an hour. ``hours_run`` resets whenever the day index of
    the step changes.
    """

    kind = DeviceKind.POOL_PUMP

    def __init__(self, device_id: str, label: str, params: PoolPumpParams) -> None:
        super().__init__(device_id, label)
        self.params = params
        self.hours_run = 0.0
        self.last_power_kw = 0.0
        self.energy_delivered_kwh = 0.0
        self.energy_required_kwh = 0.0
        self._day: Optional[int] = None

    def _roll_day(self, time_s: float) -> None:
        current_day = day_index(time_s)
        if current_day != self._day:
            if self._day is not None:
                _LOGGER.debug(
                    "Pool %s day %d closed with %.2f h of filtration", self.id, self._day, self.hours_run
                )
            self._day = current_day
            self.hours_run = 0.0
            self.energy_required_kwh += self.params.min_hours_per_day * self.params.power_kw

    @property
    def hours_remaining(self) -> float:
        return max(self.params.min_hours_per_day - self.hours_run, 0.0)

    def in_preferred_window(self, hour: float) -> bool:
        return any(in_hour_window(hour, start, end) for start, end in self.params.preferred_windows)

    def plan(self, dt_s: float, ctx: EnvironmentContext) -> DevicePlan:
        time_s = self._resolve_time(ctx)
        self._roll_day(time_s)
        remaining_h = self.hours_remaining
        if remaining_h <= _EPSILON:
            return DevicePlan()

        hour = hour_of_day(time_s)
        time_left_day_h = 24.0 - hour
        dt_h = dt_s / 3600.0
        power_kw = min(self.params.power_kw, remaining_h * self.params.power_kw / dt_h)

        if time_left_day_h <= remaining_h + _EPSILON:
            return DevicePlan(
                request=PowerRequest(
                    max_accept_kw=power_kw,
                    min_accept_kw=power_kw,
                    need=Need.TO_LOAD,
                    priority_hint=POOL_CATCH_UP_PRIORITY_HINT,
                )
            )
        if hour >= self.params.catch_up_hour:
            priority = POOL_CATCH_UP_PRIORITY_HINT
        elif self.in_preferred_window(hour):
            priority = POOL_WINDOW_PRIORITY_HINT
        else:
            return DevicePlan()
        return DevicePlan(
            request=PowerRequest(max_accept_kw=power_kw, need=Need.TO_LOAD, priority_hint=priority)
        )

    def apply(self, power_kw: float, dt_s: float, ctx: EnvironmentContext) -> None:
        time_s = self._resolve_time(ctx)
        self._roll_day(time_s)
        power_kw = clamp(power_kw, 0.0, self.params.power_kw)
        dt_h = dt_s / 3600.0
        self.hours_run += (power_kw / self.params.power_kw) * dt_h
        self.energy_delivered_kwh += power_kw * dt_h
        self.last_power_kw = power_kw
        self._advance_clock(time_s, dt_s)

    def state(self) -> Dict[str, StateValue]:
        return {
            "hours_run": self.hours_run,
            "hours_remaining": self.hours_remaining,
            "running": self.last_power_kw > _EPSILON,
            "power_kW": self.last_power_kw,
            "energy_delivered_kWh": self.energy_delivered_kwh,
            "energy_required_kWh": self.energy_required_kwh,
        }


@dataclass
class EVChargeSession:
    """
    Recurring daily plug-in session.

    ``arrival_hour == departure_hour`` means the car stays plugged all day;
    ``departure_hour < arrival_hour`` means it leaves the next morning.
    """

    arrival_hour: float = 18.0
    departure_hour: float = 7.0
    energy_need_kwh: float = 10.0

    def __post_init__(self) -> None:
        self.arrival_hour = normalize_hour(self.arrival_hour)
        self.departure_hour = normalize_hour(self.departure_hour)
        self.energy_need_kwh = max(0.0, self.energy_need_kwh)


@dataclass
class EVChargerParams:
    max_power_kw: float = 7.0
    session: EVChargeSession = field(default_factory=EVChargeSession)

    def __post_init__(self) -> None:
        self.max_power_kw = max(0.0, self.max_power_kw)


class EVCharger(ClockMixin, Device):
    """
    Deferred load charging a vehicle during its daily session.

    The current (or next) session start is computed from the absolute time,
    aligned to calendar days. Inside a session the charger asks for
    ``min(max_power, remaining / dt_h)`` with priority 70 (95 in the final
    hour) plus ``round(5 * min(required / max_power, 1))``, where ``required``
    is the power that finishes the remaining energy exactly at departure.

    Inside the final hour, or once ``required`` reaches the rated power, the
    request becomes firm for ``min(required, max_accept)`` so the car leaves
    charged even without PV.

    Example:
        ```python
        charger = EVCharger(
            "ev", "Car",
            EVChargerParams(max_power_kw=7.0, session=EVChargeSession(18.0, 7.0, 14.0)),
        )
        charger.plan(3600, EnvironmentContext(pv_kw=0.0, base_load_kw=0.5, time_s=12 * 3600))
        # -> empty plan; state()["session_time_to_start_h"] == 6.0
        ```
    """

    kind = DeviceKind.EV_CHARGER

    def __init__(self, device_id: str, label: str, params: EVChargerParams) -> None:
        super().__init__(device_id, label)
        self.params = params
        self.last_power_kw = 0.0
        self.energy_delivered_kwh = 0.0
        self.energy_required_kwh = 0.0
        self._session_start_s: Optional[float] = None
        self._delivered_session_kwh = 0.0

    def session_duration_s(self) -> float:
        session = self.params.session
        if session.energy_need_kwh <= 0.0 or self.params.max_power_kw <= 0.0:
            return 0.0
        if session.departure_hour == session.arrival_hour:
            return SECONDS_PER_DAY
        if session.departure_hour > session.arrival_hour:
            return (session.departure_hour - session.arrival_hour) * 3600.0
        return (24.0 - session.arrival_hour + session.departure_hour) * 3600.0

    def _ensure_session(self, time_s: float) -> None:
        duration_s = self.session_duration_s()
        if duration_s <= 0.0:
            self._session_start_s = None
            self._delivered_session_kwh = 0.0
            return

        if self._session_start_s is not None:
            if time_s >= self._session_start_s + duration_s - _EPSILON:
                _LOGGER.debug(
                    "EV %s session ended with %.2f/%.2f kWh",
                    self.id,
                    self._delivered_session_kwh,
                    self.params.session.energy_need_kwh,
                )
                self._session_start_s = None
                self._delivered_session_kwh = 0.0

        if self._session_start_s is None:
            arrival_s = self.params.session.arrival_hour * 3600.0
            start = math.floor((time_s - arrival_s) / SECONDS_PER_DAY) * SECONDS_PER_DAY + arrival_s
            if time_s < start:
                start -= SECONDS_PER_DAY
            if time_s >= start + duration_s:
                start += SECONDS_PER_DAY
            if start <= time_s < start + duration_s:
                self._session_start_s = start
                self.energy_required_kwh += self.params.session.energy_need_kwh

    def _session_bounds(self, time_s: float) -> Optional[Tuple[float, float]]:
        duration_s = self.session_duration_s()
        if duration_s <= 0.0 or self._session_start_s is None:
            return None
        start = self._session_start_s
        end = start + duration_s
        if time_s < start or time_s > end:
            return None
        return start, end

    def next_session_start(self, time_s: float) -> Optional[float]:
        """Start of the session containing ``time_s``, or of the next one."""
        duration_s = self.session_duration_s()
        if duration_s <= 0.0:
            return None
        arrival_s = self.params.session.arrival_hour * 3600.0
        day_start = math.floor(time_s / SECONDS_PER_DAY) * SECONDS_PER_DAY
        next_start: Optional[float] = None
        for start in (
            day_start - SECONDS_PER_DAY + arrival_s,
            day_start + arrival_s,
            day_start + SECONDS_PER_DAY + arrival_s,
        ):
            if start - _EPSILON <= time_s < start + duration_s - _EPSILON:
                return start
            if start >= time_s - _EPSILON and (next_start is None or start < next_start):
                next_start = start
        return next_start

    @property
    def remaining_energy_kwh(self) -> float:
        return max(0.0, self.params.session.energy_need_kwh - self._delivered_session_kwh)

    def plan(self, dt_s: float, ctx: EnvironmentContext) -> DevicePlan:
        time_s = self._resolve_time(ctx)
        self._last_time_s = time_s
        self._ensure_session(time_s)
        bounds = self._session_bounds(time_s)
        remaining = self.remaining_energy_kwh
        max_power = self.params.max_power_kw
        if bounds is None or remaining <= 0.0 or max_power <= 0.0:
            return DevicePlan()

        time_remaining_s = max(bounds[1] - time_s, 0.0)
        if time_remaining_s <= _EPSILON:
            return DevicePlan()

        dt_h = dt_s / 3600.0
        required_kw = remaining / (time_remaining_s / 3600.0)
        capped_required_kw = clamp(required_kw, 0.0, max_power)
        final_hour = time_remaining_s <= 3600.0
        base_priority = EV_FINAL_HOUR_PRIORITY_HINT if final_hour else EV_BASE_PRIORITY_HINT
        max_accept_kw = max(0.0, min(max_power, remaining / max(dt_h, _EPSILON)))
        if max_accept_kw <= 0.0:
            return DevicePlan()

        min_accept_kw = 0.0
        if final_hour or required_kw >= max_power - _EPSILON:
            min_accept_kw = min(capped_required_kw, max_accept_kw)
        return DevicePlan(
            request=PowerRequest(
                max_accept_kw=max_accept_kw,
                min_accept_kw=min_accept_kw,
                need=Need.TO_LOAD,
                priority_hint=base_priority + round(capped_required_kw / max_power * 5),
            )
        )

    def apply(self, power_kw: float, dt_s: float, ctx: EnvironmentContext) -> None:
        time_s = self._resolve_time(ctx)
        self._ensure_session(time_s)
        self._advance_clock(time_s, dt_s)
        bounds = self._session_bounds(time_s)
        remaining = self.remaining_energy_kwh
        if bounds is None or self.params.max_power_kw <= 0.0 or remaining <= 0.0:
            self.last_power_kw = 0.0
            return

        dt_h = dt_s / 3600.0
        applied_kw = max(0.0, min(power_kw, self.params.max_power_kw, remaining / dt_h))
        delivered_kwh = applied_kw * dt_h
        self.last_power_kw = applied_kw
        self._delivered_session_kwh = min(
            self.params.session.energy_need_kwh, self._delivered_session_kwh + delivered_kwh
        )
        self.energy_delivered_kwh += delivered_kwh

    def session_outlook(self, time_s: float) -> Dict[str, StateValue]:
        """Session fields of :meth:`state` evaluated at ``time_s``."""
        remaining = self.remaining_energy_kwh
        bounds = self._session_bounds(time_s)
        active = bool(
            bounds is not None
            and bounds[0] - _EPSILON <= time_s < bounds[1] + _EPSILON
            and remaining > 0.0
        )
        time_remaining_s = max(bounds[1] - time_s, 0.0) if bounds is not None else 0.0
        next_start = self.next_session_start(time_s)
        if active:
            time_to_start_h = 0.0
        elif next_start is not None:
            time_to_start_h = max(next_start - time_s, 0.0) / 3600.0
        else:
            time_to_start_h = math.inf
        return {
            "energy_remaining_kWh": remaining,
            "session_active": active,
            "session_time_remaining_h": time_remaining_s / 3600.0,
            "session_time_to_start_h": time_to_start_h,
        }

    def state(self) -> Dict[str, StateValue]:
        return {
            "charging": self.last_power_kw > 1e-3,
            "charging_power_kW": self.last_power_kw,
            **self.session_outlook(self._last_time_s),
            "session_energy_need_kWh": self.params.session.energy_need_kwh,
            "session_duration_h": self.session_duration_s() / 3600.0,
            "energy_delivered_kWh": self.energy_delivered_kwh,
            "energy_required_kWh": self.energy_required_kwh,
        }
