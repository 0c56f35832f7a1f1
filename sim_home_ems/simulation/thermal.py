"""
Thermal devices: domestic hot water tank and space heater.

Both models are single-node (fully mixed) thermal masses heated by a resistive
element and cooled towards ambient through a constant loss coefficient. The DHW
tank additionally models hot-water draws and an optional service contract
(deadline preheat and hysteresis latch).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

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

WATER_HEAT_CAPACITY_WH_PER_L_PER_K = 1.163
"""Specific heat of water expressed per litre (Wh / (L * K))."""

DHW_TEMP_BOUNDS_C = (0.0, 100.0)
HEATER_TEMP_BOUNDS_C = (-50.0, 60.0)
DHW_PRIORITY_HINT = 80.0
DHW_DEADLINE_PRIORITY_HINT = 100.0
HOT_MARGIN_K = 0.5


class DHWServiceMode(str, Enum):
    """How the tank treats its daily hot-water deadline."""

    FORCE = "force"
    PENALIZE = "penalize"
    OFF = "off"


@dataclass(frozen=True)
class WaterDrawEvent:
    """
    A recurring daily hot-water draw (shower, dishes, ...).

    Attributes:
        hour: Hour of day (0-24) at which the draw happens.
        volume_l: Hot water drawn (litres), replaced by cold water.
        cold_water_temp_c: Temperature of the replacement water (°C).
    """

    hour: float
    volume_l: float
    cold_water_temp_c: float = 12.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.hour < 24.0:
            raise ValueError("draw hour must be within [0, 24)")
        if self.volume_l < 0:
            raise ValueError("draw volume_l must be >= 0")


@dataclass
class DHWTankParams:
    """
    Domestic hot water tank parameters.

    Attributes:
        volume_l: Tank volume (litres).
        resistive_power_kw: Rated power of the resistive element (kW).
        efficiency: Share of electrical energy turned into water heat (0-1].
        loss_coeff_w_per_k: Standing loss coefficient (W/K).
        ambient_temp_c: Temperature around the tank, used when the step
            context carries no ambient temperature.
        target_temp_c: Service temperature the tank heats up to.
        initial_temp_c: Water temperature at the start of the run.
        draw_profile: Daily draw events.
        service_mode: Deadline behaviour (force, penalize, off).
        deadline_hour: Hour of day at which the tank should be at target.
        preheat_window_h: Hours before the deadline during which the tank,
            in ``force`` mode, turns its request into a firm one.
        penalty_per_k: Penalty (EUR/K) applied to a missed deadline in
            ``penalize`` mode.
        hysteresis_k: Once target is reached the tank stays off until it has
            cooled by this many kelvin. 0 disables the latch.

    Example:
        ```python
        params = DHWTankParams(
            volume_l=300.0,
            target_temp_c=55.0,
            draw_profile=[WaterDrawEvent(hour=7.0, volume_l=80.0, cold_water_temp_c=15.0)],
        )
        ```
    """

    volume_l: float = 250.0
    resistive_power_kw: float = 2.0
    efficiency: float = 0.95
    loss_coeff_w_per_k: float = 10.0
    ambient_temp_c: float = 20.0
    target_temp_c: float = 55.0
    initial_temp_c: float = 45.0
    draw_profile: List[WaterDrawEvent] = field(default_factory=list)
    service_mode: DHWServiceMode = DHWServiceMode.FORCE
    deadline_hour: float = 21.0
    preheat_window_h: float = 1.0
    penalty_per_k: float = 0.08
    hysteresis_k: float = 0.0

    def __post_init__(self) -> None:
        if self.volume_l <= 0:
            raise ValueError("volume_l must be > 0")
        if self.resistive_power_kw < 0:
            raise ValueError("resistive_power_kw must be >= 0")
        if not 0.0 < self.efficiency <= 1.0:
            raise ValueError("efficiency must be within (0, 1]")
        if self.loss_coeff_w_per_k < 0:
            raise ValueError("loss_coeff_w_per_k must be >= 0")
        if self.preheat_window_h < 0 or self.hysteresis_k < 0 or self.penalty_per_k < 0:
            raise ValueError("preheat_window_h, hysteresis_k and penalty_per_k must be >= 0")
        self.service_mode = DHWServiceMode(self.service_mode)
        self.deadline_hour = normalize_hour(self.deadline_hour)

    @property
    def thermal_capacity_wh_per_k(self) -> float:
        return WATER_HEAT_CAPACITY_WH_PER_L_PER_K * self.volume_l


class DHWTank(ClockMixin, Device):
    """
    Domestic hot water tank acting as thermal storage.

    Every step is applied in a fixed order:

    1. Draw events whose absolute time falls inside ``[t, t + dt)`` mix cold
       water into the tank: ``T' = (T * (V - v) + Tc * v) / V``. Each event
       fires at most once per calendar day.
    2. Resistive heating adds ``p * dt_h * eta * 1000 / (1.163 * V)`` °C, never
       pushing the water above ``max(target, T)``.
    3. Standing losses remove ``U * (T - T_amb) * dt_h`` Wh through the thermal
       mass and never cool the water below ambient.

    The result is clamped to [0, 100] °C.

    Planning:
        The tank asks for the power needed to reach its target this step
        (losses included), capped by the resistive power, with need ``toHeat``
        and priority 80. In ``force`` mode, within ``preheat_window_h`` before
        ``deadline_hour`` and below target, the request becomes firm (it may be
        served from storage or the grid) and its priority rises to 100.

    Example:
        ```python
        tank = DHWTank("dhw", "Hot water", DHWTankParams(initial_temp_c=40.0))
        ctx = EnvironmentContext(pv_kw=3.0, base_load_kw=0.5, time_s=12 * 3600)
        plan = tank.plan(900, ctx)
        tank.apply(plan.request.max_accept_kw, 900, ctx)
        tank.state()["temp_C"]  # slightly above 41 °C
        ```

    Notes:
        - Fired draws are remembered as (day index, event index) pairs and
          forgotten once their day is over
        - Draw mixing is not floored at ambient; cold water can bring the tank
          below it
    """

    kind = DeviceKind.DHW_TANK

    def __init__(self, device_id: str, label: str, params: DHWTankParams) -> None:
        super().__init__(device_id, label)
        self.params = params
        self.temp_c = clamp(params.initial_temp_c, *DHW_TEMP_BOUNDS_C)
        self.last_power_kw = 0.0
        self.deadline_forced = False
        self._latched_off = False
        self._day: Optional[int] = None
        self._fired_draws: Set[Tuple[int, int]] = set()

    @property
    def target_temp_c(self) -> float:
        return self.params.target_temp_c

    @property
    def max_power_kw(self) -> float:
        return self.params.resistive_power_kw

    def _ambient(self, ctx: EnvironmentContext) -> float:
        if ctx.ambient_temp_c is not None:
            return ctx.ambient_temp_c
        return self.params.ambient_temp_c

    def power_to_reach_target(self, dt_s: float, ambient_c: Optional[float] = None) -> float:
        """
        Electrical power (kW) that brings the tank to target by the end of the
        step, standing losses included, capped by the resistive power.
        """
        ambient = self.params.ambient_temp_c if ambient_c is None else ambient_c
        target = self.params.target_temp_c
        if self.temp_c >= target - 1e-6:
            return 0.0
        capacity = self.params.thermal_capacity_wh_per_k
        loss_c = self.params.loss_coeff_w_per_k * (self.temp_c - ambient) * (dt_s / 3600.0) / capacity
        required_gain_c = target - self.temp_c + loss_c
        if required_gain_c <= 0.0:
            return 0.0
        required_kw = (required_gain_c * capacity * 3600.0) / (dt_s * 1000.0 * self.params.efficiency)
        if not math.isfinite(required_kw):
            return 0.0
        return clamp(required_kw, 0.0, self.params.resistive_power_kw)

    def in_deadline_window(self, time_s: float) -> bool:
        window_h = self.params.preheat_window_h
        if window_h <= 0.0:
            return False
        until_deadline_h = (self.params.deadline_hour - hour_of_day(time_s)) % 24.0
        return until_deadline_h <= window_h

    def _update_latch(self) -> None:
        if self.params.hysteresis_k <= 0.0:
            self._latched_off = False
            return
        target = self.params.target_temp_c
        if not self._latched_off and self.temp_c >= target - 1e-6:
            self._latched_off = True
        elif self._latched_off and self.temp_c <= target - self.params.hysteresis_k:
            self._latched_off = False

    def plan(self, dt_s: float, ctx: EnvironmentContext) -> DevicePlan:
        time_s = self._resolve_time(ctx)
        self.deadline_forced = False
        self._update_latch()
        if self._latched_off:
            return DevicePlan()
        power_kw = self.power_to_reach_target(dt_s, self._ambient(ctx))
        if power_kw <= 0.0:
            return DevicePlan()
        if self.params.service_mode is DHWServiceMode.FORCE and self.in_deadline_window(time_s):
            self.deadline_forced = True
            return DevicePlan(
                request=PowerRequest(
                    max_accept_kw=power_kw,
                    min_accept_kw=power_kw,
                    need=Need.TO_HEAT,
                    priority_hint=DHW_DEADLINE_PRIORITY_HINT,
                )
            )
        return DevicePlan(
            request=PowerRequest(
                max_accept_kw=power_kw,
                need=Need.TO_HEAT,
                priority_hint=DHW_PRIORITY_HINT,
            )
        )

    def _reset_day_if_needed(self, time_s: float) -> None:
        current_day = day_index(time_s)
        if current_day != self._day:
            self._day = current_day
            self._fired_draws = {key for key in self._fired_draws if key[0] >= current_day}

    def _apply_water_draws(self, time_s: float, dt_s: float) -> None:
        volume = self.params.volume_l
        current_day = day_index(time_s)
        for index, draw in enumerate(self.params.draw_profile):
            for day in (current_day, current_day + 1):
                key = (day, index)
                if key in self._fired_draws:
                    continue
                event_s = day * SECONDS_PER_DAY + draw.hour * 3600.0
                if time_s <= event_s < time_s + dt_s:
                    drawn = min(draw.volume_l, volume)
                    self.temp_c = (self.temp_c * (volume - drawn) + draw.cold_water_temp_c * drawn) / volume
                    self._fired_draws.add(key)
                    _LOGGER.debug(
                        "DHW %s draw #%d fired at t=%.0fs (%.1f L), temp %.2f °C",
                        self.id,
                        index,
                        time_s,
                        drawn,
                        self.temp_c,
                    )

    def apply(self, power_kw: float, dt_s: float, ctx: EnvironmentContext) -> None:
        time_s = self._resolve_time(ctx)
        self._reset_day_if_needed(time_s)
        self._apply_water_draws(time_s, dt_s)

        power_kw = clamp(power_kw, 0.0, self.params.resistive_power_kw)
        dt_h = dt_s / 3600.0
        capacity = self.params.thermal_capacity_wh_per_k
        ambient = self._ambient(ctx)

        heat_gain_c = power_kw * dt_h * self.params.efficiency * 1000.0 / capacity
        heated = min(self.temp_c + heat_gain_c, max(self.params.target_temp_c, self.temp_c))

        loss_c = self.params.loss_coeff_w_per_k * (heated - ambient) * dt_h / capacity
        if heated >= ambient:
            cooled = max(heated - loss_c, ambient)
        else:
            cooled = min(heated - loss_c, ambient)

        self.temp_c = clamp(cooled, *DHW_TEMP_BOUNDS_C)
        self.last_power_kw = power_kw
        self._advance_clock(time_s, dt_s)

    def state(self) -> Dict[str, StateValue]:
        return {
            "temp_C": self.temp_c,
            "target_C": self.params.target_temp_c,
            "isHot": self.temp_c >= self.params.target_temp_c - HOT_MARGIN_K,
            "power_kW": self.last_power_kw,
            "deadline_forced": self.deadline_forced,
        }


@dataclass
class SpaceHeaterParams:
    """
    Space heating zone parameters.

    Attributes:
        max_power_kw: Heater rated power (kW).
        thermal_capacity_kwh_per_k: Thermal mass of the heated zone (kWh/K).
        loss_coeff_w_per_k: Envelope loss coefficient (W/K).
        ambient_temp_c: Outdoor temperature used when the context has none.
        comfort_day_c: Setpoint inside ``[day_start_hour, night_start_hour)``.
        comfort_night_c: Setpoint outside the day window.
        day_start_hour: Start of the day window (hour of day).
        night_start_hour: End of the day window (hour of day); may be smaller
            than ``day_start_hour`` for windows wrapping midnight.
        hysteresis_c: Dead band below the setpoint before heat is requested.
        initial_temp_c: Zone temperature at the start of the run.
        grid_backup: When True the thermostat request is firm and may be
            served from storage or the grid; otherwise the heater runs on PV
            surplus only.
    """

    max_power_kw: float = 5.0
    thermal_capacity_kwh_per_k: float = 2.0
    loss_coeff_w_per_k: float = 200.0
    ambient_temp_c: float = 15.0
    comfort_day_c: float = 20.0
    comfort_night_c: float = 18.0
    day_start_hour: float = 6.0
    night_start_hour: float = 22.0
    hysteresis_c: float = 0.5
    initial_temp_c: float = 18.0
    grid_backup: bool = True

    def __post_init__(self) -> None:
        if self.max_power_kw < 0:
            raise ValueError("max_power_kw must be >= 0")
        if self.thermal_capacity_kwh_per_k <= 0:
            raise ValueError("thermal_capacity_kwh_per_k must be > 0")
        if self.loss_coeff_w_per_k < 0:
            raise ValueError("loss_coeff_w_per_k must be >= 0")
        if self.hysteresis_c < 0:
            raise ValueError("hysteresis_c must be >= 0")


class SpaceHeater(ClockMixin, Device):
    """
    Thermostat-driven space heater over a single thermal mass.

    The heater calls for heat when the zone is below ``setpoint - hysteresis``
    and asks for ``min((setpoint - T) * C / dt_h, max_power)``. Its priority
    hint is the temperature deficit, so colder zones are served first.

    Dynamics:
        T' = T + p * dt_h / C - U * (T - T_amb) * dt_h / (1000 * C)
        clamped to [-50, 60] °C.
    """

    kind = DeviceKind.SPACE_HEATER

    def __init__(self, device_id: str, label: str, params: SpaceHeaterParams) -> None:
        super().__init__(device_id, label)
        self.params = params
        self.temp_c = clamp(params.initial_temp_c, *HEATER_TEMP_BOUNDS_C)
        self.last_power_kw = 0.0
        self.call_for_heat = False
        self.setpoint_c = params.comfort_night_c

    def setpoint_at(self, time_s: float) -> float:
        hour = hour_of_day(time_s)
        if in_hour_window(hour, self.params.day_start_hour, self.params.night_start_hour):
            return self.params.comfort_day_c
        return self.params.comfort_night_c

    def plan(self, dt_s: float, ctx: EnvironmentContext) -> DevicePlan:
        time_s = self._resolve_time(ctx)
        self.setpoint_c = self.setpoint_at(time_s)
        deficit_c = self.setpoint_c - self.temp_c
        self.call_for_heat = self.temp_c < self.setpoint_c - self.params.hysteresis_c
        if not self.call_for_heat:
            return DevicePlan()
        dt_h = dt_s / 3600.0
        power_kw = min(deficit_c * self.params.thermal_capacity_kwh_per_k / dt_h, self.params.max_power_kw)
        if power_kw <= 0.0:
            return DevicePlan()
        return DevicePlan(
            request=PowerRequest(
                max_accept_kw=power_kw,
                min_accept_kw=power_kw if self.params.grid_backup else 0.0,
                need=Need.TO_HEAT,
                priority_hint=deficit_c,
            )
        )

    def apply(self, power_kw: float, dt_s: float, ctx: EnvironmentContext) -> None:
        time_s = self._resolve_time(ctx)
        power_kw = clamp(power_kw, 0.0, self.params.max_power_kw)
        dt_h = dt_s / 3600.0
        capacity = self.params.thermal_capacity_kwh_per_k
        ambient = ctx.ambient_temp_c if ctx.ambient_temp_c is not None else self.params.ambient_temp_c
        gain_c = power_kw * dt_h / capacity
        loss_c = self.params.loss_coeff_w_per_k * (self.temp_c - ambient) * dt_h / (1000.0 * capacity)
        next_temp = self.temp_c + gain_c - loss_c
        bounded = clamp(next_temp, *HEATER_TEMP_BOUNDS_C)
        if bounded != next_temp:
            _LOGGER.warning("Heater %s temperature %.2f °C clamped to %.2f °C", self.id, next_temp, bounded)
        self.temp_c = bounded
        self.last_power_kw = power_kw
        self._advance_clock(time_s, dt_s)

    def state(self) -> Dict[str, StateValue]:
        return {
            "temp_C": self.temp_c,
            "target_C": self.setpoint_c,
            "comfort_lower_bound_C": self.setpoint_c - self.params.hysteresis_c,
            "call_for_heat": self.call_for_heat,
            "heating_power_kW": self.last_power_kw,
        }
