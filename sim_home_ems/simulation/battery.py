"""
Residential battery storage device.

Contains the :class:`BatteryParams` dataclass describing the pack and the
:class:`Battery` device that plans charge/discharge against the net household
balance and integrates its state of charge with separate efficiencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from .device import (
    Device,
    DeviceKind,
    DevicePlan,
    EnvironmentContext,
    Need,
    PowerOffer,
    PowerRequest,
    StateValue,
    clamp,
)

_LOGGER = logging.getLogger(__name__)

NET_POWER_EPSILON_KW = 0.05
"""Net surplus/deficit below which the battery stays idle (kW)."""

CHARGE_PRIORITY_HINT = 60.0
DISCHARGE_COST_PENALTY = 0.1
_EPSILON = 1e-6


@dataclass
class BatteryParams:
    """
    Battery pack parameters.

    Attributes:
        capacity_kwh: Nominal capacity of the pack (kWh).
        p_max_kw: Maximum charge and discharge power (kW).
        eta_charge: Charging efficiency (0-1]. Fraction of input energy stored.
        eta_discharge: Discharging efficiency (0-1]. Fraction of stored energy
            delivered to the house.
        soc_init_kwh: Initial stored energy (kWh), clamped into the SOC band.
        soc_min_kwh: Lowest allowed stored energy (kWh).
        soc_max_kwh: Highest allowed stored energy (kWh).

    Example:
        ```python
        params = BatteryParams(
            capacity_kwh=10.0,
            p_max_kw=4.0,
            soc_init_kwh=5.0,
            soc_min_kwh=1.0,
            soc_max_kwh=10.0,
        )
        # Usable window: 10 - 1 = 9 kWh
        ```
    """

    capacity_kwh: float = 10.0
    p_max_kw: float = 4.0
    eta_charge: float = 0.95
    eta_discharge: float = 0.95
    soc_init_kwh: float = 5.0
    soc_min_kwh: float = 1.0
    soc_max_kwh: float = 10.0

    def __post_init__(self) -> None:
        if self.capacity_kwh < 0:
            raise ValueError("capacity_kwh must be >= 0")
        if self.p_max_kw < 0:
            raise ValueError("p_max_kw must be >= 0")
        if not 0.0 < self.eta_charge <= 1.0:
            raise ValueError("eta_charge must be within (0, 1]")
        if not 0.0 < self.eta_discharge <= 1.0:
            raise ValueError("eta_discharge must be within (0, 1]")
        if self.soc_min_kwh < 0 or self.soc_min_kwh > self.soc_max_kwh:
            raise ValueError("expected 0 <= soc_min_kwh <= soc_max_kwh")


class Battery(Device):
    """
    Electrical storage following the household net balance.

    The battery only asks for energy when PV exceeds the base load and only
    offers energy when the base load exceeds PV, so a single step never carries
    both a request and an offer.

    Energy Flow:
        Charging:    p * dt_h * eta_charge is added to the SOC.
        Discharging: p * dt_h / eta_discharge is removed from the SOC.

    Power limits per step:
        charge:    min((headroom / eta_charge) * 3600 / dt_s, p_max_kw, net surplus)
        discharge: min(available * eta_discharge * 3600 / dt_s, p_max_kw, net deficit)

    Example:
        ```python
        battery = Battery("battery", "Home battery", BatteryParams())
        ctx = EnvironmentContext(pv_kw=5.0, base_load_kw=1.0, time_s=12 * 3600)
        plan = battery.plan(900, ctx)
        # plan.request.max_accept_kw == 4.0 (p_max_kw caps the 4 kW surplus)
        battery.apply(plan.request.max_accept_kw, 900, ctx)
        ```

    Notes:
        - SOC is clamped into [soc_min_kwh, soc_max_kwh] after every apply
        - The last applied power is kept for step records (+ charge, - discharge)
    """

    kind = DeviceKind.BATTERY

    def __init__(self, device_id: str, label: str, params: BatteryParams) -> None:
        super().__init__(device_id, label)
        self.params = params
        self.soc_kwh = clamp(params.soc_init_kwh, params.soc_min_kwh, params.soc_max_kwh)
        self.last_power_kw = 0.0

    def max_charge_power_kw(self, dt_s: float) -> float:
        headroom_kwh = max(self.params.soc_max_kwh - self.soc_kwh, 0.0)
        if headroom_kwh <= 0.0:
            return 0.0
        limit_by_energy = (headroom_kwh / self.params.eta_charge) * (3600.0 / dt_s)
        return clamp(limit_by_energy, 0.0, self.params.p_max_kw)

    def max_discharge_power_kw(self, dt_s: float) -> float:
        available_kwh = max(self.soc_kwh - self.params.soc_min_kwh, 0.0)
        if available_kwh <= 0.0:
            return 0.0
        limit_by_energy = available_kwh * self.params.eta_discharge * (3600.0 / dt_s)
        return clamp(limit_by_energy, 0.0, self.params.p_max_kw)

    def plan(self, dt_s: float, ctx: EnvironmentContext) -> DevicePlan:
        net_surplus_kw = ctx.net_surplus_kw
        at_floor = self.soc_kwh <= self.params.soc_min_kwh + _EPSILON
        should_charge = net_surplus_kw > NET_POWER_EPSILON_KW or (
            net_surplus_kw > _EPSILON and at_floor
        )
        if should_charge:
            max_charge = self.max_charge_power_kw(dt_s)
            if max_charge > 0.0:
                return DevicePlan(
                    request=PowerRequest(
                        max_accept_kw=min(max_charge, net_surplus_kw),
                        need=Need.TO_STORE,
                        priority_hint=CHARGE_PRIORITY_HINT,
                    )
                )
        elif net_surplus_kw < -NET_POWER_EPSILON_KW:
            max_discharge = self.max_discharge_power_kw(dt_s)
            if max_discharge > 0.0:
                return DevicePlan(
                    offer=PowerOffer(
                        max_supply_kw=min(max_discharge, -net_surplus_kw),
                        cost_penalty=DISCHARGE_COST_PENALTY,
                    )
                )
        return DevicePlan()

    def apply(self, power_kw: float, dt_s: float, ctx: EnvironmentContext) -> None:
        dt_h = dt_s / 3600.0
        if power_kw > 0.0:
            self.soc_kwh += power_kw * dt_h * self.params.eta_charge
        elif power_kw < 0.0:
            self.soc_kwh += power_kw * dt_h / self.params.eta_discharge
        bounded = clamp(self.soc_kwh, self.params.soc_min_kwh, self.params.soc_max_kwh)
        if abs(bounded - self.soc_kwh) > 1e-3:
            _LOGGER.warning(
                "Battery %s SOC %.4f kWh outside [%.2f, %.2f], clamped",
                self.id,
                self.soc_kwh,
                self.params.soc_min_kwh,
                self.params.soc_max_kwh,
            )
        self.soc_kwh = bounded
        self.last_power_kw = power_kw

    @property
    def usable_capacity_kwh(self) -> float:
        return max(self.params.soc_max_kwh - self.params.soc_min_kwh, 0.0)

    def soc_fraction(self) -> float:
        """
        State of charge as a fraction of the usable window (0 = soc_min, 1 = soc_max).
        """
        usable = max(self.params.soc_max_kwh - self.params.soc_min_kwh, 1e-6)
        return clamp((self.soc_kwh - self.params.soc_min_kwh) / usable, 0.0, 1.0)

    def state(self) -> Dict[str, StateValue]:
        return {
            "soc_kWh": self.soc_kwh,
            "soc_percent": self.soc_fraction() * 100.0,
            "power_kW": self.last_power_kw,
        }
