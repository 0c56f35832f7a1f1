"""
Device contract shared by every appliance driven by the simulation engine.

Units follow one convention everywhere: power in kW, energy in kWh, time in
seconds. Each step the engine builds an :class:`EnvironmentContext`, asks every
device for a :class:`DevicePlan`, lets the allocation policy decide the power
actually delivered, then hands that power back through :meth:`Device.apply`.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Optional, Union

StateValue = Union[float, bool]


class Need(str, Enum):
    """What a consumer intends to do with the power it asks for."""

    TO_STORE = "toStore"
    TO_HEAT = "toHeat"
    TO_LOAD = "toLoad"


class DeviceKind(str, Enum):
    """Closed set of device variants known to the engine."""

    BATTERY = "battery"
    DHW_TANK = "dhw-tank"
    SPACE_HEATER = "space-heater"
    POOL_PUMP = "pool-pump"
    EV_CHARGER = "ev-charger"


def _check_power(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0.0:
        raise ValueError(f"{name} must be a finite value >= 0, got {value!r}")


@dataclass(frozen=True)
class EnvironmentContext:
    """
    Exogenous inputs for one simulation step.

    Attributes:
        pv_kw: PV production during the step (kW).
        base_load_kw: Uncontrollable household consumption (kW).
        ambient_temp_c: Outdoor/room ambient temperature, when known.
        price_import_eur_per_kwh: Grid import price for the step, when known.
        price_export_eur_per_kwh: Grid export price for the step, when known.
        time_s: Absolute simulation time at the start of the step.
    """

    pv_kw: float
    base_load_kw: float
    ambient_temp_c: Optional[float] = None
    price_import_eur_per_kwh: Optional[float] = None
    price_export_eur_per_kwh: Optional[float] = None
    time_s: Optional[float] = None

    @property
    def net_surplus_kw(self) -> float:
        """PV minus base load; negative when the house is in deficit."""
        return self.pv_kw - self.base_load_kw


@dataclass(frozen=True)
class PowerRequest:
    """
    A device's ask to consume power during one step.

    ``min_accept_kw`` is the firm part of the request: the allocator tops it up
    from storage offers and the grid when PV cannot cover it. Anything above it
    is opportunistic and served from PV surplus only.
    """

    max_accept_kw: float
    need: Need
    priority_hint: float = 0.0
    min_accept_kw: float = 0.0

    def __post_init__(self) -> None:
        _check_power("max_accept_kw", self.max_accept_kw)
        _check_power("min_accept_kw", self.min_accept_kw)
        if self.min_accept_kw > self.max_accept_kw + 1e-9:
            raise ValueError("min_accept_kw cannot exceed max_accept_kw")
        if not math.isfinite(self.priority_hint):
            raise ValueError("priority_hint must be finite")


@dataclass(frozen=True)
class PowerOffer:
    """A device's ability to supply power; ``cost_penalty`` only breaks ties."""

    max_supply_kw: float
    cost_penalty: float = 0.0

    def __post_init__(self) -> None:
        _check_power("max_supply_kw", self.max_supply_kw)


@dataclass(frozen=True)
class DevicePlan:
    """At most one request and one offer, never both in the same step."""

    request: Optional[PowerRequest] = None
    offer: Optional[PowerOffer] = None

    def __post_init__(self) -> None:
        if self.request is not None and self.offer is not None:
            raise ValueError("a device cannot request and offer power in the same step")

    @property
    def is_empty(self) -> bool:
        return self.request is None and self.offer is None


class Device(ABC):
    """
    Common interface of every simulated appliance.

    Concrete devices own their physical state exclusively. ``plan`` must not
    apply any power (it may only refresh day/session bookkeeping derived from
    ``ctx.time_s``); ``apply`` advances the physical state by exactly one step
    with the power decided by the allocator (positive = consumed, negative =
    supplied); ``state`` returns a read-only snapshot.
    """

    kind: ClassVar[DeviceKind]

    def __init__(self, device_id: str, label: str) -> None:
        if not device_id:
            raise ValueError("device id must be a non-empty string")
        self.id = device_id
        self.label = label or device_id

    @abstractmethod
    def plan(self, dt_s: float, ctx: EnvironmentContext) -> DevicePlan:
        raise NotImplementedError

    @abstractmethod
    def apply(self, power_kw: float, dt_s: float, ctx: EnvironmentContext) -> None:
        raise NotImplementedError

    @abstractmethod
    def state(self) -> Dict[str, StateValue]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, label={self.label!r})"


class ClockMixin:
    """
    Explicit simulation clock for time-aware devices.

    The absolute time is taken from ``ctx.time_s`` whenever the engine provides
    it; otherwise an internal clock advanced by ``dt_s`` on each ``apply`` is
    used. Wall-clock time is never consulted.
    """

    _clock_s: float = 0.0
    _last_time_s: float = 0.0

    def _resolve_time(self, ctx: EnvironmentContext) -> float:
        if ctx.time_s is not None:
            return float(ctx.time_s)
        return self._clock_s

    def _advance_clock(self, time_s: float, dt_s: float) -> None:
        self._last_time_s = time_s
        self._clock_s = time_s + dt_s


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)
