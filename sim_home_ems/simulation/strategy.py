"""
Named ranking strategies.

A strategy decides the order in which requests are served from PV surplus;
the waterfall itself (see :mod:`sim_home_ems.simulation.allocation`) is shared
by every strategy. Ranking keys are compared in descending order and ties keep
the device declaration order.

By default consumer requests are served before storage. Strategies that set
``mixes_storage`` rank storage requests together with consumers, and
strategies that clear ``shares_pv`` leave the whole surplus to export (firm
minimums are still honoured from storage and grid).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property, partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..calendar_utils import hour_of_day
from .device import Device, DeviceKind, EnvironmentContext, PowerRequest, StateValue
from .errors import ConfigurationError

RankKey = Tuple[float, ...]
Entry = Tuple[int, Device, PowerRequest]

DEFAULT_THRESHOLD_PERCENT = 50.0
EVENING_START_HOUR = 18.0
RESERVE_SOC_TARGET_PERCENT = 60.0
BASE_RESERVE_TARGET_PERCENT = 55.0
EV_RESERVE_TARGET_PERCENT = 70.0
EV_ARRIVAL_SOON_H = 6.0
EV_URGENCY_THRESHOLD_H = 1.5
EV_URGENT_POWER_RATIO = 0.8


class StrategyId(str, Enum):
    ECS_FIRST = "ecs_first"
    ECS_HYSTERESIS = "ecs_hysteresis"
    DEADLINE_HELPER = "deadline_helper"
    BATTERY_FIRST = "battery_first"
    MIX_SOC_THRESHOLD = "mix_soc_threshold"
    RESERVE_EVENING = "reserve_evening"
    EV_DEPARTURE_GUARD = "ev_departure_guard"
    MULTI_EQUIPMENT_PRIORITY = "multi_equipment_priority"
    NO_CONTROL_OFFPEAK = "no_control_offpeak"
    NO_CONTROL_HYSTERESIS = "no_control_hysteresis"


@dataclass(frozen=True)
class EvOutlook:
    active: bool = False
    urgent: bool = False
    arrival_soon: bool = False


class StrategyView:
    """
    Step facts a ranking may look at besides the request itself.

    Args:
        ctx: Step context; None outside a simulation step (hour 0 is assumed).
        devices: Every device of the population, requesting or not.
        entries: The ``(index, device, request)`` entries of the step.
    """

    def __init__(
        self,
        ctx: Optional[EnvironmentContext],
        devices: Sequence[Device],
        entries: Sequence[Entry],
    ) -> None:
        self.ctx = ctx
        self.devices = list(devices)
        self.entries = list(entries)

    @property
    def hour_of_day(self) -> float:
        if self.ctx is None or self.ctx.time_s is None:
            return 0.0
        return hour_of_day(self.ctx.time_s)

    @cached_property
    def battery_soc_percent(self) -> Optional[float]:
        """SOC of the first battery in declaration order, in percent."""
        for device in self.devices:
            if device.kind is DeviceKind.BATTERY:
                return _number(device.state(), "soc_percent")
        return None

    @cached_property
    def ev(self) -> EvOutlook:
        active = urgent = False
        soonest_arrival_h = math.inf
        for _, device, request in self.entries:
            if device.kind is not DeviceKind.EV_CHARGER:
                continue
            state = device.state()
            if state.get("session_active"):
                active = True
                remaining_kwh = _number(state, "energy_remaining_kWh") or 0.0
                time_left_h = _number(state, "session_time_remaining_h") or 0.0
                if time_left_h <= EV_URGENCY_THRESHOLD_H + 1e-6:
                    urgent = True
                required_kw = remaining_kwh / time_left_h if time_left_h > 1e-6 else remaining_kwh * 10.0
                if required_kw >= request.max_accept_kw * EV_URGENT_POWER_RATIO:
                    urgent = True
            else:
                to_start_h = _number(state, "session_time_to_start_h")
                if to_start_h is not None:
                    soonest_arrival_h = min(soonest_arrival_h, max(to_start_h, 0.0))
        return EvOutlook(active=active, urgent=urgent, arrival_soon=soonest_arrival_h <= EV_ARRIVAL_SOON_H)


def _number(state: Mapping[str, StateValue], key: str) -> Optional[float]:
    value = state.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return float(value)


@dataclass(frozen=True)
class Strategy:
    """
    A ranking policy over device requests.

    Attributes:
        id: Stable identifier.
        description: One-line human description.
        rank: Maps ``(device, request, view)`` to a sortable key, higher first.
        mixes_storage: Rank storage requests together with consumers instead
            of serving them after every consumer.
        shares_pv: When False no request receives PV surplus.
        threshold_percent: Battery SOC threshold of ``mix_soc_threshold``.
    """

    id: StrategyId
    description: str
    rank: Callable[[Device, PowerRequest, StrategyView], RankKey]
    mixes_storage: bool = False
    shares_pv: bool = True
    threshold_percent: Optional[float] = field(default=None)

    @property
    def label(self) -> str:
        """Id as stored in trace metadata, with the threshold when there is one."""
        if self.threshold_percent is None:
            return self.id.value
        return f"{self.id.value}:{self.threshold_percent:g}"

    def order(self, entries: Sequence[Entry], view: Optional[StrategyView] = None) -> List[Entry]:
        """
        Sort ``(declaration index, device, request)`` entries for service.

        Python's sort is stable, so equal keys keep declaration order.
        """
        entries = sorted(entries, key=lambda entry: entry[0])
        if view is None:
            view = StrategyView(None, [device for _, device, _ in entries], entries)
        return sorted(entries, key=lambda entry: tuple(-value for value in self.rank(entry[1], entry[2], view)))


def _is_thermal(device: Device) -> bool:
    return device.kind in (DeviceKind.DHW_TANK, DeviceKind.SPACE_HEATER)


def _ecs_first_rank(device: Device, request: PowerRequest, view: StrategyView) -> RankKey:
    return (1.0 if device.kind is DeviceKind.DHW_TANK else 0.0, request.priority_hint)


def _priority_rank(device: Device, request: PowerRequest, view: StrategyView) -> RankKey:
    return (request.priority_hint,)


def _battery_first_rank(device: Device, request: PowerRequest, view: StrategyView) -> RankKey:
    return (1.0 if device.kind is DeviceKind.BATTERY else 0.0, request.priority_hint)


def _mix_soc_rank(threshold_percent: float, device: Device, request: PowerRequest, view: StrategyView) -> RankKey:
    soc = view.battery_soc_percent
    if soc is not None and soc < threshold_percent:
        return _battery_first_rank(device, request, view)
    if device.kind is DeviceKind.BATTERY:
        return (0.0, request.priority_hint)
    return (2.0 if device.kind is DeviceKind.DHW_TANK else 1.0, request.priority_hint)


def _reserve_evening_rank(device: Device, request: PowerRequest, view: StrategyView) -> RankKey:
    hour = view.hour_of_day
    soc = view.battery_soc_percent
    build_reserve = soc is not None and soc < RESERVE_SOC_TARGET_PERCENT and hour < EVENING_START_HOUR
    if _is_thermal(device):
        order = 2.0 if build_reserve else 0.0
    elif device.kind is DeviceKind.BATTERY:
        order = 0.0 if build_reserve else 1.0
    else:
        order = 5.0
    return (-order, request.priority_hint)


def _ev_departure_guard_rank(device: Device, request: PowerRequest, view: StrategyView) -> RankKey:
    ev = view.ev
    soc = view.battery_soc_percent
    reserve_target = EV_RESERVE_TARGET_PERCENT if ev.active or ev.arrival_soon else BASE_RESERVE_TARGET_PERCENT
    evening_reserve = (
        soc is not None and soc < RESERVE_SOC_TARGET_PERCENT and view.hour_of_day < EVENING_START_HOUR
    )
    battery_first = (soc is not None and soc < reserve_target) or evening_reserve

    if device.kind is DeviceKind.EV_CHARGER:
        if ev.urgent:
            order = -5.0
        elif ev.active:
            order = 1.0 if battery_first else 0.0
        elif ev.arrival_soon:
            order = 3.0
        else:
            order = 5.0
    elif device.kind is DeviceKind.BATTERY:
        if battery_first:
            order = -4.0
        elif ev.active and not ev.urgent:
            order = 3.0
        else:
            order = 1.0
    elif _is_thermal(device):
        if battery_first:
            order = 4.0
        elif ev.urgent:
            order = 3.0
        else:
            order = 2.0
    else:
        order = 6.0
    return (-order, request.priority_hint)


def mix_soc_threshold_strategy(threshold_percent: float = DEFAULT_THRESHOLD_PERCENT) -> Strategy:
    """
    Battery first while its SOC is below ``threshold_percent``, hot water
    first above it. The threshold is clamped to [0, 100].
    """
    if isinstance(threshold_percent, bool) or not isinstance(threshold_percent, (int, float)):
        raise ConfigurationError(f"threshold_percent must be a number, got {threshold_percent!r}")
    if not math.isfinite(threshold_percent):
        raise ConfigurationError("threshold_percent must be finite")
    threshold = min(max(float(threshold_percent), 0.0), 100.0)
    return Strategy(
        id=StrategyId.MIX_SOC_THRESHOLD,
        description="Battery first below an SOC threshold, hot water first above it.",
        rank=partial(_mix_soc_rank, threshold),
        mixes_storage=True,
        threshold_percent=threshold,
    )


_ECS_FIRST_DESCRIPTION = "Reactive policy giving domestic hot water the first share of PV surplus."

_STRATEGIES: Dict[StrategyId, Strategy] = {
    StrategyId.ECS_FIRST: Strategy(StrategyId.ECS_FIRST, _ECS_FIRST_DESCRIPTION, _ecs_first_rank),
    StrategyId.ECS_HYSTERESIS: Strategy(
        StrategyId.ECS_HYSTERESIS,
        "Same ranking as ecs_first, meant for tanks configured with a hysteresis latch.",
        _ecs_first_rank,
    ),
    StrategyId.DEADLINE_HELPER: Strategy(
        StrategyId.DEADLINE_HELPER,
        "Same ranking as ecs_first, meant for tanks relying on their deadline.",
        _ecs_first_rank,
    ),
    StrategyId.BATTERY_FIRST: Strategy(
        StrategyId.BATTERY_FIRST,
        "Charges the battery before any other device.",
        _battery_first_rank,
        mixes_storage=True,
    ),
    StrategyId.MIX_SOC_THRESHOLD: mix_soc_threshold_strategy(),
    StrategyId.RESERVE_EVENING: Strategy(
        StrategyId.RESERVE_EVENING,
        "Builds a 60 % battery reserve before 18:00, then favours heat.",
        _reserve_evening_rank,
        mixes_storage=True,
    ),
    StrategyId.EV_DEPARTURE_GUARD: Strategy(
        StrategyId.EV_DEPARTURE_GUARD,
        "Protects EV departures and keeps a battery reserve for the car's arrival.",
        _ev_departure_guard_rank,
        mixes_storage=True,
    ),
    StrategyId.MULTI_EQUIPMENT_PRIORITY: Strategy(
        StrategyId.MULTI_EQUIPMENT_PRIORITY,
        "Serves every device by its self-reported priority hint.",
        _priority_rank,
    ),
    StrategyId.NO_CONTROL_OFFPEAK: Strategy(
        StrategyId.NO_CONTROL_OFFPEAK,
        "Uncontrolled baseline: surplus is exported, devices run on their own schedule.",
        _priority_rank,
        shares_pv=False,
    ),
    StrategyId.NO_CONTROL_HYSTERESIS: Strategy(
        StrategyId.NO_CONTROL_HYSTERESIS,
        "Uncontrolled thermostat baseline: surplus is exported.",
        _priority_rank,
        shares_pv=False,
    ),
}


def resolve_strategy(strategy_id: Any, threshold_percent: Optional[float] = None) -> Strategy:
    """
    Look up a strategy.

    Args:
        strategy_id: A :class:`Strategy`, a string or :class:`StrategyId`, or a
            mapping ``{"id": ..., "threshold_percent": ...}``.
        threshold_percent: SOC threshold for ``mix_soc_threshold``
            (default 50); overrides the mapping's value.

    Raises:
        ConfigurationError: if the id is unknown, or a threshold is given for
            another strategy.
    """
    if isinstance(strategy_id, Strategy):
        return strategy_id
    if isinstance(strategy_id, Mapping):
        if "id" not in strategy_id:
            raise ConfigurationError("Strategy selection must name an 'id'")
        if threshold_percent is None:
            threshold_percent = strategy_id.get("threshold_percent")
        strategy_id = strategy_id["id"]
    try:
        resolved_id = StrategyId(strategy_id)
    except ValueError as exc:
        known = ", ".join(available_strategies())
        raise ConfigurationError(f"Unknown strategy {strategy_id!r} (expected one of: {known})") from exc
    if resolved_id is StrategyId.MIX_SOC_THRESHOLD and threshold_percent is not None:
        return mix_soc_threshold_strategy(threshold_percent)
    if threshold_percent is not None:
        raise ConfigurationError(f"threshold_percent does not apply to strategy {resolved_id.value!r}")
    return _STRATEGIES[resolved_id]


def available_strategies() -> List[str]:
    return [strategy_id.value for strategy_id in _STRATEGIES]


def describe_strategies() -> List[Dict[str, str]]:
    return [{"id": s.id.value, "description": s.description} for s in _STRATEGIES.values()]
