"""
Time-stepping driver for A/B strategy comparisons.

For each step index ``i`` the engine builds an :class:`EnvironmentContext`
(PV[i], load[i], ambient, prices, ``i * dt_s``), asks every device for its plan,
runs the waterfall allocation, applies the allocated power back to every device
and records a :class:`VariantStep`. Both variants share the same inputs but own
independent device populations.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .allocation import allocate
from .device import Device, DeviceKind, EnvironmentContext
from .errors import ConfigurationError
from .strategy import Strategy, resolve_strategy
from .tariffs import FixedTariff, TariffModel
from .trace import RunKpis, StepRecord, Trace, TraceBuilder, TraceMeta, VariantStep

_LOGGER = logging.getLogger(__name__)

SeriesLike = Union[Sequence[float], np.ndarray]


def _as_series(name: str, values: SeriesLike, allow_negative: bool = False) -> np.ndarray:
    try:
        array = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a sequence of numbers") from exc
    if array.ndim != 1:
        raise ConfigurationError(f"{name} must be one-dimensional")
    if not np.all(np.isfinite(array)):
        raise ConfigurationError(f"{name} contains non-finite values")
    if not allow_negative and np.any(array < 0):
        raise ConfigurationError(f"{name} contains negative values")
    return array


def _params_dict(device: Device) -> Dict[str, Any]:
    params = dataclasses.asdict(getattr(device, "params"))
    return {key: value.value if isinstance(value, Enum) else value for key, value in params.items()}


def _first_of(kind: DeviceKind, devices: Sequence[Device]) -> Optional[Device]:
    for device in devices:
        if device.kind is kind:
            return device
    return None


def _meta_params(kind: DeviceKind, devices: Sequence[Device]) -> Optional[Dict[str, Any]]:
    device = _first_of(kind, devices)
    return _params_dict(device) if device is not None else None


def _completion_ratio(delivered_kwh: float, required_kwh: float) -> float:
    if required_kwh <= 0.0:
        return 1.0
    ratio = delivered_kwh / required_kwh
    if not math.isfinite(ratio):
        return 0.0
    return min(max(ratio, 0.0), 1.0)


class SimulationEngine:
    """
    Deterministic simulation over fixed-length PV/load series.

    Args:
        dt_s: Step length in seconds (> 0).
        pv_series_kw: PV production per step (kW).
        base_load_series_kw: Uncontrollable load per step (kW), same length.
        ambient_temp_c: None, a scalar, or a per-step series of ambient
            temperature forwarded to the devices.
        tariff: Tariff used for step prices; defaults to :class:`FixedTariff`.

    Raises:
        ConfigurationError: mismatched or empty series, non-finite or negative
            power values, ``dt_s <= 0``. Raised before any step is simulated.

    Example:
        ```python
        engine = SimulationEngine(dt_s=900, pv_series_kw=pv, base_load_series_kw=load)
        trace = engine.run_comparison(
            build_devices(configs), build_devices(configs),
            strategy_a="ecs_first", strategy_b="multi_equipment_priority",
        )
        ```
    """

    def __init__(
        self,
        dt_s: float,
        pv_series_kw: SeriesLike,
        base_load_series_kw: SeriesLike,
        ambient_temp_c: Optional[Union[float, SeriesLike]] = None,
        tariff: Optional[TariffModel] = None,
    ) -> None:
        if not isinstance(dt_s, (int, float)) or not math.isfinite(dt_s) or dt_s <= 0:
            raise ConfigurationError(f"dt_s must be a positive number, got {dt_s!r}")
        self.dt_s = float(dt_s)
        self.pv_kw = _as_series("pv_series_kw", pv_series_kw)
        self.base_load_kw = _as_series("base_load_series_kw", base_load_series_kw)
        if self.pv_kw.size == 0:
            raise ConfigurationError("pv_series_kw must not be empty")
        if self.pv_kw.size != self.base_load_kw.size:
            raise ConfigurationError(
                f"PV series ({self.pv_kw.size} steps) and base load series "
                f"({self.base_load_kw.size} steps) must have the same length"
            )
        self.n_steps = int(self.pv_kw.size)

        if ambient_temp_c is None:
            self.ambient_c: Optional[np.ndarray] = None
        elif isinstance(ambient_temp_c, (int, float)):
            self.ambient_c = _as_series("ambient_temp_c", [float(ambient_temp_c)] * self.n_steps, True)
        else:
            self.ambient_c = _as_series("ambient_temp_c", ambient_temp_c, allow_negative=True)
            if self.ambient_c.size != self.n_steps:
                raise ConfigurationError("ambient_temp_c series must match the PV series length")

        self.tariff = tariff if tariff is not None else FixedTariff()
        prices = self.tariff.price_series(self.n_steps, self.dt_s)
        self.import_prices = prices["import"]
        self.export_prices = prices["export"]

    def context(self, index: int) -> EnvironmentContext:
        return EnvironmentContext(
            pv_kw=float(self.pv_kw[index]),
            base_load_kw=float(self.base_load_kw[index]),
            ambient_temp_c=float(self.ambient_c[index]) if self.ambient_c is not None else None,
            price_import_eur_per_kwh=float(self.import_prices[index]),
            price_export_eur_per_kwh=float(self.export_prices[index]),
            time_s=index * self.dt_s,
        )

    @staticmethod
    def _check_population(devices: Sequence[Device]) -> None:
        seen = set()
        for device in devices:
            if device.id in seen:
                raise ConfigurationError(f"Duplicate device id {device.id!r}")
            seen.add(device.id)

    def run_variant(
        self,
        devices: Sequence[Device],
        strategy: Union[str, Strategy],
    ) -> Tuple[List[VariantStep], RunKpis]:
        """
        Simulate one device population over the whole horizon.

        Returns:
            Tuple of (per-step outcomes, run KPIs of the population).
        """
        resolved = resolve_strategy(strategy)
        self._check_population(devices)
        devices = list(devices)
        batteries = [d for d in devices if d.kind is DeviceKind.BATTERY]
        tanks = [d for d in devices if d.kind is DeviceKind.DHW_TANK]
        heaters = [d for d in devices if d.kind is DeviceKind.SPACE_HEATER]
        pools = [d for d in devices if d.kind is DeviceKind.POOL_PUMP]
        chargers = [d for d in devices if d.kind is DeviceKind.EV_CHARGER]

        _LOGGER.debug(
            "Running strategy %s over %d steps with %d device(s)", resolved.label, self.n_steps, len(devices)
        )
        steps: List[VariantStep] = []
        comfortable_steps = 0
        for index in range(self.n_steps):
            ctx = self.context(index)
            plans = {device.id: device.plan(self.dt_s, ctx) for device in devices}
            result = allocate(ctx, devices, plans, resolved)
            for device in devices:
                device.apply(result.power_kw[device.id], self.dt_s, ctx)
            states = {device.id: device.state() for device in devices}

            if heaters and not any(states[h.id]["call_for_heat"] for h in heaters):
                comfortable_steps += 1

            steps.append(
                VariantStep(
                    surplus_kw=max(ctx.pv_kw - ctx.base_load_kw, 0.0),
                    deficit_kw=max(ctx.base_load_kw - ctx.pv_kw, 0.0),
                    battery_power_kw=sum(result.power_kw[b.id] for b in batteries),
                    battery_soc_kwh=sum(b.soc_kwh for b in batteries) if batteries else None,
                    dhw_power_kw=sum(result.power_kw[t.id] for t in tanks),
                    dhw_temp_c=tanks[0].temp_c if tanks else None,
                    grid_import_kw=result.grid_import_kw,
                    grid_export_kw=result.grid_export_kw,
                    pv_used_on_site_kw=result.pv_used_on_site_kw,
                    controllable_load_kw=result.controllable_load_kw,
                    total_load_kw=ctx.base_load_kw + result.controllable_load_kw,
                    flows=result.flows,
                    decision_reason=result.decision_reason,
                    device_power_kw=result.power_kw,
                    deferred_kw=result.deferred_kw,
                    device_states=states,
                )
            )

        run_kpis = RunKpis(
            heating_comfort_ratio=comfortable_steps / self.n_steps if heaters else None,
            pool_filtration_completion=_completion_ratio(
                sum(p.energy_delivered_kwh for p in pools), sum(p.energy_required_kwh for p in pools)
            )
            if pools
            else None,
            ev_charge_completion=_completion_ratio(
                sum(c.energy_delivered_kwh for c in chargers), sum(c.energy_required_kwh for c in chargers)
            )
            if chargers
            else None,
        )
        return steps, run_kpis

    def run_comparison(
        self,
        devices_a: Sequence[Device],
        devices_b: Sequence[Device],
        strategy_a: Union[str, Strategy] = "ecs_first",
        strategy_b: Union[str, Strategy] = "multi_equipment_priority",
        scenario_name: str = "scenario",
    ) -> Trace:
        """
        Run both variants over identical inputs and pair them into a trace.

        Raises:
            ConfigurationError: unknown strategy, duplicate device ids, or a
                device instance shared between the two populations.
        """
        resolved_a = resolve_strategy(strategy_a)
        resolved_b = resolve_strategy(strategy_b)
        self._check_population(devices_a)
        self._check_population(devices_b)
        ids_a = {id(device) for device in devices_a}
        shared = [device.id for device in devices_b if id(device) in ids_a]
        if shared:
            raise ConfigurationError(f"Device instance(s) shared between variants: {', '.join(shared)}")

        meta = TraceMeta(
            scenario_name=scenario_name,
            dt_s=self.dt_s,
            tariff=self.tariff.to_dict(),
            strategy_a=resolved_a.label,
            strategy_b=resolved_b.label,
            battery=_meta_params(DeviceKind.BATTERY, devices_a),
            dhw=_meta_params(DeviceKind.DHW_TANK, devices_a),
            battery_b=_meta_params(DeviceKind.BATTERY, devices_b),
            dhw_b=_meta_params(DeviceKind.DHW_TANK, devices_b),
        )

        steps_a, kpis_a = self.run_variant(devices_a, resolved_a)
        steps_b, kpis_b = self.run_variant(devices_b, resolved_b)

        builder = TraceBuilder(meta)
        for index, (step_a, step_b) in enumerate(zip(steps_a, steps_b)):
            builder.append(
                StepRecord(
                    index=index,
                    t_s=index * self.dt_s,
                    pv_kw=float(self.pv_kw[index]),
                    base_load_kw=float(self.base_load_kw[index]),
                    a=step_a,
                    b=step_b,
                )
            )
        trace = builder.build({"A": kpis_a, "B": kpis_b})
        _LOGGER.info(
            "Scenario %r simulated: %d steps, A=%s, B=%s",
            scenario_name,
            len(trace),
            meta.strategy_a,
            meta.strategy_b,
        )
        return trace
