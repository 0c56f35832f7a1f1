"""
Step records and the paired A/B trace produced by the engine.

The trace is the only contract shared with exporters and dashboards: its
record form (:meth:`Trace.to_record`) keeps stable field names and carries a
version string that must change whenever a field changes meaning.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from .device import StateValue

TRACE_VERSION = "1.0"
VARIANTS: Tuple[str, str] = ("A", "B")
_SPACING_TOLERANCE_S = 1e-6


class DecisionReason(str, Enum):
    """Allocation branch that dominated a step, for display and windowing only."""

    IDLE = "idle"
    BATT_CHARGE = "batt_charge"
    BATT_DISCHARGE = "batt_discharge"
    ECS_PREHEAT = "ecs_preheat"
    ECS_DEADLINE_FORCE = "ecs_deadline_force"
    GRID_IMPORT = "grid_import"
    EXPORT_SURPLUS = "export_surplus"


@dataclass(frozen=True)
class StepFlows:
    """
    Power flows of one step (kW).

    Conservation holds within 1e-6:
        pv = pv_to_load + pv_to_storage + pv_to_grid
        total_load = pv_to_load + storage_to_load + grid_to_load
    """

    pv_to_load_kw: float = 0.0
    pv_to_storage_kw: float = 0.0
    pv_to_grid_kw: float = 0.0
    storage_to_load_kw: float = 0.0
    grid_to_load_kw: float = 0.0


@dataclass(frozen=True)
class VariantStep:
    """
    Outcome of one step for one strategy variant.

    Attributes:
        surplus_kw: ``max(pv - base_load, 0)`` before any strategy decision.
        deficit_kw: ``max(base_load - pv, 0)`` before any strategy decision.
        battery_power_kw: Sum of battery powers (+ charge, - discharge).
        battery_soc_kwh: Sum of battery SOCs after the step, None without battery.
        dhw_power_kw: Sum of DHW tank powers.
        dhw_temp_c: Temperature of the first DHW tank after the step.
        grid_import_kw: Power drawn from the grid.
        grid_export_kw: PV power exported.
        pv_used_on_site_kw: PV not exported.
        controllable_load_kw: Power delivered to non-storage devices.
        total_load_kw: Base load plus controllable load.
        flows: Detailed source/sink split.
        decision_reason: Dominant allocation branch.
        device_power_kw: Applied power per device id.
        deferred_kw: Requested but unserved power per device id.
        device_states: State snapshot per device id after ``apply``.
    """

    surplus_kw: float
    deficit_kw: float
    battery_power_kw: float
    battery_soc_kwh: Optional[float]
    dhw_power_kw: float
    dhw_temp_c: Optional[float]
    grid_import_kw: float
    grid_export_kw: float
    pv_used_on_site_kw: float
    controllable_load_kw: float
    total_load_kw: float
    flows: StepFlows
    decision_reason: DecisionReason
    device_power_kw: Mapping[str, float] = field(default_factory=dict)
    deferred_kw: Mapping[str, float] = field(default_factory=dict)
    device_states: Mapping[str, Mapping[str, StateValue]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "device_power_kw", MappingProxyType(dict(self.device_power_kw)))
        object.__setattr__(self, "deferred_kw", MappingProxyType(dict(self.deferred_kw)))
        object.__setattr__(
            self,
            "device_states",
            MappingProxyType({key: MappingProxyType(dict(value)) for key, value in self.device_states.items()}),
        )

    def to_record(self, variant: str) -> Dict[str, Any]:
        return {
            f"surplus_{variant}_kW": self.surplus_kw,
            f"deficit_{variant}_kW": self.deficit_kw,
            f"battery_power_{variant}_kW": self.battery_power_kw,
            f"battery_soc_{variant}_kWh": self.battery_soc_kwh,
            f"dhw_power_{variant}_kW": self.dhw_power_kw,
            f"dhw_temp_{variant}_C": self.dhw_temp_c,
            f"gridImport_{variant}_kW": self.grid_import_kw,
            f"gridExport_{variant}_kW": self.grid_export_kw,
            f"pvUsedOnSite_{variant}_kW": self.pv_used_on_site_kw,
            f"decision_reason_{variant}": self.decision_reason.value,
        }


@dataclass(frozen=True)
class StepRecord:
    index: int
    t_s: float
    pv_kw: float
    base_load_kw: float
    a: VariantStep
    b: VariantStep

    def variant(self, name: str) -> VariantStep:
        if name == "A":
            return self.a
        if name == "B":
            return self.b
        raise ValueError(f"Unknown variant {name!r} (expected 'A' or 'B')")

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"t_s": self.t_s, "pv_kW": self.pv_kw, "baseLoad_kW": self.base_load_kw}
        record.update(self.a.to_record("A"))
        record.update(self.b.to_record("B"))
        return record


@dataclass(frozen=True)
class TraceMeta:
    """
    Run metadata stored alongside the steps.

    ``battery`` and ``dhw`` hold the parameters of the first battery and DHW
    tank of population A; ``battery_b`` and ``dhw_b`` those of population B
    (None when absent). KPIs read them through :meth:`battery_params` and
    :meth:`dhw_params` so each variant is scored against its own devices.
    """

    scenario_name: str
    dt_s: float
    tariff: Dict[str, Any]
    strategy_a: str
    strategy_b: str
    battery: Optional[Dict[str, Any]] = None
    dhw: Optional[Dict[str, Any]] = None
    battery_b: Optional[Dict[str, Any]] = None
    dhw_b: Optional[Dict[str, Any]] = None
    version: str = TRACE_VERSION

    def strategy(self, variant: str) -> str:
        return self.strategy_a if variant == "A" else self.strategy_b

    def battery_params(self, variant: str) -> Optional[Dict[str, Any]]:
        return self.battery if variant == "A" else self.battery_b

    def dhw_params(self, variant: str) -> Optional[Dict[str, Any]]:
        return self.dhw if variant == "A" else self.dhw_b

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "scenario_name": self.scenario_name,
            "dt_s": self.dt_s,
            "tariff": dict(self.tariff),
            "battery": dict(self.battery) if self.battery is not None else None,
            "dhw": dict(self.dhw) if self.dhw is not None else None,
            "battery_b": dict(self.battery_b) if self.battery_b is not None else None,
            "dhw_b": dict(self.dhw_b) if self.dhw_b is not None else None,
            "strategy": {"A": self.strategy_a, "B": self.strategy_b},
        }


@dataclass(frozen=True)
class RunKpis:
    """
    Full-horizon KPIs of one variant; None when the device class is absent.
    """

    heating_comfort_ratio: Optional[float] = None
    pool_filtration_completion: Optional[float] = None
    ev_charge_completion: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


def _check_spacing(steps: Tuple[StepRecord, ...], dt_s: float) -> None:
    for previous, current in zip(steps, steps[1:]):
        if current.index != previous.index + 1:
            raise ValueError(f"step index {current.index} does not follow {previous.index}")
        if not math.isclose(current.t_s - previous.t_s, dt_s, abs_tol=_SPACING_TOLERANCE_S):
            raise ValueError(
                f"steps must be equally spaced by dt_s={dt_s}: t={previous.t_s} then t={current.t_s}"
            )


@dataclass(frozen=True)
class Trace:
    """
    Immutable paired A/B trace.

    Steps are strictly time ordered and equally spaced by ``meta.dt_s``;
    construction raises ``ValueError`` otherwise.
    """

    meta: TraceMeta
    steps: Tuple[StepRecord, ...]
    run_kpis: Mapping[str, RunKpis] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "run_kpis", MappingProxyType(dict(self.run_kpis)))
        _check_spacing(self.steps, self.meta.dt_s)

    def __len__(self) -> int:
        return len(self.steps)

    def to_record(self) -> Dict[str, Any]:
        return {
            "meta": self.meta.to_dict(),
            "steps": [step.to_record() for step in self.steps],
            "run_kpis": {variant: kpis.to_dict() for variant, kpis in self.run_kpis.items()},
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per step with the record field names as columns."""
        return pd.DataFrame([step.to_record() for step in self.steps])


class TraceBuilder:
    """
    Incremental trace construction; frozen once :meth:`build` is called.
    """

    def __init__(self, meta: TraceMeta) -> None:
        if not meta.dt_s > 0:
            raise ValueError("dt_s must be > 0")
        self.meta = meta
        self._steps: List[StepRecord] = []
        self._built = False

    def append(self, step: StepRecord) -> None:
        if self._built:
            raise RuntimeError("trace already built")
        if self._steps:
            _check_spacing((self._steps[-1], step), self.meta.dt_s)
        self._steps.append(step)

    def build(self, run_kpis: Optional[Mapping[str, RunKpis]] = None) -> Trace:
        self._built = True
        return Trace(meta=self.meta, steps=tuple(self._steps), run_kpis=run_kpis or {})
