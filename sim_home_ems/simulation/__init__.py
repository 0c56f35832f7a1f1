"""
Core residential energy simulation models.

This package collects every component of the A/B simulation engine:

* Device models (battery, DHW tank, space heater, pool pump, EV charger) that
  share the plan/apply/state contract of :mod:`.device`.
* The ranking strategies and the per-step waterfall allocation.
* The time-stepping engine producing a paired, immutable trace.
* KPI derivation (energy, comfort, cost) over a trace or a window of it.

Higher layers (`application`, FastAPI routes, CLI) import from this single
namespace.
"""

from __future__ import annotations

from .allocation import AllocationResult, allocate
from .battery import Battery, BatteryParams
from .device import (
    Device,
    DeviceKind,
    DevicePlan,
    EnvironmentContext,
    Need,
    PowerOffer,
    PowerRequest,
)
from .engine import SimulationEngine
from .errors import ConfigurationError
from .kpis import (
    DeadlineKpis,
    EuroKpis,
    TraceKpis,
    WindowFilter,
    aggregate_ecs_deadline_kpis,
    battery_cycles_proxy,
    compute_cost,
    compute_kpi_report,
    compute_kpis_for_steps,
    compute_kpis_for_window,
    decision_counts,
    euros_from_flows,
    filter_steps,
)
from .loads import EVChargeSession, EVCharger, EVChargerParams, PoolPump, PoolPumpParams
from .registry import DeviceConfig, build_devices, create_device, default_params
from .solar import (
    dual_level_load_profile,
    expand_series,
    household_load_profile,
    project_profile,
    pv_bell_profile,
    pv_sine_profile,
)
from .strategy import (
    Strategy,
    StrategyId,
    StrategyView,
    available_strategies,
    mix_soc_threshold_strategy,
    resolve_strategy,
)
from .tariffs import FixedTariff, TariffModel, TimeOfUseTariff, build_tariff, complement_hours
from .thermal import DHWServiceMode, DHWTank, DHWTankParams, SpaceHeater, SpaceHeaterParams, WaterDrawEvent
from .trace import (
    DecisionReason,
    RunKpis,
    StepFlows,
    StepRecord,
    Trace,
    TraceBuilder,
    TraceMeta,
    VariantStep,
)

__all__ = [
    "AllocationResult",
    "allocate",
    "Battery",
    "BatteryParams",
    "Device",
    "DeviceKind",
    "DevicePlan",
    "EnvironmentContext",
    "Need",
    "PowerOffer",
    "PowerRequest",
    "SimulationEngine",
    "ConfigurationError",
    "DeadlineKpis",
    "EuroKpis",
    "TraceKpis",
    "WindowFilter",
    "aggregate_ecs_deadline_kpis",
    "battery_cycles_proxy",
    "compute_cost",
    "compute_kpi_report",
    "compute_kpis_for_steps",
    "compute_kpis_for_window",
    "decision_counts",
    "euros_from_flows",
    "filter_steps",
    "EVChargeSession",
    "EVCharger",
    "EVChargerParams",
    "PoolPump",
    "PoolPumpParams",
    "DeviceConfig",
    "build_devices",
    "create_device",
    "default_params",
    "dual_level_load_profile",
    "expand_series",
    "household_load_profile",
    "project_profile",
    "pv_bell_profile",
    "pv_sine_profile",
    "Strategy",
    "StrategyId",
    "StrategyView",
    "mix_soc_threshold_strategy",
    "available_strategies",
    "resolve_strategy",
    "FixedTariff",
    "TariffModel",
    "TimeOfUseTariff",
    "build_tariff",
    "complement_hours",
    "DHWServiceMode",
    "DHWTank",
    "DHWTankParams",
    "SpaceHeater",
    "SpaceHeaterParams",
    "WaterDrawEvent",
    "DecisionReason",
    "RunKpis",
    "StepFlows",
    "StepRecord",
    "Trace",
    "TraceBuilder",
    "TraceMeta",
    "VariantStep",
]
