"""
KPI derivation over a finished trace.

Every function here is pure: it reads a :class:`Trace` (or a slice of its
steps) and returns derived values, never mutating the trace. Energies are left
Riemann sums ``sum(power) * dt_s / 3600``; percentages are forced to 0 when not
finite and clamped to [0, 100]; energies and costs are not clamped.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .tariffs import TariffModel, build_tariff
from .trace import VARIANTS, DecisionReason, StepFlows, StepRecord, Trace, TraceMeta

SECONDS_PER_YEAR = 3600.0 * 24.0 * 365.0
_EPSILON = 1e-6


@dataclass(frozen=True)
class WindowFilter:
    """
    Time window ``[start_h, end_h]`` compared against ``t_s / 3600``.

    Both bounds are inclusive and optional.
    """

    start_h: Optional[float] = None
    end_h: Optional[float] = None

    def contains(self, t_s: float) -> bool:
        hour = t_s / 3600.0
        if self.start_h is not None and hour < self.start_h:
            return False
        if self.end_h is not None and hour > self.end_h:
            return False
        return True


@dataclass(frozen=True)
class TraceKpis:
    autoconsumption_pct: float
    autoproduct_pct: float
    import_kWh: float
    export_kWh: float
    cost_EUR: float
    ecs_time_at_or_above_target_pct: float
    pv_kWh: float
    total_load_kWh: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def clamp_percent(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 100.0)


def _finite(value: Optional[float]) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def filter_steps(steps: Sequence[StepRecord], window: Optional[WindowFilter] = None) -> List[StepRecord]:
    if window is None:
        return list(steps)
    return [step for step in steps if window.contains(step.t_s)]


def _energy_kwh(values: np.ndarray, dt_s: float) -> float:
    return float(values.sum() * dt_s / 3600.0)


def _tariff_of(meta: TraceMeta) -> TariffModel:
    return build_tariff(meta.tariff)


def compute_cost(meta: TraceMeta, steps: Sequence[StepRecord], variant: str) -> float:
    """
    Net grid cost (EUR): ``sum(import_kWh * import_price - export_kWh * export_price)``.

    Under a time-of-use tariff the import price of each step is picked with
    ``floor((t_s / 3600) mod 24)``; hours in no set use the off-peak price.
    """
    tariff = _tariff_of(meta)
    dt_h = meta.dt_s / 3600.0
    cost = 0.0
    for step in steps:
        outcome = step.variant(variant)
        cost += _finite(outcome.grid_import_kw) * dt_h * tariff.import_price(step.t_s)
        cost -= _finite(outcome.grid_export_kw) * dt_h * tariff.export_price(step.t_s)
    return cost


def compute_kpis_for_steps(meta: TraceMeta, steps: Sequence[StepRecord], variant: str) -> TraceKpis:
    """
    Energy, self-consumption, comfort and cost KPIs of one variant.

    Args:
        meta: Trace metadata (step length, tariff, DHW target).
        steps: Steps to aggregate, usually a filtered window.
        variant: ``"A"`` or ``"B"``.

    Returns:
        TraceKpis with ``autoconsumption_pct = 100 * (1 - export / pv)`` and
        ``autoproduct_pct = 100 * (1 - import / total_load)``, each 0 when its
        denominator is 0.
    """
    if variant not in VARIANTS:
        raise ValueError(f"Unknown variant {variant!r} (expected 'A' or 'B')")
    dt_s = meta.dt_s
    outcomes = [step.variant(variant) for step in steps]
    pv_kwh = _energy_kwh(np.array([_finite(step.pv_kw) for step in steps], dtype=float), dt_s)
    import_kwh = _energy_kwh(np.array([_finite(o.grid_import_kw) for o in outcomes], dtype=float), dt_s)
    export_kwh = _energy_kwh(np.array([_finite(o.grid_export_kw) for o in outcomes], dtype=float), dt_s)
    load_kwh = _energy_kwh(np.array([_finite(o.total_load_kw) for o in outcomes], dtype=float), dt_s)

    autoconsumption = (1.0 - export_kwh / pv_kwh) * 100.0 if pv_kwh > 0 else 0.0
    autoproduct = (1.0 - import_kwh / load_kwh) * 100.0 if load_kwh > 0 else 0.0

    ecs_pct = 0.0
    target = (meta.dhw_params(variant) or {}).get("target_temp_c")
    if target is not None and outcomes:
        hits = sum(1 for o in outcomes if o.dhw_temp_c is not None and o.dhw_temp_c >= target)
        ecs_pct = clamp_percent(100.0 * hits / len(outcomes))

    return TraceKpis(
        autoconsumption_pct=clamp_percent(autoconsumption),
        autoproduct_pct=clamp_percent(autoproduct),
        import_kWh=import_kwh,
        export_kWh=export_kwh,
        cost_EUR=compute_cost(meta, steps, variant),
        ecs_time_at_or_above_target_pct=ecs_pct,
        pv_kWh=pv_kwh,
        total_load_kWh=load_kwh,
    )


def compute_kpis_for_window(trace: Trace, window: Optional[WindowFilter] = None) -> Dict[str, TraceKpis]:
    steps = filter_steps(trace.steps, window)
    return {variant: compute_kpis_for_steps(trace.meta, steps, variant) for variant in VARIANTS}


@dataclass(frozen=True)
class EuroKpis:
    cost_import: float
    revenue_export: float
    net_cost: float
    grid_only_cost: float
    delta_vs_grid_only: float
    savings_rate: float
    simple_payback_years: Optional[float]
    estimated_investment: float

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


def euros_from_flows(
    flows: Sequence[StepFlows],
    dt_s: float,
    import_prices: Sequence[float],
    export_prices: Sequence[float],
    investment_eur: float = 0.0,
    horizon_s: Optional[float] = None,
) -> EuroKpis:
    """
    Economic KPIs of a flow series against a grid-only household.

    The grid-only reference buys the whole load (``pv_to_load +
    storage_to_load + grid_to_load``) at the import price. The simple payback
    extrapolates the savings of ``horizon_s`` (default: the flow duration) to a
    year; it is None when there is no investment or no positive saving.

    Example:
        ```python
        flow = StepFlows(pv_to_load_kw=0.6, pv_to_storage_kw=0.2, pv_to_grid_kw=0.4,
                         storage_to_load_kw=0.2, grid_to_load_kw=0.2)
        kpis = euros_from_flows([flow], 3600, [0.3], [0.1], investment_eur=1000)
        kpis.grid_only_cost       # 0.30
        kpis.net_cost             # 0.06 - 0.04 = 0.02
        kpis.delta_vs_grid_only   # 0.28
        ```
    """
    dt_h = dt_s / 3600.0
    cost_import = 0.0
    revenue_export = 0.0
    grid_only = 0.0
    for index, flow in enumerate(flows):
        import_price = _finite(import_prices[index]) if index < len(import_prices) else 0.0
        export_price = _finite(export_prices[index]) if index < len(export_prices) else 0.0
        load_kw = flow.pv_to_load_kw + flow.storage_to_load_kw + flow.grid_to_load_kw
        cost_import += flow.grid_to_load_kw * dt_h * import_price
        revenue_export += flow.pv_to_grid_kw * dt_h * export_price
        grid_only += load_kw * dt_h * import_price

    net_cost = cost_import - revenue_export
    delta = grid_only - net_cost
    savings_rate = delta / grid_only if grid_only > 0 else 0.0
    duration_s = horizon_s if horizon_s is not None else len(flows) * dt_s
    payback: Optional[float] = None
    if investment_eur > 0 and delta > _EPSILON and duration_s > 0:
        annual_savings = delta / (duration_s / SECONDS_PER_YEAR)
        payback = investment_eur / annual_savings
    return EuroKpis(
        cost_import=cost_import,
        revenue_export=revenue_export,
        net_cost=net_cost,
        grid_only_cost=grid_only,
        delta_vs_grid_only=delta,
        savings_rate=_finite(savings_rate),
        simple_payback_years=payback,
        estimated_investment=float(investment_eur),
    )


def trace_euros(
    trace: Trace,
    variant: str,
    window: Optional[WindowFilter] = None,
    investment_eur: float = 0.0,
) -> EuroKpis:
    steps = filter_steps(trace.steps, window)
    tariff = _tariff_of(trace.meta)
    return euros_from_flows(
        [step.variant(variant).flows for step in steps],
        trace.meta.dt_s,
        [tariff.import_price(step.t_s) for step in steps],
        [tariff.export_price(step.t_s) for step in steps],
        investment_eur=investment_eur,
    )


@dataclass(frozen=True)
class DailyDeadlineKpi:
    day_index: int
    observed_temp_c: float
    deficit_k: float
    penalty_eur: float
    hit: bool


@dataclass(frozen=True)
class DeadlineKpis:
    daily: List[DailyDeadlineKpi]
    hit_rate: float
    average_deficit_k: float
    total_penalty_eur: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def aggregate_ecs_deadline_kpis(
    temps_c: Sequence[Optional[float]],
    dt_s: float,
    target_c: float,
    deadline_hour: float,
    penalty_per_k: float = 0.0,
    mode: str = "force",
    tolerance_steps: int = 1,
    window: Optional[WindowFilter] = None,
) -> DeadlineKpis:
    """
    Daily hot-water deadline evaluation.

    For every simulated day whose deadline lies within the series, the highest
    temperature sampled within ``tolerance_steps`` of the deadline is compared
    with the target. The deficit is penalised only in ``penalize`` mode.
    When ``window`` is given, only deadlines falling inside it are scored.
    """
    empty = DeadlineKpis(daily=[], hit_rate=0.0, average_deficit_k=0.0, total_penalty_eur=0.0)
    if not math.isfinite(dt_s) or dt_s <= 0 or len(temps_c) == 0:
        return empty

    last_time_s = (len(temps_c) - 1) * dt_s
    tolerance_s = tolerance_steps * dt_s + _EPSILON
    deadline_s = min(max(deadline_hour, 0.0), 24.0) * 3600.0
    total_days = int(last_time_s // 86400.0) + 1
    daily: List[DailyDeadlineKpi] = []
    for day in range(total_days):
        target_time_s = day * 86400.0 + deadline_s
        if target_time_s - tolerance_s > last_time_s:
            break
        if window is not None and not window.contains(target_time_s):
            continue
        approx = int(round(target_time_s / dt_s))
        samples = []
        for index in range(approx - tolerance_steps, approx + tolerance_steps + 1):
            if 0 <= index < len(temps_c) and abs(index * dt_s - target_time_s) <= tolerance_s:
                samples.append(temps_c[index])
        if not samples:
            continue
        finite = [value for value in samples if value is not None and math.isfinite(value)]
        observed = max(finite) if finite else 0.0
        deficit = max(0.0, target_c - observed)
        penalty = deficit * max(penalty_per_k, 0.0) if mode == "penalize" else 0.0
        daily.append(
            DailyDeadlineKpi(
                day_index=day,
                observed_temp_c=observed,
                deficit_k=deficit,
                penalty_eur=penalty,
                hit=deficit <= _EPSILON,
            )
        )

    if not daily:
        return empty
    return DeadlineKpis(
        daily=daily,
        hit_rate=sum(1 for entry in daily if entry.hit) / len(daily),
        average_deficit_k=sum(entry.deficit_k for entry in daily) / len(daily),
        total_penalty_eur=sum(entry.penalty_eur for entry in daily),
    )


def battery_cycles_proxy(trace: Trace, variant: str, window: Optional[WindowFilter] = None) -> Optional[float]:
    """
    Equivalent full cycles: discharged energy over usable capacity.

    None when the run has no battery.
    """
    battery = trace.meta.battery_params(variant)
    if battery is None:
        return None
    usable = battery["soc_max_kwh"] - battery["soc_min_kwh"]
    if usable <= 0:
        return 0.0
    steps = filter_steps(trace.steps, window)
    discharge_kw = np.array([max(-step.variant(variant).battery_power_kw, 0.0) for step in steps], dtype=float)
    return _energy_kwh(discharge_kw, trace.meta.dt_s) / usable


def decision_counts(trace: Trace, variant: str, window: Optional[WindowFilter] = None) -> Dict[str, int]:
    counter = Counter(step.variant(variant).decision_reason for step in filter_steps(trace.steps, window))
    return {reason.value: counter.get(reason, 0) for reason in DecisionReason}


def compute_kpi_report(
    trace: Trace,
    window: Optional[WindowFilter] = None,
    investment_eur: float = 0.0,
) -> Dict[str, Dict[str, Any]]:
    """
    Full per-variant report: window KPIs, euros, run KPIs and diagnostics.

    Deadline penalties only count deadlines inside ``window``, so
    ``net_cost_with_penalties`` covers the same period as ``cost_EUR``.
    """
    windowed = compute_kpis_for_window(trace, window)
    report: Dict[str, Dict[str, Any]] = {}
    for variant in VARIANTS:
        entry: Dict[str, Any] = dict(windowed[variant].to_dict())
        run_kpis = trace.run_kpis.get(variant)
        entry.update(run_kpis.to_dict() if run_kpis is not None else {})
        entry["euros"] = trace_euros(trace, variant, window, investment_eur).to_dict()
        entry["battery_cycles"] = battery_cycles_proxy(trace, variant, window)
        entry["decisions"] = decision_counts(trace, variant, window)
        dhw = trace.meta.dhw_params(variant)
        if dhw is not None:
            deadline = aggregate_ecs_deadline_kpis(
                [step.variant(variant).dhw_temp_c for step in trace.steps],
                trace.meta.dt_s,
                target_c=dhw["target_temp_c"],
                deadline_hour=dhw["deadline_hour"],
                penalty_per_k=dhw["penalty_per_k"],
                mode=dhw["service_mode"],
                window=window,
            )
            entry["ecs_deadline"] = deadline.to_dict()
            entry["net_cost_with_penalties"] = entry["cost_EUR"] + deadline.total_penalty_eur
        else:
            entry["ecs_deadline"] = None
            entry["net_cost_with_penalties"] = entry["cost_EUR"]
        report[variant] = entry
    return report
