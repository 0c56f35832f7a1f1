from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from .scenario_setup import build_device_population, build_engine, get_preset, list_presets, load_scenario_data
from .simulation import (
    DeviceKind,
    Trace,
    WindowFilter,
    compute_kpi_report,
    default_params,
    resolve_strategy,
)
from .simulation.strategy import describe_strategies

_LOGGER = logging.getLogger(__name__)

ScenarioData = Union[Mapping[str, Any], str, Path, None]
StrategySelection = Union[str, Mapping[str, Any], None]

_SERIES_COLUMNS = {
    "battery_soc_kwh": "battery_soc_{v}_kWh",
    "battery_power_kw": "battery_power_{v}_kW",
    "dhw_temp_c": "dhw_temp_{v}_C",
    "dhw_power_kw": "dhw_power_{v}_kW",
    "grid_import_kw": "gridImport_{v}_kW",
    "grid_export_kw": "gridExport_{v}_kW",
    "decision_reason": "decision_reason_{v}",
}


def _column(df: pd.DataFrame, name: str) -> List[Any]:
    series = df[name].astype(object)
    return series.where(series.notna(), None).tolist()


def _build_plots_data(trace: Trace) -> Dict[str, Any]:
    """
    Compact per-step series for charts, one list per variant.
    """
    df = trace.to_dataframe()
    if df.empty:
        return {"time_h": [], "pv_kw": [], "base_load_kw": []}
    plots: Dict[str, Any] = {
        "time_h": (df["t_s"] / 3600.0).tolist(),
        "pv_kw": df["pv_kW"].tolist(),
        "base_load_kw": df["baseLoad_kW"].tolist(),
    }
    for key, pattern in _SERIES_COLUMNS.items():
        plots[key] = {variant: _column(df, pattern.format(v=variant)) for variant in ("A", "B")}
    return plots


def _parse_window(window: Optional[Sequence[Optional[float]]]) -> Optional[WindowFilter]:
    if window is None:
        return None
    if isinstance(window, WindowFilter):
        return window
    start_h, end_h = window
    return WindowFilter(start_h=start_h, end_h=end_h)


class SimulationApplication:
    """
    High-level orchestrator used by the CLI and the FastAPI surface.
    """

    def __init__(self, *, include_trace: bool = False) -> None:
        """
        Args:
            include_trace: When True, summaries embed the full versioned trace
                record under ``trace``.
        """
        self.include_trace = include_trace
        self.last_trace: Optional[Trace] = None

    def run_comparison(
        self,
        *,
        scenario_data: ScenarioData = None,
        window: Optional[Sequence[Optional[float]]] = None,
        strategy_a: StrategySelection = None,
        strategy_b: StrategySelection = None,
        threshold_a: Optional[float] = None,
        threshold_b: Optional[float] = None,
        include_trace: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Simulate both strategy variants of a scenario and summarize them.

        Args:
            scenario_data: Preset id, mapping or path overriding the default
                scenario.
            window: Optional ``(start_h, end_h)`` KPI window, inclusive.
            strategy_a: Strategy id (or ``{"id", "threshold_percent"}`` mapping)
                overriding the scenario's ``strategy_a``.
            strategy_b: Strategy id overriding the scenario's ``strategy_b``.
            threshold_a: SOC threshold (%) of a ``mix_soc_threshold`` variant A.
            threshold_b: SOC threshold (%) of a ``mix_soc_threshold`` variant B.
            include_trace: Overrides the instance setting for this call.

        Returns:
            JSON-ready summary with KPIs per variant and chart series.

        Raises:
            ConfigurationError: invalid scenario, device or strategy, before
                any simulation step runs.
        """
        payload = load_scenario_data(scenario_data)
        resolved_a = resolve_strategy(strategy_a or payload.get("strategy_a", "ecs_first"), threshold_a)
        resolved_b = resolve_strategy(strategy_b or payload.get("strategy_b", "multi_equipment_priority"), threshold_b)
        engine = build_engine(payload)
        devices_a = build_device_population(payload)
        devices_b = build_device_population(payload)
        scenario_name = payload.get("scenario_name", "custom_scenario")

        trace = engine.run_comparison(
            devices_a,
            devices_b,
            strategy_a=resolved_a,
            strategy_b=resolved_b,
            scenario_name=scenario_name,
        )
        self.last_trace = trace
        window_filter = _parse_window(window)
        report = compute_kpi_report(
            trace,
            window_filter,
            investment_eur=float(payload.get("investment_eur", 0.0) or 0.0),
        )

        summary: Dict[str, Any] = {
            "scenario": scenario_name,
            "dt_s": trace.meta.dt_s,
            "n_steps": len(trace),
            "strategies": {"A": trace.meta.strategy_a, "B": trace.meta.strategy_b},
            "window": (
                {"start_h": window_filter.start_h, "end_h": window_filter.end_h} if window_filter else None
            ),
            "kpis": report,
            "run_kpis": {variant: kpis.to_dict() for variant, kpis in trace.run_kpis.items()},
            "plots_data": _build_plots_data(trace),
        }
        if include_trace is None:
            include_trace = self.include_trace
        if include_trace:
            summary["trace"] = trace.to_record()
        _LOGGER.debug("Comparison summary built for %r", scenario_name)
        return summary

    def list_strategies(self) -> List[Dict[str, str]]:
        return describe_strategies()

    def list_device_types(self) -> Dict[str, Dict[str, Any]]:
        return {kind.value: default_params(kind) for kind in DeviceKind}

    def default_scenario(self) -> Dict[str, Any]:
        return load_scenario_data(None)

    def list_presets(self) -> List[Dict[str, Any]]:
        return list_presets()

    def preset(self, preset_id: str) -> Dict[str, Any]:
        """Full scenario data of a built-in preset; ConfigurationError if unknown."""
        return get_preset(preset_id)
