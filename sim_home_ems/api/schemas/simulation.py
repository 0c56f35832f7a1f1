"""
Simulation execution schemas for API validation.

This module contains Pydantic models for the simulation endpoints:
- SimulationRequest / SimulationResponse: A/B comparison of one scenario
- StrategyDescription: entry of the strategy catalogue
- ScenarioPresetSummary: entry of the scenario preset catalogue
- KpiWindow: optional KPI window in hours

The scenario itself travels as a free-form mapping; its content is validated
by the device registry and the engine, which report problems as HTTP 422.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class KpiWindow(BaseModel):
    """
    Inclusive KPI window compared against ``t_s / 3600``.

    Attributes:
        start_h: Window start in hours since the beginning of the run.
        end_h: Window end in hours since the beginning of the run.

    Example:
        ```python
        {"start_h": 6.0, "end_h": 22.0}
        ```
    """

    start_h: Optional[float] = Field(None, ge=0.0, description="Window start (hours, inclusive)")
    end_h: Optional[float] = Field(None, ge=0.0, description="Window end (hours, inclusive)")

    @model_validator(mode="after")
    def _check_order(self) -> "KpiWindow":
        if self.start_h is not None and self.end_h is not None and self.end_h < self.start_h:
            raise ValueError("end_h must be >= start_h")
        return self


class SimulationRequest(BaseModel):
    """
    Request schema for an A/B strategy comparison.

    Attributes:
        scenario: Complete scenario as JSON (optional). When omitted the
            built-in default scenario is simulated. Recognised keys:
            scenario_name, dt_s, horizon_h, pv_kw / pv_profile_kw / pv_peak_kw,
            base_load_kw / base_load_profile_kw, ambient_temp_c, tariffs,
            devices, strategy_a, strategy_b, investment_eur.
        preset: Built-in preset id, used instead of ``scenario``.
        strategy_a: Strategy id overriding ``scenario.strategy_a``.
        strategy_b: Strategy id overriding ``scenario.strategy_b``.
        threshold_a: SOC threshold (%) when A is ``mix_soc_threshold``.
        threshold_b: SOC threshold (%) when B is ``mix_soc_threshold``.
        window: Optional KPI window.
        include_trace: Embed the versioned trace record in the response.

    Example:
        ```python
        # POST /api/simulations
        {
            "strategy_a": "ecs_first",
            "strategy_b": "multi_equipment_priority",
            "window": {"start_h": 6, "end_h": 22},
            "scenario": {
                "dt_s": 900,
                "horizon_h": 24,
                "pv_peak_kw": 6.0,
                "tariffs": {"mode": "tou"},
                "devices": [
                    {"id": "battery", "type": "battery", "params": {"p_max_kw": 3.0}},
                    {"id": "dhw", "type": "dhw-tank"}
                ]
            }
        }
        ```
    """

    model_config = ConfigDict(extra="forbid")

    scenario: Optional[Dict[str, Any]] = Field(
        None,
        description="Scenario definition (defaults to the built-in scenario)",
    )
    preset: Optional[str] = Field(None, description="Built-in scenario preset id")
    strategy_a: Optional[str] = Field(None, description="Strategy id of variant A")
    strategy_b: Optional[str] = Field(None, description="Strategy id of variant B")
    threshold_a: Optional[float] = Field(None, ge=0.0, le=100.0, description="SOC threshold of variant A (%)")
    threshold_b: Optional[float] = Field(None, ge=0.0, le=100.0, description="SOC threshold of variant B (%)")
    window: Optional[KpiWindow] = Field(None, description="KPI window in hours")
    include_trace: bool = Field(False, description="Include the full trace record")

    @model_validator(mode="after")
    def _check_source(self) -> "SimulationRequest":
        if self.scenario is not None and self.preset is not None:
            raise ValueError("scenario and preset are mutually exclusive")
        return self


class SimulationResponse(BaseModel):
    """
    Response schema of an A/B comparison.

    Attributes:
        scenario: Scenario name.
        dt_s: Step length (s).
        n_steps: Number of simulated steps.
        strategies: Strategy id per variant.
        window: KPI window applied, if any.
        kpis: Per-variant KPI report (energy, cost, comfort, euros, decisions).
        run_kpis: Full-horizon KPIs per variant (null when a device class is absent).
        plots_data: Per-step series for charts.
        trace: Versioned trace record when requested.
    """

    scenario: str = Field(..., description="Scenario name")
    dt_s: float = Field(..., gt=0.0, description="Step length in seconds")
    n_steps: int = Field(..., ge=1, description="Number of simulated steps")
    strategies: Dict[str, str] = Field(..., description="Strategy id per variant")
    window: Optional[Dict[str, Optional[float]]] = Field(None, description="Applied KPI window")
    kpis: Dict[str, Dict[str, Any]] = Field(..., description="KPI report per variant")
    run_kpis: Dict[str, Dict[str, Optional[float]]] = Field(..., description="Run-level KPIs per variant")
    plots_data: Optional[Dict[str, Any]] = Field(None, description="Embedded series for visualization")
    trace: Optional[Dict[str, Any]] = Field(None, description="Versioned trace record")


class StrategyDescription(BaseModel):
    id: str = Field(..., description="Strategy identifier")
    description: str = Field(..., description="Short human description")


class StrategyListResponse(BaseModel):
    strategies: List[StrategyDescription]


class ScenarioPresetSummary(BaseModel):
    id: str = Field(..., description="Preset identifier")
    label: str = Field(..., description="Display name")
    description: str = Field(..., description="What the preset stresses")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")


class ScenarioPresetListResponse(BaseModel):
    presets: List[ScenarioPresetSummary]
