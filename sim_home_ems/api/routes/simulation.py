"""
Simulation API endpoints.

Endpoints:
- POST /simulations: run an A/B comparison of an inline (or default) scenario
- GET /strategies: list the available ranking strategies
- GET /scenarios: list the built-in scenario presets
- GET /scenarios/default: return the built-in scenario as a starting point
- GET /scenarios/{preset_id}: return the full data of one preset
- GET /devices: list device types with their default parameters

Configuration errors (unknown device type or strategy, invalid parameters,
mismatched series) are reported as HTTP 422 before any simulation work.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ...application import SimulationApplication
from ...simulation import ConfigurationError
from .. import dependencies
from ..schemas import simulation as sim_schemas

router = APIRouter(prefix="/api", tags=["simulation"])


@router.post("/simulations", response_model=sim_schemas.SimulationResponse)
def run_simulation(
    payload: sim_schemas.SimulationRequest | None = None,
    app_service: SimulationApplication = Depends(dependencies.get_application_service),
) -> sim_schemas.SimulationResponse:
    """
    Simulate a scenario under strategies A and B and return their KPIs.

    Args:
        payload: Optional scenario, strategy overrides, KPI window and trace
            flag. When None the default scenario is simulated.
        app_service: Simulation application service (dependency injected).

    Returns:
        SimulationResponse with per-variant KPIs, run KPIs and chart series.

    Raises:
        HTTPException 422: invalid scenario, device or strategy.

    Example:
        ```python
        # POST /api/simulations
        {"strategy_b": "multi_equipment_priority", "window": {"start_h": 0, "end_h": 12}}

        # Response (abridged)
        {
            "scenario": "summer_day_ab",
            "strategies": {"A": "ecs_first", "B": "multi_equipment_priority"},
            "kpis": {"A": {"autoconsumption_pct": 71.4, ...}, "B": {...}},
            "run_kpis": {"A": {"heating_comfort_ratio": null, ...}, "B": {...}}
        }
        ```
    """
    payload = payload or sim_schemas.SimulationRequest()
    window = None
    if payload.window is not None:
        window = (payload.window.start_h, payload.window.end_h)
    try:
        scenario_data = app_service.preset(payload.preset) if payload.preset else payload.scenario
        summary = app_service.run_comparison(
            scenario_data=scenario_data,
            window=window,
            strategy_a=payload.strategy_a,
            strategy_b=payload.strategy_b,
            threshold_a=payload.threshold_a,
            threshold_b=payload.threshold_b,
            include_trace=payload.include_trace,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return sim_schemas.SimulationResponse(**summary)


@router.get("/strategies", response_model=sim_schemas.StrategyListResponse)
def list_strategies(
    app_service: SimulationApplication = Depends(dependencies.get_application_service),
) -> sim_schemas.StrategyListResponse:
    return sim_schemas.StrategyListResponse(
        strategies=[sim_schemas.StrategyDescription(**entry) for entry in app_service.list_strategies()]
    )


@router.get("/scenarios", response_model=sim_schemas.ScenarioPresetListResponse)
def list_scenario_presets(
    app_service: SimulationApplication = Depends(dependencies.get_application_service),
) -> sim_schemas.ScenarioPresetListResponse:
    return sim_schemas.ScenarioPresetListResponse(
        presets=[sim_schemas.ScenarioPresetSummary(**entry) for entry in app_service.list_presets()]
    )


@router.get("/scenarios/default")
def get_default_scenario(
    app_service: SimulationApplication = Depends(dependencies.get_application_service),
) -> Dict[str, Any]:
    return app_service.default_scenario()


@router.get("/scenarios/{preset_id}")
def get_scenario_preset(
    preset_id: str,
    app_service: SimulationApplication = Depends(dependencies.get_application_service),
) -> Dict[str, Any]:
    """Scenario data of one preset, ready to edit and post back as ``scenario``."""
    try:
        return app_service.preset(preset_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/devices")
def list_device_types(
    app_service: SimulationApplication = Depends(dependencies.get_application_service),
) -> Dict[str, Dict[str, Any]]:
    """Device types with their default parameters."""
    return app_service.list_device_types()
