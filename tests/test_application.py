from __future__ import annotations

import pytest

from sim_home_ems.application import SimulationApplication
from sim_home_ems.scenario_setup import SCENARIO_PRESETS
from sim_home_ems.simulation import ConfigurationError, available_strategies


def test_run_comparison_summarizes_both_variants(small_scenario_data: dict):
    """Run the A/B workflow and check the summary layout."""
    app = SimulationApplication()
    summary = app.run_comparison(scenario_data=small_scenario_data)

    assert summary["scenario"] == "test_small"
    assert summary["n_steps"] == 96
    assert summary["strategies"] == {"A": "ecs_first", "B": "multi_equipment_priority"}
    assert set(summary["kpis"]) == {"A", "B"}
    assert "trace" not in summary
    assert len(summary["plots_data"]["time_h"]) == 96
    assert len(summary["plots_data"]["grid_import_kw"]["B"]) == 96
    assert app.last_trace is not None and len(app.last_trace) == 96


def test_strategy_overrides_and_window(small_scenario_data: dict):
    app = SimulationApplication(include_trace=True)
    summary = app.run_comparison(
        scenario_data=small_scenario_data,
        window=(6.0, 18.0),
        strategy_a="multi_equipment_priority",
        strategy_b="ecs_first",
    )
    assert summary["strategies"] == {"A": "multi_equipment_priority", "B": "ecs_first"}
    assert summary["window"] == {"start_h": 6.0, "end_h": 18.0}
    assert summary["trace"]["meta"]["version"] == "1.0"
    assert len(summary["trace"]["steps"]) == 96


def test_default_scenario_runs():
    summary = SimulationApplication().run_comparison()
    assert summary["scenario"] == "summer_day_ab"
    assert summary["run_kpis"]["A"]["heating_comfort_ratio"] is None


def test_invalid_configuration_is_reported(small_scenario_data: dict):
    app = SimulationApplication()
    with pytest.raises(ConfigurationError):
        app.run_comparison(scenario_data=small_scenario_data, strategy_a="nope")

    small_scenario_data["devices"].append({"id": "toaster", "type": "toaster"})
    with pytest.raises(ConfigurationError):
        app.run_comparison(scenario_data=small_scenario_data)
    assert app.last_trace is None


def test_catalogues():
    app = SimulationApplication()
    assert [entry["id"] for entry in app.list_strategies()] == available_strategies()
    assert len(app.list_strategies()) == 10
    assert set(app.list_device_types()) == {"battery", "dhw-tank", "space-heater", "pool-pump", "ev-charger"}
    assert app.default_scenario()["scenario_name"] == "summer_day_ab"


@pytest.mark.parametrize("preset_id", sorted(SCENARIO_PRESETS))
def test_every_preset_runs_by_id(preset_id: str):
    summary = SimulationApplication().run_comparison(scenario_data=preset_id)
    assert summary["scenario"] == preset_id
    assert summary["n_steps"] == 96


def test_threshold_variants_are_labelled_by_threshold():
    app = SimulationApplication()
    summary = app.run_comparison(scenario_data="seuils")
    assert summary["strategies"] == {"A": "mix_soc_threshold:40", "B": "mix_soc_threshold:80"}

    summary = app.run_comparison(
        scenario_data="batt_vide",
        strategy_a="mix_soc_threshold",
        threshold_a=25.0,
    )
    assert summary["strategies"]["A"] == "mix_soc_threshold:25"

    with pytest.raises(ConfigurationError, match="does not apply"):
        app.run_comparison(scenario_data="ete", strategy_a="battery_first", threshold_a=25.0)


def test_preset_catalogue():
    app = SimulationApplication()
    assert [entry["id"] for entry in app.list_presets()] == list(SCENARIO_PRESETS)
    assert app.preset("hiver")["scenario_name"] == "hiver"
    with pytest.raises(ConfigurationError):
        app.preset("printemps")
