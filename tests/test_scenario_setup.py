from __future__ import annotations

import json

import numpy as np
import pytest

from sim_home_ems.scenario_setup import (
    DEFAULT_SCENARIO,
    SCENARIO_PRESETS,
    build_base_load_series,
    build_device_population,
    build_engine,
    build_pv_series,
    get_preset,
    list_presets,
    load_scenario_data,
    scenario_grid,
)
from sim_home_ems.simulation import ConfigurationError


def test_default_scenario_is_copied() -> None:
    data = load_scenario_data(None)
    data["devices"].clear()
    assert DEFAULT_SCENARIO["devices"]


def test_scenario_file_is_loaded(tmp_path) -> None:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"scenario_name": "from_file", "dt_s": 3600}), encoding="utf-8")
    assert load_scenario_data(path)["scenario_name"] == "from_file"


def test_invalid_scenario_file_is_reported(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        load_scenario_data(path)


def test_explicit_pv_series_fixes_step_count() -> None:
    assert scenario_grid({"dt_s": 3600, "pv_kw": [0.0, 1.0, 2.0]}) == (3, 3600.0)
    assert scenario_grid({"dt_s": 900, "horizon_h": 48}) == (192, 900.0)
    with pytest.raises(ConfigurationError):
        scenario_grid({"dt_s": 0})


def test_base_load_accepts_scalar_and_daily_profile() -> None:
    assert np.allclose(build_base_load_series({"base_load_kw": 0.8}, 4, 900), 0.8)
    hourly = list(range(24))
    series = build_base_load_series({"base_load_profile_kw": hourly}, 96, 900)
    assert series[6] == pytest.approx(1.0)
    assert series[95] == pytest.approx(23.0)


def test_each_population_is_fresh(small_scenario_data: dict) -> None:
    first = build_device_population(small_scenario_data)
    second = build_device_population(small_scenario_data)
    assert [d.id for d in first] == [d.id for d in second]
    assert all(a is not b for a, b in zip(first, second))


def test_engine_rejects_invalid_series() -> None:
    with pytest.raises(ConfigurationError):
        build_engine({"dt_s": 3600, "pv_kw": [1.0, -2.0]})
    with pytest.raises(ConfigurationError):
        build_engine({"dt_s": 3600, "horizon_h": 2, "base_load_kw": "sunny"})


def test_missing_scenario_file_is_a_configuration_error(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="Cannot read"):
        load_scenario_data(tmp_path / "missing.json")


def test_preset_id_loads_a_copy_of_the_preset() -> None:
    data = load_scenario_data("ete")
    assert data["scenario_name"] == "ete"
    data["devices"].clear()
    assert SCENARIO_PRESETS["ete"]["devices"]


def test_unknown_preset_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Unknown scenario preset"):
        get_preset("printemps")


def test_list_presets_summarizes_every_preset() -> None:
    summaries = list_presets()
    assert [entry["id"] for entry in summaries] == list(SCENARIO_PRESETS)
    assert all(entry["label"] and entry["description"] for entry in summaries)


@pytest.mark.parametrize("preset_id", sorted(SCENARIO_PRESETS))
def test_every_preset_builds_and_runs(preset_id: str) -> None:
    data = get_preset(preset_id)
    engine = build_engine(data)
    trace = engine.run_comparison(
        build_device_population(data),
        build_device_population(data),
        scenario_name=preset_id,
    )
    assert len(trace) == 96
    assert trace.meta.scenario_name == preset_id


def test_pv_shape_is_zero_at_night_and_peaks_at_noon() -> None:
    shape = {"peak_kw": 4.0, "sunrise_hour": 6.0, "sunset_hour": 18.0}
    series = build_pv_series({"pv_shape": shape}, 96, 900)
    assert series[0] == 0.0
    assert series[95] == 0.0
    assert series[48] == pytest.approx(4.0)
    assert series.max() <= 4.0 + 1e-9


def test_dual_level_base_load_uses_evening_level_at_night() -> None:
    shape = {"kind": "dual_level", "day_kw": 0.5, "evening_kw": 1.2}
    series = build_base_load_series({"base_load_shape": shape}, 96, 900)
    assert series[4] == pytest.approx(1.2)
    assert series[52] == pytest.approx(0.5)


def test_unknown_base_load_shape_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Unknown base_load_shape kind"):
        build_base_load_series({"base_load_shape": {"kind": "spiky"}}, 96, 900)
    with pytest.raises(ConfigurationError, match="must be a number"):
        build_pv_series({"pv_shape": {"peak_kw": "lots", "sunrise_hour": 6, "sunset_hour": 18}}, 96, 900)
