from __future__ import annotations

import numpy as np
import pytest

from sim_home_ems.scenario_setup import build_device_population, build_engine
from sim_home_ems.simulation import (
    ConfigurationError,
    SimulationEngine,
    build_devices,
    pv_bell_profile,
)


def _one_day_engine(**kwargs) -> SimulationEngine:
    n_steps = 96
    return SimulationEngine(
        dt_s=900,
        pv_series_kw=pv_bell_profile(n_steps, 900, peak_kw=6.0),
        base_load_series_kw=np.full(n_steps, 0.6),
        **kwargs,
    )


def test_comparison_conserves_energy_every_step(small_scenario_data: dict) -> None:
    engine = build_engine(small_scenario_data)
    trace = engine.run_comparison(
        build_device_population(small_scenario_data),
        build_device_population(small_scenario_data),
        scenario_name="conservation",
    )

    assert len(trace) == 96
    for step in trace.steps:
        for variant in ("A", "B"):
            outcome = step.variant(variant)
            flows = outcome.flows
            assert step.pv_kw == pytest.approx(
                flows.pv_to_load_kw + flows.pv_to_storage_kw + flows.pv_to_grid_kw, abs=1e-6
            )
            assert outcome.total_load_kw == pytest.approx(
                flows.pv_to_load_kw + flows.storage_to_load_kw + flows.grid_to_load_kw, abs=1e-6
            )
            assert not (outcome.grid_import_kw > 1e-6 and outcome.grid_export_kw > 1e-6)
            assert 1.0 - 1e-9 <= outcome.battery_soc_kwh <= 10.0 + 1e-9
            assert 0.0 <= outcome.dhw_temp_c <= 100.0


def test_variants_share_inputs_but_not_state(small_scenario_data: dict) -> None:
    engine = build_engine(small_scenario_data)
    trace = engine.run_comparison(
        build_device_population(small_scenario_data),
        build_device_population(small_scenario_data),
    )
    assert trace.meta.strategy_a == "ecs_first"
    assert trace.meta.strategy_b == "multi_equipment_priority"
    assert trace.meta.battery["p_max_kw"] == pytest.approx(4.0)
    assert trace.meta.dhw["service_mode"] == "force"
    for step in trace.steps:
        assert step.a.surplus_kw == step.b.surplus_kw
        assert step.a.deficit_kw == step.b.deficit_kw


def test_meta_records_each_population_devices() -> None:
    engine = _one_day_engine()
    trace = engine.run_comparison(
        build_devices([{"id": "dhw", "type": "dhw-tank", "params": {"target_temp_c": 55.0}}]),
        build_devices(
            [
                {"id": "dhw", "type": "dhw-tank", "params": {"target_temp_c": 60.0}},
                {"id": "battery", "type": "battery"},
            ]
        ),
    )
    assert trace.meta.dhw_params("A")["target_temp_c"] == pytest.approx(55.0)
    assert trace.meta.dhw_params("B")["target_temp_c"] == pytest.approx(60.0)
    assert trace.meta.battery_params("A") is None
    assert trace.meta.battery_params("B") is not None
    assert trace.to_record()["meta"]["dhw_b"]["target_temp_c"] == pytest.approx(60.0)


def test_runs_are_deterministic(small_scenario_data: dict) -> None:
    first = build_engine(small_scenario_data).run_comparison(
        build_device_population(small_scenario_data), build_device_population(small_scenario_data)
    )
    second = build_engine(small_scenario_data).run_comparison(
        build_device_population(small_scenario_data), build_device_population(small_scenario_data)
    )
    assert first.to_record() == second.to_record()


def test_run_kpis_cover_present_devices(small_scenario_data: dict) -> None:
    engine = build_engine(small_scenario_data)
    trace = engine.run_comparison(
        build_device_population(small_scenario_data),
        build_device_population(small_scenario_data),
    )
    for variant in ("A", "B"):
        kpis = trace.run_kpis[variant]
        assert 0.0 <= kpis.heating_comfort_ratio <= 1.0
        assert 0.0 <= kpis.pool_filtration_completion <= 1.0
        assert 0.0 <= kpis.ev_charge_completion <= 1.0


def test_run_kpis_are_none_without_devices() -> None:
    engine = _one_day_engine()
    trace = engine.run_comparison(
        build_devices([{"id": "battery", "type": "battery"}]),
        build_devices([{"id": "battery", "type": "battery"}]),
    )
    kpis = trace.run_kpis["A"].to_dict()
    assert kpis == {
        "heating_comfort_ratio": None,
        "pool_filtration_completion": None,
        "ev_charge_completion": None,
    }
    assert trace.meta.dhw is None


def test_empty_population_only_moves_base_load() -> None:
    engine = _one_day_engine()
    steps, _ = engine.run_variant([], "ecs_first")
    for index, step in enumerate(steps):
        pv = float(engine.pv_kw[index])
        assert step.grid_import_kw == pytest.approx(max(0.6 - pv, 0.0))
        assert step.grid_export_kw == pytest.approx(max(pv - 0.6, 0.0))
        assert step.battery_soc_kwh is None


def test_context_carries_time_and_prices() -> None:
    engine = _one_day_engine(ambient_temp_c=10.0)
    ctx = engine.context(4)
    assert ctx.time_s == pytest.approx(3600.0)
    assert ctx.ambient_temp_c == pytest.approx(10.0)
    assert ctx.price_import_eur_per_kwh == pytest.approx(0.25)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"dt_s": 0, "pv_series_kw": [1.0], "base_load_series_kw": [1.0]},
        {"dt_s": 900, "pv_series_kw": [1.0, 2.0], "base_load_series_kw": [1.0]},
        {"dt_s": 900, "pv_series_kw": [], "base_load_series_kw": []},
        {"dt_s": 900, "pv_series_kw": [-1.0], "base_load_series_kw": [1.0]},
        {"dt_s": 900, "pv_series_kw": [float("nan")], "base_load_series_kw": [1.0]},
        {"dt_s": 900, "pv_series_kw": [1.0], "base_load_series_kw": [1.0], "ambient_temp_c": [1.0, 2.0]},
    ],
)
def test_invalid_inputs_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        SimulationEngine(**kwargs)


def test_shared_device_instances_are_rejected() -> None:
    devices = build_devices([{"id": "battery", "type": "battery"}])
    with pytest.raises(ConfigurationError, match="shared"):
        _one_day_engine().run_comparison(devices, devices)


def test_unknown_strategy_fails_before_simulation() -> None:
    devices_a = build_devices([{"id": "battery", "type": "battery"}])
    devices_b = build_devices([{"id": "battery", "type": "battery"}])
    with pytest.raises(ConfigurationError):
        _one_day_engine().run_comparison(devices_a, devices_b, strategy_b="nope")
    assert devices_a[0].soc_kwh == pytest.approx(5.0)
