from __future__ import annotations

import pytest

from sim_home_ems.simulation import (
    DecisionReason,
    RunKpis,
    StepFlows,
    StepRecord,
    Trace,
    TraceBuilder,
    TraceMeta,
    VariantStep,
)
from sim_home_ems.simulation.trace import TRACE_VERSION


def _meta(dt_s: float = 900.0) -> TraceMeta:
    return TraceMeta(
        scenario_name="unit",
        dt_s=dt_s,
        tariff={"mode": "fixed", "import_EUR_per_kWh": 0.25, "export_EUR_per_kWh": 0.1},
        strategy_a="ecs_first",
        strategy_b="multi_equipment_priority",
    )


def _outcome(grid_import_kw: float = 0.0) -> VariantStep:
    return VariantStep(
        surplus_kw=0.0,
        deficit_kw=grid_import_kw,
        battery_power_kw=0.0,
        battery_soc_kwh=None,
        dhw_power_kw=0.0,
        dhw_temp_c=None,
        grid_import_kw=grid_import_kw,
        grid_export_kw=0.0,
        pv_used_on_site_kw=0.0,
        controllable_load_kw=0.0,
        total_load_kw=grid_import_kw,
        flows=StepFlows(grid_to_load_kw=grid_import_kw),
        decision_reason=DecisionReason.GRID_IMPORT,
        device_power_kw={"battery": 0.0},
    )


def _step(index: int, t_s: float) -> StepRecord:
    return StepRecord(index=index, t_s=t_s, pv_kw=0.0, base_load_kw=1.0, a=_outcome(1.0), b=_outcome(1.0))


def test_builder_produces_ordered_trace() -> None:
    builder = TraceBuilder(_meta())
    builder.append(_step(0, 0.0))
    builder.append(_step(1, 900.0))
    trace = builder.build({"A": RunKpis(), "B": RunKpis()})

    assert len(trace) == 2
    with pytest.raises(RuntimeError):
        builder.append(_step(2, 1800.0))


def test_builder_rejects_uneven_spacing() -> None:
    builder = TraceBuilder(_meta())
    builder.append(_step(0, 0.0))
    with pytest.raises(ValueError):
        builder.append(_step(1, 1000.0))


def test_trace_rejects_gaps() -> None:
    with pytest.raises(ValueError):
        Trace(meta=_meta(), steps=(_step(0, 0.0), _step(2, 1800.0)))


def test_step_record_uses_stable_field_names() -> None:
    record = _step(0, 0.0).to_record()
    for key in (
        "t_s",
        "pv_kW",
        "baseLoad_kW",
        "surplus_A_kW",
        "deficit_B_kW",
        "battery_power_A_kW",
        "battery_soc_B_kWh",
        "dhw_power_A_kW",
        "dhw_temp_B_C",
        "gridImport_A_kW",
        "gridExport_B_kW",
        "pvUsedOnSite_A_kW",
        "decision_reason_B",
    ):
        assert key in record
    assert record["decision_reason_A"] == "grid_import"


def test_trace_record_carries_version_and_meta() -> None:
    trace = Trace(meta=_meta(), steps=(_step(0, 0.0),), run_kpis={"A": RunKpis(ev_charge_completion=1.0)})
    record = trace.to_record()
    assert record["meta"]["version"] == TRACE_VERSION
    assert record["meta"]["strategy"] == {"A": "ecs_first", "B": "multi_equipment_priority"}
    assert record["run_kpis"]["A"]["ev_charge_completion"] == pytest.approx(1.0)


def test_steps_are_read_only() -> None:
    outcome = _outcome()
    with pytest.raises(TypeError):
        outcome.device_power_kw["battery"] = 3.0
    with pytest.raises(AttributeError):
        outcome.grid_import_kw = 2.0


def test_variant_lookup() -> None:
    step = _step(0, 0.0)
    assert step.variant("A") is step.a
    with pytest.raises(ValueError):
        step.variant("C")


def test_dataframe_has_one_row_per_step() -> None:
    trace = Trace(meta=_meta(), steps=(_step(0, 0.0), _step(1, 900.0)))
    df = trace.to_dataframe()
    assert len(df) == 2
    assert df["gridImport_A_kW"].sum() == pytest.approx(2.0)
