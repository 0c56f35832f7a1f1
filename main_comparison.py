from __future__ import annotations

import pandas as pd

from sim_home_ems.config import configure_logging
from sim_home_ems.scenario_setup import build_device_population, build_engine, load_scenario_data
from sim_home_ems.simulation import WindowFilter, compute_kpi_report

KPI_COLUMNS = [
    "autoconsumption_pct",
    "autoproduct_pct",
    "import_kWh",
    "export_kWh",
    "cost_EUR",
    "ecs_time_at_or_above_target_pct",
    "battery_cycles",
    "net_cost_with_penalties",
]


def kpi_table(report: dict) -> pd.DataFrame:
    """One row per variant with the headline KPIs."""
    return pd.DataFrame({variant: {key: report[variant].get(key) for key in KPI_COLUMNS} for variant in report}).T


def main() -> None:
    configure_logging()
    scenario = load_scenario_data(None)
    engine = build_engine(scenario)

    trace = engine.run_comparison(
        build_device_population(scenario),
        build_device_population(scenario),
        strategy_a=scenario["strategy_a"],
        strategy_b=scenario["strategy_b"],
        scenario_name=scenario["scenario_name"],
    )

    daytime = WindowFilter(start_h=6.0, end_h=22.0)
    for label, window in (("full horizon", None), ("06:00-22:00", daytime)):
        report = compute_kpi_report(trace, window, investment_eur=scenario.get("investment_eur", 0.0))
        print(f"== {trace.meta.scenario_name} ({label}) ==")
        print(kpi_table(report).round(3).to_string())
        print()


if __name__ == "__main__":
    main()
