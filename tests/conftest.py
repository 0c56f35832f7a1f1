from __future__ import annotations

import pytest
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sim_home_ems.simulation import EnvironmentContext  # noqa: E402


def make_ctx(hour: float, pv_kw: float = 0.0, base_load_kw: float = 0.0, **kwargs) -> EnvironmentContext:
    """Step context at an absolute hour of the run."""
    return EnvironmentContext(pv_kw=pv_kw, base_load_kw=base_load_kw, time_s=hour * 3600.0, **kwargs)


def _build_small_scenario_data() -> dict:
    return {
        "scenario_name": "test_small",
        "dt_s": 900,
        "horizon_h": 24,
        "pv_peak_kw": 6.0,
        "ambient_temp_c": 12.0,
        "tariffs": {
            "mode": "tou",
            "export_EUR_per_kWh": 0.08,
            "tou": {"onpeak_hours": [18, 19, 20, 21], "onpeak_price": 0.32, "offpeak_price": 0.2},
        },
        "strategy_a": "ecs_first",
        "strategy_b": "multi_equipment_priority",
        "investment_eur": 6000.0,
        "devices": [
            {"id": "battery", "type": "battery", "params": {"soc_init_kwh": 3.0}},
            {
                "id": "dhw",
                "type": "dhw-tank",
                "params": {
                    "initial_temp_c": 42.0,
                    "draw_profile": [{"hour": 7.0, "volume_l": 60.0}, {"hour": 20.0, "volume_l": 80.0}],
                },
            },
            {"id": "heater", "type": "space-heater", "params": {"max_power_kw": 3.0}},
            {"id": "pool", "type": "pool-pump", "params": {}},
            {"id": "ev", "type": "ev-charger", "params": {"session": {"energy_need_kwh": 8.0}}},
        ],
    }


@pytest.fixture()
def small_scenario_data() -> dict:
    """Return a one-day scenario exercising every device type."""
    return _build_small_scenario_data()


@pytest.fixture(autouse=True)
def _no_configured_scenario(monkeypatch):
    """Keep a developer's SIM_HOME_EMS_SCENARIO from leaking into tests."""
    monkeypatch.delenv("SIM_HOME_EMS_SCENARIO", raising=False)
