from __future__ import annotations

import pytest

from sim_home_ems.simulation import Battery, BatteryParams, Need

from conftest import make_ctx


def _battery(**overrides) -> Battery:
    return Battery("battery", "", BatteryParams(**overrides))


def test_battery_requests_surplus_capped_by_power() -> None:
    battery = _battery()
    plan = battery.plan(900, make_ctx(12, pv_kw=5.0, base_load_kw=1.0))

    assert plan.offer is None
    assert plan.request is not None
    assert plan.request.need is Need.TO_STORE
    assert plan.request.max_accept_kw == pytest.approx(4.0)
    assert plan.request.priority_hint == pytest.approx(60.0)
    assert battery.label == "battery"


def test_battery_offers_up_to_deficit() -> None:
    battery = _battery()
    plan = battery.plan(900, make_ctx(20, pv_kw=0.0, base_load_kw=2.0))

    assert plan.request is None
    assert plan.offer.max_supply_kw == pytest.approx(2.0)
    assert plan.offer.cost_penalty == pytest.approx(0.1)


def test_battery_idles_below_net_power_epsilon() -> None:
    battery = _battery()
    assert battery.plan(900, make_ctx(12, pv_kw=1.03, base_load_kw=1.0)).is_empty
    assert battery.plan(900, make_ctx(12, pv_kw=1.0, base_load_kw=1.03)).is_empty


def test_battery_at_floor_accepts_small_surplus() -> None:
    battery = _battery(soc_init_kwh=1.0)
    plan = battery.plan(900, make_ctx(12, pv_kw=1.03, base_load_kw=1.0))
    assert plan.request.max_accept_kw == pytest.approx(0.03)


def test_battery_empty_or_full_has_nothing_to_give_or_take() -> None:
    empty = _battery(soc_init_kwh=1.0)
    assert empty.plan(900, make_ctx(20, base_load_kw=2.0)).is_empty

    full = _battery(soc_init_kwh=10.0)
    assert full.plan(900, make_ctx(12, pv_kw=5.0)).is_empty


def test_battery_apply_uses_separate_efficiencies() -> None:
    battery = _battery()
    ctx = make_ctx(12)
    battery.apply(2.0, 3600, ctx)
    assert battery.soc_kwh == pytest.approx(5.0 + 2.0 * 0.95)

    battery.apply(-1.9, 3600, ctx)
    assert battery.soc_kwh == pytest.approx(6.9 - 1.9 / 0.95)
    assert battery.state()["power_kW"] == pytest.approx(-1.9)


def test_battery_soc_stays_within_bounds() -> None:
    battery = _battery()
    ctx = make_ctx(0)
    battery.apply(4.0, 36000, ctx)
    assert battery.soc_kwh == pytest.approx(10.0)
    assert battery.state()["soc_percent"] == pytest.approx(100.0)

    battery.apply(-4.0, 36000, ctx)
    assert battery.soc_kwh == pytest.approx(1.0)
    assert battery.soc_fraction() == pytest.approx(0.0)


def test_battery_charge_limit_follows_headroom() -> None:
    battery = _battery(soc_init_kwh=9.5)
    # 0.5 kWh of headroom over 15 minutes
    assert battery.max_charge_power_kw(900) == pytest.approx(min(0.5 / 0.95 * 4.0, 4.0))
    assert battery.max_discharge_power_kw(3600) == pytest.approx(4.0)


def test_battery_params_reject_invalid_values() -> None:
    with pytest.raises(ValueError):
        BatteryParams(eta_charge=1.5)
    with pytest.raises(ValueError):
        BatteryParams(soc_min_kwh=8.0, soc_max_kwh=5.0)
