from __future__ import annotations

import pytest

from sim_home_ems.simulation import (
    DHWServiceMode,
    DHWTank,
    DHWTankParams,
    Need,
    SpaceHeater,
    SpaceHeaterParams,
    WaterDrawEvent,
)

from conftest import make_ctx


def _tank(**overrides) -> DHWTank:
    return DHWTank("dhw", "Hot water", DHWTankParams(**overrides))


def test_water_draw_mixes_cold_water() -> None:
    tank = _tank(
        volume_l=300.0,
        initial_temp_c=55.0,
        loss_coeff_w_per_k=0.0,
        draw_profile=[WaterDrawEvent(hour=7.0, volume_l=80.0, cold_water_temp_c=15.0)],
    )
    tank.apply(0.0, 900, make_ctx(7))
    # (55 * 220 + 15 * 80) / 300
    assert tank.temp_c == pytest.approx(44.33, abs=0.5)


def test_water_draw_fires_once_per_day() -> None:
    tank = _tank(
        volume_l=300.0,
        initial_temp_c=55.0,
        loss_coeff_w_per_k=0.0,
        draw_profile=[WaterDrawEvent(hour=7.0, volume_l=80.0, cold_water_temp_c=15.0)],
    )
    tank.apply(0.0, 3600, make_ctx(7))
    after_first = tank.temp_c
    tank.apply(0.0, 3600, make_ctx(8))
    assert tank.temp_c == pytest.approx(after_first)

    tank.apply(0.0, 3600, make_ctx(31))
    assert tank.temp_c == pytest.approx((after_first * 220.0 + 15.0 * 80.0) / 300.0)


def test_draw_inside_step_fires_for_coarse_steps() -> None:
    tank = _tank(
        initial_temp_c=50.0,
        loss_coeff_w_per_k=0.0,
        draw_profile=[WaterDrawEvent(hour=7.5, volume_l=50.0, cold_water_temp_c=10.0)],
    )
    tank.apply(0.0, 3600, make_ctx(7))
    assert tank.temp_c < 50.0


def test_tank_at_target_is_idempotent() -> None:
    tank = _tank(initial_temp_c=55.0)
    ctx = make_ctx(12, pv_kw=5.0)
    plan = tank.plan(900, ctx)
    assert plan.is_empty

    tank.apply(0.0, 900, ctx)
    assert abs(tank.temp_c - 55.0) < 0.2
    assert tank.state()["isHot"] is True


def test_tank_requests_heat_below_target() -> None:
    tank = _tank(initial_temp_c=40.0)
    plan = tank.plan(900, make_ctx(12))

    assert plan.request.need is Need.TO_HEAT
    assert plan.request.max_accept_kw == pytest.approx(2.0)
    assert plan.request.min_accept_kw == 0.0
    assert plan.request.priority_hint == pytest.approx(80.0)

    tank.apply(2.0, 900, make_ctx(12))
    assert 41.0 < tank.temp_c < 42.0


def test_heating_never_overshoots_target() -> None:
    tank = _tank(initial_temp_c=54.9, loss_coeff_w_per_k=0.0)
    tank.apply(2.0, 3600, make_ctx(12))
    assert tank.temp_c == pytest.approx(55.0)


def test_losses_never_cool_below_ambient() -> None:
    tank = _tank(initial_temp_c=21.0, loss_coeff_w_per_k=10_000.0, ambient_temp_c=20.0)
    tank.apply(0.0, 3600, make_ctx(3))
    assert tank.temp_c == pytest.approx(20.0)


def test_deadline_window_forces_firm_request() -> None:
    tank = _tank(initial_temp_c=40.0, deadline_hour=21.0, preheat_window_h=1.0)
    plan = tank.plan(900, make_ctx(20.5))

    assert plan.request.min_accept_kw == pytest.approx(plan.request.max_accept_kw)
    assert plan.request.priority_hint == pytest.approx(100.0)
    assert tank.state()["deadline_forced"] is True

    tank.plan(900, make_ctx(12))
    assert tank.state()["deadline_forced"] is False


@pytest.mark.parametrize("mode", [DHWServiceMode.PENALIZE, DHWServiceMode.OFF])
def test_non_forcing_modes_keep_request_opportunistic(mode: DHWServiceMode) -> None:
    tank = _tank(initial_temp_c=40.0, service_mode=mode)
    plan = tank.plan(900, make_ctx(20.5))
    assert plan.request.min_accept_kw == 0.0
    assert plan.request.priority_hint == pytest.approx(80.0)


def test_hysteresis_latch_waits_for_cooling() -> None:
    tank = _tank(initial_temp_c=55.0, hysteresis_k=5.0)
    assert tank.plan(900, make_ctx(12)).is_empty

    tank.temp_c = 52.0
    assert tank.plan(900, make_ctx(12)).is_empty

    tank.temp_c = 49.9
    assert tank.plan(900, make_ctx(12)).request is not None


def test_dhw_params_accept_mode_strings() -> None:
    params = DHWTankParams(service_mode="penalize", deadline_hour=45.0)
    assert params.service_mode is DHWServiceMode.PENALIZE
    assert params.deadline_hour == pytest.approx(21.0)
    with pytest.raises(ValueError):
        WaterDrawEvent(hour=25.0, volume_l=10.0)


def test_space_heater_calls_for_heat_during_day() -> None:
    heater = SpaceHeater("heater", "Living room", SpaceHeaterParams())
    plan = heater.plan(900, make_ctx(12))

    assert plan.request.max_accept_kw == pytest.approx(5.0)
    assert plan.request.min_accept_kw == pytest.approx(5.0)
    assert plan.request.priority_hint == pytest.approx(2.0)
    assert heater.state()["call_for_heat"] is True
    assert heater.state()["comfort_lower_bound_C"] == pytest.approx(19.5)

    heater.apply(5.0, 900, make_ctx(12))
    # 18 + 5 * 0.25 / 2 - 200 * 3 * 0.25 / 2000
    assert heater.temp_c == pytest.approx(18.55)


def test_space_heater_without_grid_backup_runs_on_pv_only() -> None:
    heater = SpaceHeater("heater", "", SpaceHeaterParams(grid_backup=False))
    plan = heater.plan(900, make_ctx(12))
    assert plan.request.min_accept_kw == 0.0


def test_space_heater_night_setpoint() -> None:
    heater = SpaceHeater("heater", "", SpaceHeaterParams())
    assert heater.plan(900, make_ctx(23)).is_empty
    assert heater.state()["target_C"] == pytest.approx(18.0)
    assert heater.setpoint_at(7 * 3600.0) == pytest.approx(20.0)


def test_second_step_in_same_hour_does_not_redraw() -> None:
    tank = _tank(
        volume_l=300.0,
        initial_temp_c=55.0,
        draw_profile=[WaterDrawEvent(hour=7.0, volume_l=80.0, cold_water_temp_c=15.0)],
    )
    tank.apply(0.0, 900, make_ctx(7))
    after_draw = tank.temp_c
    tank.apply(0.0, 900, make_ctx(7.25))
    assert abs(tank.temp_c - after_draw) < 0.2


def test_draw_recurs_identically_next_day() -> None:
    tank = _tank(
        volume_l=300.0,
        initial_temp_c=55.0,
        loss_coeff_w_per_k=0.0,
        draw_profile=[WaterDrawEvent(hour=7.0, volume_l=80.0, cold_water_temp_c=15.0)],
    )
    tank.apply(0.0, 900, make_ctx(7))
    first_day = tank.temp_c

    tank.temp_c = 55.0
    tank.apply(0.0, 900, make_ctx(31))
    assert tank.temp_c == pytest.approx(first_day)
