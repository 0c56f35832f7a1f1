from __future__ import annotations

import pytest

from sim_home_ems.simulation import (
    Battery,
    ConfigurationError,
    DeviceConfig,
    DeviceKind,
    DHWServiceMode,
    DHWTank,
    EVCharger,
    PoolPump,
    WaterDrawEvent,
    build_devices,
    create_device,
    default_params,
)


def test_create_device_applies_defaults_and_overrides() -> None:
    device = create_device(DeviceConfig(id="battery", type="battery", params={"p_max_kw": 3.0}))
    assert isinstance(device, Battery)
    assert device.params.p_max_kw == pytest.approx(3.0)
    assert device.params.capacity_kwh == pytest.approx(10.0)


def test_dhw_config_converts_draws_and_mode() -> None:
    device = create_device(
        DeviceConfig.from_dict(
            {
                "id": "dhw",
                "type": "dhw-tank",
                "params": {
                    "service_mode": "penalize",
                    "draw_profile": [{"hour": 7.0, "volume_l": 60.0}],
                },
            }
        )
    )
    assert isinstance(device, DHWTank)
    assert device.params.service_mode is DHWServiceMode.PENALIZE
    assert device.params.draw_profile == [WaterDrawEvent(hour=7.0, volume_l=60.0)]


def test_ev_session_override_keeps_other_defaults() -> None:
    device = create_device(DeviceConfig(id="ev", type="ev-charger", params={"session": {"energy_need_kwh": 5.0}}))
    assert isinstance(device, EVCharger)
    assert device.params.session.energy_need_kwh == pytest.approx(5.0)
    assert device.params.session.arrival_hour == pytest.approx(18.0)


def test_pool_windows_accept_lists() -> None:
    device = create_device(DeviceConfig(id="pool", type="pool-pump", params={"preferred_windows": [[22, 2]]}))
    assert isinstance(device, PoolPump)
    assert device.in_preferred_window(23.0)
    assert device.in_preferred_window(1.0)
    assert not device.in_preferred_window(12.0)


def test_unknown_device_type_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Unknown device type"):
        create_device(DeviceConfig(id="toaster", type="toaster"))


def test_unknown_parameter_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="warp_factor"):
        create_device(DeviceConfig(id="battery", type="battery", params={"warp_factor": 9}))


def test_invalid_parameter_value_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid parameters"):
        create_device(DeviceConfig(id="battery", type="battery", params={"eta_charge": 1.5}))


def test_build_devices_rejects_duplicate_ids() -> None:
    with pytest.raises(ConfigurationError, match="Duplicate"):
        build_devices([{"id": "a", "type": "battery"}, {"id": "a", "type": "pool-pump"}])


def test_device_config_requires_type() -> None:
    with pytest.raises(ConfigurationError, match="type"):
        DeviceConfig.from_dict({"id": "x"})


def test_default_params_are_json_ready() -> None:
    params = default_params(DeviceKind.EV_CHARGER)
    assert params["max_power_kw"] == pytest.approx(7.0)
    assert params["session"]["energy_need_kwh"] == pytest.approx(14.0)
    assert set(default_params(DeviceKind.BATTERY)) >= {"capacity_kwh", "p_max_kw", "soc_min_kwh"}
