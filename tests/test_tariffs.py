from __future__ import annotations

import pytest

from sim_home_ems.simulation import (
    ConfigurationError,
    FixedTariff,
    TimeOfUseTariff,
    build_tariff,
    complement_hours,
)


def test_build_tariff_defaults_to_fixed() -> None:
    tariff = build_tariff(None)
    assert isinstance(tariff, FixedTariff)
    assert tariff.import_price(0.0) == pytest.approx(0.25)
    assert tariff.export_price(0.0) == pytest.approx(0.10)
    assert isinstance(build_tariff({}), FixedTariff)


def test_time_of_use_prices_follow_hour_of_day() -> None:
    tariff = build_tariff(
        {"mode": "tou", "export_EUR_per_kWh": 0.05, "tou": {"onpeak_hours": [18, 19], "onpeak_price": 0.4}}
    )
    assert isinstance(tariff, TimeOfUseTariff)
    assert tariff.import_price(18.5 * 3600) == pytest.approx(0.4)
    assert tariff.import_price(42.5 * 3600) == pytest.approx(0.4)
    assert tariff.import_price(3 * 3600) == pytest.approx(0.18)
    assert tariff.export_price(18 * 3600) == pytest.approx(0.05)
    assert tariff.offpeak_hours == complement_hours([18, 19])


def test_hours_outside_both_sets_use_offpeak_price() -> None:
    tariff = TimeOfUseTariff(onpeak_hours=[8], offpeak_hours=[0], onpeak_price=0.5, offpeak_price=0.2)
    assert tariff.import_price(12 * 3600) == pytest.approx(0.2)


def test_tariff_round_trips_through_metadata() -> None:
    tariff = TimeOfUseTariff(onpeak_hours=[7, 8], onpeak_price=0.35, offpeak_price=0.15, export_eur_per_kwh=0.07)
    rebuilt = build_tariff(tariff.to_dict())
    assert rebuilt.to_dict() == tariff.to_dict()


def test_price_series_has_one_price_per_step() -> None:
    series = TimeOfUseTariff(onpeak_hours=[1]).price_series(8, 900)
    assert series["import"].shape == (8,)
    assert series["import"][4] == pytest.approx(0.30)
    assert series["import"][3] == pytest.approx(0.18)


def test_invalid_tariffs_are_rejected() -> None:
    with pytest.raises(ConfigurationError, match="tariff mode"):
        build_tariff({"mode": "spot"})
    with pytest.raises(ConfigurationError):
        FixedTariff(import_eur_per_kwh=float("nan"))


def test_complement_hours() -> None:
    assert complement_hours(range(8, 20)) == [0, 1, 2, 3, 4, 5, 6, 7, 20, 21, 22, 23]
