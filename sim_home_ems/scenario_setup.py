from __future__ import annotations

import copy
import json
import math
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from .simulation import (
    ConfigurationError,
    Device,
    SimulationEngine,
    TariffModel,
    build_devices,
    build_tariff,
    dual_level_load_profile,
    expand_series,
    household_load_profile,
    pv_bell_profile,
    pv_sine_profile,
)
from .simulation.solar import default_base_load

ScenarioSource = Union[str, Path, Mapping[str, Any], None]

DEFAULT_SCENARIO: Dict[str, Any] = {
    "scenario_name": "summer_day_ab",
    "dt_s": 900,
    "horizon_h": 24,
    "pv_peak_kw": 5.0,
    "ambient_temp_c": 18.0,
    "tariffs": {"mode": "fixed", "import_EUR_per_kWh": 0.25, "export_EUR_per_kWh": 0.10},
    "strategy_a": "ecs_first",
    "strategy_b": "multi_equipment_priority",
    "investment_eur": 0.0,
    "devices": [
        {"id": "battery", "label": "Home battery", "type": "battery", "params": {}},
        {
            "id": "dhw",
            "label": "Hot water tank",
            "type": "dhw-tank",
            "params": {
                "draw_profile": [
                    {"hour": 7.0, "volume_l": 60.0, "cold_water_temp_c": 12.0},
                    {"hour": 20.0, "volume_l": 80.0, "cold_water_temp_c": 12.0},
                ]
            },
        },
        {"id": "pool", "label": "Pool pump", "type": "pool-pump", "params": {}},
        {"id": "ev", "label": "EV charger", "type": "ev-charger", "params": {}},
    ],
}
"""Built-in scenario used when no file is configured."""


DRAW_PROFILES: Dict[str, List[Dict[str, float]]] = {
    "light": [
        {"hour": 7.0, "volume_l": 40.0, "cold_water_temp_c": 12.0},
        {"hour": 20.0, "volume_l": 60.0, "cold_water_temp_c": 12.0},
    ],
    "medium": [
        {"hour": 7.0, "volume_l": 60.0, "cold_water_temp_c": 12.0},
        {"hour": 13.0, "volume_l": 20.0, "cold_water_temp_c": 12.0},
        {"hour": 20.0, "volume_l": 80.0, "cold_water_temp_c": 12.0},
    ],
    "heavy": [
        {"hour": 7.0, "volume_l": 100.0, "cold_water_temp_c": 12.0},
        {"hour": 8.0, "volume_l": 50.0, "cold_water_temp_c": 12.0},
        {"hour": 20.0, "volume_l": 120.0, "cold_water_temp_c": 12.0},
        {"hour": 21.0, "volume_l": 60.0, "cold_water_temp_c": 12.0},
    ],
}
"""Daily hot-water draw patterns shared by the presets."""


def _tou(onpeak_hours: List[int], onpeak_price: float, offpeak_price: float) -> Dict[str, Any]:
    return {
        "mode": "tou",
        "export_EUR_per_kWh": 0.10,
        "tou": {"onpeak_hours": onpeak_hours, "onpeak_price": onpeak_price, "offpeak_price": offpeak_price},
    }


_FIXED_TARIFF = {"mode": "fixed", "import_EUR_per_kWh": 0.25, "export_EUR_per_kWh": 0.10}


def _battery(capacity, p_max, soc_init, soc_min, eta=0.95) -> Dict[str, Any]:
    return {
        "id": "battery",
        "label": "Home battery",
        "type": "battery",
        "params": {
            "capacity_kwh": capacity,
            "p_max_kw": p_max,
            "eta_charge": eta,
            "eta_discharge": eta,
            "soc_init_kwh": soc_init,
            "soc_min_kwh": soc_min,
            "soc_max_kwh": capacity,
        },
    }


def _dhw(volume, power, loss, target, initial, draws, ambient=20.0) -> Dict[str, Any]:
    return {
        "id": "dhw",
        "label": "Hot water tank",
        "type": "dhw-tank",
        "params": {
            "volume_l": volume,
            "resistive_power_kw": power,
            "efficiency": 0.95,
            "loss_coeff_w_per_k": loss,
            "ambient_temp_c": ambient,
            "target_temp_c": target,
            "initial_temp_c": initial,
            "draw_profile": DRAW_PROFILES[draws],
        },
    }


def _heater(max_power, ambient, day, night, initial) -> Dict[str, Any]:
    return {
        "id": "heater",
        "label": "Space heating",
        "type": "space-heater",
        "params": {
            "max_power_kw": max_power,
            "ambient_temp_c": ambient,
            "comfort_day_c": day,
            "comfort_night_c": night,
            "initial_temp_c": initial,
        },
    }


def _pool(power, hours, windows) -> Dict[str, Any]:
    return {
        "id": "pool",
        "label": "Pool pump",
        "type": "pool-pump",
        "params": {"power_kw": power, "min_hours_per_day": hours, "preferred_windows": windows},
    }


def _ev(max_power, energy_need, arrival=18.0, departure=7.0) -> Dict[str, Any]:
    return {
        "id": "ev",
        "label": "EV charger",
        "type": "ev-charger",
        "params": {
            "max_power_kw": max_power,
            "session": {"arrival_hour": arrival, "departure_hour": departure, "energy_need_kwh": energy_need},
        },
    }


def _preset(
    preset_id: str,
    label: str,
    description: str,
    tags: List[str],
    pv_shape: Dict[str, float],
    base_load_shape: Dict[str, Any],
    tariffs: Dict[str, Any],
    devices: List[Dict[str, Any]],
    strategy_a: Any = "ecs_first",
    strategy_b: Any = "multi_equipment_priority",
) -> Dict[str, Any]:
    return {
        "scenario_name": preset_id,
        "label": label,
        "description": description,
        "tags": tags,
        "dt_s": 900,
        "horizon_h": 24,
        "ambient_temp_c": None,
        "pv_shape": pv_shape,
        "base_load_shape": base_load_shape,
        "tariffs": tariffs,
        "strategy_a": strategy_a,
        "strategy_b": strategy_b,
        "investment_eur": 0.0,
        "devices": devices,
    }


_COLD_MORNING_DEVICES = [
    _battery(10.0, 1.0, soc_init=6.0, soc_min=0.0),
    _dhw(300.0, 2.6, 4.0, target=55.0, initial=15.0, draws="heavy"),
    _heater(6.5, ambient=4.0, day=20.0, night=17.5, initial=17.0),
]
_COLD_MORNING_PV = {"sunrise_hour": 8.0, "sunset_hour": 18.0, "peak_kw": 3.2}
_COLD_MORNING_LOAD = {"kind": "dual_level", "day_kw": 0.35, "evening_kw": 1.1}
_COLD_MORNING_TARIFF = _tou([6, 7, 8, 9, 19, 20, 21], 0.34, 0.17)

SCENARIO_PRESETS: Dict[str, Dict[str, Any]] = {
    preset["scenario_name"]: preset
    for preset in (
        _preset(
            "ete",
            "Sunny summer",
            "Strong PV production with the household home in the evening.",
            ["summer", "sunny"],
            {"sunrise_hour": 6.0, "sunset_hour": 20.0, "peak_kw": 6.0},
            {"kind": "household", "base_kw": 0.6, "evening_peak_kw": 1.5, "noise_kw": 0.1},
            _FIXED_TARIFF,
            [
                _battery(10.0, 4.0, soc_init=5.0, soc_min=1.0),
                _dhw(250.0, 2.0, 10.0, target=55.0, initial=45.0, draws="medium"),
                _pool(1.2, 6.0, [[10.0, 16.0]]),
            ],
            strategy_b="battery_first",
        ),
        _preset(
            "hiver",
            "Overcast winter",
            "Weak PV production and sustained space heating.",
            ["winter", "overcast"],
            {"sunrise_hour": 8.0, "sunset_hour": 16.0, "peak_kw": 2.5, "cloud_attenuation": 0.6},
            {"kind": "household", "base_kw": 0.9, "evening_peak_kw": 1.8, "noise_kw": 0.05},
            _FIXED_TARIFF,
            [
                _battery(8.0, 3.0, soc_init=4.0, soc_min=0.5, eta=0.94),
                _dhw(300.0, 3.0, 12.0, target=55.0, initial=35.0, draws="medium"),
                _heater(6.0, ambient=5.0, day=20.0, night=17.0, initial=18.0),
            ],
        ),
        _preset(
            "matin_froid",
            "Cold morning",
            "Late PV, expensive morning tariff and a cold tank to heat early.",
            ["winter", "dhw", "tariff"],
            _COLD_MORNING_PV,
            _COLD_MORNING_LOAD,
            _COLD_MORNING_TARIFF,
            _COLD_MORNING_DEVICES,
            strategy_b="reserve_evening",
        ),
        _preset(
            "ballon_confort",
            "Comfort tank",
            "Evening comfort: preheat hot water before showers under a strong peak tariff.",
            ["dhw", "evening", "tariff"],
            {"sunrise_hour": 7.0, "sunset_hour": 19.0, "peak_kw": 4.2, "cloud_attenuation": 0.9},
            {"kind": "dual_level", "day_kw": 0.5, "evening_kw": 1.25},
            _tou([7, 8, 9, 18, 19, 20, 21, 22], 0.32, 0.16),
            [
                _battery(12.0, 3.2, soc_init=7.0, soc_min=1.0),
                _dhw(270.0, 2.8, 6.0, target=58.0, initial=48.0, draws="light"),
                _pool(1.1, 5.0, [[11.0, 17.0]]),
            ],
            strategy_b="reserve_evening",
        ),
        _preset(
            "soiree_ve",
            "EV evening",
            "Evening EV charging with an early morning departure.",
            ["summer", "ev", "evening"],
            {"sunrise_hour": 6.0, "sunset_hour": 20.0, "peak_kw": 5.5, "cloud_attenuation": 0.85},
            {"kind": "dual_level", "day_kw": 0.45, "evening_kw": 1.35},
            _tou([7, 8, 9, 18, 19, 20, 21], 0.31, 0.16),
            [
                _battery(9.0, 3.6, soc_init=4.5, soc_min=1.0),
                _dhw(200.0, 2.4, 8.0, target=54.0, initial=48.0, draws="light"),
                _ev(7.4, 22.0),
            ],
            strategy_b="ev_departure_guard",
        ),
        _preset(
            "multi_s54",
            "Multi-equipment stress",
            "Cold winter with heating, pool and EV competing for limited PV.",
            ["winter", "multi", "stress"],
            {"sunrise_hour": 7.0, "sunset_hour": 18.0, "peak_kw": 4.2, "cloud_attenuation": 0.7},
            {"kind": "dual_level", "day_kw": 0.55, "evening_kw": 1.45},
            _tou([7, 8, 9, 18, 19, 20, 21], 0.33, 0.17),
            [
                _battery(12.0, 4.5, soc_init=5.0, soc_min=1.0),
                _dhw(260.0, 3.0, 9.0, target=56.0, initial=45.0, draws="heavy", ambient=18.0),
                _heater(6.8, ambient=0.0, day=20.5, night=18.5, initial=18.0),
                _pool(1.3, 6.0, [[10.0, 14.0], [16.0, 18.0]]),
                _ev(7.2, 20.0),
            ],
        ),
        _preset(
            "batt_vide",
            "Empty battery",
            "Same kind of solar day with an almost empty battery.",
            ["winter", "battery"],
            {"sunrise_hour": 8.0, "sunset_hour": 18.0, "peak_kw": 3.8},
            {"kind": "dual_level", "day_kw": 0.0, "evening_kw": 0.8},
            _FIXED_TARIFF,
            [
                _battery(10.0, 2.0, soc_init=0.5, soc_min=0.0),
                _dhw(300.0, 3.0, 4.0, target=55.0, initial=35.0, draws="medium"),
                _heater(6.5, ambient=6.0, day=20.5, night=18.0, initial=17.5),
            ],
            strategy_b="battery_first",
        ),
        _preset(
            "seuils",
            "Thresholds (40 vs 80)",
            "Reference day to compare two battery SOC thresholds.",
            ["mix", "threshold"],
            _COLD_MORNING_PV,
            _COLD_MORNING_LOAD,
            _COLD_MORNING_TARIFF,
            _COLD_MORNING_DEVICES,
            strategy_a={"id": "mix_soc_threshold", "threshold_percent": 40.0},
            strategy_b={"id": "mix_soc_threshold", "threshold_percent": 80.0},
        ),
    )
}
"""Named one-day scenarios, keyed by preset id."""


def list_presets() -> List[Dict[str, Any]]:
    """Id, label, description and tags of every built-in preset."""
    return [
        {
            "id": preset_id,
            "label": preset["label"],
            "description": preset["description"],
            "tags": list(preset["tags"]),
        }
        for preset_id, preset in SCENARIO_PRESETS.items()
    ]


def get_preset(preset_id: str) -> Dict[str, Any]:
    """
    Copy of a built-in preset.

    Raises:
        ConfigurationError: if the id is unknown.
    """
    try:
        return copy.deepcopy(SCENARIO_PRESETS[preset_id])
    except KeyError as exc:
        known = ", ".join(SCENARIO_PRESETS)
        raise ConfigurationError(f"Unknown scenario preset {preset_id!r} (expected one of: {known})") from exc


def load_scenario_data(source: ScenarioSource = None) -> Dict[str, Any]:
    """
    Load scenario data from a preset, a JSON file or a mapping.

    Args:
        source: Preset id, path to a JSON file, mapping, or None for the
            built-in default. A string naming a preset wins over a file of
            the same name.

    Returns:
        Dictionary containing the scenario configuration.

    Raises:
        ConfigurationError: if the file cannot be read, is not valid JSON or
            does not hold an object.
    """
    if source is None:
        return copy.deepcopy(DEFAULT_SCENARIO)
    if isinstance(source, str) and source in SCENARIO_PRESETS:
        return get_preset(source)
    if isinstance(source, (str, Path)):
        path = Path(source)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"Cannot read scenario file {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Scenario file {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Scenario file {path} must contain a JSON object")
        return data
    return copy.deepcopy(dict(source))


def scenario_grid(data: Mapping[str, Any]) -> Tuple[int, float]:
    """
    Number of steps and step length of a scenario.

    An explicit ``pv_kw`` series fixes the number of steps; otherwise it is
    ``horizon_h * 3600 / dt_s``.
    """
    dt_s = data.get("dt_s", 900)
    if not isinstance(dt_s, (int, float)) or not math.isfinite(dt_s) or dt_s <= 0:
        raise ConfigurationError(f"dt_s must be a positive number, got {dt_s!r}")
    explicit = data.get("pv_kw")
    if isinstance(explicit, list):
        return len(explicit), float(dt_s)
    horizon_h = data.get("horizon_h", 24)
    if not isinstance(horizon_h, (int, float)) or horizon_h <= 0:
        raise ConfigurationError(f"horizon_h must be a positive number, got {horizon_h!r}")
    n_steps = int(round(horizon_h * 3600.0 / dt_s))
    if n_steps <= 0:
        raise ConfigurationError("horizon_h is shorter than one step")
    return n_steps, float(dt_s)


def _shape_value(shape: Mapping[str, Any], key: str, name: str, default: Optional[float] = None) -> float:
    value = shape.get(key, default)
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigurationError(f"{name}.{key} must be a number, got {value!r}")
    return float(value)


def build_pv_series(data: Mapping[str, Any], n_steps: int, dt_s: float) -> np.ndarray:
    """
    PV from an explicit ``pv_kw`` series, a ``pv_profile_kw`` daily profile,
    a ``pv_shape`` (sine between sunrise and sunset) or ``pv_peak_kw``.
    """
    if isinstance(data.get("pv_kw"), list):
        return np.asarray(data["pv_kw"], dtype=float)
    if "pv_profile_kw" in data:
        return expand_series(data["pv_profile_kw"], n_steps, dt_s)
    try:
        shape = data.get("pv_shape")
        if shape is not None:
            if not isinstance(shape, Mapping):
                raise ConfigurationError("pv_shape must be an object")
            return pv_sine_profile(
                n_steps,
                dt_s,
                peak_kw=_shape_value(shape, "peak_kw", "pv_shape"),
                sunrise_hour=_shape_value(shape, "sunrise_hour", "pv_shape"),
                sunset_hour=_shape_value(shape, "sunset_hour", "pv_shape"),
                cloud_attenuation=_shape_value(shape, "cloud_attenuation", "pv_shape", 1.0),
            )
        return pv_bell_profile(n_steps, dt_s, peak_kw=float(data.get("pv_peak_kw", 5.0)))
    except ValueError as exc:
        if isinstance(exc, ConfigurationError):
            raise
        raise ConfigurationError(str(exc)) from exc


def _shaped_base_load(shape: Any, n_steps: int, dt_s: float) -> np.ndarray:
    if not isinstance(shape, Mapping):
        raise ConfigurationError("base_load_shape must be an object")
    kind = shape.get("kind")
    if kind == "household":
        return household_load_profile(
            n_steps,
            dt_s,
            base_kw=_shape_value(shape, "base_kw", "base_load_shape"),
            evening_peak_kw=_shape_value(shape, "evening_peak_kw", "base_load_shape"),
            noise_kw=_shape_value(shape, "noise_kw", "base_load_shape", 0.0),
        )
    if kind == "dual_level":
        return dual_level_load_profile(
            n_steps,
            dt_s,
            day_kw=_shape_value(shape, "day_kw", "base_load_shape"),
            evening_kw=_shape_value(shape, "evening_kw", "base_load_shape"),
        )
    raise ConfigurationError(f"Unknown base_load_shape kind {kind!r} (expected 'household' or 'dual_level')")


def build_base_load_series(data: Mapping[str, Any], n_steps: int, dt_s: float) -> np.ndarray:
    """
    Base load from ``base_load_kw`` (scalar, daily profile or full series),
    ``base_load_profile_kw`` or a ``base_load_shape``; falls back to a typical
    household profile.
    """
    for key in ("base_load_kw", "base_load_profile_kw"):
        if key in data:
            return expand_series(data[key], n_steps, dt_s)
    if data.get("base_load_shape") is not None:
        return _shaped_base_load(data["base_load_shape"], n_steps, dt_s)
    return default_base_load(n_steps, dt_s)


def build_ambient_series(data: Mapping[str, Any], n_steps: int, dt_s: float) -> Optional[np.ndarray]:
    if data.get("ambient_temp_c") is None:
        return None
    return expand_series(data["ambient_temp_c"], n_steps, dt_s)


def build_scenario_tariff(data: Mapping[str, Any]) -> TariffModel:
    return build_tariff(data.get("tariffs"))


def build_device_population(data: Mapping[str, Any]) -> List[Device]:
    """
    Fresh device instances for one variant.

    Call once per variant so A and B never share state.
    """
    configs = data.get("devices", [])
    if not isinstance(configs, list):
        raise ConfigurationError("devices must be a list")
    return build_devices(configs)


def build_engine(data: Mapping[str, Any]) -> SimulationEngine:
    n_steps, dt_s = scenario_grid(data)
    try:
        pv_kw = build_pv_series(data, n_steps, dt_s)
        base_load_kw = build_base_load_series(data, n_steps, dt_s)
        ambient_c = build_ambient_series(data, n_steps, dt_s)
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigurationError):
            raise
        raise ConfigurationError(f"Invalid scenario series: {exc}") from exc
    return SimulationEngine(
        dt_s=dt_s,
        pv_series_kw=pv_kw,
        base_load_series_kw=base_load_kw,
        ambient_temp_c=ambient_c,
        tariff=build_scenario_tariff(data),
    )
