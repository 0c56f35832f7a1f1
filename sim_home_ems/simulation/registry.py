"""
Device factory.

Turns plain configuration mappings (as read from scenario JSON) into device
instances. Configuration problems are reported as :class:`ConfigurationError`
before any simulation work starts.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple, Type

from .battery import Battery, BatteryParams
from .device import Device, DeviceKind
from .errors import ConfigurationError
from .loads import EVChargeSession, EVCharger, EVChargerParams, PoolPump, PoolPumpParams
from .thermal import DHWTank, DHWTankParams, SpaceHeater, SpaceHeaterParams, WaterDrawEvent


@dataclass
class DeviceConfig:
    """
    Declarative description of one device.

    Attributes:
        id: Unique device id within a variant.
        label: Human readable name.
        type: One of the :class:`DeviceKind` values.
        params: Parameter overrides; missing keys take the defaults below.
    """

    id: str
    type: str
    label: str = ""
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DeviceConfig":
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"device configuration must be a mapping, got {type(data).__name__}")
        try:
            device_id = data["id"]
            device_type = data["type"]
        except KeyError as exc:
            raise ConfigurationError(f"device configuration is missing {exc.args[0]!r}") from exc
        params = data.get("params") or {}
        if not isinstance(params, Mapping):
            raise ConfigurationError(f"params of device {device_id!r} must be a mapping")
        return cls(id=str(device_id), type=str(device_type), label=str(data.get("label") or device_id), params=dict(params))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label or self.id, "type": self.type, "params": dict(self.params)}


def default_battery_params() -> BatteryParams:
    return BatteryParams(
        capacity_kwh=10.0,
        p_max_kw=4.0,
        eta_charge=0.95,
        eta_discharge=0.95,
        soc_init_kwh=5.0,
        soc_min_kwh=1.0,
        soc_max_kwh=10.0,
    )


def default_dhw_tank_params() -> DHWTankParams:
    return DHWTankParams(
        volume_l=250.0,
        resistive_power_kw=2.0,
        efficiency=0.95,
        loss_coeff_w_per_k=10.0,
        ambient_temp_c=20.0,
        target_temp_c=55.0,
        initial_temp_c=45.0,
    )


def default_space_heater_params() -> SpaceHeaterParams:
    return SpaceHeaterParams()


def default_pool_pump_params() -> PoolPumpParams:
    return PoolPumpParams()


def default_ev_charger_params() -> EVChargerParams:
    return EVChargerParams(max_power_kw=7.0, session=EVChargeSession(18.0, 7.0, 14.0))


def _convert_dhw(params: Dict[str, Any]) -> Dict[str, Any]:
    if "draw_profile" in params:
        params["draw_profile"] = [
            draw if isinstance(draw, WaterDrawEvent) else WaterDrawEvent(**draw)
            for draw in params["draw_profile"] or []
        ]
    return params


def _convert_pool(params: Dict[str, Any]) -> Dict[str, Any]:
    if "preferred_windows" in params:
        params["preferred_windows"] = [tuple(window) for window in params["preferred_windows"] or []]
    return params


def _convert_ev(params: Dict[str, Any]) -> Dict[str, Any]:
    session = params.get("session")
    if isinstance(session, Mapping):
        base = dataclasses.asdict(default_ev_charger_params().session)
        base.update(session)
        params["session"] = EVChargeSession(**base)
    return params


_Builder = Tuple[Type[Device], Callable[[], Any], Callable[[Dict[str, Any]], Dict[str, Any]]]

_BUILDERS: Dict[DeviceKind, _Builder] = {
    DeviceKind.BATTERY: (Battery, default_battery_params, lambda params: params),
    DeviceKind.DHW_TANK: (DHWTank, default_dhw_tank_params, _convert_dhw),
    DeviceKind.SPACE_HEATER: (SpaceHeater, default_space_heater_params, lambda params: params),
    DeviceKind.POOL_PUMP: (PoolPump, default_pool_pump_params, _convert_pool),
    DeviceKind.EV_CHARGER: (EVCharger, default_ev_charger_params, _convert_ev),
}


def default_params(kind: DeviceKind) -> Dict[str, Any]:
    """Default parameters of a device kind as a JSON-ready mapping."""
    _, defaults, _ = _BUILDERS[kind]
    return dataclasses.asdict(defaults())


def create_device(config: DeviceConfig) -> Device:
    """
    Build one device from its configuration.

    Raises:
        ConfigurationError: unknown type, unknown parameter names or invalid
            parameter values.
    """
    try:
        kind = DeviceKind(config.type)
    except ValueError as exc:
        known = ", ".join(k.value for k in DeviceKind)
        raise ConfigurationError(f"Unknown device type {config.type!r} (expected one of: {known})") from exc

    device_cls, defaults, convert = _BUILDERS[kind]
    base = defaults()
    known_fields = {f.name for f in dataclasses.fields(base)}
    unknown = sorted(set(config.params) - known_fields)
    if unknown:
        raise ConfigurationError(f"Unknown parameter(s) for {kind.value} {config.id!r}: {', '.join(unknown)}")

    try:
        values = dataclasses.asdict(base)
        if kind is DeviceKind.EV_CHARGER:
            values["session"] = base.session
        if kind is DeviceKind.DHW_TANK:
            values["draw_profile"] = list(base.draw_profile)
        values.update(convert(dict(config.params)))
        params = type(base)(**values)
        return device_cls(config.id, config.label or config.id, params)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid parameters for {kind.value} {config.id!r}: {exc}") from exc


def build_devices(configs: Iterable[Any]) -> List[Device]:
    """
    Build a device population, rejecting duplicated ids.

    ``configs`` items may be :class:`DeviceConfig` instances or mappings.
    """
    devices: List[Device] = []
    seen: set = set()
    for item in configs:
        config = item if isinstance(item, DeviceConfig) else DeviceConfig.from_dict(item)
        if config.id in seen:
            raise ConfigurationError(f"Duplicate device id {config.id!r}")
        seen.add(config.id)
        devices.append(create_device(config))
    return devices
