from .calendar_utils import SECONDS_PER_DAY, SECONDS_PER_HOUR, build_time_axis
from .simulation.battery import Battery, BatteryParams
from .simulation.engine import SimulationEngine
from .simulation.errors import ConfigurationError
from .simulation.kpis import TraceKpis, WindowFilter, compute_kpi_report, compute_kpis_for_window
from .simulation.loads import EVChargeSession, EVCharger, EVChargerParams, PoolPump, PoolPumpParams
from .simulation.registry import DeviceConfig, build_devices, create_device
from .simulation.strategy import Strategy, StrategyId, resolve_strategy
from .simulation.tariffs import FixedTariff, TimeOfUseTariff, build_tariff
from .simulation.thermal import DHWTank, DHWTankParams, SpaceHeater, SpaceHeaterParams, WaterDrawEvent
from .simulation.trace import Trace, TraceMeta
from .scenario_setup import SCENARIO_PRESETS, load_scenario_data
from .application import SimulationApplication

__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_HOUR",
    "build_time_axis",
    "Battery",
    "BatteryParams",
    "SimulationEngine",
    "ConfigurationError",
    "TraceKpis",
    "WindowFilter",
    "compute_kpi_report",
    "compute_kpis_for_window",
    "EVChargeSession",
    "EVCharger",
    "EVChargerParams",
    "PoolPump",
    "PoolPumpParams",
    "DeviceConfig",
    "build_devices",
    "create_device",
    "Strategy",
    "StrategyId",
    "resolve_strategy",
    "FixedTariff",
    "TimeOfUseTariff",
    "build_tariff",
    "DHWTank",
    "DHWTankParams",
    "SpaceHeater",
    "SpaceHeaterParams",
    "WaterDrawEvent",
    "Trace",
    "TraceMeta",
    "SCENARIO_PRESETS",
    "load_scenario_data",
    "SimulationApplication",
]
