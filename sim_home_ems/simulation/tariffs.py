"""
Electricity tariff models.

Provides the :class:`TariffModel` interface used by the engine and the KPI
layer, a flat :class:`FixedTariff` and an hour-bucketed
:class:`TimeOfUseTariff`.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np

from .errors import ConfigurationError

DEFAULT_IMPORT_EUR_PER_KWH = 0.25
DEFAULT_EXPORT_EUR_PER_KWH = 0.10
DEFAULT_ONPEAK_HOURS = (7, 8, 9, 18, 19, 20, 21, 22)
DEFAULT_ONPEAK_PRICE = 0.30
DEFAULT_OFFPEAK_PRICE = 0.18


def tariff_hour(t_s: float) -> int:
    """Hour bucket ``floor((t_s / 3600) mod 24)`` used to pick TOU prices."""
    return int(math.floor((t_s / 3600.0) % 24.0))


def _normalize_hour(hour: float) -> int:
    value = math.floor(hour)
    return int(value % 24)


def complement_hours(hours: Iterable[float]) -> List[int]:
    """
    Hours of the day (0-23) not present in ``hours``.

    Example:
        ```python
        complement_hours(range(8, 20))
        # [0, 1, 2, 3, 4, 5, 6, 7, 20, 21, 22, 23]
        ```
    """
    taken = {_normalize_hour(hour) for hour in hours}
    return [hour for hour in range(24) if hour not in taken]


class TariffModel(ABC):
    """
    Price of grid electricity as a function of simulation time.

    Subclasses must implement :meth:`import_price`, :meth:`export_price` and
    :meth:`to_dict` (the latter is stored in trace metadata).

    Example:
        ```python
        tariff = TimeOfUseTariff(onpeak_hours=[18, 19, 20])
        tariff.import_price(19 * 3600)   # 0.30
        tariff.import_price(3 * 3600)    # 0.18
        ```
    """

    mode: str = ""

    @abstractmethod
    def import_price(self, t_s: float) -> float:
        raise NotImplementedError

    @abstractmethod
    def export_price(self, t_s: float) -> float:
        raise NotImplementedError

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def price_series(self, n_steps: int, dt_s: float) -> Dict[str, np.ndarray]:
        """
        Import/export prices for every step of a run.

        Returns:
            Dict with ``import`` and ``export`` arrays of length ``n_steps``.
        """
        times = np.arange(n_steps, dtype=float) * dt_s
        return {
            "import": np.array([self.import_price(t) for t in times], dtype=float),
            "export": np.array([self.export_price(t) for t in times], dtype=float),
        }


class FixedTariff(TariffModel):
    """Flat import and export prices (EUR/kWh)."""

    mode = "fixed"

    def __init__(
        self,
        import_eur_per_kwh: float = DEFAULT_IMPORT_EUR_PER_KWH,
        export_eur_per_kwh: float = DEFAULT_EXPORT_EUR_PER_KWH,
    ) -> None:
        _check_price("import_eur_per_kwh", import_eur_per_kwh)
        _check_price("export_eur_per_kwh", export_eur_per_kwh)
        self.import_eur_per_kwh = float(import_eur_per_kwh)
        self.export_eur_per_kwh = float(export_eur_per_kwh)

    def import_price(self, t_s: float) -> float:
        return self.import_eur_per_kwh

    def export_price(self, t_s: float) -> float:
        return self.export_eur_per_kwh

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "import_EUR_per_kWh": self.import_eur_per_kwh,
            "export_EUR_per_kWh": self.export_eur_per_kwh,
        }


class TimeOfUseTariff(TariffModel):
    """
    On-peak/off-peak import prices with a flat export price.

    The import price of a step is selected by ``floor((t_s / 3600) mod 24)``;
    hours listed in neither set fall back to the off-peak price.
    """

    mode = "tou"

    def __init__(
        self,
        onpeak_hours: Iterable[float] = DEFAULT_ONPEAK_HOURS,
        offpeak_hours: Optional[Iterable[float]] = None,
        onpeak_price: float = DEFAULT_ONPEAK_PRICE,
        offpeak_price: float = DEFAULT_OFFPEAK_PRICE,
        export_eur_per_kwh: float = DEFAULT_EXPORT_EUR_PER_KWH,
    ) -> None:
        _check_price("onpeak_price", onpeak_price)
        _check_price("offpeak_price", offpeak_price)
        _check_price("export_eur_per_kwh", export_eur_per_kwh)
        self.onpeak_hours = sorted({_normalize_hour(hour) for hour in onpeak_hours})
        if offpeak_hours is None:
            self.offpeak_hours = complement_hours(self.onpeak_hours)
        else:
            self.offpeak_hours = sorted({_normalize_hour(hour) for hour in offpeak_hours})
        self.onpeak_price = float(onpeak_price)
        self.offpeak_price = float(offpeak_price)
        self.export_eur_per_kwh = float(export_eur_per_kwh)
        self._onpeak = frozenset(self.onpeak_hours)

    def import_price(self, t_s: float) -> float:
        if tariff_hour(t_s) in self._onpeak:
            return self.onpeak_price
        return self.offpeak_price

    def export_price(self, t_s: float) -> float:
        return self.export_eur_per_kwh

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "export_EUR_per_kWh": self.export_eur_per_kwh,
            "tou": {
                "onpeak_hours": list(self.onpeak_hours),
                "offpeak_hours": list(self.offpeak_hours),
                "onpeak_price": self.onpeak_price,
                "offpeak_price": self.offpeak_price,
            },
        }


def _check_price(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}")


def build_tariff(data: Optional[Mapping[str, Any]]) -> TariffModel:
    """
    Build a tariff from a scenario mapping.

    Accepted shapes::

        {"mode": "fixed", "import_EUR_per_kWh": 0.25, "export_EUR_per_kWh": 0.1}
        {"mode": "tou", "export_EUR_per_kWh": 0.1,
         "tou": {"onpeak_hours": [...], "onpeak_price": 0.3, "offpeak_price": 0.18}}

    ``None`` or an empty mapping gives the default fixed tariff.

    Raises:
        ConfigurationError: unknown mode or invalid prices.
    """
    if not data:
        return FixedTariff()
    mode = data.get("mode", "fixed")
    export_price = data.get("export_EUR_per_kWh", DEFAULT_EXPORT_EUR_PER_KWH)
    if mode == "fixed":
        return FixedTariff(
            import_eur_per_kwh=data.get("import_EUR_per_kWh", DEFAULT_IMPORT_EUR_PER_KWH),
            export_eur_per_kwh=export_price,
        )
    if mode == "tou":
        tou = data.get("tou") or {}
        return TimeOfUseTariff(
            onpeak_hours=tou.get("onpeak_hours", DEFAULT_ONPEAK_HOURS),
            offpeak_hours=tou.get("offpeak_hours"),
            onpeak_price=tou.get("onpeak_price", DEFAULT_ONPEAK_PRICE),
            offpeak_price=tou.get("offpeak_price", DEFAULT_OFFPEAK_PRICE),
            export_eur_per_kwh=export_price,
        )
    raise ConfigurationError(f"Unknown tariff mode {mode!r} (expected 'fixed' or 'tou')")
