from __future__ import annotations

from ..application import SimulationApplication


def get_application_service() -> SimulationApplication:
    """
    Provide a SimulationApplication configured for API usage.
    """
    return SimulationApplication(include_trace=False)
