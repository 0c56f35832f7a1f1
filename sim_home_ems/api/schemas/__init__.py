"""
Pydantic schemas for API request/response validation.

Example:
    ```python
    from sim_home_ems.api.schemas import SimulationRequest
    from sim_home_ems.api.schemas.simulation import SimulationResponse
    ```
"""

from __future__ import annotations

from .simulation import (
    KpiWindow,
    SimulationRequest,
    SimulationResponse,
    StrategyDescription,
    StrategyListResponse,
)

__all__ = [
    "KpiWindow",
    "SimulationRequest",
    "SimulationResponse",
    "StrategyDescription",
    "StrategyListResponse",
]
