"""
API route modules.

All routers are prefixed with /api when included in the main application.
"""

from __future__ import annotations

from .simulation import router as simulation_router

__all__ = ["simulation_router"]
