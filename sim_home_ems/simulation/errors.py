from __future__ import annotations


class ConfigurationError(ValueError):
    """
    Raised when a scenario, device, strategy or tariff definition is invalid.

    Always raised before any simulation step runs, so callers never receive a
    partial trace because of a configuration problem.
    """
