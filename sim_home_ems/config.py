from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _load_dotenv(path: str = ".env") -> Dict[str, str]:
    """
    Basic .env loader populating os.environ without overriding set variables.
    Returns a mapping of parsed key/value pairs.
    """
    env_path = Path(path)
    if not env_path.exists():
        return {}

    parsed: Dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
        parsed[key] = value
    return parsed


_load_dotenv()


def get_scenario_path() -> Optional[Path]:
    """
    Scenario file configured through ``SIM_HOME_EMS_SCENARIO``.

    Returns:
        Absolute path of the scenario JSON, or None to use the built-in
        default scenario.
    """
    raw = os.getenv("SIM_HOME_EMS_SCENARIO")
    if not raw:
        return None
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def get_log_level() -> int:
    name = os.getenv("SIM_HOME_EMS_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level: Optional[int] = None) -> None:
    """Configure root logging for command line use."""
    logging.basicConfig(level=level if level is not None else get_log_level(), format=LOG_FORMAT)
