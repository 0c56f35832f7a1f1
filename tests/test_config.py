from __future__ import annotations

import logging

from sim_home_ems import config


def test_scenario_path_is_absolute(monkeypatch, tmp_path):
    """Relative SIM_HOME_EMS_SCENARIO values resolve against the working dir."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SIM_HOME_EMS_SCENARIO", "scenarios/day.json")
    path = config.get_scenario_path()
    assert path.is_absolute()
    assert path == tmp_path / "scenarios" / "day.json"


def test_scenario_path_defaults_to_none(monkeypatch):
    monkeypatch.delenv("SIM_HOME_EMS_SCENARIO", raising=False)
    assert config.get_scenario_path() is None


def test_log_level_parsing(monkeypatch):
    monkeypatch.setenv("SIM_HOME_EMS_LOG_LEVEL", "debug")
    assert config.get_log_level() == logging.DEBUG
    monkeypatch.setenv("SIM_HOME_EMS_LOG_LEVEL", "chatty")
    assert config.get_log_level() == logging.WARNING


def test_dotenv_does_not_override_environment(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nSIM_HOME_EMS_LOG_LEVEL=ERROR\nSIM_HOME_EMS_EXTRA='quoted'\n", encoding="utf-8")
    monkeypatch.setenv("SIM_HOME_EMS_LOG_LEVEL", "INFO")
    monkeypatch.delenv("SIM_HOME_EMS_EXTRA", raising=False)

    parsed = config._load_dotenv(str(env_file))

    assert parsed == {"SIM_HOME_EMS_LOG_LEVEL": "ERROR", "SIM_HOME_EMS_EXTRA": "quoted"}
    assert config.get_log_level() == logging.INFO
    monkeypatch.delenv("SIM_HOME_EMS_EXTRA")
