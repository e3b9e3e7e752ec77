import logging

import pytest

from utils.logger_config import ImportantLogFilter, build_log_config


def make_record(name, level, message):
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


@pytest.mark.parametrize(
    "name, level, message, shown",
    [
        ("core.location_gate", logging.INFO, "Location check from 10.0.0.1", True),
        ("core.gate_handler", logging.DEBUG, "Reusing cached verification", True),
        ("werkzeug", logging.INFO, "GET /healthz 200", False),
        ("werkzeug", logging.WARNING, "something odd", True),
        ("app", logging.INFO, "Running on http://0.0.0.0:8080", False),
        ("db.database", logging.INFO, "SQLite database initialized", True),
        ("db.database", logging.DEBUG, "Recorded access log entry", False),
    ],
)
def test_important_log_filter(name, level, message, shown):
    assert ImportantLogFilter().filter(make_record(name, level, message)) is shown


def test_build_log_config_paths(tmp_path):
    config = build_log_config(tmp_path / "logs", "debug")

    assert (tmp_path / "logs").is_dir()
    assert config["handlers"]["file"]["filename"] == str(tmp_path / "logs" / "app.log")
    assert config["handlers"]["error_file"]["filename"] == str(tmp_path / "logs" / "error.log")
    assert config["handlers"]["error_file"]["level"] == "ERROR"
    assert config["loggers"][""]["level"] == "DEBUG"


def test_unknown_level_falls_back_to_info(tmp_path):
    config = build_log_config(tmp_path, "chatty")
    assert config["loggers"][""]["level"] == "INFO"
    assert config["handlers"]["console"]["level"] == "INFO"
