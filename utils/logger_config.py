"""
Logger Configuration Module

Console output is filtered down to gate decisions and warnings, while
every INFO record goes to a rotating app.log and errors additionally to
error.log, both under LOG_DIR.
"""

import logging
import os
from logging.config import dictConfig
from pathlib import Path

LOG_FORMATS = {
    "default": "%(asctime)s %(name)-12s %(levelname)-8s %(message)s",
    "detailed": "%(asctime)s %(name)s [%(filename)s:%(lineno)d] %(levelname)s: %(message)s",
    "simple": "%(message)s",
}

# Loggers whose INFO records always reach the console
GATE_LOGGERS = (
    "core.location_gate",
    "core.gate_handler",
    "core.access_log",
    "__main__",
)

# Third party loggers kept out of the console below WARNING
NOISY_LOGGERS = ("urllib3", "gunicorn", "werkzeug")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_BACKUPS = 3


class ImportantLogFilter(logging.Filter):
    """Let gate decisions and warnings through to the console, drop chatter."""

    suppressed_phrases = ("WSGI app", "Python module", "Running on http")

    def filter(self, record):
        if record.name.startswith(GATE_LOGGERS):
            return True
        if record.levelno >= logging.WARNING:
            return True

        message = record.getMessage()
        if any(phrase in message for phrase in self.suppressed_phrases):
            return False
        return record.levelno >= logging.INFO and not record.name.startswith(NOISY_LOGGERS)


def _rotating_handler(path, level, formatter):
    return {
        "level": level,
        "class": "logging.handlers.RotatingFileHandler",
        "filename": str(path),
        "maxBytes": ROTATE_BYTES,
        "backupCount": ROTATE_BACKUPS,
        "formatter": formatter,
    }


def build_log_config(log_dir, level="INFO"):
    """
    Build the dictConfig mapping for ``log_dir`` at ``level``.

    Args:
        log_dir: Directory for app.log and error.log, created if missing
        level: Root and console level name

    Returns:
        dict: configuration for logging.config.dictConfig
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = level.upper() if level.upper() in LOG_LEVELS else "INFO"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {name: {"format": fmt} for name, fmt in LOG_FORMATS.items()},
        "filters": {"important_only": {"()": ImportantLogFilter}},
        "handlers": {
            "console": {
                "level": level,
                "class": "logging.StreamHandler",
                "formatter": "simple",
                "filters": ["important_only"],
            },
            "file": _rotating_handler(log_dir / "app.log", "INFO", "default"),
            "error_file": _rotating_handler(log_dir / "error.log", "ERROR", "detailed"),
        },
        "loggers": {
            "": {"level": level, "handlers": ["console", "file", "error_file"]},
            "urllib3": {"level": "WARNING", "handlers": ["file"]},
            "werkzeug": {"level": "WARNING", "propagate": False, "handlers": ["file"]},
        },
    }


def setup_logging(log_level=None, config=None):
    """
    Set up logging configuration.

    Args:
        log_level (str, optional): Level name, LOG_LEVEL or INFO when omitted.
        config (dict, optional): Top level keys overriding the built configuration.

    Returns:
        Logger: this module's logger
    """
    log_level = log_level or os.environ.get("LOG_LEVEL", "INFO")
    log_config = build_log_config(os.environ.get("LOG_DIR", "."), log_level)
    if config:
        log_config.update(config)

    dictConfig(log_config)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")
    return logger


def get_logger(name):
    """Logger for a module, normally called with ``__name__``."""
    return logging.getLogger(name)


# Configure logging with default settings when imported
if __name__ != "__main__":
    setup_logging()
