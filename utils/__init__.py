# Utilities module initialization

from .logger_config import get_logger, setup_logging

__all__ = ["setup_logging", "get_logger"]
