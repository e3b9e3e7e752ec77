"""
Database package for the location access log.

This package provides a unified interface for access log persistence,
supporting both MongoDB Atlas and SQLite with automatic fallback.
"""

from db.database import (
    close_connections,
    get_recent_access_logs,
    initialize_database,
    record_access_log,
)

__all__ = [
    "record_access_log",
    "get_recent_access_logs",
    "initialize_database",
    "close_connections",
]
