"""
Database abstraction layer for the location access log.

This module provides a unified interface for MongoDB Atlas (primary) and SQLite (fallback)
database operations. It automatically handles connection failures and fallback scenarios.
The access log is append-only: entries are recorded and read back, never updated.
"""

import os
import sqlite3
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pymongo import DESCENDING, MongoClient, errors as mongo_errors
from pymongo.collection import Collection

from utils.logger_config import get_logger

logger = get_logger(__name__)

DEFAULT_LOG_LIMIT = 100


# Database configuration
def _get_mongo_uri():
    """Get MongoDB URI from environment."""
    return os.environ.get("MONGO_URI", None)


def _get_db_mode():
    """Get database mode from environment."""
    return os.environ.get("DB_MODE", "auto").lower()


def _get_db_path():
    """Get SQLite database path from environment."""
    return os.environ.get("DB_PATH", "/tmp/access_logs.db")


# Global database state
_mongo_client: Optional[MongoClient] = None
_mongo_collection: Optional[Collection] = None
_database_mode: Optional[str] = None


def _get_mongo_collection() -> Optional[Collection]:
    """
    Get or create the MongoDB access log collection.

    Returns:
        MongoDB collection if successful, None otherwise.
    """
    global _mongo_client, _mongo_collection

    if _mongo_collection is not None:
        return _mongo_collection

    mongo_uri = _get_mongo_uri()
    if not mongo_uri:
        logger.warning("MONGO_URI not set, MongoDB unavailable")
        return None

    try:
        _mongo_client = MongoClient(
            mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=5000,
        )

        # Test connection
        _mongo_client.admin.command("ping")

        db = _mongo_client["campus_gate"]
        _mongo_collection = db["access_logs"]
        _mongo_collection.create_index([("timestamp", DESCENDING)])

        logger.info("Successfully connected to MongoDB Atlas")
        return _mongo_collection

    except (mongo_errors.ConnectionFailure,
            mongo_errors.ServerSelectionTimeoutError,
            mongo_errors.ConfigurationError) as e:
        logger.error(f"MongoDB connection failed: {e}")
        _mongo_client = None
        _mongo_collection = None
        return None
    except Exception as e:
        logger.error(f"Unexpected error connecting to MongoDB: {e}")
        _mongo_client = None
        _mongo_collection = None
        return None


def _init_sqlite_db() -> None:
    """
    Initialize SQLite database with the access_logs table.
    """
    db_path = _get_db_path()
    try:
        connection = sqlite3.connect(db_path)
        cursor = connection.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS access_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                latitude REAL,
                longitude REAL,
                distance_km REAL,
                allowed INTEGER NOT NULL,
                source_ip TEXT,
                method TEXT
            )
            """
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_access_logs_timestamp ON access_logs (timestamp)"
        )
        connection.commit()
        connection.close()
        logger.info(f"SQLite database initialized at {db_path}")
    except Exception as e:
        logger.error(f"Failed to initialize SQLite database: {e}")
        raise


def _get_current_mode() -> str:
    """
    Determine the current database mode.

    Returns:
        'mongo' if MongoDB is available, 'sqlite' otherwise.
    """
    global _database_mode

    if _database_mode:
        return _database_mode

    db_mode = _get_db_mode()
    mongo_uri = _get_mongo_uri()

    if db_mode == "mongo" or (db_mode == "auto" and mongo_uri):
        collection = _get_mongo_collection()
        if collection is not None:
            _database_mode = "mongo"
            logger.info("Using MongoDB as primary database")
            return "mongo"

    _database_mode = "sqlite"
    logger.info("Using SQLite as database (MongoDB unavailable or not configured)")
    _init_sqlite_db()
    return "sqlite"


def initialize_database() -> str:
    """
    Initialize the database connection and return the active mode.

    Returns:
        'mongo' or 'sqlite' depending on what's available.
    """
    return _get_current_mode()


def _timestamp_to_iso(timestamp) -> str:
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc).isoformat()
    return str(timestamp)


def _entry_to_document(entry) -> Dict:
    timestamp = entry.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return {
        "timestamp": timestamp,
        "latitude": entry.latitude,
        "longitude": entry.longitude,
        "distance_km": entry.distance_km,
        "allowed": bool(entry.allowed),
        "source_ip": entry.source_ip,
        "method": entry.method,
    }


def _ensure_sqlite_table() -> None:
    # SQLite may be reached as a per-call fallback without initialization
    if _database_mode != "sqlite":
        _init_sqlite_db()


def record_access_log(entry) -> Tuple[bool, str]:
    """
    Append an access log entry.

    Args:
        entry: AccessLogEntry to persist

    Returns:
        Tuple of (success: bool, message: str)
    """
    mode = _get_current_mode()
    document = _entry_to_document(entry)

    if mode == "mongo":
        try:
            collection = _get_mongo_collection()
            if collection is not None:
                collection.insert_one(dict(document))
                logger.debug("Recorded access log entry in MongoDB")
                return True, "Access log recorded in MongoDB"
        except Exception as e:
            logger.error(f"Error recording access log in MongoDB: {e}")
            logger.warning("Falling back to SQLite for access log write")

    # SQLite fallback
    try:
        _ensure_sqlite_table()
        connection = sqlite3.connect(_get_db_path())
        cursor = connection.cursor()
        cursor.execute(
            """
            INSERT INTO access_logs
                (timestamp, latitude, longitude, distance_km, allowed, source_ip, method)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _timestamp_to_iso(document["timestamp"]),
                document["latitude"],
                document["longitude"],
                document["distance_km"],
                1 if document["allowed"] else 0,
                document["source_ip"],
                document["method"],
            ),
        )
        connection.commit()
        connection.close()
        logger.debug("Recorded access log entry in SQLite")
        return True, "Access log recorded in SQLite"
    except Exception as e:
        logger.error(f"Error recording access log in SQLite: {e}")
        return False, f"Failed to record access log: {str(e)}"


def get_recent_access_logs(limit: int = DEFAULT_LOG_LIMIT) -> List[Dict]:
    """
    Get the most recent access log entries, newest first.

    Args:
        limit: Maximum number of entries to return

    Returns:
        List of entry dictionaries with ISO-8601 timestamps.
    """
    limit = max(int(limit), 0)
    if limit == 0:
        return []

    mode = _get_current_mode()

    if mode == "mongo":
        try:
            collection = _get_mongo_collection()
            if collection is not None:
                cursor = collection.find({}).sort("timestamp", DESCENDING).limit(limit)
                result = []
                for doc in cursor:
                    result.append(
                        {
                            "id": str(doc.get("_id")),
                            "timestamp": _timestamp_to_iso(doc.get("timestamp")),
                            "latitude": doc.get("latitude"),
                            "longitude": doc.get("longitude"),
                            "distance_km": doc.get("distance_km"),
                            "allowed": bool(doc.get("allowed")),
                            "source_ip": doc.get("source_ip"),
                            "method": doc.get("method"),
                        }
                    )
                logger.debug(f"Retrieved {len(result)} access logs from MongoDB")
                return result
        except Exception as e:
            logger.error(f"Error retrieving access logs from MongoDB: {e}")
            logger.warning("Falling back to SQLite for access log retrieval")

    # SQLite fallback
    try:
        _ensure_sqlite_table()
        connection = sqlite3.connect(_get_db_path())
        cursor = connection.cursor()
        cursor.execute(
            """
            SELECT id, timestamp, latitude, longitude, distance_km, allowed, source_ip, method
            FROM access_logs
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = cursor.fetchall()
        connection.close()
        result = [
            {
                "id": str(row[0]),
                "timestamp": row[1],
                "latitude": row[2],
                "longitude": row[3],
                "distance_km": row[4],
                "allowed": bool(row[5]),
                "source_ip": row[6],
                "method": row[7],
            }
            for row in rows
        ]
        logger.debug(f"Retrieved {len(result)} access logs from SQLite")
        return result
    except Exception as e:
        logger.error(f"Error retrieving access logs from SQLite: {e}")
        return []


def close_connections() -> None:
    """
    Close all database connections.
    Should be called on application shutdown.
    """
    global _mongo_client, _mongo_collection, _database_mode

    if _mongo_client is not None:
        try:
            _mongo_client.close()
            logger.info("MongoDB connection closed")
        except Exception as e:
            logger.error(f"Error closing MongoDB connection: {e}")

    _mongo_client = None
    _mongo_collection = None
    _database_mode = None
