"""
verification_cache.py

Remembers affirmative verification results per client for a bounded TTL,
so a client is not asked for its position on every request. The cache is
a convenience only; callers must still re-validate what they read back.
"""

import json
import threading
import time

from redis.exceptions import RedisError

from core.location_gate import VerificationResult
from utils.logger_config import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600


class VerificationCache:
    """
    In-memory cache of affirmative results.

    Args:
        ttl_seconds: How long an entry stays valid.
        clock: Returns the current time in seconds, ``time.time`` by default.
    """

    def __init__(self, ttl_seconds=DEFAULT_TTL_SECONDS, clock=time.time):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries = {}  # {key: (expiry, result)}
        self._lock = threading.Lock()

    def put(self, key, result):
        """Store ``result`` under ``key``. Denied results are never cached."""
        if not key or not result.allowed:
            return False
        with self._lock:
            self._entries[key] = (self.clock() + self.ttl_seconds, result)
        return True

    def get(self, key):
        with self._lock:
            record = self._entries.get(key)
            if record is None:
                return None
            expiry, result = record
            if self.clock() >= expiry:
                del self._entries[key]
                return None
            return result

    def invalidate(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self):
        """Drop expired entries and return how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [key for key, (expiry, _) in self._entries.items() if now >= expiry]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)


class RedisVerificationCache:
    """Redis backed variant with the same interface, shared across workers."""

    KEY_PREFIX = "campus_verification:"

    def __init__(self, redis_client, ttl_seconds=DEFAULT_TTL_SECONDS, clock=time.time):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _key(self, key):
        return f"{self.KEY_PREFIX}{key}"

    def put(self, key, result):
        if not key or not result.allowed:
            return False
        data = json.dumps(
            {"expiry": self.clock() + self.ttl_seconds, "result": result.to_dict()}
        )
        try:
            return bool(self.redis_client.setex(self._key(key), int(self.ttl_seconds), data))
        except RedisError as e:
            logger.error(f"Redis error while caching verification: {str(e)}")
            return False

    def get(self, key):
        try:
            data = self.redis_client.get(self._key(key))
            if not data:
                return None
            parsed = json.loads(data)
            if self.clock() >= parsed.get("expiry", 0):
                self.redis_client.delete(self._key(key))
                return None
            return VerificationResult.from_dict(parsed["result"])
        except (RedisError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Error reading cached verification: {str(e)}")
            return None

    def invalidate(self, key):
        try:
            self.redis_client.delete(self._key(key))
        except RedisError as e:
            logger.error(f"Redis error while invalidating verification: {str(e)}")

    def purge_expired(self):
        # Redis expires keys on its own
        return 0

    def clear(self):
        try:
            keys = self.redis_client.keys(f"{self.KEY_PREFIX}*")
            if keys:
                self.redis_client.delete(*keys)
        except RedisError as e:
            logger.error(f"Redis error while clearing verifications: {str(e)}")
