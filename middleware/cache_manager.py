"""
Cache Manager Module

This module provides the verification cache for the application. With
CACHE_ENABLED it keeps results in Redis so they are shared across workers;
otherwise, or when Redis is unreachable, it falls back to an in-process cache.
"""

from redis import Redis

from config.config_module import (
    CACHE_ENABLED,
    REDIS_DB,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    REDIS_SSL,
    VERIFICATION_TTL,
)
from core.verification_cache import RedisVerificationCache, VerificationCache
from utils.logger_config import get_logger

# Configure logger
logger = get_logger(__name__)


def create_redis_client():
    """
    Connect to Redis.

    Returns:
        Redis client, or None if the server cannot be reached.
    """
    try:
        redis_client = Redis(
            host=REDIS_HOST,
            port=REDIS_PORT,
            db=REDIS_DB,
            password=REDIS_PASSWORD or None,
            ssl=REDIS_SSL,
            socket_timeout=3,
            socket_connect_timeout=3,
            decode_responses=True,  # Return strings instead of bytes
        )
        # Test connection
        redis_client.ping()
        logger.info("Successfully connected to Redis server")
        return redis_client
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {str(e)}")
        return None


def create_verification_cache(ttl_seconds=VERIFICATION_TTL, cache_enabled=CACHE_ENABLED):
    """
    Build the verification cache for this process.

    Args:
        ttl_seconds: How long affirmative results are kept
        cache_enabled: Whether to try Redis first

    Returns:
        VerificationCache or RedisVerificationCache
    """
    if cache_enabled:
        redis_client = create_redis_client()
        if redis_client is not None:
            logger.info("Redis verification cache enabled")
            return RedisVerificationCache(redis_client, ttl_seconds=ttl_seconds)
        logger.warning("Falling back to local in-memory verification cache")
    else:
        logger.info("Caching disabled, using in-memory verification cache")

    return VerificationCache(ttl_seconds=ttl_seconds)
