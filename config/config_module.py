"""
Configuration Module

This module centralizes all application configuration settings
and loads values from appropriate sources.
"""

import math

from config.secret_manager import get_secret, validate_required_secrets
from core.geo import parse_ip_ranges


def _as_bool(value):
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_list(value):
    return [item.strip() for item in value.split(",") if item.strip()] if value else []


def _positive_finite(name, value):
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise RuntimeError(f"{name} must be a positive finite number, got {value}")
    return value


# Ensure required settings are available
validate_required_secrets()

# Location Verification Configuration
REFERENCE_LATITUDE = float(get_secret("REFERENCE_LATITUDE"))
REFERENCE_LONGITUDE = float(get_secret("REFERENCE_LONGITUDE"))
MAX_DISTANCE_KM = _positive_finite("MAX_DISTANCE_KM", get_secret("MAX_DISTANCE_KM"))
ALLOWED_IP_RANGES = parse_ip_ranges(get_secret("ALLOWED_IP_RANGES", default=""))

if not -90 <= REFERENCE_LATITUDE <= 90 or not -180 <= REFERENCE_LONGITUDE <= 180:
    raise RuntimeError("REFERENCE_LATITUDE/REFERENCE_LONGITUDE out of range")

# Time-to-live settings
VERIFICATION_TTL = int(get_secret("VERIFICATION_TTL", default="3600"))  # 1 hour

# Route protection
SKIP_FOR_ADMIN_ROUTES = _as_bool(get_secret("SKIP_FOR_ADMIN_ROUTES", default="false"))
ADMIN_PATH_PREFIX = get_secret("ADMIN_PATH_PREFIX", default="/api/admin")
PROTECTED_PATH_PREFIXES = _as_list(
    get_secret("PROTECTED_PATH_PREFIXES", default="/api/campus")
)
TRUST_PROXY_HEADERS = _as_bool(get_secret("TRUST_PROXY_HEADERS", default="false"))

# Audit log
ACCESS_LOG_LIMIT = int(get_secret("ACCESS_LOG_LIMIT", default="100"))

# Flask App Configuration
PORT = int(get_secret("PORT", default="8080"))

# Security Configuration
RATE_LIMIT_ENABLED = _as_bool(get_secret("RATE_LIMIT_ENABLED", default="false"))
MAX_REQUESTS_PER_MINUTE = int(get_secret("MAX_REQUESTS_PER_MINUTE", default="30"))
VERIFY_REQUESTS_PER_MINUTE = int(get_secret("VERIFY_REQUESTS_PER_MINUTE", default="20"))

# Redis Cache Configuration
REDIS_HOST = get_secret("REDIS_HOST", default="localhost")
REDIS_PORT = int(get_secret("REDIS_PORT", default="6379"))
REDIS_DB = int(get_secret("REDIS_DB", default="0"))
REDIS_PASSWORD = get_secret("REDIS_PASSWORD", default="")
REDIS_SSL = _as_bool(get_secret("REDIS_SSL", default="false"))
CACHE_ENABLED = _as_bool(get_secret("CACHE_ENABLED", default="false"))
