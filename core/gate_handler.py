"""
gate_handler.py

Flask handlers for the campus location gate: the verification endpoint,
the admin access log report, and the guard run before protected routes.
"""

import threading

from flask import abort, g, jsonify, request

from config.config_module import (
    ACCESS_LOG_LIMIT,
    ALLOWED_IP_RANGES,
    MAX_DISTANCE_KM,
    REFERENCE_LATITUDE,
    REFERENCE_LONGITUDE,
)
from core.access_log import AccessLogWriter
from core.exceptions import AccessDenied, InvalidArgument
from core.location_gate import LocationClaim, LocationGate, ReferencePoint
from db.database import get_recent_access_logs, record_access_log
from middleware.cache_manager import create_verification_cache
from utils.logger_config import get_logger

logger = get_logger(__name__)

CLIENT_ID_HEADER = "X-Client-Id"
LATITUDE_HEADER = "X-Latitude"
LONGITUDE_HEADER = "X-Longitude"

# Lazily created process-wide collaborators
_gate = None
_verification_cache = None
_access_log_writer = None
_init_lock = threading.Lock()


def get_access_log_writer():
    global _access_log_writer
    with _init_lock:
        if _access_log_writer is None:
            _access_log_writer = AccessLogWriter(record_access_log)
        return _access_log_writer


def build_location_gate(audit_sink=None):
    """Build a LocationGate from the deployment configuration."""
    return LocationGate(
        reference_point=ReferencePoint(REFERENCE_LATITUDE, REFERENCE_LONGITUDE),
        max_distance_km=MAX_DISTANCE_KM,
        allowed_ip_ranges=ALLOWED_IP_RANGES,
        audit_sink=audit_sink,
    )


def get_location_gate():
    global _gate
    if _gate is None:
        writer = get_access_log_writer()
        with _init_lock:
            if _gate is None:
                _gate = build_location_gate(audit_sink=writer)
                logger.info(
                    f"Location gate ready: reference=({REFERENCE_LATITUDE}, "
                    f"{REFERENCE_LONGITUDE}) radius={MAX_DISTANCE_KM}km "
                    f"ip_ranges={len(ALLOWED_IP_RANGES)}"
                )
    return _gate


def get_verification_cache():
    global _verification_cache
    with _init_lock:
        if _verification_cache is None:
            _verification_cache = create_verification_cache()
        return _verification_cache


def client_key():
    """Key for the verification cache: explicit client id, else the source IP."""
    return request.headers.get(CLIENT_ID_HEADER) or request.remote_addr


def _coerce_coordinate(value):
    # Numeric strings are accepted, anything else is left for validation to reject
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


def verification_details(result):
    return {
        "ip": result.source_ip,
        "coordinates": result.coordinates,
        "timestamp": result.timestamp_utc.isoformat(),
    }


def denial_body(result, max_distance_km):
    details = verification_details(result)
    details["distanceKm"] = result.distance_km
    details["maxAllowedDistanceKm"] = max_distance_km
    return {
        "verified": False,
        "message": "Location verification failed",
        "details": details,
    }


def invalid_argument_body(error):
    return {
        "verified": False,
        "message": str(error),
        "errors": error.errors,
    }


def _remember(key, result):
    cache = get_verification_cache()
    if result.allowed:
        cache.put(key, result)
    else:
        cache.invalidate(key)


def verify_location_handler():
    # An empty body is an IP-only check, anything else must be a JSON object
    if not request.get_data(cache=True).strip():
        data = {}
    else:
        data = request.get_json(force=True, silent=True)
        if data is None:
            raise InvalidArgument("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise InvalidArgument("Request body must be a JSON object")

    claim = LocationClaim(
        latitude=_coerce_coordinate(data.get("latitude")),
        longitude=_coerce_coordinate(data.get("longitude")),
        source_ip=request.remote_addr,
    )
    gate = get_location_gate()
    result = gate.verify(claim)
    _remember(client_key(), result)

    if not result.allowed:
        raise AccessDenied(result, gate.max_distance_km)

    return jsonify(
        verified=True,
        distanceKm=result.distance_km,
        method=result.method,
        details=verification_details(result),
    )


def _cached_result_still_valid(gate, cached, source_ip):
    # A GPS reading stays valid for the TTL, an IP grant only from a campus address
    return cached.gps_valid or (cached.ip_valid and gate.check_ip(source_ip))


def authorize_protected_request():
    """
    Run the gate for a request to a protected route.

    Coordinates in the X-Latitude/X-Longitude headers trigger a full check.
    Without them a cached grant for the client is re-validated, and failing
    that the source IP alone is checked.

    Returns:
        VerificationResult: the accepted verification

    Raises:
        AccessDenied: if the request is not from campus
        InvalidArgument: if the coordinate headers are malformed
    """
    gate = get_location_gate()
    key = client_key()
    source_ip = request.remote_addr
    latitude = request.headers.get(LATITUDE_HEADER)
    longitude = request.headers.get(LONGITUDE_HEADER)

    if latitude is None and longitude is None:
        cached = get_verification_cache().get(key)
        if cached is not None and _cached_result_still_valid(gate, cached, source_ip):
            logger.debug(f"Reusing cached verification for {key}")
            g.campus_verification = cached
            return cached
        claim = LocationClaim(source_ip=source_ip)
    else:
        claim = LocationClaim(
            latitude=_coerce_coordinate(latitude),
            longitude=_coerce_coordinate(longitude),
            source_ip=source_ip,
        )

    result = gate.verify(claim)
    _remember(key, result)
    if not result.allowed:
        logger.warning(f"Blocked {request.path} for {source_ip}")
        raise AccessDenied(result, gate.max_distance_km)

    g.campus_verification = result
    return result


def campus_session_handler():
    result = g.get("campus_verification")
    if result is None:
        result = authorize_protected_request()
    return jsonify(
        verified=True,
        distanceKm=result.distance_km,
        method=result.method,
        details=verification_details(result),
    )


def access_logs_handler():
    limit_arg = request.args.get("limit")
    limit = ACCESS_LOG_LIMIT
    if limit_arg is not None:
        try:
            limit = int(limit_arg)
        except ValueError:
            abort(400, description="limit must be an integer")
        if limit < 1:
            abort(400, description="limit must be positive")
        limit = min(limit, ACCESS_LOG_LIMIT)

    logs = get_recent_access_logs(limit)
    return jsonify(logs=logs, count=len(logs))
