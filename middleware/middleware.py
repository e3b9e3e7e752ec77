"""
Middleware Module

This module provides middleware functions for the Flask application,
including the campus location guard for protected routes.
"""

import functools
import threading
import time

from flask import abort, request

from config.config_module import (
    ADMIN_PATH_PREFIX,
    PROTECTED_PATH_PREFIXES,
    SKIP_FOR_ADMIN_ROUTES,
)
from core.gate_handler import authorize_protected_request
from utils.logger_config import get_logger

# Configure logger
logger = get_logger(__name__)


def is_protected_path(path, protected_prefixes, skip_for_admin_routes, admin_path_prefix):
    """
    Decide whether a request path must pass the location gate.

    Args:
        path: Request path
        protected_prefixes: Path prefixes that require an on-campus client
        skip_for_admin_routes: Whether admin paths bypass the gate
        admin_path_prefix: Prefix identifying admin paths

    Returns:
        bool: True if the gate must run for this path
    """
    if skip_for_admin_routes and admin_path_prefix and path.startswith(admin_path_prefix):
        return False
    return any(path.startswith(prefix) for prefix in protected_prefixes)


def rate_limit_by_ip(max_requests=30, time_window=60):
    """
    Decorator middleware to implement IP-based rate limiting.

    Args:
        max_requests: Maximum number of requests allowed per time window
        time_window: Time window in seconds

    Returns:
        Decorator function
    """
    ip_request_counts = {}
    lock = threading.Lock()

    def decorator(f):
        @functools.wraps(f)
        def decorated_function(*args, **kwargs):
            ip = request.remote_addr
            current_time = time.time()

            with lock:
                # Clean up old entries
                for tracked_ip in list(ip_request_counts.keys()):
                    timestamps = ip_request_counts[tracked_ip]
                    while timestamps and timestamps[0] < current_time - time_window:
                        timestamps.pop(0)
                    if not timestamps:
                        del ip_request_counts[tracked_ip]

                timestamps = ip_request_counts.setdefault(ip, [])
                if len(timestamps) >= max_requests:
                    logger.warning(f"Rate limit exceeded for IP: {ip}")
                    abort(429, description="Too many requests")
                timestamps.append(current_time)

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def apply_middleware(
    app,
    protected_prefixes=None,
    skip_for_admin_routes=SKIP_FOR_ADMIN_ROUTES,
    admin_path_prefix=ADMIN_PATH_PREFIX,
):
    """
    Apply all middleware to the Flask application.

    Args:
        app: The Flask application instance
        protected_prefixes: Paths guarded by the location gate,
            PROTECTED_PATH_PREFIXES by default
        skip_for_admin_routes: Whether admin paths bypass the gate
        admin_path_prefix: Prefix identifying admin paths
    """
    if protected_prefixes is None:
        protected_prefixes = PROTECTED_PATH_PREFIXES

    @app.before_request
    def log_request_info():
        """Log basic request information for all requests."""
        logger.debug(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.before_request
    def enforce_location_gate():
        """Run the location gate for protected paths."""
        if request.method == "OPTIONS":
            return None
        if is_protected_path(
            request.path, protected_prefixes, skip_for_admin_routes, admin_path_prefix
        ):
            authorize_protected_request()
        return None

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        # Prevent content type sniffing
        response.headers['X-Content-Type-Options'] = 'nosniff'
        # Apply XSS protection
        response.headers['X-XSS-Protection'] = '1; mode=block'
        # Prevent clickjacking
        response.headers['X-Frame-Options'] = 'DENY'
        # Limit referrer information
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        # HSTS (only in production)
        if not app.debug:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    logger.info(
        f"Middleware applied successfully, location gate on: {', '.join(protected_prefixes) or 'none'}"
    )
    return app
