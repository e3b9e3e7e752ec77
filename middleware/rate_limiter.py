"""
Rate limiter for the gate endpoints.

Flask-Limiter counts requests per remote address. Every endpoint gets
MAX_REQUESTS_PER_MINUTE by default; the gate views get a multiple of it
from ENDPOINT_LIMIT_FACTORS.
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from config.config_module import MAX_REQUESTS_PER_MINUTE, RATE_LIMIT_ENABLED
from utils.logger_config import get_logger

logger = get_logger(__name__)

# view function name -> multiple of MAX_REQUESTS_PER_MINUTE
# verify_location is retried by clients after a denial
ENDPOINT_LIMIT_FACTORS = {
    "verify_location": 2,
    "access_logs": 1,
}

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{MAX_REQUESTS_PER_MINUTE} per minute"],
    storage_uri="memory://",
    strategy="fixed-window",
)


def configure_limiter(app):
    """
    Attach the limiter to ``app`` when RATE_LIMIT_ENABLED is set.
    Exceeded limits surface as 429 and are rendered by the app's error handler.

    Returns:
        bool: whether rate limiting is active
    """
    if not RATE_LIMIT_ENABLED:
        logger.info("Rate limiting is disabled")
        return False

    limiter.init_app(app)
    logger.info(f"Rate limiting enabled: {MAX_REQUESTS_PER_MINUTE} requests per minute")
    return True


def endpoint_limit(endpoint):
    return f"{MAX_REQUESTS_PER_MINUTE * ENDPOINT_LIMIT_FACTORS.get(endpoint, 1)} per minute"


def limit_gate_endpoints(app):
    """
    Apply the per-endpoint limits to the gate views registered on ``app``.

    Returns:
        list: names of the views that were limited
    """
    if not RATE_LIMIT_ENABLED:
        return []

    applied = []
    for endpoint in ENDPOINT_LIMIT_FACTORS:
        view = app.view_functions.get(endpoint)
        if view is None:
            logger.warning(f"No view named {endpoint}, rate limit not applied")
            continue
        limiter.limit(endpoint_limit(endpoint))(view)
        logger.info(f"Applied rate limit to {endpoint}: {endpoint_limit(endpoint)}")
        applied.append(endpoint)
    return applied
