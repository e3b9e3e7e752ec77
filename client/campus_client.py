"""
campus_client.py

Client for the campus gate. It reads the device position with a bounded
timeout, asks the service to verify it, and remembers an affirmative
answer for the cache TTL so the position is not requested again on every
page. When the position cannot be read the check proceeds on the source IP
alone.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from config.secret_manager import get_secret
from core.exceptions import SensorUnavailable
from core.verification_cache import DEFAULT_TTL_SECONDS, VerificationCache
from utils.logger_config import get_logger

logger = get_logger(__name__)

FALLBACK_POSITION_TIMEOUT = 5.0
MAX_POSITION_TIMEOUT = 10.0


def position_timeout_setting(raw):
    """Parse CLAIM_TIMEOUT, keeping it within (0, MAX_POSITION_TIMEOUT]."""
    try:
        timeout = float(raw)
    except (TypeError, ValueError):
        timeout = None
    if timeout is None or not math.isfinite(timeout) or timeout <= 0:
        logger.warning(
            f"Ignoring CLAIM_TIMEOUT={raw!r}, using {FALLBACK_POSITION_TIMEOUT}s"
        )
        return FALLBACK_POSITION_TIMEOUT
    return min(timeout, MAX_POSITION_TIMEOUT)


DEFAULT_POSITION_TIMEOUT = position_timeout_setting(get_secret("CLAIM_TIMEOUT", default="5"))
DEFAULT_HTTP_TIMEOUT = 10.0


@dataclass(frozen=True)
class ClientVerification:
    allowed: bool
    method: Optional[str] = None
    distance_km: Optional[float] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    from_cache: bool = False
    position_available: bool = True


def _read_position(provider):
    position = provider()
    if position is None:
        raise SensorUnavailable("No position reported")
    if isinstance(position, dict):
        return position["latitude"], position["longitude"]
    if hasattr(position, "latitude") and hasattr(position, "longitude"):
        return position.latitude, position.longitude
    latitude, longitude = position
    return latitude, longitude


def acquire_position(provider, timeout=DEFAULT_POSITION_TIMEOUT):
    """
    Read a position from ``provider`` within ``timeout`` seconds.

    The provider may return a ``(latitude, longitude)`` pair, a mapping or an
    object with ``latitude``/``longitude`` attributes.

    Raises:
        SensorUnavailable: if the provider fails, refuses or times out.
    """
    if not 0 < timeout <= MAX_POSITION_TIMEOUT:
        raise ValueError(f"timeout must be in (0, {MAX_POSITION_TIMEOUT}] seconds")

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="position")
    try:
        future = executor.submit(_read_position, provider)
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        raise SensorUnavailable(f"Position not available within {timeout}s") from e
    except SensorUnavailable:
        raise
    except Exception as e:
        raise SensorUnavailable(f"Position not available: {e}") from e
    finally:
        # A hung provider must not hold up the caller
        executor.shutdown(wait=False)


class CampusClient:
    """
    Verify this client against a campus gate service.

    Args:
        base_url: Service root, e.g. ``https://portal.example.edu``
        client_id: Sent as X-Client-Id and used as the cache key
        cache: VerificationCache for affirmative answers, one with the
            default one hour TTL is created when omitted
        position_timeout: Seconds to wait for the position provider
        http_timeout: Seconds to wait for the service
        session: requests.Session to use
    """

    def __init__(
        self,
        base_url,
        client_id="default",
        cache=None,
        position_timeout=DEFAULT_POSITION_TIMEOUT,
        http_timeout=DEFAULT_HTTP_TIMEOUT,
        session=None,
    ):
        if not 0 < position_timeout <= MAX_POSITION_TIMEOUT:
            raise ValueError(f"position_timeout must be in (0, {MAX_POSITION_TIMEOUT}] seconds")
        self.verify_url = f"{base_url.rstrip('/')}/verify-location"
        self.client_id = client_id
        self.cache = cache if cache is not None else VerificationCache(DEFAULT_TTL_SECONDS)
        self.position_timeout = position_timeout
        self.http_timeout = http_timeout
        self.session = session or requests.Session()

    def verify(self, provider=None):
        """
        Check whether this client is on campus.

        Calling it again after a denial is the retry.

        Args:
            provider: Callable returning the device position, or None for an IP-only check

        Returns:
            ClientVerification
        """
        cached = self.cache.get(self.client_id)
        if cached is not None:
            logger.debug("Using cached campus verification")
            return ClientVerification(
                allowed=cached.allowed,
                method=cached.method,
                distance_km=cached.distance_km,
                message=cached.message,
                details=cached.details,
                from_cache=True,
                position_available=cached.position_available,
            )

        payload = {}
        position_available = provider is not None
        if provider is not None:
            try:
                latitude, longitude = acquire_position(provider, self.position_timeout)
                payload = {"latitude": latitude, "longitude": longitude}
            except SensorUnavailable as e:
                logger.info(f"Location unavailable, checking by IP only: {e}")
                position_available = False

        result = self._request(payload, position_available)
        if result.allowed:
            self.cache.put(self.client_id, result)
        return result

    def _request(self, payload, position_available):
        try:
            response = self.session.post(
                self.verify_url,
                json=payload,
                headers={"X-Client-Id": self.client_id},
                timeout=self.http_timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Campus verification request failed: {e}")
            return ClientVerification(
                allowed=False,
                message="Unable to reach the verification service",
                position_available=position_available,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        details = body.get("details") or {}
        if response.status_code == 200 and body.get("verified"):
            return ClientVerification(
                allowed=True,
                method=body.get("method"),
                distance_km=body.get("distanceKm"),
                details=details,
                position_available=position_available,
            )

        message = body.get("message") or f"Verification failed with HTTP {response.status_code}"
        if not position_available and response.status_code == 403:
            message = f"{message}. Allow location access and try again."
        return ClientVerification(
            allowed=False,
            distance_km=details.get("distanceKm"),
            message=message,
            details=details,
            position_available=position_available,
        )

    def forget(self):
        """Drop the cached verification so the next call checks again."""
        self.cache.invalidate(self.client_id)
