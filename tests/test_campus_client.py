"""
Tests for the campus gate client.
"""

import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from client.campus_client import (
    FALLBACK_POSITION_TIMEOUT,
    MAX_POSITION_TIMEOUT,
    CampusClient,
    acquire_position,
    position_timeout_setting,
)
from core.exceptions import SensorUnavailable
from core.verification_cache import VerificationCache


def make_response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


ALLOWED_BODY = {
    "verified": True,
    "distanceKm": 0.4,
    "method": "gps",
    "details": {
        "ip": "203.0.113.9",
        "coordinates": {"latitude": 7.69, "longitude": 4.42},
        "timestamp": "2024-05-01T12:00:00+00:00",
    },
}

DENIED_BODY = {
    "verified": False,
    "message": "Location verification failed",
    "details": {
        "ip": "203.0.113.9",
        "coordinates": None,
        "distanceKm": None,
        "maxAllowedDistanceKm": 200.0,
        "timestamp": "2024-05-01T12:00:00+00:00",
    },
}


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def campus_client(session, fake_clock):
    return CampusClient(
        "https://portal.example.edu/",
        client_id="phone-1",
        cache=VerificationCache(ttl_seconds=3600, clock=fake_clock),
        position_timeout=0.5,
        session=session,
    )


# Position acquisition
@pytest.mark.parametrize(
    "position",
    [
        (7.69, 4.42),
        {"latitude": 7.69, "longitude": 4.42},
        SimpleNamespace(latitude=7.69, longitude=4.42),
    ],
)
def test_acquire_position_shapes(position):
    assert acquire_position(lambda: position, timeout=1) == (7.69, 4.42)


def test_acquire_position_times_out():
    release = threading.Event()

    def hung_provider():
        release.wait(5)
        return 7.69, 4.42

    try:
        with pytest.raises(SensorUnavailable, match="within"):
            acquire_position(hung_provider, timeout=0.05)
    finally:
        release.set()


def test_acquire_position_provider_error():
    def denied():
        raise PermissionError("user denied location access")

    with pytest.raises(SensorUnavailable, match="denied"):
        acquire_position(denied, timeout=1)


def test_acquire_position_no_fix():
    with pytest.raises(SensorUnavailable):
        acquire_position(lambda: None, timeout=1)


@pytest.mark.parametrize("timeout", [0, -1, 30])
def test_acquire_position_rejects_bad_timeout(timeout):
    with pytest.raises(ValueError):
        acquire_position(lambda: (0, 0), timeout=timeout)


# Verification requests
def test_verify_sends_position(campus_client, session):
    session.post.return_value = make_response(200, ALLOWED_BODY)

    result = campus_client.verify(lambda: (7.69, 4.42))

    assert result.allowed is True
    assert result.method == "gps"
    assert result.distance_km == 0.4
    assert result.from_cache is False
    session.post.assert_called_once_with(
        "https://portal.example.edu/verify-location",
        json={"latitude": 7.69, "longitude": 4.42},
        headers={"X-Client-Id": "phone-1"},
        timeout=10.0,
    )


def test_allowed_result_is_reused_until_ttl(campus_client, session, fake_clock):
    session.post.return_value = make_response(200, ALLOWED_BODY)
    provider = MagicMock(return_value=(7.69, 4.42))

    campus_client.verify(provider)
    cached = campus_client.verify(provider)

    assert cached.allowed is True
    assert cached.from_cache is True
    assert session.post.call_count == 1
    assert provider.call_count == 1

    fake_clock.advance(3600)
    assert campus_client.verify(provider).from_cache is False
    assert session.post.call_count == 2


def test_forget_forces_new_check(campus_client, session):
    session.post.return_value = make_response(200, ALLOWED_BODY)
    campus_client.verify()
    campus_client.forget()
    campus_client.verify()
    assert session.post.call_count == 2


def test_denial_is_not_cached(campus_client, session):
    session.post.return_value = make_response(403, DENIED_BODY)

    first = campus_client.verify(lambda: (40.0, -74.0))
    second = campus_client.verify(lambda: (40.0, -74.0))

    assert first.allowed is False
    assert first.message == "Location verification failed"
    assert first.details["maxAllowedDistanceKm"] == 200.0
    assert second.from_cache is False
    assert session.post.call_count == 2


def test_sensor_failure_falls_back_to_ip_check(campus_client, session):
    session.post.return_value = make_response(403, DENIED_BODY)

    def denied():
        raise PermissionError("user denied location access")

    result = campus_client.verify(denied)

    assert session.post.call_args.kwargs["json"] == {}
    assert result.allowed is False
    assert result.position_available is False
    assert result.message.endswith("Allow location access and try again.")


def test_ip_only_success(campus_client, session):
    body = dict(ALLOWED_BODY, method="ip", distanceKm=None)
    session.post.return_value = make_response(200, body)

    result = campus_client.verify()

    assert result.allowed is True
    assert result.method == "ip"
    assert result.distance_km is None
    assert session.post.call_args.kwargs["json"] == {}


def test_network_error_is_denied(campus_client, session):
    session.post.side_effect = requests.ConnectionError("no route to host")

    result = campus_client.verify(lambda: (7.69, 4.42))

    assert result.allowed is False
    assert "verification service" in result.message


def test_unexpected_response_body(campus_client, session):
    response = make_response(500, None)
    response.json.side_effect = ValueError("not json")
    session.post.return_value = response

    result = campus_client.verify()

    assert result.allowed is False
    assert "HTTP 500" in result.message


# CLAIM_TIMEOUT parsing
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("5", 5.0),
        ("2.5", 2.5),
        ("30", MAX_POSITION_TIMEOUT),
        ("0", FALLBACK_POSITION_TIMEOUT),
        ("-3", FALLBACK_POSITION_TIMEOUT),
        ("nan", FALLBACK_POSITION_TIMEOUT),
        ("soon", FALLBACK_POSITION_TIMEOUT),
        (None, FALLBACK_POSITION_TIMEOUT),
    ],
)
def test_position_timeout_setting(raw, expected):
    assert position_timeout_setting(raw) == expected


@pytest.mark.parametrize("timeout", [0, -1, 11])
def test_client_rejects_bad_position_timeout(timeout, session):
    with pytest.raises(ValueError):
        CampusClient("https://portal.example.edu", position_timeout=timeout, session=session)
