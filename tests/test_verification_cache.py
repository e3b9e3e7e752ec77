import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import RedisError

from core.verification_cache import RedisVerificationCache, VerificationCache
from core.location_gate import VerificationResult


def make_result(allowed=True, method="gps"):
    return VerificationResult(
        allowed=allowed,
        distance_km=1.5 if method == "gps" else None,
        method=method if allowed else None,
        timestamp_utc=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        source_ip="197.211.52.200",
        latitude=7.7 if method == "gps" else None,
        longitude=4.4 if method == "gps" else None,
        ip_valid=method == "ip",
        gps_valid=method == "gps" and allowed,
    )


@pytest.fixture
def cache(fake_clock):
    return VerificationCache(ttl_seconds=3600, clock=fake_clock)


def test_put_and_get_within_ttl(cache, fake_clock):
    result = make_result()
    assert cache.put("client-1", result) is True

    fake_clock.advance(3599)
    assert cache.get("client-1") == result


def test_entry_expires_at_ttl(cache, fake_clock):
    cache.put("client-1", make_result())

    fake_clock.advance(3600)
    assert cache.get("client-1") is None
    assert len(cache) == 0


def test_denied_results_are_not_cached(cache):
    assert cache.put("client-1", make_result(allowed=False)) is False
    assert cache.get("client-1") is None


def test_missing_key_is_not_cached(cache):
    assert cache.put("", make_result()) is False
    assert cache.put(None, make_result()) is False


def test_invalidate(cache):
    cache.put("client-1", make_result())
    cache.invalidate("client-1")
    cache.invalidate("never-stored")
    assert cache.get("client-1") is None


def test_purge_expired_keeps_fresh_entries(cache, fake_clock):
    cache.put("old", make_result())
    fake_clock.advance(1800)
    cache.put("new", make_result(method="ip"))
    fake_clock.advance(1800)

    assert cache.purge_expired() == 1
    assert cache.get("old") is None
    assert cache.get("new") is not None


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        VerificationCache(ttl_seconds=0)


def test_clear(cache):
    cache.put("a", make_result())
    cache.put("b", make_result())
    cache.clear()
    assert len(cache) == 0


# Redis backed cache
def test_redis_put_uses_setex(fake_clock):
    redis_client = MagicMock()
    redis_client.setex.return_value = True
    cache = RedisVerificationCache(redis_client, ttl_seconds=3600, clock=fake_clock)

    assert cache.put("client-1", make_result()) is True

    key, ttl, payload = redis_client.setex.call_args[0]
    assert key == "campus_verification:client-1"
    assert ttl == 3600
    assert json.loads(payload)["expiry"] == fake_clock() + 3600


def test_redis_get_round_trips_result(fake_clock):
    stored = {}
    redis_client = MagicMock()
    redis_client.setex.side_effect = lambda key, ttl, data: stored.__setitem__(key, data) or True
    redis_client.get.side_effect = stored.get
    cache = RedisVerificationCache(redis_client, ttl_seconds=3600, clock=fake_clock)

    result = make_result()
    cache.put("client-1", result)
    assert cache.get("client-1") == result

    fake_clock.advance(3600)
    assert cache.get("client-1") is None
    redis_client.delete.assert_called_with("campus_verification:client-1")


def test_redis_errors_are_treated_as_misses(fake_clock):
    redis_client = MagicMock()
    redis_client.get.side_effect = RedisError("connection lost")
    redis_client.setex.side_effect = RedisError("connection lost")
    cache = RedisVerificationCache(redis_client, clock=fake_clock)

    assert cache.put("client-1", make_result()) is False
    assert cache.get("client-1") is None


def test_redis_denied_results_are_not_cached():
    redis_client = MagicMock()
    cache = RedisVerificationCache(redis_client)
    assert cache.put("client-1", make_result(allowed=False)) is False
    redis_client.setex.assert_not_called()


# Backend selection
def test_cache_disabled_uses_memory():
    from middleware.cache_manager import create_verification_cache

    with patch("middleware.cache_manager.create_redis_client") as mock_connect:
        cache = create_verification_cache(ttl_seconds=60, cache_enabled=False)
    assert isinstance(cache, VerificationCache)
    assert cache.ttl_seconds == 60
    mock_connect.assert_not_called()


def test_cache_enabled_uses_redis():
    from middleware.cache_manager import create_verification_cache

    with patch("middleware.cache_manager.create_redis_client", return_value=MagicMock()):
        cache = create_verification_cache(ttl_seconds=60, cache_enabled=True)
    assert isinstance(cache, RedisVerificationCache)


def test_unreachable_redis_falls_back_to_memory():
    from middleware.cache_manager import create_verification_cache

    with patch("middleware.cache_manager.create_redis_client", return_value=None):
        cache = create_verification_cache(ttl_seconds=60, cache_enabled=True)
    assert isinstance(cache, VerificationCache)


def test_create_redis_client_handles_connection_error():
    from middleware.cache_manager import create_redis_client

    with patch("middleware.cache_manager.Redis") as mock_redis:
        mock_redis.return_value.ping.side_effect = RedisError("refused")
        assert create_redis_client() is None
