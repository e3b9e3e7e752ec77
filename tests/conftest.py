import os
import sys
import tempfile

import pytest

# Add the parent directory to sys.path to allow imports from the main project
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Constants for testing
REFERENCE_LAT = 7.6921403
REFERENCE_LNG = 4.420958
MAX_DISTANCE_KM = 200.0
CAMPUS_IP_RANGE = ("197.211.52.176", "197.211.52.255")
KM_PER_DEGREE_LAT = 6371.0 * 3.141592653589793 / 180

# Configuration must be in place before any application module is imported
_tmp_dir = tempfile.mkdtemp(prefix="campus-gate-tests-")
os.environ.update(
    {
        "REFERENCE_LATITUDE": str(REFERENCE_LAT),
        "REFERENCE_LONGITUDE": str(REFERENCE_LNG),
        "MAX_DISTANCE_KM": str(MAX_DISTANCE_KM),
        "ALLOWED_IP_RANGES": "-".join(CAMPUS_IP_RANGE),
        "ADMIN_USERNAME": "admin",
        "ADMIN_PASSWORD": "s3cret",
        "VERIFY_REQUESTS_PER_MINUTE": "10000",
        "DB_MODE": "sqlite",
        "DB_PATH": os.path.join(_tmp_dir, "access_logs.db"),
        "LOG_DIR": _tmp_dir,
    }
)
os.environ.pop("MONGO_URI", None)


# Common fixtures for all tests


@pytest.fixture
def flask_app():
    """Fixture for Flask test client."""
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def reset_verification_cache():
    """Start each HTTP test with an empty verification cache."""
    from core.gate_handler import get_verification_cache

    cache = get_verification_cache()
    cache.clear()
    yield cache
    cache.clear()


@pytest.fixture
def admin_auth():
    import base64

    token = base64.b64encode(b"admin:s3cret").decode()
    return {"Authorization": f"Basic {token}"}


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()
