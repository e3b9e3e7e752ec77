"""
exceptions.py

Error kinds raised around the location gate.
"""


class LocationGateError(Exception):
    """Base class for gate errors."""


class InvalidArgument(LocationGateError):
    """Malformed coordinates in a location claim.

    ``result`` holds the verification computed without GPS (the IP check
    still runs), ``errors`` the individual validation problems.
    """

    def __init__(self, message, errors=None, result=None):
        super().__init__(message)
        self.errors = list(errors or [])
        self.result = result


class SensorUnavailable(LocationGateError):
    """A position could not be acquired (denied, no sensor, timeout)."""


class AccessDenied(LocationGateError):
    """The gate refused admission."""

    def __init__(self, result, max_distance_km):
        super().__init__("Location verification failed")
        self.result = result
        self.max_distance_km = max_distance_km


class AuditWriteFailure(LocationGateError):
    """An access log entry could not be persisted."""
