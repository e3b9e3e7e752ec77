"""
location_gate.py

The campus admission predicate. A request is admitted when its source IP
lies in one of the configured campus blocks OR its reported position is
within the configured radius of the campus reference point. Every check
emits one access log entry.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, NamedTuple, Optional

from core.exceptions import InvalidArgument
from core.geo import IPRange, haversine, ip_in_range, validate_coordinates
from utils.logger_config import get_logger

logger = get_logger(__name__)

METHOD_IP = "ip"
METHOD_GPS = "gps"


class ReferencePoint(NamedTuple):
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationClaim:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    source_ip: Optional[str] = None

    @property
    def has_coordinates(self):
        return self.latitude is not None or self.longitude is not None


@dataclass(frozen=True)
class VerificationResult:
    allowed: bool
    distance_km: Optional[float]
    method: Optional[str]
    timestamp_utc: datetime
    source_ip: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    ip_valid: bool = False
    gps_valid: bool = False

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"latitude": self.latitude, "longitude": self.longitude}

    def to_dict(self):
        data = asdict(self)
        data["timestamp_utc"] = self.timestamp_utc.isoformat()
        return data

    @classmethod
    def from_dict(cls, data):
        values = dict(data)
        values["timestamp_utc"] = datetime.fromisoformat(values["timestamp_utc"])
        return cls(**values)


@dataclass(frozen=True)
class AccessLogEntry:
    timestamp: datetime
    latitude: Optional[float]
    longitude: Optional[float]
    distance_km: Optional[float]
    allowed: bool
    source_ip: Optional[str] = None
    method: Optional[str] = None

    @classmethod
    def from_result(cls, result):
        return cls(
            timestamp=result.timestamp_utc,
            latitude=result.latitude,
            longitude=result.longitude,
            distance_km=result.distance_km,
            allowed=result.allowed,
            source_ip=result.source_ip,
            method=result.method,
        )


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass
class LocationGate:
    """
    Decide admission for a location claim.

    Args:
        reference_point: Campus reference point all distances are measured from.
        max_distance_km: Admission radius, must be positive.
        allowed_ip_ranges: Inclusive IPv4 blocks that admit on their own.
        audit_sink: Called with one AccessLogEntry per check. Failures are
            logged and never change the decision.
        clock: Returns the current aware UTC datetime.
    """

    reference_point: ReferencePoint
    max_distance_km: float
    allowed_ip_ranges: Iterable[IPRange] = ()
    audit_sink: Optional[Callable[[AccessLogEntry], None]] = None
    clock: Callable[[], datetime] = field(default=_utcnow)

    def __post_init__(self):
        if not math.isfinite(self.max_distance_km) or self.max_distance_km <= 0:
            raise ValueError("max_distance_km must be a positive finite number")
        self.reference_point = ReferencePoint(*self.reference_point)
        self.allowed_ip_ranges = tuple(IPRange(*r) for r in self.allowed_ip_ranges)

    def check_ip(self, source_ip):
        if not source_ip:
            return False
        return any(ip_in_range(source_ip, r) for r in self.allowed_ip_ranges)

    def distance_from_reference(self, latitude, longitude):
        return haversine(
            self.reference_point.latitude,
            self.reference_point.longitude,
            latitude,
            longitude,
        )

    def verify(self, claim: LocationClaim) -> VerificationResult:
        """
        Run the gate for a claim.

        Raises:
            InvalidArgument: if the claim carries malformed coordinates. The
                IP-only result is attached as ``exc.result`` and audited.
        """
        ip_valid = self.check_ip(claim.source_ip)

        errors = validate_coordinates(claim.latitude, claim.longitude) if claim.has_coordinates else []
        latitude = longitude = distance = None
        gps_valid = False
        if claim.has_coordinates and not errors:
            latitude, longitude = float(claim.latitude), float(claim.longitude)
            distance = self.distance_from_reference(latitude, longitude)
            gps_valid = distance <= self.max_distance_km

        if ip_valid:
            method = METHOD_IP
        elif gps_valid:
            method = METHOD_GPS
        else:
            method = None

        result = VerificationResult(
            allowed=ip_valid or gps_valid,
            distance_km=distance,
            method=method,
            timestamp_utc=self.clock(),
            source_ip=claim.source_ip,
            latitude=latitude,
            longitude=longitude,
            ip_valid=ip_valid,
            gps_valid=gps_valid,
        )
        logger.info(
            f"Location check from {claim.source_ip or 'unknown IP'}: "
            f"allowed={result.allowed} method={method} distance_km={distance}"
        )
        self._audit(result)

        if errors:
            logger.warning(f"Rejected malformed coordinates: {'; '.join(errors)}")
            raise InvalidArgument("Invalid coordinates", errors=errors, result=result)
        return result

    def _audit(self, result):
        if self.audit_sink is None:
            return
        try:
            self.audit_sink(AccessLogEntry.from_result(result))
        except Exception as e:
            logger.error(f"Failed to record access log entry: {e}")
