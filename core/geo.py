"""
geo.py

Pure helpers for the location gate: great-circle distance, IPv4 packing
and range membership, and coordinate validation.
"""

import math
from math import atan2, cos, radians, sin, sqrt
from numbers import Real
from typing import List, NamedTuple, Optional

EARTH_RADIUS_KM = 6371.0

_IPV4_MAPPED_PREFIX = "::ffff:"


class IPRange(NamedTuple):
    """Inclusive block of IPv4 addresses given as dotted quads."""

    start: str
    end: str


# Haversine formula
def haversine(lat1, lon1, lat2, lon2):
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = (
        sin(dlat / 2) ** 2
        + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    )
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def ip_to_int(ip: str) -> int:
    """
    Pack a dotted-quad IPv4 address into an unsigned 32-bit integer.

    Raises:
        ValueError: if the address is not four decimal octets in 0-255.
    """
    if not isinstance(ip, str):
        raise ValueError(f"IPv4 address must be a string, got {type(ip).__name__}")

    address = ip.strip()
    if address.lower().startswith(_IPV4_MAPPED_PREFIX):
        address = address[len(_IPV4_MAPPED_PREFIX):]

    octets = address.split(".")
    if len(octets) != 4:
        raise ValueError(f"Invalid IPv4 address: {ip!r}")

    value = 0
    for octet in octets:
        # str.isdigit accepts unicode digits, restrict to ASCII
        if not octet or not octet.isascii() or not octet.isdigit():
            raise ValueError(f"Invalid IPv4 address: {ip!r}")
        number = int(octet)
        if number > 255:
            raise ValueError(f"Invalid IPv4 address: {ip!r}")
        value = (value << 8) | number
    return value & 0xFFFFFFFF


def int_to_ip(value: int) -> str:
    """Unpack an unsigned 32-bit integer into a dotted-quad IPv4 address."""
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"Value out of IPv4 range: {value}")
    return ".".join(str((value >> shift) & 0xFF) for shift in (24, 16, 8, 0))


def ip_in_range(ip: str, ip_range: IPRange) -> bool:
    """Inclusive membership test. Malformed addresses never match."""
    try:
        ip_num = ip_to_int(ip)
        start_num = ip_to_int(ip_range.start)
        end_num = ip_to_int(ip_range.end)
    except ValueError:
        return False
    return start_num <= ip_num <= end_num


def parse_ip_ranges(value: Optional[str]) -> List[IPRange]:
    """
    Parse a comma-separated list of ``start-end`` dotted-quad pairs.

    Raises:
        ValueError: on any malformed entry, so misconfiguration is caught at startup.
    """
    ranges = []
    for item in (value or "").split(","):
        item = item.strip()
        if not item:
            continue
        parts = [part.strip() for part in item.split("-")]
        if len(parts) != 2:
            raise ValueError(f"Invalid IP range {item!r}, expected start-end")
        start, end = parts
        if ip_to_int(start) > ip_to_int(end):
            raise ValueError(f"Invalid IP range {item!r}, start is after end")
        ranges.append(IPRange(start, end))
    return ranges


def _is_finite(value) -> bool:
    # JSON integers can exceed the float range
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def validate_coordinates(latitude, longitude) -> List[str]:
    """
    Check a latitude/longitude pair.

    Returns:
        list: Human readable problems, empty when the pair is usable.
    """
    errors = []
    if latitude is None or longitude is None:
        errors.append("latitude and longitude must be supplied together")
        return errors

    for name, value, bound in (("latitude", latitude, 90), ("longitude", longitude, 180)):
        # bool is a Real subclass
        if isinstance(value, bool) or not isinstance(value, Real):
            errors.append(f"{name} must be a number")
        elif not _is_finite(value):
            errors.append(f"{name} must be finite")
        elif not -bound <= value <= bound:
            errors.append(f"{name} must be between -{bound} and {bound}")
    return errors
