"""
geo.py — Geo-Index
==================
Great-circle distance and location-derived room ids.

Two GPS fixes that fall into the same 0.001° cell (~111 m of latitude)
produce the same room id, which is how runners standing together end up
in one room without exchanging anything.
"""

import math
from decimal import ROUND_HALF_UP, Decimal

EARTH_RADIUS_KM = 6371.0

_CELL = Decimal("0.001")


def _deg2rad(deg: float) -> float:
    return deg * (math.pi / 180)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in kilometres."""
    d_lat = _deg2rad(lat2 - lat1)
    d_lon = _deg2rad(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(_deg2rad(lat1)) * math.cos(_deg2rad(lat2)) * math.sin(d_lon / 2) * math.sin(d_lon / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _encode_axis(value: float) -> str:
    # str() keeps the shortest decimal repr, so 43.7735 rounds as written
    magnitude = Decimal(str(abs(value))).quantize(_CELL, rounding=ROUND_HALF_UP)
    units = int(magnitude * 1000)
    sign = "n" if value < 0 and units != 0 else "p"
    return f"{sign}{units}"


def derive_room_id(lat: float, lng: float) -> str:
    """
    Room id for the ~100 m cell containing (lat, lng).

    >>> derive_room_id(43.7735, -79.5019)
    'room-p43774-n79502'
    """
    return f"room-{_encode_axis(lat)}-{_encode_axis(lng)}"
