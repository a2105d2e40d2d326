"""Geometry helpers for matching positions against leg geometry.

Distances are in meters and bearings in degrees.  Everything here is pure
and safe to call from any worker thread.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from shapely.geometry import LineString

from triptracker.errors import MalformedGeometry
from triptracker.models import Coordinates

EARTH_RADIUS_M = 6_371_000  # mean Earth radius in meters


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance in **meters** between two points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_between(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance between two coordinates, in meters."""
    return haversine(a.lat, a.lon, b.lat, b.lon)


def _to_local(origin: Coordinates, point: Coordinates) -> tuple[float, float]:
    """Project *point* onto a flat (x east, y north) plane centred on *origin*."""
    x = math.radians(point.lon - origin.lon) * EARTH_RADIUS_M * math.cos(math.radians(origin.lat))
    y = math.radians(point.lat - origin.lat) * EARTH_RADIUS_M
    return x, y


def distance_from_line(a: Coordinates, b: Coordinates, p: Coordinates) -> float:
    """Shortest distance in meters from *p* to the segment *a* → *b*.

    Uses an equirectangular projection around *a*, which is accurate for
    the short segments found in leg geometry.  Projections falling before
    *a* or beyond *b* are clamped to the segment ends.  A degenerate
    segment (``a == b``) gives the point-to-point distance.
    """
    if a == b:
        return distance_between(a, p)

    bx, by = _to_local(a, b)
    px, py = _to_local(a, p)
    seg_len_sq = bx * bx + by * by
    if seg_len_sq == 0:
        return distance_between(a, p)

    t = (px * bx + py * by) / seg_len_sq
    t = min(1.0, max(0.0, t))
    return math.hypot(px - t * bx, py - t * by)


def bearing(a: Coordinates, b: Coordinates) -> float:
    """Initial compass bearing from *a* to *b*, in ``[0, 360)``."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_lambda = math.radians(b.lon - a.lon)

    x = math.sin(d_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return (math.degrees(math.atan2(x, y)) + 360) % 360


def angle_difference(first: float, second: float) -> float:
    """Smallest absolute difference between two bearings, in ``[0, 180]``."""
    diff = abs(first - second) % 360
    return 360 - diff if diff > 180 else diff


def destination_point(origin: Coordinates, distance_m: float, bearing_deg: float) -> Coordinates:
    """Project a new point *distance_m* from *origin* along *bearing_deg*."""
    delta = distance_m / EARTH_RADIUS_M
    theta = math.radians(bearing_deg)
    phi1 = math.radians(origin.lat)
    lambda1 = math.radians(origin.lon)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta)
        + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    lon = (math.degrees(lambda2) + 540) % 360 - 180
    return Coordinates(math.degrees(phi2), lon)


# ── Encoded polylines ─────────────────────────────────────────────

def decode_polyline(encoded: str, precision: int = 5) -> list[Coordinates]:
    """Decode a Google encoded polyline into an ordered list of coordinates.

    Raises
    ------
    MalformedGeometry
        If the string contains characters outside the polyline alphabet or
        ends in the middle of a value or a lat/lon pair.
    """
    coordinates: list[Coordinates] = []
    index = 0
    lat = 0
    lon = 0
    factor = 10 ** precision

    while index < len(encoded):
        lat_change, index = _decode_value(encoded, index)
        if index >= len(encoded):
            raise MalformedGeometry(
                f"Invalid polyline: latitude without longitude at offset {index}"
            )
        lon_change, index = _decode_value(encoded, index)
        lat += lat_change
        lon += lon_change
        coordinates.append(Coordinates(lat / factor, lon / factor))

    return coordinates


def _decode_value(encoded: str, index: int) -> tuple[int, int]:
    result = 0
    shift = 0

    while True:
        if index >= len(encoded):
            raise MalformedGeometry("Invalid polyline: buffer exhausted.")
        b = ord(encoded[index]) - 63
        if b < 0 or b > 63:
            raise MalformedGeometry(
                f"Invalid polyline: unexpected character {encoded[index]!r} at offset {index}"
            )
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break

    delta = ~(result >> 1) if (result & 1) else (result >> 1)
    return delta, index


def encode_polyline(coordinates: Iterable[Coordinates], precision: int = 5) -> str:
    """Encode coordinates as a Google encoded polyline."""
    factor = 10 ** precision
    chunks: list[str] = []
    prev_lat = 0
    prev_lon = 0
    for coord in coordinates:
        lat = int(round(coord.lat * factor))
        lon = int(round(coord.lon * factor))
        chunks.append(_encode_value(lat - prev_lat))
        chunks.append(_encode_value(lon - prev_lon))
        prev_lat, prev_lon = lat, lon
    return "".join(chunks)


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    out = []
    while value >= 0x20:
        out.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    out.append(chr(value + 63))
    return "".join(out)


# ── Shapely helpers ───────────────────────────────────────────────

def to_linestring(coordinates: Sequence[Coordinates]) -> LineString:
    """Shapely LineString in (lon, lat) order; empty for fewer than 2 points."""
    if len(coordinates) < 2:
        return LineString()
    return LineString([(c.lon, c.lat) for c in coordinates])


def path_length(coordinates: Sequence[Coordinates]) -> float:
    """Total haversine length of a path, in meters."""
    return sum(
        distance_between(start, end)
        for start, end in zip(coordinates[:-1], coordinates[1:])
    )
