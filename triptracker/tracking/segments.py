"""Split a leg into time-and-space segments.

Each pair of adjacent geometry vertices becomes one ``LegSegment`` whose
share of the leg duration is proportional to its share of the leg length.
This assumes the traveler moves at a constant speed along a leg.

Segments are a pure function of an immutable leg, so they are cached per
``Leg`` instance and reused across analysis ticks.
"""

from __future__ import annotations

import datetime
import logging
import threading
import weakref
from typing import Optional, Sequence

from triptracker.errors import MalformedGeometry
from triptracker.geo.geometry import decode_polyline, distance_between, distance_from_line
from triptracker.models import Coordinates, Leg, LegSegment

logger = logging.getLogger(__name__)

# Leg -> segments.  Weak keys so finished itineraries drop out of the cache.
_segment_cache: "weakref.WeakKeyDictionary[Leg, list[LegSegment]]" = weakref.WeakKeyDictionary()
_segment_cache_lock = threading.Lock()


def get_leg_coordinates(leg: Leg) -> list[Coordinates]:
    """Decode a leg's geometry, raising ``MalformedGeometry`` on bad input."""
    return decode_polyline(leg.geometry or "")


def create_segments(leg: Leg) -> list[LegSegment]:
    """Return the (cached) segments covering the full geometry of *leg*."""
    with _segment_cache_lock:
        cached = _segment_cache.get(leg)
    if cached is not None:
        return cached

    segments = _build_segments(leg)
    with _segment_cache_lock:
        _segment_cache.setdefault(leg, segments)
        return _segment_cache[leg]


def _build_segments(leg: Leg) -> list[LegSegment]:
    try:
        points = get_leg_coordinates(leg)
    except MalformedGeometry as e:
        logger.warning("Leg geometry could not be decoded (%s); using a degenerate segment", e)
        return [_degenerate_segment(leg)]

    # Repeated vertices would produce zero-length, zero-time segments.
    points = [p for i, p in enumerate(points) if i == 0 or p != points[i - 1]]
    if len(points) < 2:
        return [_degenerate_segment(leg, points[0] if points else None)]

    lengths = [distance_between(start, end) for start, end in zip(points[:-1], points[1:])]
    total_length = sum(lengths)
    if total_length == 0:
        logger.debug("Leg %s has zero length; using a degenerate segment", leg.mode)
        return [_degenerate_segment(leg, points[0])]

    duration = float(leg.duration)
    segments: list[LegSegment] = []
    cumulative = 0.0
    last = len(lengths) - 1
    for i, length in enumerate(lengths):
        if i == last:
            # Close the floating-point gap so the times sum to the duration.
            time_in_segment = duration - cumulative
            cumulative = duration
        else:
            time_in_segment = duration * (length / total_length)
            cumulative += time_in_segment
        segments.append(
            LegSegment(
                start=points[i],
                end=points[i + 1],
                time_in_segment=time_in_segment,
                cumulative_time=cumulative,
                mode=leg.mode,
            )
        )
    return segments


def _degenerate_segment(leg: Leg, point: Optional[Coordinates] = None) -> LegSegment:
    """A zero-length, zero-time segment at the leg origin."""
    origin = point or leg.from_place.coordinates
    return LegSegment(
        start=origin,
        end=origin,
        time_in_segment=0.0,
        cumulative_time=0.0,
        mode=leg.mode,
    )


def get_segment_from_position(
    segments: Sequence[LegSegment],
    position: Coordinates,
) -> Optional[LegSegment]:
    """Return the segment nearest to *position*.

    On an exact tie the later segment wins, so a shared vertex belongs to
    the segment starting there.
    """
    nearest: Optional[LegSegment] = None
    nearest_distance = float("inf")
    for segment in segments:
        distance = distance_from_line(segment.start, segment.end, position)
        if distance <= nearest_distance:
            nearest = segment
            nearest_distance = distance
    return nearest


def get_segment_from_time(
    leg_start: datetime.datetime,
    current_time: datetime.datetime,
    segments: Sequence[LegSegment],
) -> Optional[LegSegment]:
    """Return the segment the traveler should be on at *current_time*.

    That is the first segment whose window
    ``[cumulative_time - time_in_segment, cumulative_time]`` contains the
    seconds elapsed since *leg_start*, or ``None`` outside the leg.
    """
    elapsed = (current_time - leg_start).total_seconds()
    for segment in segments:
        if segment.start_time_offset <= elapsed <= segment.cumulative_time:
            return segment
    return None


def clear_segment_cache() -> None:
    """Drop every cached segment list."""
    with _segment_cache_lock:
        _segment_cache.clear()
