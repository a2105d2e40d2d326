"""Turn-by-turn step segments and position-to-step alignment."""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Optional

from shapely.geometry import Point
from shapely.ops import substring

from triptracker.config import TrackerConfig
from triptracker.errors import MalformedGeometry
from triptracker.geo.geometry import (
    angle_difference,
    bearing,
    distance_between,
    distance_from_line,
    path_length,
    to_linestring,
)
from triptracker.models import AlignedStep, Coordinates, Leg, LegSegment, Step, StepSegment
from triptracker.tracking.segments import get_leg_coordinates

logger = logging.getLogger(__name__)

_step_segment_cache: "weakref.WeakKeyDictionary[Leg, list[StepSegment]]" = weakref.WeakKeyDictionary()
_step_segment_cache_lock = threading.Lock()


def get_step_segments(leg: Leg) -> list[StepSegment]:
    """Split *leg* into the spans between its steps.

    The waypoints are the leg origin, every step, then the leg destination.
    Each segment records the step reached at its end (``None`` for the
    destination), so when the origin coincides with the first step a
    zero-length segment carries the ``DEPART`` step.
    """
    with _step_segment_cache_lock:
        cached = _step_segment_cache.get(leg)
    if cached is not None:
        return cached

    waypoints: list[tuple[Coordinates, Optional[Step]]] = [(leg.from_place.coordinates, None)]
    waypoints.extend((step.coordinates, step) for step in leg.steps)
    waypoints.append((leg.to_place.coordinates, None))

    ordinals = _waypoint_ordinals(leg, [coord for coord, _ in waypoints])
    segments = [
        StepSegment(start=start, end=end, ordinal=ordinal, step=step)
        for (start, _), (end, step), ordinal in zip(waypoints[:-1], waypoints[1:], ordinals[1:])
    ]

    with _step_segment_cache_lock:
        _step_segment_cache.setdefault(leg, segments)
        return _step_segment_cache[leg]


def _waypoint_ordinals(leg: Leg, points: list[Coordinates]) -> list[float]:
    """Distance along the leg (meters) of each waypoint, non-decreasing.

    Each waypoint is projected onto the remainder of the leg after the
    previous one, so a route that crosses itself still orders correctly.
    Falls back to straight-line distances when the geometry is unusable.
    """
    try:
        line = to_linestring(get_leg_coordinates(leg))
    except MalformedGeometry:
        line = None

    if line is None or line.is_empty or line.length == 0:
        ordinals = [0.0]
        for start, end in zip(points[:-1], points[1:]):
            ordinals.append(ordinals[-1] + distance_between(start, end))
        return ordinals

    scale = leg.distance or path_length(points)
    ordinals = []
    offset = 0.0  # normalized position of the previous waypoint
    for point in points:
        rest = substring(line, offset, 1.0, normalized=True)
        if rest.geom_type == "LineString" and rest.length > 0:
            fraction = rest.project(Point(point.lon, point.lat), normalized=True)
            offset = offset + fraction * (1.0 - offset)
        ordinals.append(offset * scale)
    return ordinals


def align_position_to_step(
    position: Coordinates,
    leg: Leg,
    travel_segment: Optional[LegSegment],
    config: TrackerConfig,
) -> Optional[AlignedStep]:
    """Match *position* to the step the traveler is heading for.

    Step segments farther than ``config.step_search_radius`` are ignored, as
    are segments whose bearing differs from the direction of travel (the
    bearing of *travel_segment*) by more than
    ``config.step_bearing_tolerance``; this keeps a route that crosses
    itself from matching the wrong pass.  The nearest remaining segment
    wins, with ties going to the earlier one.

    Returns ``None`` when no step segment qualifies.
    """
    travel_bearing: Optional[float] = None
    if travel_segment is not None and travel_segment.start != travel_segment.end:
        travel_bearing = bearing(travel_segment.start, travel_segment.end)

    best: Optional[StepSegment] = None
    best_distance = float("inf")
    for segment in get_step_segments(leg):
        distance = distance_from_line(segment.start, segment.end, position)
        if distance > config.step_search_radius:
            continue
        if travel_bearing is not None and segment.start != segment.end:
            segment_bearing = bearing(segment.start, segment.end)
            if angle_difference(travel_bearing, segment_bearing) > config.step_bearing_tolerance:
                continue
        if distance < best_distance:
            best = segment
            best_distance = distance

    if best is None:
        logger.debug("No step within %.0f m of %s", config.step_search_radius, position)
        return None

    return AlignedStep(
        distance=distance_between(position, best.end),
        ordinal=best.ordinal,
        step=best.step,
    )
