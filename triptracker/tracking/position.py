"""Resolve a traveler's latest tracking sample against an itinerary."""

from __future__ import annotations

import datetime
import logging
from typing import Optional

from triptracker.config import DEFAULT_LOCALE
from triptracker.errors import EmptyJourney
from triptracker.geo.geometry import distance_from_line
from triptracker.models import (
    Coordinates,
    Itinerary,
    Leg,
    RiderProfile,
    TrackedJourney,
    TravelerPosition,
)
from triptracker.tracking.segments import (
    create_segments,
    get_segment_from_position,
    get_segment_from_time,
)

logger = logging.getLogger(__name__)


def resolve_position(
    journey: TrackedJourney,
    itinerary: Itinerary,
    rider: Optional[RiderProfile] = None,
) -> TravelerPosition:
    """Build the ``TravelerPosition`` for the journey's most recent sample.

    Raises
    ------
    EmptyJourney
        If the journey has no tracking locations.
    """
    latest = journey.latest_location
    if latest is None:
        raise EmptyJourney(f"Tracked journey {journey.trip_id!r} has no locations")

    return position_at(
        Coordinates.of(latest),
        latest.timestamp,
        itinerary,
        rider,
    )


def position_at(
    current_position: Coordinates,
    current_time: datetime.datetime,
    itinerary: Itinerary,
    rider: Optional[RiderProfile] = None,
) -> TravelerPosition:
    """Resolve an explicit position and time against *itinerary*."""
    expected_leg = get_expected_leg(current_position, current_time, itinerary)

    position = TravelerPosition(
        current_position=current_position,
        current_time=current_time,
        itinerary=itinerary,
        expected_leg=expected_leg,
    )

    if expected_leg is not None:
        position.next_leg = get_next_leg(expected_leg, itinerary)
        segments = create_segments(expected_leg)
        position.leg_segment_from_position = get_segment_from_position(segments, current_position)
        position.leg_segment_from_time = get_segment_from_time(
            expected_leg.start_time, current_time, segments
        )

    if rider is not None:
        position.mobility_mode = rider.mobility_mode
        position.locale = rider.locale or DEFAULT_LOCALE

    return position


def get_expected_leg(
    current_position: Coordinates,
    current_time: datetime.datetime,
    itinerary: Itinerary,
) -> Optional[Leg]:
    """Return the leg the traveler should be on at *current_time*.

    Only legs whose scheduled window contains the time qualify.  When
    several do (legs meeting at a boundary instant), the one whose geometry
    is closest to *current_position* wins.
    """
    candidates = [
        leg for leg in itinerary.legs
        if leg.start_time <= current_time <= leg.end_time
    ]
    if not candidates:
        logger.debug("No leg scheduled at %s", current_time.isoformat())
        return None
    if len(candidates) == 1:
        return candidates[0]
    return min(candidates, key=lambda leg: _distance_to_leg(leg, current_position))


def _distance_to_leg(leg: Leg, position: Coordinates) -> float:
    return min(
        distance_from_line(segment.start, segment.end, position)
        for segment in create_segments(leg)
    )


def get_next_leg(leg: Leg, itinerary: Itinerary) -> Optional[Leg]:
    """Return the leg after *leg* in the itinerary, or ``None`` if it is last."""
    for i, candidate in enumerate(itinerary.legs):
        if candidate is leg:
            return itinerary.legs[i + 1] if i + 1 < len(itinerary.legs) else None
    return None
