"""One analysis tick: position -> status -> instruction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from triptracker.config import TrackerConfig
from triptracker.geo.geometry import distance_between
from triptracker.models import MonitoredTrip, Place, TravelerPosition, TripStatus
from triptracker.tracking.instructions import (
    AlightSoonInstruction,
    DeviatedInstruction,
    TripInstruction,
    build_instruction,
)
from triptracker.tracking.position import resolve_position
from triptracker.tracking.status import get_trip_status
from triptracker.tracking.steps import align_position_to_step

logger = logging.getLogger(__name__)


@dataclass
class TripAnalysis:
    """Status and guidance for one trip at one tick."""
    status: TripStatus
    instruction: Optional[TripInstruction] = None
    position: Optional[TravelerPosition] = None


def analyze_trip(trip: MonitoredTrip, config: TrackerConfig) -> TripAnalysis:
    """Analyze a monitored trip at its most recent tracking sample.

    A journey that has been ended is reported as ``ENDED`` without looking
    at its locations.  Otherwise raises ``EmptyJourney`` when there are no
    locations and ``UnsupportedMode`` for legs with an unknown mode.
    """
    if trip.journey.end_time is not None:
        logger.debug("Trip %s journey ended (%s)", trip.id, trip.journey.end_condition)
        return TripAnalysis(status=TripStatus.ENDED)

    position = resolve_position(trip.journey, trip.itinerary, trip.rider)
    return analyze_position(position, config)


def analyze_position(position: TravelerPosition, config: TrackerConfig) -> TripAnalysis:
    """Classify a resolved position and build the matching instruction."""
    status = get_trip_status(position, config)
    return TripAnalysis(
        status=status,
        instruction=build_trip_instruction(position, status, config),
        position=position,
    )


def build_trip_instruction(
    position: TravelerPosition,
    status: TripStatus,
    config: TrackerConfig,
) -> Optional[TripInstruction]:
    """Pick the instruction for a classified position.

    Deviated travelers are pointed at the leg destination.  On transit legs
    the only guidance is the alight-soon warning near the alighting stop;
    on street legs the traveler's position is aligned to the next step.
    """
    leg = position.expected_leg
    if leg is None or status in (TripStatus.NO_STATUS, TripStatus.ENDED):
        return None

    if status == TripStatus.DEVIATED:
        return DeviatedInstruction(
            location_name=_waypoint_name(position),
            locale=position.locale,
        )

    if leg.transit_leg:
        remaining = distance_between(position.current_position, leg.to_place.coordinates)
        if remaining <= config.alight_soon_radius:
            return AlightSoonInstruction(stop_name=leg.to_place.name, locale=position.locale)
        return None

    travel_segment = position.leg_segment_from_position or position.leg_segment_from_time
    aligned = align_position_to_step(position.current_position, leg, travel_segment, config)
    return build_instruction(aligned, _place_label(leg.to_place), config, position.locale)


def _waypoint_name(position: TravelerPosition) -> str:
    """Name of the place a deviated traveler should head for."""
    leg = position.expected_leg
    if leg.to_place.name:
        return leg.to_place.name
    named = [step for step in leg.steps if step.street_name]
    if named:
        nearest = min(
            named,
            key=lambda step: distance_between(position.current_position, step.coordinates),
        )
        return nearest.street_name
    return _place_label(leg.to_place)


def _place_label(place: Place) -> str:
    """Place name, or its coordinates when it has none."""
    if place.name:
        return place.name
    return f"{place.lat:.5f}, {place.lon:.5f}"
