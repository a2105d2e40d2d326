"""Classify a resolved traveler position into a ``TripStatus``.

The status is recomputed from scratch on every tick; callers that need
transitions (e.g. newly deviated) compare consecutive results.
"""

from __future__ import annotations

import datetime

from triptracker.config import TrackerConfig
from triptracker.errors import UnsupportedMode
from triptracker.geo.geometry import distance_from_line
from triptracker.models import Coordinates, LegSegment, TravelerPosition, TripStatus


def get_trip_status(position: TravelerPosition, config: TrackerConfig) -> TripStatus:
    """Define the trip status from the traveler's position and time.

    - no expected leg: ``NO_STATUS``
    - on the nearest segment (within the mode boundary): ahead, behind or on
      schedule depending on where the current time falls relative to that
      segment's scheduled window
    - otherwise on the segment expected at this time: ``ON_SCHEDULE``
    - otherwise ``DEVIATED``

    Raises ``UnsupportedMode`` for a leg mode without a boundary.
    """
    leg = position.expected_leg
    if leg is None:
        return TripStatus.NO_STATUS

    segment = position.leg_segment_from_position
    if segment is not None and is_within_mode_boundary(position.current_position, segment, config):
        window_start = leg.start_time + datetime.timedelta(seconds=segment.start_time_offset)
        window_end = leg.start_time + datetime.timedelta(seconds=segment.cumulative_time)
        if position.current_time < window_start:
            return TripStatus.AHEAD_OF_SCHEDULE
        if position.current_time > window_end:
            return TripStatus.BEHIND_SCHEDULE
        return TripStatus.ON_SCHEDULE

    # The time-based match only ever confirms ON_SCHEDULE; it never reports
    # ahead or behind.
    segment = position.leg_segment_from_time
    if segment is not None and is_within_mode_boundary(position.current_position, segment, config):
        return TripStatus.ON_SCHEDULE

    return TripStatus.DEVIATED


def is_within_mode_boundary(
    current_position: Coordinates,
    segment: LegSegment,
    config: TrackerConfig,
) -> bool:
    """True if the position is within the on-track distance for the segment's mode."""
    distance = distance_from_line(segment.start, segment.end, current_position)
    return distance <= get_mode_boundary(segment.mode, config)


def get_mode_boundary(mode: str, config: TrackerConfig) -> float:
    """Acceptable off-route distance in meters for *mode* (case-insensitive)."""
    try:
        return config.mode_boundaries[mode.upper()]
    except KeyError:
        raise UnsupportedMode(mode) from None


def get_segment_time_interval(segment: LegSegment) -> float:
    """Seconds from leg start to the middle of *segment*."""
    return segment.cumulative_time - segment.time_in_segment / 2
