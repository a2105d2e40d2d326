"""Core data structures for the trip tracker."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from typing import Optional

from triptracker.config import DEFAULT_LOCALE


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in degrees."""
    lat: float
    lon: float

    @classmethod
    def of(cls, obj) -> Coordinates:
        """Build from anything exposing ``lat`` and ``lon`` attributes."""
        return cls(float(obj.lat), float(obj.lon))


@dataclass
class Place:
    """A leg origin or destination (street location or transit stop)."""
    name: str
    lat: float
    lon: float
    stop_id: Optional[str] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lon)


@dataclass
class Step:
    """A turn-by-turn waypoint within a leg."""
    lat: float
    lon: float
    street_name: str
    relative_direction: str  # DEPART, CONTINUE, LEFT, RIGHT, ...
    absolute_direction: str  # NORTH, SOUTHWEST, ...
    distance: float = 0.0  # meters from the previous step

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lon)


@dataclass(eq=False)
class Leg:
    """One mode-homogeneous part of an itinerary.

    Compared by identity: derived segments are cached per instance.
    """
    mode: str
    start_time: datetime.datetime
    end_time: datetime.datetime
    duration: float  # seconds
    distance: float  # meters
    from_place: Place
    to_place: Place
    geometry: str  # encoded polyline, precision 5
    steps: list[Step] = field(default_factory=list)
    intermediate_stops: list[Place] = field(default_factory=list)
    transit_leg: bool = False
    route: Optional[str] = None


@dataclass(eq=False)
class Itinerary:
    """A planned trip: ordered legs between an overall start and end."""
    legs: list[Leg]
    start_time: datetime.datetime
    end_time: datetime.datetime

    @property
    def destination(self) -> Optional[Place]:
        return self.legs[-1].to_place if self.legs else None


@dataclass
class LegSegment:
    """A sub-range of a leg's geometry with its share of the leg duration."""
    start: Coordinates
    end: Coordinates
    time_in_segment: float  # seconds to traverse
    cumulative_time: float  # seconds from leg start to segment end
    mode: str

    @property
    def start_time_offset(self) -> float:
        """Seconds from leg start to segment start."""
        return self.cumulative_time - self.time_in_segment


@dataclass
class StepSegment:
    """Geometry between two consecutive steps (or leg ends and a step)."""
    start: Coordinates
    end: Coordinates
    ordinal: float  # meters along the leg, relative ordering only
    step: Optional[Step] = None  # step reached at ``end``; None = leg destination


@dataclass
class AlignedStep:
    """The step a traveler's position has been matched to."""
    distance: float  # meters to the upcoming step (or destination)
    ordinal: float
    step: Optional[Step] = None  # None when heading for the leg destination


@dataclass
class TrackingLocation:
    """One position sample recorded while a trip is monitored."""
    lat: float
    lon: float
    timestamp: datetime.datetime


@dataclass
class TrackedJourney:
    """Location history of one actively monitored trip."""
    trip_id: str
    locations: list[TrackingLocation] = field(default_factory=list)
    alert_ids: list[str] = field(default_factory=list)
    end_time: Optional[datetime.datetime] = None
    end_condition: Optional[str] = None  # "COMPLETED" / "FORCED"

    @property
    def latest_location(self) -> Optional[TrackingLocation]:
        return self.locations[-1] if self.locations else None


@dataclass
class RiderProfile:
    """Rider preferences that travel with the position analysis."""
    mobility_mode: Optional[str] = None
    locale: str = DEFAULT_LOCALE


@dataclass
class MonitoredTrip:
    """Everything needed to analyze one trip for one tick."""
    id: str
    itinerary: Itinerary
    journey: TrackedJourney
    rider: Optional[RiderProfile] = None


class TripStatus(str, enum.Enum):
    """Where the traveler is relative to the planned itinerary."""
    NO_STATUS = "NO_STATUS"
    ON_SCHEDULE = "ON_SCHEDULE"
    AHEAD_OF_SCHEDULE = "AHEAD_OF_SCHEDULE"
    BEHIND_SCHEDULE = "BEHIND_SCHEDULE"
    DEVIATED = "DEVIATED"
    ENDED = "ENDED"


@dataclass
class TravelerPosition:
    """The traveler's position resolved against the itinerary for one tick."""
    current_position: Coordinates
    current_time: datetime.datetime
    itinerary: Optional[Itinerary] = None
    expected_leg: Optional[Leg] = None
    next_leg: Optional[Leg] = None
    leg_segment_from_position: Optional[LegSegment] = None
    leg_segment_from_time: Optional[LegSegment] = None
    mobility_mode: Optional[str] = None
    locale: str = DEFAULT_LOCALE
