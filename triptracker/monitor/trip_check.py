"""Per-trip job run by the fleet workers, and the collaborators it talks to.

The trip source and notification sink are narrow contracts: the tracker
only reads itineraries and journeys, and only hands status tuples to the
sink.  ``SqliteTripStore`` implements both for local use.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from triptracker.config import TrackerConfig
from triptracker.models import MonitoredTrip, TripStatus
from triptracker.tracking.analysis import TripAnalysis, analyze_trip
from triptracker.tracking.instructions import TripInstruction

logger = logging.getLogger(__name__)


class TripSource(Protocol):
    """Read access to monitored trips."""

    def monitored_trip_ids(self) -> Sequence[str]:
        """Return the ids of every currently monitored trip (ids only)."""
        ...

    def load_trip(self, trip_id: str) -> MonitoredTrip:
        """Load the itinerary, journey and rider profile for one trip."""
        ...


class NotificationSink(Protocol):
    """Receives the outcome of each trip analysis."""

    def previous_status(self, trip_id: str) -> Optional[TripStatus]:
        ...

    def notify(
        self,
        trip_id: str,
        status: TripStatus,
        instruction: Optional[TripInstruction],
        previous_status: Optional[TripStatus],
    ) -> None:
        ...


class CheckMonitoredTrip:
    """Analyze one monitored trip and hand the result to the sink.

    Instances hold no per-trip state, so one instance is shared by every
    worker.  Errors propagate to the worker, which logs and skips the trip.
    """

    def __init__(
        self,
        source: TripSource,
        sink: NotificationSink,
        config: TrackerConfig,
    ) -> None:
        self._source = source
        self._sink = sink
        self._config = config

    def __call__(self, trip_id: str) -> TripAnalysis:
        trip = self._source.load_trip(trip_id)
        analysis = analyze_trip(trip, self._config)
        previous = self._sink.previous_status(trip_id)
        if previous != analysis.status:
            logger.info(
                "Trip %s status changed: %s -> %s",
                trip_id,
                previous.value if previous else None,
                analysis.status.value,
            )
        self._sink.notify(trip_id, analysis.status, analysis.instruction, previous)
        return analysis
