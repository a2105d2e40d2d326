"""Error types raised by the trip tracker.

Per-trip errors (geometry, mode, journey) are caught at the fleet worker
boundary so one bad trip never blocks a cycle.  Cycle errors (queue and
drain timeouts) abort the whole cycle.
"""

from __future__ import annotations


class TripTrackerError(Exception):
    """Base error for the trip tracker."""


class MalformedGeometry(TripTrackerError, ValueError):
    """An encoded leg geometry could not be decoded."""


class UnsupportedMode(TripTrackerError, ValueError):
    """No mode boundary is defined for a leg's transport mode."""

    def __init__(self, mode: str) -> None:
        super().__init__(f"Unknown mode: {mode}")
        self.mode = mode


class EmptyJourney(TripTrackerError, ValueError):
    """A tracked journey has no tracking locations to analyze."""


class CycleAborted(TripTrackerError, RuntimeError):
    """A fleet analysis cycle was abandoned."""


class QueueTimeout(CycleAborted):
    """The bounded trip queue did not accept an id within its timeout."""


class DrainTimeout(CycleAborted):
    """Workers did not finish the queued trips within the drain ceiling."""
