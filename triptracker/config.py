"""Constants and configuration for the trip tracker."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping

# ── Paths ──────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DATA_DIR / "trips.sqlite"

# ── Mode boundaries (meters off-route still counted as on track) ──────
TRIP_TRACKING_WALK_BOUNDARY = 5
TRIP_TRACKING_BICYCLE_BOUNDARY = 10
TRIP_TRACKING_BUS_BOUNDARY = 20
TRIP_TRACKING_SUBWAY_BOUNDARY = 100
TRIP_TRACKING_TRAM_BOUNDARY = 100
TRIP_TRACKING_RAIL_BOUNDARY = 200

# ── Instructions ──────────────────────────────────────────────────────
TRIP_INSTRUCTION_IMMEDIATE_RADIUS = 2
TRIP_INSTRUCTION_UPCOMING_RADIUS = 10
TRIP_INSTRUCTION_ALIGHT_SOON_RADIUS = 250
STEP_SEARCH_RADIUS_M = 30  # ignore steps farther than this from the traveler
STEP_BEARING_TOLERANCE_DEG = 45
DEFAULT_LOCALE = "en"

# ── Fleet monitoring ──────────────────────────────────────────────────
MONITOR_WORKER_COUNT = os.cpu_count() or 1
MONITOR_QUEUE_INSERT_TIMEOUT_SECONDS = 30.0
MONITOR_DRAIN_POLL_SECONDS = 0.25
MONITOR_PROGRESS_LOG_SECONDS = 60.0
MONITOR_DRAIN_TIMEOUT_SECONDS = 15 * 60.0
MONITOR_INTERVAL_SECONDS = 60.0


def _default_mode_boundaries() -> dict[str, float]:
    return {
        "WALK": TRIP_TRACKING_WALK_BOUNDARY,
        "BICYCLE": TRIP_TRACKING_BICYCLE_BOUNDARY,
        "BUS": TRIP_TRACKING_BUS_BOUNDARY,
        "SUBWAY": TRIP_TRACKING_SUBWAY_BOUNDARY,
        "TRAM": TRIP_TRACKING_TRAM_BOUNDARY,
        "RAIL": TRIP_TRACKING_RAIL_BOUNDARY,
    }


# Environment variable -> TrackerConfig field, for scalar settings.
_ENV_FIELDS: dict[str, str] = {
    "TRIP_INSTRUCTION_IMMEDIATE_RADIUS": "immediate_radius",
    "TRIP_INSTRUCTION_UPCOMING_RADIUS": "upcoming_radius",
    "TRIP_INSTRUCTION_ALIGHT_SOON_RADIUS": "alight_soon_radius",
    "TRIP_TRACKING_STEP_SEARCH_RADIUS": "step_search_radius",
    "TRIP_TRACKING_STEP_BEARING_TOLERANCE": "step_bearing_tolerance",
    "MONITOR_WORKER_COUNT": "worker_count",
    "MONITOR_QUEUE_CAPACITY": "queue_capacity",
    "MONITOR_QUEUE_INSERT_TIMEOUT_SECONDS": "queue_insert_timeout",
    "MONITOR_DRAIN_POLL_SECONDS": "drain_poll_interval",
    "MONITOR_PROGRESS_LOG_SECONDS": "progress_log_interval",
    "MONITOR_DRAIN_TIMEOUT_SECONDS": "drain_timeout",
}


@dataclass(frozen=True)
class TrackerConfig:
    """Thresholds and limits passed explicitly into the analysis entry points.

    Defaults come from the module constants above.  ``queue_capacity``
    defaults to the worker count when left at 0.
    """
    mode_boundaries: dict[str, float] = field(default_factory=_default_mode_boundaries)
    immediate_radius: float = TRIP_INSTRUCTION_IMMEDIATE_RADIUS
    upcoming_radius: float = TRIP_INSTRUCTION_UPCOMING_RADIUS
    alight_soon_radius: float = TRIP_INSTRUCTION_ALIGHT_SOON_RADIUS
    step_search_radius: float = STEP_SEARCH_RADIUS_M
    step_bearing_tolerance: float = STEP_BEARING_TOLERANCE_DEG
    worker_count: int = MONITOR_WORKER_COUNT
    queue_capacity: int = 0
    queue_insert_timeout: float = MONITOR_QUEUE_INSERT_TIMEOUT_SECONDS
    drain_poll_interval: float = MONITOR_DRAIN_POLL_SECONDS
    progress_log_interval: float = MONITOR_PROGRESS_LOG_SECONDS
    drain_timeout: float = MONITOR_DRAIN_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.queue_capacity <= 0:
            object.__setattr__(self, "queue_capacity", self.worker_count)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TrackerConfig:
        """Build a config, overriding defaults from environment variables.

        Mode boundaries are read from ``TRIP_TRACKING_<MODE>_BOUNDARY``;
        every other setting uses the names in ``_ENV_FIELDS``.
        """
        env = os.environ if environ is None else environ
        boundaries = _default_mode_boundaries()
        for mode in list(boundaries):
            raw = env.get(f"TRIP_TRACKING_{mode}_BOUNDARY")
            if raw is not None:
                boundaries[mode] = float(raw)

        types = {f.name: f.type for f in fields(cls)}
        overrides: dict[str, object] = {}
        for var, name in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is None:
                continue
            overrides[name] = int(raw) if types[name] in ("int", int) else float(raw)

        return cls(mode_boundaries=boundaries, **overrides)

    def with_overrides(self, **changes) -> TrackerConfig:
        """Return a copy with the given fields replaced."""
        if "worker_count" in changes and "queue_capacity" not in changes:
            changes["queue_capacity"] = 0
        return replace(self, **changes)
