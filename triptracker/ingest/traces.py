"""Load recorded GPS traces (``lat,lon,timestamp`` CSV) as tracking locations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import pandas as pd

from triptracker.models import TrackingLocation

logger = logging.getLogger(__name__)

TRACE_COLUMNS = ("lat", "lon", "timestamp")


def trace_from_frame(df: pd.DataFrame) -> list[TrackingLocation]:
    """Convert a trace DataFrame to tracking locations, oldest first.

    Timestamps may be ISO strings or epoch milliseconds; naive values are
    taken as UTC.  Rows with a missing or unparseable value are dropped.
    """
    missing = [c for c in TRACE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Trace is missing columns: {', '.join(missing)}")

    df = df.loc[:, list(TRACE_COLUMNS)].copy()
    if pd.api.types.is_numeric_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True, errors="coerce")
    else:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    df["lat"] = pd.to_numeric(df["lat"], errors="coerce")
    df["lon"] = pd.to_numeric(df["lon"], errors="coerce")

    before = len(df)
    df = df.dropna().sort_values("timestamp", kind="stable")
    if len(df) < before:
        logger.warning("Dropped %d incomplete trace rows", before - len(df))

    return [
        TrackingLocation(lat=float(row.lat), lon=float(row.lon), timestamp=row.timestamp.to_pydatetime())
        for row in df.itertuples(index=False)
    ]


def load_trace_csv(path: Union[str, Path]) -> list[TrackingLocation]:
    """Read a trace CSV file."""
    locations = trace_from_frame(pd.read_csv(path))
    logger.info("Loaded %d tracking locations from %s", len(locations), path)
    return locations
