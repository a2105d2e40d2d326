"""Shared fixtures: an OTP-style walk itinerary and a matching GPS trace."""

from __future__ import annotations

import datetime

import pytest

from triptracker.geo.geometry import encode_polyline
from triptracker.models import Coordinates

T0 = datetime.datetime(2026, 3, 1, 8, 0, tzinfo=datetime.timezone.utc)
T0_MS = int(T0.timestamp() * 1000)
LON = -84.39


@pytest.fixture
def itinerary_json():
    """A 120 s / 150 m walk north ending at "Five Points"."""
    points = [Coordinates(33.75, LON), Coordinates(33.7505, LON), Coordinates(33.75135, LON)]
    return {
        "startTime": T0_MS,
        "endTime": T0_MS + 120_000,
        "legs": [
            {
                "mode": "WALK",
                "startTime": T0_MS,
                "endTime": T0_MS + 120_000,
                "duration": 120.0,
                "distance": 150.0,
                "from": {"name": "Origin", "lat": 33.75, "lon": LON},
                "to": {"name": "Five Points", "lat": 33.75135, "lon": LON, "stopId": "MARTA:5"},
                "legGeometry": {"points": encode_polyline(points), "length": 3},
                "steps": [
                    {
                        "lat": 33.75,
                        "lon": LON,
                        "streetName": "Peachtree St",
                        "relativeDirection": "DEPART",
                        "absoluteDirection": "NORTH",
                        "distance": 100.0,
                    },
                    {
                        "lat": 33.751,
                        "lon": LON,
                        "streetName": "Baker St",
                        "relativeDirection": "LEFT",
                        "absoluteDirection": "WEST",
                        "distance": 35.0,
                    },
                ],
                "transitLeg": False,
            }
        ],
    }


@pytest.fixture
def trace_csv(tmp_path):
    """Trace CSV walking the itinerary on schedule, plus one incomplete row."""
    path = tmp_path / "trace.csv"
    path.write_text(
        "lat,lon,timestamp\n"
        f"33.7501,{LON},2026-03-01T08:00:10Z\n"
        f"33.75067,{LON},2026-03-01T08:01:00Z\n"
        f",{LON},2026-03-01T08:01:10Z\n"
        f"33.75095,{LON},2026-03-01T08:01:30Z\n"
    )
    return path
