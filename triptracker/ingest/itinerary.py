"""Parse OTP-style itinerary JSON into the tracker's data model.

Accepts either a bare itinerary object or a full plan response
(``{"plan": {"itineraries": [...]}}``), in which case one itinerary is
picked by index.  Times are epoch milliseconds and are converted to
timezone-aware UTC datetimes.
"""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from triptracker.models import Itinerary, Leg, Place, Step

logger = logging.getLogger(__name__)


# ── Wire models ─────────────────────────────────────────────────────


class _OtpModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlaceIn(_OtpModel):
    name: str = ""
    lat: float
    lon: float
    stop_id: Optional[str] = None


class StepIn(_OtpModel):
    lat: float
    lon: float
    street_name: str = ""
    relative_direction: str = "CONTINUE"
    absolute_direction: str = ""
    distance: float = 0.0


class LegGeometryIn(_OtpModel):
    points: str
    length: Optional[int] = None


class LegIn(_OtpModel):
    mode: str
    start_time: int  # epoch ms
    end_time: int  # epoch ms
    duration: Optional[float] = None  # seconds
    distance: float = 0.0
    from_place: PlaceIn = Field(alias="from")
    to_place: PlaceIn = Field(alias="to")
    leg_geometry: LegGeometryIn
    steps: list[StepIn] = []
    intermediate_stops: list[PlaceIn] = []
    transit_leg: bool = False
    route: Optional[str] = None


class ItineraryIn(_OtpModel):
    start_time: int  # epoch ms
    end_time: int  # epoch ms
    legs: list[LegIn]


# ── Conversion ──────────────────────────────────────────────────────


def _from_epoch_ms(ms: int) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(ms / 1000, tz=datetime.timezone.utc)


def _place(p: PlaceIn) -> Place:
    return Place(name=p.name, lat=p.lat, lon=p.lon, stop_id=p.stop_id)


def _leg(raw: LegIn) -> Leg:
    start = _from_epoch_ms(raw.start_time)
    end = _from_epoch_ms(raw.end_time)
    duration = raw.duration if raw.duration is not None else (end - start).total_seconds()
    return Leg(
        mode=raw.mode.upper(),
        start_time=start,
        end_time=end,
        duration=duration,
        distance=raw.distance,
        from_place=_place(raw.from_place),
        to_place=_place(raw.to_place),
        geometry=raw.leg_geometry.points,
        steps=[
            Step(
                lat=s.lat,
                lon=s.lon,
                street_name=s.street_name,
                relative_direction=s.relative_direction,
                absolute_direction=s.absolute_direction,
                distance=s.distance,
            )
            for s in raw.steps
        ],
        intermediate_stops=[_place(p) for p in raw.intermediate_stops],
        transit_leg=raw.transit_leg,
        route=raw.route,
    )


def parse_itinerary(data: dict[str, Any], index: int = 0) -> Itinerary:
    """Validate itinerary JSON and convert it to an ``Itinerary``.

    Raises ``pydantic.ValidationError`` on malformed input and
    ``IndexError`` when a plan response has no itinerary at *index*.
    """
    if "plan" in data:
        data = data["plan"]["itineraries"][index]
    raw = ItineraryIn.model_validate(data)
    return Itinerary(
        legs=[_leg(leg) for leg in raw.legs],
        start_time=_from_epoch_ms(raw.start_time),
        end_time=_from_epoch_ms(raw.end_time),
    )


def load_itinerary_file(path: Path, index: int = 0) -> Itinerary:
    """Read and parse an itinerary JSON file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    itinerary = parse_itinerary(data, index)
    logger.info("Loaded itinerary with %d legs from %s", len(itinerary.legs), path)
    return itinerary
