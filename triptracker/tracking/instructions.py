"""Guidance text for a traveler, e.g.

    "UPCOMING: CONTINUE on Langley Drive"
    "IMMEDIATE: RIGHT on service road"
    "ARRIVED: Gwinnett Justice Center (Central)"
    "Head to Gwinnett Justice Center (Central)"
    "Your stop is coming up (Lawrenceville Hwy)"

Instructions are a closed set of variants keyed by ``InstructionKind``;
``render_instruction`` is the single place that turns one into text.
Locale is carried on every variant; only English text is built today.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from triptracker.config import DEFAULT_LOCALE, TrackerConfig
from triptracker.models import AlignedStep, Step

TRIP_INSTRUCTION_IMMEDIATE_PREFIX = "IMMEDIATE: "
TRIP_INSTRUCTION_UPCOMING_PREFIX = "UPCOMING: "
TRIP_INSTRUCTION_ARRIVED_PREFIX = "ARRIVED: "
NO_INSTRUCTION = "NO_INSTRUCTION"


class InstructionKind(str, enum.Enum):
    ON_TRACK = "ON_TRACK"
    ALIGHT_SOON = "ALIGHT_SOON"
    DEVIATED = "DEVIATED"
    ARRIVED = "ARRIVED"


@dataclass(frozen=True)
class OnTrackInstruction:
    """Approaching a street step, or a destination not yet reached."""
    kind: ClassVar[InstructionKind] = InstructionKind.ON_TRACK
    distance: float
    prefix: str
    step: Optional[Step] = None
    location_name: Optional[str] = None
    locale: str = DEFAULT_LOCALE


@dataclass(frozen=True)
class ArrivedInstruction:
    kind: ClassVar[InstructionKind] = InstructionKind.ARRIVED
    distance: float
    location_name: str
    locale: str = DEFAULT_LOCALE


@dataclass(frozen=True)
class AlightSoonInstruction:
    """Prepare to get off a transit vehicle."""
    kind: ClassVar[InstructionKind] = InstructionKind.ALIGHT_SOON
    stop_name: str
    locale: str = DEFAULT_LOCALE


@dataclass(frozen=True)
class DeviatedInstruction:
    kind: ClassVar[InstructionKind] = InstructionKind.DEVIATED
    location_name: str
    locale: str = DEFAULT_LOCALE


TripInstruction = Union[
    OnTrackInstruction,
    ArrivedInstruction,
    AlightSoonInstruction,
    DeviatedInstruction,
]


def build_instruction(
    aligned: Optional[AlignedStep],
    destination_name: Optional[str],
    config: TrackerConfig,
    locale: str = DEFAULT_LOCALE,
) -> Optional[TripInstruction]:
    """Build the on-track instruction for an aligned step.

    Within ``config.immediate_radius`` the prefix is ``ARRIVED:`` for the
    destination and ``IMMEDIATE:`` for a street step; within
    ``config.upcoming_radius`` it is ``UPCOMING:``.  Anything farther (or no
    alignment at all) yields no instruction.
    """
    if aligned is None or aligned.distance > config.upcoming_radius:
        return None

    immediate = aligned.distance <= config.immediate_radius
    if aligned.step is not None:
        prefix = TRIP_INSTRUCTION_IMMEDIATE_PREFIX if immediate else TRIP_INSTRUCTION_UPCOMING_PREFIX
        return OnTrackInstruction(
            distance=aligned.distance,
            prefix=prefix,
            step=aligned.step,
            locale=locale,
        )

    if not destination_name:
        return None
    if immediate:
        return ArrivedInstruction(
            distance=aligned.distance,
            location_name=destination_name,
            locale=locale,
        )
    return OnTrackInstruction(
        distance=aligned.distance,
        prefix=TRIP_INSTRUCTION_UPCOMING_PREFIX,
        location_name=destination_name,
        locale=locale,
    )


def render_instruction(instruction: Optional[TripInstruction]) -> str:
    """Text for an instruction; ``NO_INSTRUCTION`` when there is none."""
    if instruction is None:
        return NO_INSTRUCTION
    if isinstance(instruction, OnTrackInstruction):
        if instruction.step is not None:
            step = instruction.step
            direction = (
                f"Head {step.absolute_direction}"
                if step.relative_direction == "DEPART"
                else step.relative_direction
            )
            return f"{instruction.prefix}{direction} on {step.street_name}"
        if instruction.location_name is not None:
            return f"{instruction.prefix}{instruction.location_name}"
        return NO_INSTRUCTION
    if isinstance(instruction, ArrivedInstruction):
        return f"{TRIP_INSTRUCTION_ARRIVED_PREFIX}{instruction.location_name}"
    if isinstance(instruction, AlightSoonInstruction):
        return f"Your stop is coming up ({instruction.stop_name})"
    if isinstance(instruction, DeviatedInstruction):
        return f"Head to {instruction.location_name}"
    raise TypeError(f"Unknown instruction type: {type(instruction).__name__}")
