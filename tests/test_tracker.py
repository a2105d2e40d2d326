"""Tests for position resolution, status classification and instructions.

Leg geometries are built from short straight runs of latitude at a fixed
longitude, so distances along the route are easy to reason about
(1e-5 degrees of latitude is about 1.11 m).
"""

from __future__ import annotations

import datetime

import pytest

from triptracker.config import TrackerConfig
from triptracker.errors import EmptyJourney, MalformedGeometry, UnsupportedMode
from triptracker.geo.geometry import (
    angle_difference,
    bearing,
    decode_polyline,
    destination_point,
    distance_from_line,
    encode_polyline,
    haversine,
)
from triptracker.models import (
    Coordinates,
    Itinerary,
    Leg,
    LegSegment,
    MonitoredTrip,
    Place,
    RiderProfile,
    Step,
    TrackedJourney,
    TrackingLocation,
    TravelerPosition,
    TripStatus,
)
from triptracker.tracking.analysis import analyze_position, analyze_trip
from triptracker.tracking.instructions import (
    NO_INSTRUCTION,
    AlightSoonInstruction,
    ArrivedInstruction,
    DeviatedInstruction,
    OnTrackInstruction,
    build_instruction,
    render_instruction,
)
from triptracker.tracking.position import get_expected_leg, get_next_leg, position_at, resolve_position
from triptracker.tracking.segments import (
    clear_segment_cache,
    create_segments,
    get_segment_from_position,
    get_segment_from_time,
)
from triptracker.tracking.status import get_mode_boundary, get_segment_time_interval, get_trip_status
from triptracker.tracking.steps import align_position_to_step, get_step_segments

T0 = datetime.datetime(2026, 3, 1, 8, 0, tzinfo=datetime.timezone.utc)
LON = -84.39


def _at(seconds: float) -> datetime.datetime:
    return T0 + datetime.timedelta(seconds=seconds)


def _pt(lat: float, lon: float = LON) -> Coordinates:
    return Coordinates(lat, lon)


def make_leg(
    lats: list[float],
    mode: str = "WALK",
    start: datetime.datetime = T0,
    duration: float = 120.0,
    distance: float = 150.0,
    steps: list[Step] | None = None,
    from_name: str = "Origin",
    to_name: str = "Five Points",
    transit: bool = False,
) -> Leg:
    points = [_pt(lat) for lat in lats]
    return Leg(
        mode=mode,
        start_time=start,
        end_time=start + datetime.timedelta(seconds=duration),
        duration=duration,
        distance=distance,
        from_place=Place(from_name, points[0].lat, points[0].lon),
        to_place=Place(to_name, points[-1].lat, points[-1].lon),
        geometry=encode_polyline(points),
        steps=steps or [],
        transit_leg=transit,
    )


def make_itinerary(*legs: Leg) -> Itinerary:
    return Itinerary(legs=list(legs), start_time=legs[0].start_time, end_time=legs[-1].end_time)


DEPART = Step(33.75, LON, "Peachtree St", "DEPART", "NORTH")
LEFT = Step(33.751, LON, "Baker St", "LEFT", "WEST", distance=111.0)


@pytest.fixture
def config():
    return TrackerConfig()


@pytest.fixture
def walk_leg():
    """120 s / ~150 m walk north, two geometry segments (~55.6 m then ~94.5 m)."""
    return make_leg([33.75, 33.7505, 33.75135], steps=[DEPART, LEFT])


@pytest.fixture
def walk_itinerary(walk_leg):
    return make_itinerary(walk_leg)


# ═══════════════════════════════════════════════════════════════════════
# Geometry
# ═══════════════════════════════════════════════════════════════════════


class TestGeometry:
    def test_haversine_same_point(self):
        assert haversine(33.75, LON, 33.75, LON) == 0.0

    def test_haversine_one_degree_latitude(self):
        assert haversine(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)

    def test_distance_from_line_perpendicular(self):
        d = distance_from_line(_pt(33.75), _pt(33.751), Coordinates(33.7505, LON + 0.0001))
        assert d == pytest.approx(haversine(33.7505, LON, 33.7505, LON + 0.0001), rel=1e-3)

    def test_distance_from_line_clamps_past_end(self):
        d = distance_from_line(Coordinates(0, 0), Coordinates(0, 0.001), Coordinates(0, 0.002))
        assert d == pytest.approx(haversine(0, 0.001, 0, 0.002), rel=1e-3)

    def test_distance_from_degenerate_line(self):
        d = distance_from_line(_pt(33.75), _pt(33.75), _pt(33.751))
        assert d == pytest.approx(haversine(33.75, LON, 33.751, LON))

    def test_bearing_cardinal(self):
        assert bearing(Coordinates(0, 0), Coordinates(1, 0)) == pytest.approx(0.0)
        assert bearing(Coordinates(0, 0), Coordinates(0, 1)) == pytest.approx(90.0)
        assert bearing(Coordinates(1, 0), Coordinates(0, 0)) == pytest.approx(180.0)

    def test_angle_difference_wraps(self):
        assert angle_difference(350, 10) == pytest.approx(20)
        assert angle_difference(0, 180) == pytest.approx(180)

    def test_destination_point(self):
        start = _pt(33.75)
        end = destination_point(start, 100.0, 90.0)
        assert haversine(start.lat, start.lon, end.lat, end.lon) == pytest.approx(100.0, rel=1e-6)
        assert bearing(start, end) == pytest.approx(90.0, abs=0.01)

    def test_destination_point_off_route_is_deviated(self, walk_itinerary, config):
        off = destination_point(_pt(33.75067), 50.0, 270.0)
        position = position_at(off, _at(60), walk_itinerary)
        assert get_trip_status(position, config) == TripStatus.DEVIATED


class TestPolyline:
    def test_decode_reference_polyline(self):
        coords = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
        assert [(c.lat, c.lon) for c in coords] == [
            pytest.approx((38.5, -120.2)),
            pytest.approx((40.7, -120.95)),
            pytest.approx((43.252, -126.453)),
        ]

    def test_encode_reference_polyline(self):
        coords = [Coordinates(38.5, -120.2), Coordinates(40.7, -120.95), Coordinates(43.252, -126.453)]
        assert encode_polyline(coords) == "_p~iF~ps|U_ulLnnqC_mqNvxq`@"

    def test_empty_string(self):
        assert decode_polyline("") == []

    def test_latitude_without_longitude(self):
        with pytest.raises(MalformedGeometry):
            decode_polyline("_p~iF")

    def test_truncated_value(self):
        with pytest.raises(MalformedGeometry):
            decode_polyline("_p~iF~ps|")

    def test_invalid_character(self):
        with pytest.raises(MalformedGeometry):
            decode_polyline("!!!!")


# ═══════════════════════════════════════════════════════════════════════
# Leg segments
# ═══════════════════════════════════════════════════════════════════════


class TestCreateSegments:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        clear_segment_cache()
        yield
        clear_segment_cache()

    def test_one_segment_per_vertex_pair(self, walk_leg):
        assert len(create_segments(walk_leg)) == 2

    def test_durations_sum_to_leg_duration(self, walk_leg):
        segments = create_segments(walk_leg)
        assert sum(s.time_in_segment for s in segments) == pytest.approx(walk_leg.duration)
        assert segments[-1].cumulative_time == walk_leg.duration

    def test_segments_are_contiguous(self, walk_leg):
        segments = create_segments(walk_leg)
        for prev, nxt in zip(segments, segments[1:]):
            assert prev.end == nxt.start
            assert prev.cumulative_time == pytest.approx(nxt.start_time_offset)

    def test_time_proportional_to_length(self, walk_leg):
        first, second = create_segments(walk_leg)
        # 0.0005 deg vs 0.00085 deg of latitude
        assert first.time_in_segment == pytest.approx(120 * 5 / 13.5, rel=1e-3)
        assert second.time_in_segment == pytest.approx(120 * 8.5 / 13.5, rel=1e-3)

    def test_segments_carry_leg_mode(self, walk_leg):
        assert {s.mode for s in create_segments(walk_leg)} == {"WALK"}

    def test_repeated_vertices_are_collapsed(self):
        leg = make_leg([33.75, 33.75, 33.751])
        segments = create_segments(leg)
        assert len(segments) == 1
        assert segments[0].time_in_segment == leg.duration

    def test_malformed_geometry_gives_degenerate_segment(self, walk_leg):
        walk_leg.geometry = "!!!!"
        segments = create_segments(walk_leg)
        assert len(segments) == 1
        assert segments[0].start == segments[0].end == walk_leg.from_place.coordinates
        assert segments[0].time_in_segment == 0.0

    def test_single_point_geometry_gives_degenerate_segment(self):
        leg = make_leg([33.75])
        (segment,) = create_segments(leg)
        assert segment.start == segment.end == _pt(33.75)
        assert segment.cumulative_time == 0.0

    def test_segments_are_cached_per_leg(self, walk_leg):
        assert create_segments(walk_leg) is create_segments(walk_leg)

    def test_equal_legs_do_not_share_cache(self):
        a = make_leg([33.75, 33.751])
        b = make_leg([33.75, 33.751])
        assert create_segments(a) is not create_segments(b)

    def test_cleared_cache_rebuilds_segments(self, walk_leg):
        first = create_segments(walk_leg)
        clear_segment_cache()
        rebuilt = create_segments(walk_leg)
        assert rebuilt is not first
        assert rebuilt == first

    def test_segment_time_interval_is_midpoint(self, walk_leg):
        first, second = create_segments(walk_leg)
        assert get_segment_time_interval(second) == pytest.approx(
            first.cumulative_time + second.time_in_segment / 2
        )


class TestSegmentLookup:
    def test_from_time(self, walk_leg):
        first, second = create_segments(walk_leg)
        assert get_segment_from_time(T0, _at(30), [first, second]) is first
        assert get_segment_from_time(T0, _at(60), [first, second]) is second

    def test_from_time_outside_leg(self, walk_leg):
        segments = create_segments(walk_leg)
        assert get_segment_from_time(T0, _at(-1), segments) is None
        assert get_segment_from_time(T0, _at(121), segments) is None

    def test_from_position(self, walk_leg):
        first, second = create_segments(walk_leg)
        assert get_segment_from_position([first, second], _pt(33.7502)) is first
        assert get_segment_from_position([first, second], _pt(33.7510)) is second

    def test_shared_vertex_belongs_to_later_segment(self, walk_leg):
        first, second = create_segments(walk_leg)
        assert get_segment_from_position([first, second], _pt(33.7505)) is second

    def test_from_position_empty(self):
        assert get_segment_from_position([], _pt(33.75)) is None


# ═══════════════════════════════════════════════════════════════════════
# Position resolution
# ═══════════════════════════════════════════════════════════════════════


class TestResolvePosition:
    def test_uses_latest_location(self, walk_itinerary):
        journey = TrackedJourney(
            trip_id="t1",
            locations=[
                TrackingLocation(33.7501, LON, _at(5)),
                TrackingLocation(33.7507, LON, _at(60)),
            ],
        )
        position = resolve_position(journey, walk_itinerary)
        assert position.current_position == _pt(33.7507)
        assert position.current_time == _at(60)
        assert position.expected_leg is walk_itinerary.legs[0]
        assert position.leg_segment_from_time is create_segments(walk_itinerary.legs[0])[1]

    def test_empty_journey(self, walk_itinerary):
        with pytest.raises(EmptyJourney):
            resolve_position(TrackedJourney(trip_id="t1"), walk_itinerary)

    def test_rider_profile_is_carried(self, walk_itinerary):
        rider = RiderProfile(mobility_mode="WChairE", locale="es")
        position = position_at(_pt(33.7501), _at(5), walk_itinerary, rider)
        assert position.mobility_mode == "WChairE"
        assert position.locale == "es"

    def test_no_leg_after_itinerary_end(self, walk_itinerary):
        position = position_at(_pt(33.7501), _at(200), walk_itinerary)
        assert position.expected_leg is None
        assert position.leg_segment_from_position is None
        assert position.leg_segment_from_time is None


class TestExpectedLeg:
    @pytest.fixture
    def two_legs(self, walk_leg):
        bus = make_leg(
            [33.75135, 33.76135],
            mode="BUS",
            start=walk_leg.end_time,
            duration=100.0,
            distance=1112.0,
            from_name="Five Points",
            to_name="North Ave",
            transit=True,
        )
        return make_itinerary(walk_leg, bus)

    def test_leg_scheduled_at_time(self, two_legs):
        walk, bus = two_legs.legs
        assert get_expected_leg(_pt(33.7502), _at(30), two_legs) is walk
        assert get_expected_leg(_pt(33.7550), _at(150), two_legs) is bus

    def test_boundary_instant_prefers_nearest_leg(self, two_legs):
        walk, bus = two_legs.legs
        assert get_expected_leg(_pt(33.7520), _at(120), two_legs) is bus
        assert get_expected_leg(_pt(33.7510), _at(120), two_legs) is walk

    def test_outside_itinerary(self, two_legs):
        assert get_expected_leg(_pt(33.75), _at(-10), two_legs) is None

    def test_next_leg(self, two_legs):
        walk, bus = two_legs.legs
        assert get_next_leg(walk, two_legs) is bus
        assert get_next_leg(bus, two_legs) is None


# ═══════════════════════════════════════════════════════════════════════
# Trip status
# ═══════════════════════════════════════════════════════════════════════


class TestTripStatus:
    def _status(self, itinerary, lat, seconds, config, lon=LON):
        position = position_at(Coordinates(lat, lon), _at(seconds), itinerary)
        return get_trip_status(position, config)

    def test_on_schedule_halfway(self, walk_itinerary, config):
        # halfway along the route at halfway through the leg
        assert self._status(walk_itinerary, 33.75067, 60, config) == TripStatus.ON_SCHEDULE

    def test_no_status_after_itinerary(self, walk_itinerary, config):
        assert self._status(walk_itinerary, 33.75067, 200, config) == TripStatus.NO_STATUS

    def test_ahead_of_schedule(self, walk_itinerary, config):
        # on the second segment while the schedule says the first
        assert self._status(walk_itinerary, 33.751, 10, config) == TripStatus.AHEAD_OF_SCHEDULE

    def test_behind_schedule(self, walk_itinerary, config):
        # still on the first segment near the end of the leg
        assert self._status(walk_itinerary, 33.7502, 100, config) == TripStatus.BEHIND_SCHEDULE

    def test_segment_start_at_window_start(self, walk_itinerary, config):
        leg = walk_itinerary.legs[0]
        for segment in create_segments(leg):
            now = leg.start_time + datetime.timedelta(seconds=segment.start_time_offset)
            position = position_at(segment.start, now, walk_itinerary)
            assert position.leg_segment_from_position is segment
            assert get_trip_status(position, config) == TripStatus.ON_SCHEDULE

    def test_segment_start_before_and_after_window(self, walk_itinerary, config):
        first, second = create_segments(walk_itinerary.legs[0])
        early = position_at(second.start, _at(second.start_time_offset - 1), walk_itinerary)
        late = position_at(first.start, _at(first.cumulative_time + 1), walk_itinerary)
        assert get_trip_status(early, config) == TripStatus.AHEAD_OF_SCHEDULE
        assert get_trip_status(late, config) == TripStatus.BEHIND_SCHEDULE

    def test_deviated(self, walk_itinerary, config):
        assert self._status(walk_itinerary, 33.76, 60, config, lon=-84.38) == TripStatus.DEVIATED

    def test_within_walk_boundary_is_not_deviated(self, walk_itinerary, config):
        # ~3.7 m east of the route
        assert self._status(walk_itinerary, 33.75067, 60, config, lon=LON + 0.00004) == TripStatus.ON_SCHEDULE

    def test_outside_walk_boundary_is_deviated(self, walk_itinerary, config):
        # ~9.3 m east of the route
        assert self._status(walk_itinerary, 33.75067, 60, config, lon=LON + 0.0001) == TripStatus.DEVIATED

    def test_wider_boundary_from_config(self, walk_itinerary):
        config = TrackerConfig.from_env({"TRIP_TRACKING_WALK_BOUNDARY": "15"})
        assert self._status(walk_itinerary, 33.75067, 60, config, lon=LON + 0.0001) == TripStatus.ON_SCHEDULE

    def test_time_match_only_confirms_on_schedule(self, walk_leg, config):
        first, _ = create_segments(walk_leg)
        position = TravelerPosition(
            current_position=_pt(33.7502),
            current_time=_at(110),
            expected_leg=walk_leg,
            leg_segment_from_position=None,
            leg_segment_from_time=first,
        )
        assert get_trip_status(position, config) == TripStatus.ON_SCHEDULE

    def test_unknown_mode(self, config):
        leg = make_leg([33.75, 33.751], mode="GONDOLA")
        itinerary = make_itinerary(leg)
        with pytest.raises(UnsupportedMode) as exc:
            self._status(itinerary, 33.7505, 60, config)
        assert exc.value.mode == "GONDOLA"


class TestModeBoundary:
    @pytest.mark.parametrize("mode, expected", [
        ("WALK", 5), ("BICYCLE", 10), ("BUS", 20), ("SUBWAY", 100), ("TRAM", 100), ("RAIL", 200),
    ])
    def test_defaults(self, config, mode, expected):
        assert get_mode_boundary(mode, config) == expected

    def test_case_insensitive(self, config):
        assert get_mode_boundary("walk", config) == 5

    def test_unknown(self, config):
        with pytest.raises(UnsupportedMode, match="Unknown mode: FERRY"):
            get_mode_boundary("FERRY", config)


# ═══════════════════════════════════════════════════════════════════════
# Step alignment
# ═══════════════════════════════════════════════════════════════════════


class TestStepSegments:
    def test_origin_steps_destination(self, walk_leg):
        segments = get_step_segments(walk_leg)
        assert [s.step for s in segments] == [DEPART, LEFT, None]
        assert segments[0].start == segments[0].end  # origin coincides with DEPART

    def test_ordinals_increase(self, walk_leg):
        ordinals = [s.ordinal for s in get_step_segments(walk_leg)]
        assert ordinals == sorted(ordinals)
        assert ordinals[-1] == pytest.approx(walk_leg.distance)

    def test_out_and_back_ordinals(self):
        back = Step(33.751, LON, "Back St", "UTURN_LEFT", "SOUTH")
        leg = make_leg([33.75, 33.751, 33.7502], steps=[DEPART, back], to_name="Trailhead")
        ordinals = [s.ordinal for s in get_step_segments(leg)]
        assert ordinals == sorted(ordinals)
        assert ordinals[1] == pytest.approx(leg.distance * 10 / 18, rel=1e-3)

    def test_malformed_geometry_falls_back(self, walk_leg):
        walk_leg.geometry = "!!!!"
        ordinals = [s.ordinal for s in get_step_segments(walk_leg)]
        assert ordinals == sorted(ordinals)
        assert ordinals[-1] == pytest.approx(haversine(33.75, LON, 33.75135, LON))


class TestAlignPositionToStep:
    def _align(self, leg, lat, config):
        travel = get_segment_from_position(create_segments(leg), _pt(lat))
        return align_position_to_step(_pt(lat), leg, travel, config)

    def test_aligns_to_upcoming_step(self, walk_leg, config):
        aligned = self._align(walk_leg, 33.75095, config)
        assert aligned.step is LEFT
        assert aligned.distance == pytest.approx(5.56, abs=0.05)

    def test_aligns_to_destination(self, walk_leg, config):
        aligned = self._align(walk_leg, 33.75134, config)
        assert aligned.step is None
        assert aligned.distance == pytest.approx(1.11, abs=0.05)

    def test_tie_goes_to_earlier_segment(self, walk_leg, config):
        # the origin is on both the DEPART and the first real step segment
        aligned = self._align(walk_leg, 33.75, config)
        assert aligned.step is DEPART
        assert aligned.distance == 0.0

    def test_nothing_within_search_radius(self, walk_leg, config):
        far = Coordinates(33.7505, LON + 0.001)  # ~92 m off route
        assert align_position_to_step(far, walk_leg, None, config) is None

    def test_direction_of_travel_picks_pass(self, config):
        back = Step(33.751, LON, "Back St", "UTURN_LEFT", "SOUTH")
        leg = make_leg([33.75, 33.751, 33.7502], steps=[DEPART, back], to_name="Trailhead")
        here = _pt(33.75025)
        northbound = LegSegment(_pt(33.75), _pt(33.751), 60.0, 60.0, "WALK")
        southbound = LegSegment(_pt(33.751), _pt(33.7502), 60.0, 120.0, "WALK")

        aligned = align_position_to_step(here, leg, southbound, config)
        assert aligned.step is None
        assert aligned.distance == pytest.approx(5.56, abs=0.05)

        aligned = align_position_to_step(here, leg, northbound, config)
        assert aligned.step is back


# ═══════════════════════════════════════════════════════════════════════
# Instructions
# ═══════════════════════════════════════════════════════════════════════


class TestBuildInstruction:
    def _aligned(self, leg, lat, config):
        return align_position_to_step(_pt(lat), leg, None, config)

    def test_immediate_step(self, walk_leg, config):
        instr = build_instruction(self._aligned(walk_leg, 33.75099, config), "Five Points", config)
        assert isinstance(instr, OnTrackInstruction)
        assert render_instruction(instr) == "IMMEDIATE: LEFT on Baker St"

    def test_upcoming_step(self, walk_leg, config):
        instr = build_instruction(self._aligned(walk_leg, 33.75095, config), "Five Points", config)
        assert render_instruction(instr) == "UPCOMING: LEFT on Baker St"

    def test_depart_uses_absolute_direction(self, walk_leg, config):
        instr = build_instruction(self._aligned(walk_leg, 33.75, config), "Five Points", config)
        assert render_instruction(instr) == "IMMEDIATE: Head NORTH on Peachtree St"

    def test_arrived(self, walk_leg, config):
        instr = build_instruction(self._aligned(walk_leg, 33.75134, config), "Five Points", config)
        assert isinstance(instr, ArrivedInstruction)
        assert render_instruction(instr) == "ARRIVED: Five Points"

    def test_upcoming_destination(self, walk_leg, config):
        instr = build_instruction(self._aligned(walk_leg, 33.75128, config), "Five Points", config)
        assert render_instruction(instr) == "UPCOMING: Five Points"

    def test_too_far_from_step(self, walk_leg, config):
        assert build_instruction(self._aligned(walk_leg, 33.7505, config), "Five Points", config) is None

    def test_no_alignment(self, config):
        assert build_instruction(None, "Five Points", config) is None

    def test_nameless_destination(self, walk_leg, config):
        assert build_instruction(self._aligned(walk_leg, 33.75134, config), "", config) is None

    def test_radii_from_config(self, walk_leg):
        config = TrackerConfig(immediate_radius=6, upcoming_radius=20)
        instr = build_instruction(self._aligned(walk_leg, 33.75095, config), "Five Points", config)
        assert render_instruction(instr) == "IMMEDIATE: LEFT on Baker St"


class TestRenderInstruction:
    def test_none(self):
        assert render_instruction(None) == NO_INSTRUCTION

    def test_alight_soon(self):
        assert render_instruction(AlightSoonInstruction("Arts Center")) == "Your stop is coming up (Arts Center)"

    def test_deviated(self):
        assert render_instruction(DeviatedInstruction("Five Points")) == "Head to Five Points"

    def test_unknown_variant(self):
        with pytest.raises(TypeError):
            render_instruction("turn left")


# ═══════════════════════════════════════════════════════════════════════
# Full analysis
# ═══════════════════════════════════════════════════════════════════════


def _trip(itinerary, lat, seconds, lon=LON, **journey_kwargs):
    journey = TrackedJourney(
        trip_id="trip-1",
        locations=[TrackingLocation(lat, lon, _at(seconds))],
        **journey_kwargs,
    )
    return MonitoredTrip(id="trip-1", itinerary=itinerary, journey=journey)


class TestAnalyzeTrip:
    def test_on_track_with_step_instruction(self, walk_itinerary, config):
        analysis = analyze_trip(_trip(walk_itinerary, 33.75095, 90), config)
        assert analysis.status == TripStatus.ON_SCHEDULE
        assert render_instruction(analysis.instruction) == "UPCOMING: LEFT on Baker St"

    def test_deviated_points_to_destination(self, walk_itinerary, config):
        analysis = analyze_trip(_trip(walk_itinerary, 33.76, 60, lon=-84.38), config)
        assert analysis.status == TripStatus.DEVIATED
        assert render_instruction(analysis.instruction) == "Head to Five Points"

    def test_deviated_without_destination_name(self, walk_leg, config):
        walk_leg.to_place.name = ""
        analysis = analyze_trip(_trip(make_itinerary(walk_leg), 33.76, 60, lon=-84.38), config)
        # falls back to the nearest named step
        assert render_instruction(analysis.instruction) == "Head to Baker St"

    def test_deviated_without_any_names(self, config):
        leg = make_leg([33.75, 33.7505, 33.75135], to_name="")
        analysis = analyze_trip(_trip(make_itinerary(leg), 33.76, 60, lon=-84.38), config)
        assert render_instruction(analysis.instruction) == "Head to 33.75135, -84.39000"

    def test_arrived_at_nameless_destination(self, walk_leg, config):
        walk_leg.to_place.name = ""
        analysis = analyze_trip(_trip(make_itinerary(walk_leg), 33.75134, 119), config)
        assert analysis.status == TripStatus.ON_SCHEDULE
        assert isinstance(analysis.instruction, ArrivedInstruction)
        assert render_instruction(analysis.instruction) == "ARRIVED: 33.75135, -84.39000"

    def test_no_status_has_no_instruction(self, walk_itinerary, config):
        analysis = analyze_trip(_trip(walk_itinerary, 33.75067, 200), config)
        assert analysis.status == TripStatus.NO_STATUS
        assert analysis.instruction is None

    def test_ended_journey(self, walk_itinerary, config):
        trip = _trip(walk_itinerary, 33.75067, 60, end_time=_at(61), end_condition="COMPLETED")
        analysis = analyze_trip(trip, config)
        assert analysis.status == TripStatus.ENDED
        assert analysis.instruction is None

    def test_ended_journey_without_locations(self, walk_itinerary, config):
        journey = TrackedJourney(trip_id="trip-1", end_time=_at(0))
        trip = MonitoredTrip(id="trip-1", itinerary=walk_itinerary, journey=journey)
        assert analyze_trip(trip, config).status == TripStatus.ENDED

    def test_empty_journey(self, walk_itinerary, config):
        trip = MonitoredTrip(id="trip-1", itinerary=walk_itinerary, journey=TrackedJourney(trip_id="trip-1"))
        with pytest.raises(EmptyJourney):
            analyze_trip(trip, config)

    def test_locale_flows_into_instruction(self, walk_itinerary, config):
        rider = RiderProfile(locale="fr")
        position = position_at(_pt(33.75095), _at(90), walk_itinerary, rider)
        assert analyze_position(position, config).instruction.locale == "fr"


class TestAlightSoon:
    @pytest.fixture
    def bus_itinerary(self):
        bus = make_leg(
            [33.76, 33.77],
            mode="BUS",
            duration=100.0,
            distance=1112.0,
            from_name="North Ave",
            to_name="Arts Center",
            transit=True,
        )
        return make_itinerary(bus)

    def test_near_alighting_stop(self, bus_itinerary, config):
        analysis = analyze_trip(_trip(bus_itinerary, 33.768, 80), config)
        assert analysis.status == TripStatus.ON_SCHEDULE
        assert isinstance(analysis.instruction, AlightSoonInstruction)
        assert render_instruction(analysis.instruction) == "Your stop is coming up (Arts Center)"

    def test_far_from_alighting_stop(self, bus_itinerary, config):
        analysis = analyze_trip(_trip(bus_itinerary, 33.762, 20), config)
        assert analysis.status == TripStatus.ON_SCHEDULE
        assert analysis.instruction is None


# ═══════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════


class TestTrackerConfig:
    def test_queue_capacity_defaults_to_worker_count(self):
        assert TrackerConfig(worker_count=3).queue_capacity == 3

    def test_from_env(self):
        config = TrackerConfig.from_env({
            "TRIP_TRACKING_BUS_BOUNDARY": "35",
            "TRIP_INSTRUCTION_UPCOMING_RADIUS": "12.5",
            "MONITOR_WORKER_COUNT": "2",
        })
        assert config.mode_boundaries["BUS"] == 35
        assert config.mode_boundaries["WALK"] == 5
        assert config.upcoming_radius == 12.5
        assert config.worker_count == 2
        assert config.queue_capacity == 2

    def test_from_env_ignores_unrelated(self):
        assert TrackerConfig.from_env({"HOME": "/root"}) == TrackerConfig()

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            TrackerConfig(worker_count=0)

    def test_with_overrides_recomputes_capacity(self):
        config = TrackerConfig(worker_count=2).with_overrides(worker_count=5)
        assert config.queue_capacity == 5
