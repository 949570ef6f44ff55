"""Tests for ground projection, object metrics and great-circle helpers."""

from __future__ import annotations

import math

import pytest

from flightfusion.errors import ProcessingError
from flightfusion.processing.geodesy import (
    EARTH_RADIUS_M,
    destination_point,
    initial_bearing,
    normalize_heading,
)
from flightfusion.processing.metrics import (
    compute_metrics,
    ground_resolution,
    pixel_distance,
    project_to_ground,
)
from flightfusion.recording.models import BoundingBox, GeoPoint, TrackState
from tests.conftest import make_object, make_sample

FOV = 84.0


def state_for(obj, metrics, frame_index: int = 0) -> TrackState:
    return TrackState(frame_index=frame_index, bounding_box=obj.bounding_box,
                      metrics=metrics)


class TestProjectToGround:
    def test_nadir_projects_to_drone(self, video):
        """An object at the image center sits under the drone."""
        drone = make_sample(0, lat=52.2297, lon=21.0122, alt=120.0, heading=37.0)
        box = BoundingBox(950, 530, 970, 550)

        location = project_to_ground(drone, box, video, FOV)

        assert location.latitude == pytest.approx(52.2297, abs=1e-3)
        assert location.longitude == pytest.approx(21.0122, abs=1e-3)

    def test_top_of_frame_is_ahead(self, video):
        """With the drone facing north, the top of the frame is north."""
        drone = make_sample(0, lat=52.0, lon=21.0, alt=100.0, heading=0.0)
        location = project_to_ground(drone, BoundingBox(950, 100, 970, 120), video, FOV)

        assert location.latitude > drone.latitude
        assert location.longitude == pytest.approx(drone.longitude, abs=1e-9)

    def test_right_of_frame_follows_heading(self, video):
        """Facing east, the right side of the frame is south."""
        drone = make_sample(0, lat=52.0, lon=21.0, alt=100.0, heading=90.0)
        location = project_to_ground(drone, BoundingBox(1700, 530, 1720, 550), video, FOV)

        assert location.latitude < drone.latitude
        assert location.longitude == pytest.approx(drone.longitude, abs=1e-6)

    def test_zero_altitude_stays_at_drone(self, video):
        drone = make_sample(0, lat=52.0, lon=21.0, alt=0.0)
        location = project_to_ground(drone, BoundingBox(0, 0, 20, 20), video, FOV)
        assert location.latitude == pytest.approx(52.0)
        assert location.longitude == pytest.approx(21.0)


class TestComputeMetrics:
    def test_first_observation(self, video):
        """Without a previous observation speeds are 0 and course is the drone heading."""
        drone = make_sample(0, heading=215.0)
        metrics = compute_metrics(None, make_object(1, 500, 300), 0.0,
                                  drone, video, FOV)

        assert metrics.pixel_speed == 0.0
        assert metrics.ground_speed == 0.0
        assert metrics.course_heading == pytest.approx(215.0)

    def test_zero_relative_motion(self, video):
        """The same bounding box twice means no movement."""
        drone = make_sample(0, alt=80.0)
        obj = make_object(1, 700, 400)
        first = compute_metrics(None, obj, 0.0, drone, video, FOV)

        metrics = compute_metrics(state_for(obj, first), obj, 0.1,
                                  drone, video, FOV)

        assert metrics.pixel_speed == 0.0
        assert metrics.ground_speed == 0.0

    def test_moving_object(self, video):
        """10 px in 0.1 s is 100 px/s, scaled by the ground resolution."""
        drone = make_sample(0, alt=100.0, heading=0.0)
        before = make_object(1, 960, 540)
        after = make_object(1, 960, 530)
        first = compute_metrics(None, before, 0.0, drone, video, FOV)

        metrics = compute_metrics(state_for(before, first), after, 0.1,
                                  drone, video, FOV)

        assert metrics.pixel_speed == pytest.approx(100.0)
        assert metrics.ground_speed == pytest.approx(
            100.0 * ground_resolution(100.0, FOV, video.width)
        )
        assert metrics.ground_speed > 0
        # Moving up the frame while facing north
        assert metrics.course_heading == pytest.approx(0.0, abs=1e-6)

    def test_non_positive_delta_rejected(self, video):
        drone = make_sample(0)
        obj = make_object(3, 100, 100)
        first = compute_metrics(None, obj, 0.0, drone, video, FOV)

        with pytest.raises(ProcessingError, match="time delta must be positive"):
            compute_metrics(state_for(obj, first), obj, 0.0, drone, video, FOV)


class TestHelpers:
    def test_pixel_distance(self):
        a = BoundingBox(0, 0, 10, 10)
        b = BoundingBox(3, 4, 13, 14)
        assert pixel_distance(a, b) == pytest.approx(5.0)

    def test_ground_resolution(self):
        expected = 2 * 100 * math.tan(math.radians(42)) / 1920
        assert ground_resolution(100.0, 84.0, 1920) == pytest.approx(expected)

    def test_destination_point_north(self):
        origin = GeoPoint(0.0, 0.0)
        point = destination_point(origin, 0.0, 1000.0)

        assert point.latitude == pytest.approx(math.degrees(1000.0 / EARTH_RADIUS_M))
        assert point.longitude == pytest.approx(0.0, abs=1e-12)

    def test_initial_bearing_cardinals(self):
        origin = GeoPoint(0.0, 0.0)
        assert initial_bearing(origin, GeoPoint(0.0, 1.0)) == pytest.approx(90.0)
        assert initial_bearing(origin, GeoPoint(-1.0, 0.0)) == pytest.approx(180.0)
        assert initial_bearing(origin, GeoPoint(0.0, -1.0)) == pytest.approx(270.0)

    def test_bearing_round_trip(self):
        """Travelling along a bearing and measuring it back agree."""
        origin = GeoPoint(52.0, 21.0)
        point = destination_point(origin, 123.0, 250.0)
        assert initial_bearing(origin, point) == pytest.approx(123.0, abs=1e-6)

    def test_normalize_heading(self):
        assert normalize_heading(-1e-15) < 360.0
        assert normalize_heading(-10.0) == pytest.approx(350.0)
        assert normalize_heading(720.0) == 0.0
