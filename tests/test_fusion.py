"""Tests for the per-video fusion driver."""

from __future__ import annotations

import pytest

from flightfusion.errors import ProcessingError, ValidationError
from flightfusion.processing.fusion import FusionState, frame_time_ms, run_fusion
from flightfusion.processing.segments import detect_segments
from flightfusion.recording.models import (
    FrameTracking,
    GeoPoint,
    ObjectMetrics,
    TrackState,
    VideoMetadata,
)
from tests.conftest import make_object, make_sequence

FOV = 84.0


@pytest.fixture
def samples():
    # Recording from 200ms to 1200ms
    return make_sequence([False, True, True, True, True, True, True, False])


@pytest.fixture
def segment(samples):
    return detect_segments(samples)[0]


def drifting(tid: int, frames, step: float = 10.0, y: float = 540.0):
    return [FrameTracking(i, [make_object(tid, 500 + i * step, y)]) for i in frames]


class TestRunFusion:
    def test_frame_times_offset_by_segment(self, video, segment, samples):
        """Frame i is fused with telemetry at segment start + i / fps."""
        result = run_fusion(video, segment, [], samples, FOV)

        assert len(result.frames) == video.total_frames
        assert [f.time_ms for f in result.frames] == pytest.approx(
            [200 + 100 * i for i in range(10)]
        )
        assert result.frames[0].telemetry is samples[1]
        assert result.frames[1].telemetry.time_from_start == pytest.approx(300)
        assert result.frames[1].telemetry.latitude == pytest.approx(52.00015)

    def test_state_carried_between_frames(self, video, segment, samples):
        """A tracked object moving 10 px per frame at 10 fps moves 100 px/s."""
        result = run_fusion(video, segment, drifting(1, range(10)), samples, FOV)

        speeds = [m.pixel_speed for _, _, m in result.records()]
        assert speeds[0] == 0.0
        assert speeds[1:] == pytest.approx([100.0] * 9)
        assert all(m.ground_speed > 0 for _, _, m in list(result.records())[1:])

    def test_first_observation_uses_drone_heading(self, video, segment, samples):
        result = run_fusion(video, segment, drifting(1, [3]), samples, FOV)
        [(frame_index, tid, metrics)] = list(result.records())

        assert (frame_index, tid) == (3, 1)
        assert metrics.course_heading == pytest.approx(samples[1].heading)

    def test_gap_uses_frame_interval(self, video, segment, samples):
        """Speed after a gap still divides by one frame interval."""
        tracking = [
            FrameTracking(0, [make_object(7, 500, 540)]),
            FrameTracking(4, [make_object(7, 540, 540)]),
        ]
        result = run_fusion(video, segment, tracking, samples, FOV)
        speeds = [m.pixel_speed for _, _, m in result.records()]

        assert speeds == pytest.approx([0.0, 400.0])

    def test_objects_in_frame_are_independent(self, video, segment, samples):
        """Two IDs in one frame each use only their own history."""
        tracking = [
            FrameTracking(0, [make_object(1, 100, 100), make_object(2, 800, 800)]),
            FrameTracking(1, [make_object(1, 110, 100), make_object(2, 800, 800)]),
        ]
        result = run_fusion(video, segment, tracking, samples, FOV)
        last = {tid: m for i, tid, m in result.records() if i == 1}

        assert last[1].pixel_speed == pytest.approx(100.0)
        assert last[2].pixel_speed == 0.0

    def test_state_is_per_video(self, video, segment, samples):
        """A second run starts with no history for the same tracking ID."""
        run_fusion(video, segment, drifting(5, range(10)), samples, FOV)
        second = run_fusion(video, segment, drifting(5, range(2, 4)), samples, FOV)

        first_speed = next(second.records())[2].pixel_speed
        assert first_speed == 0.0

    def test_frames_without_objects_kept(self, video, segment, samples):
        result = run_fusion(video, segment, drifting(1, [2]), samples, FOV)

        assert len(result.frames) == 10
        assert result.object_count == 1
        assert result.frames[0].objects == []

    def test_out_of_range_frame_rejected(self, video, segment, samples):
        with pytest.raises(ValidationError, match="outside the video"):
            run_fusion(video, segment, drifting(1, [10]), samples, FOV)

    def test_duplicate_frame_rejected(self, video, segment, samples):
        tracking = drifting(1, [2]) + drifting(2, [2])
        with pytest.raises(ValidationError, match="Duplicate"):
            run_fusion(video, segment, tracking, samples, FOV)

    def test_invalid_video_rejected(self, segment, samples):
        bad = VideoMetadata("broken.mp4", 1920, 1080, fps=0.0, total_frames=10)
        with pytest.raises(ValidationError, match="fps must be positive"):
            run_fusion(bad, segment, [], samples, FOV)

    def test_no_telemetry_fails(self, video, segment):
        with pytest.raises(ProcessingError, match="interpolation failed at frame 0"):
            run_fusion(video, segment, [], [], FOV)


class TestFusionState:
    def test_update_and_get(self):
        state = FusionState()
        obj = make_object(4, 10, 10)
        track = TrackState(0, obj.bounding_box,
                           ObjectMetrics(0.0, 0.0, GeoPoint(1.0, 2.0), 0.0))

        assert state.get(4) is None
        state.update(4, track)
        assert 4 in state
        assert len(state) == 1
        assert state.get(4) is track


def test_frame_time_ms(segment):
    assert frame_time_ms(segment, 0, 30.0) == 200
    assert frame_time_ms(segment, 30, 30.0) == pytest.approx(1200)
