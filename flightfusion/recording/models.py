"""Shared data models for the fusion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from flightfusion.errors import ValidationError


@dataclass(frozen=True)
class TelemetrySample:
    """One drone state reading from the flight log."""
    time_from_start: float    # ms since log start
    timestamp: datetime       # absolute UTC instant
    latitude: float           # degrees
    longitude: float          # degrees
    altitude: float           # meters
    heading: float            # degrees, [0, 360)
    is_recording: bool = False


@dataclass(frozen=True)
class Segment:
    """A maximal run of recording samples in the telemetry sequence."""
    start_time: float
    end_time: float
    duration: float
    start_index: int
    end_index: int


@dataclass(frozen=True)
class VideoMetadata:
    name: str
    width: int
    height: int
    fps: float
    total_frames: int

    @property
    def duration_ms(self) -> float:
        return self.total_frames / self.fps * 1000

    def validate(self) -> None:
        """Raise ValidationError unless every numeric field is strictly positive."""
        for attr in ("width", "height", "fps", "total_frames"):
            value = getattr(self, attr)
            if not value or value <= 0:
                raise ValidationError(
                    f"Invalid video metadata for {self.name!r}: "
                    f"{attr} must be positive, got {value}"
                )


@dataclass(frozen=True)
class BoundingBox:
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2

    def as_list(self) -> list[float]:
        return [self.x1, self.y1, self.x2, self.y2]


@dataclass(frozen=True)
class TrackedObject:
    """A detection carrying an externally assigned tracking ID."""
    tracking_id: int
    bounding_box: BoundingBox
    confidence: float = 0.0
    class_id: int = 0


@dataclass
class FrameTracking:
    """Tracker output for a single video frame."""
    frame_index: int
    objects: list[TrackedObject] = field(default_factory=list)


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ObjectMetrics:
    pixel_speed: float        # pixels per second
    ground_speed: float       # meters per second
    location: GeoPoint
    course_heading: float     # degrees from north, [0, 360)


@dataclass(frozen=True)
class TrackState:
    """Last observation of one tracking ID within a video."""
    frame_index: int
    bounding_box: BoundingBox
    metrics: ObjectMetrics


@dataclass
class ObjectRecord:
    tracked: TrackedObject
    metrics: ObjectMetrics


@dataclass
class FrameRecord:
    """Drone telemetry at one frame plus the enriched objects seen in it."""
    frame_index: int
    time_ms: float
    telemetry: TelemetrySample
    objects: list[ObjectRecord] = field(default_factory=list)


@dataclass
class FusionResult:
    """Output of fusing one video with the flight telemetry."""
    video: VideoMetadata
    segment: Segment
    frames: list[FrameRecord] = field(default_factory=list)

    def records(self) -> Iterator[tuple[int, int, ObjectMetrics]]:
        """Yield (frame_index, tracking_id, metrics) for every fused object."""
        for frame in self.frames:
            for obj in frame.objects:
                yield frame.frame_index, obj.tracked.tracking_id, obj.metrics

    @property
    def object_count(self) -> int:
        return sum(len(f.objects) for f in self.frames)


@dataclass
class FlightRequest:
    """Inputs for processing one flight end to end."""
    name: str
    date: datetime
    description: str = ""
    log_path: Optional[str] = None
    video_paths: list[str] = field(default_factory=list)
    tracking_paths: list[str] = field(default_factory=list)
    camera_fov: Optional[float] = None
