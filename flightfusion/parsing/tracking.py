"""Tracker output parsing: JSON -> video metadata + per-frame tracked objects."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt
from pydantic import ValidationError as SchemaError

from flightfusion.errors import ValidationError
from flightfusion.recording.models import (
    BoundingBox,
    FrameTracking,
    TrackedObject,
    VideoMetadata,
)

logger = logging.getLogger(__name__)


class ModelInfo(BaseModel):
    name: str
    confidence_threshold: float
    nms: bool


class TrackerInfo(BaseModel):
    name: str


class VideoInfo(BaseModel):
    name: str
    width: PositiveInt
    height: PositiveInt
    fps: PositiveFloat
    total_frames: PositiveInt


class ObjectEntry(BaseModel):
    tid: int
    bbox: list[float] = Field(min_length=4, max_length=4)
    conf: float
    cid: int


class FrameEntry(BaseModel):
    i: int
    res: list[ObjectEntry] = Field(default_factory=list)


class TrackingDocument(BaseModel):
    model: ModelInfo
    tracker: TrackerInfo
    video: VideoInfo
    tracking_results: list[FrameEntry]


@dataclass
class TrackingFile:
    """Parsed tracker output for one video."""
    video: VideoMetadata
    results: list[FrameTracking] = field(default_factory=list)
    model_name: str = ""
    tracker_name: str = ""
    confidence_threshold: float = 0.0


def _to_frame(entry: FrameEntry) -> FrameTracking:
    return FrameTracking(
        frame_index=entry.i,
        objects=[
            TrackedObject(
                tracking_id=obj.tid,
                bounding_box=BoundingBox(*obj.bbox),
                confidence=obj.conf,
                class_id=obj.cid,
            )
            for obj in entry.res
        ],
    )


def parse_tracking(content: str) -> TrackingFile:
    """Parse tracker JSON text. Raises ValidationError on any format problem."""
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Failed to parse tracking file: {e}") from None

    try:
        doc = TrackingDocument.model_validate(raw)
    except SchemaError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid tracking data format: {problems}") from None

    video = VideoMetadata(
        name=doc.video.name,
        width=doc.video.width,
        height=doc.video.height,
        fps=doc.video.fps,
        total_frames=doc.video.total_frames,
    )
    parsed = TrackingFile(
        video=video,
        results=[_to_frame(entry) for entry in doc.tracking_results],
        model_name=doc.model.name,
        tracker_name=doc.tracker.name,
        confidence_threshold=doc.model.confidence_threshold,
    )
    logger.debug("Tracking file parsed: video=%s model=%s frames=%d",
                 video.name, parsed.model_name, len(parsed.results))
    return parsed
