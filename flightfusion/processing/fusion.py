"""Per-video fusion of tracker output with interpolated drone telemetry."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from flightfusion.errors import FusionError, ProcessingError, ValidationError
from flightfusion.processing.interpolator import interpolate
from flightfusion.processing.metrics import compute_metrics
from flightfusion.recording.models import (
    FrameRecord,
    FrameTracking,
    FusionResult,
    ObjectRecord,
    Segment,
    TelemetrySample,
    TrackState,
    VideoMetadata,
)

logger = logging.getLogger(__name__)


class FusionState:
    """Last observation per tracking ID, scoped to a single video."""

    def __init__(self):
        self._tracks: dict[int, TrackState] = {}

    def get(self, tracking_id: int) -> Optional[TrackState]:
        return self._tracks.get(tracking_id)

    def update(self, tracking_id: int, state: TrackState) -> None:
        self._tracks[tracking_id] = state

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, tracking_id: int) -> bool:
        return tracking_id in self._tracks


def index_tracking(results: Sequence[FrameTracking],
                   total_frames: int) -> dict[int, FrameTracking]:
    """Map frame index -> tracker output, rejecting out-of-range or repeated frames."""
    by_frame: dict[int, FrameTracking] = {}
    for result in results:
        idx = result.frame_index
        if idx < 0 or idx >= total_frames:
            raise ValidationError(
                f"Tracking result for frame {idx} is outside the video "
                f"(0..{total_frames - 1})",
                index=idx,
            )
        if idx in by_frame:
            raise ValidationError(
                f"Duplicate tracking result for frame {idx}", index=idx
            )
        by_frame[idx] = result
    return by_frame


def frame_time_ms(segment: Segment, frame_index: int, fps: float) -> float:
    return segment.start_time + (frame_index / fps) * 1000


def run_fusion(video: VideoMetadata, segment: Segment,
               tracking_results: Sequence[FrameTracking],
               samples: Sequence[TelemetrySample], fov_deg: float,
               progress_interval: int = 100) -> FusionResult:
    """Fuse one video's tracking results with the flight telemetry.

    Frames are processed strictly in order; objects within a frame see the
    state as it was at the end of the previous frame. Any failure aborts the
    whole video.
    """
    video.validate()
    by_frame = index_tracking(tracking_results, video.total_frames)

    state = FusionState()
    result = FusionResult(video=video, segment=segment)
    logger.info("Fusing video %s: %d frames from %sms",
                video.name, video.total_frames, segment.start_time)

    for frame_index in range(video.total_frames):
        time_ms = frame_time_ms(segment, frame_index, video.fps)
        try:
            drone = interpolate(samples, time_ms)
        except ProcessingError as e:
            raise ProcessingError(
                f"{video.name}: interpolation failed at frame {frame_index}: {e}"
            ) from e

        frame = FrameRecord(frame_index=frame_index, time_ms=time_ms,
                            telemetry=drone)
        tracking = by_frame.get(frame_index)
        updates: list[tuple[int, TrackState]] = []

        for obj in tracking.objects if tracking else ():
            previous = state.get(obj.tracking_id)
            # One frame interval even when the ID skipped frames
            delta_s = 1 / video.fps if previous is not None else 0.0
            try:
                metrics = compute_metrics(previous, obj, delta_s, drone,
                                          video, fov_deg)
            except FusionError as e:
                raise ProcessingError(
                    f"{video.name}: metrics failed at frame {frame_index}: {e}"
                ) from e
            except (ArithmeticError, ValueError) as e:
                raise ProcessingError(
                    f"{video.name}: metrics failed at frame {frame_index} "
                    f"for tracking ID {obj.tracking_id}: {e}"
                ) from e

            frame.objects.append(ObjectRecord(tracked=obj, metrics=metrics))
            updates.append((obj.tracking_id, TrackState(
                frame_index=frame_index,
                bounding_box=obj.bounding_box,
                metrics=metrics,
            )))

        for tracking_id, track_state in updates:
            state.update(tracking_id, track_state)
        result.frames.append(frame)

        if progress_interval and frame_index % progress_interval == 0:
            logger.debug("%s: frame %d/%d, %d active track(s)",
                         video.name, frame_index, video.total_frames, len(state))

    logger.info("Fused video %s: %d objects across %d frames",
                video.name, result.object_count, len(result.frames))
    return result
