"""Recording-segment detection and video-to-segment matching."""

from __future__ import annotations

import logging
from typing import Sequence

from flightfusion.errors import ProcessingError
from flightfusion.recording.models import Segment, TelemetrySample, VideoMetadata

logger = logging.getLogger(__name__)

DEFAULT_DURATION_TOLERANCE_MS = 100.0


def _close(samples: Sequence[TelemetrySample], start: int, end: int) -> Segment:
    start_time = samples[start].time_from_start
    end_time = samples[end].time_from_start
    return Segment(
        start_time=start_time,
        end_time=end_time,
        duration=end_time - start_time,
        start_index=start,
        end_index=end,
    )


def detect_segments(samples: Sequence[TelemetrySample]) -> list[Segment]:
    """Extract maximal runs of consecutive recording samples, in time order."""
    segments: list[Segment] = []
    start: int | None = None

    for index, sample in enumerate(samples):
        if sample.is_recording:
            if start is None:
                start = index
        elif start is not None:
            # Segment ends on the last recording sample, not this one
            segments.append(_close(samples, start, index - 1))
            start = None

    if start is not None:
        segments.append(_close(samples, start, len(samples) - 1))

    logger.info("Detected %d recording segment(s)", len(segments))
    for i, seg in enumerate(segments, start=1):
        logger.debug("Segment %d: %sms -> %sms (%sms)",
                     i, seg.start_time, seg.end_time, seg.duration)
    return segments


def match_segments(segments: Sequence[Segment],
                   video_paths: Sequence[str]) -> list[tuple[str, Segment]]:
    """Pair video files with recording segments.

    Matching is positional: paths sorted lexicographically are paired with
    segments in time order. Files must be named so that name order equals
    recording order (e.g. DJI_0279.MP4, DJI_0280.MP4). Two same-count sets
    that were recorded in a different order cannot be told apart here.
    """
    if len(segments) != len(video_paths):
        raise ProcessingError(
            f"Number of recording segments ({len(segments)}) does not match "
            f"number of video files ({len(video_paths)})"
        )

    ordered_segments = sorted(segments, key=lambda s: s.start_time)
    pairs = list(zip(sorted(video_paths), ordered_segments))
    for path, seg in pairs:
        logger.debug("Mapped %s to segment %sms -> %sms",
                     path, seg.start_time, seg.end_time)
    return pairs


def validate_duration(segment: Segment, metadata: VideoMetadata,
                      tolerance_ms: float = DEFAULT_DURATION_TOLERANCE_MS) -> None:
    """Raise ProcessingError if the segment and video durations disagree."""
    expected = metadata.duration_ms
    if abs(segment.duration - expected) > tolerance_ms:
        raise ProcessingError(
            f"Segment duration ({segment.duration}ms) differs from video "
            f"{metadata.name!r} duration ({expected:.1f}ms) by more than "
            f"{tolerance_ms}ms"
        )
