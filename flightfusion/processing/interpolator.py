"""Telemetry interpolation at arbitrary times along a validated sequence."""

from __future__ import annotations

import logging
from typing import Sequence

from flightfusion.errors import ProcessingError
from flightfusion.processing.geodesy import normalize_heading
from flightfusion.recording.models import TelemetrySample

logger = logging.getLogger(__name__)


def _lerp(start: float, end: float, ratio: float) -> float:
    return start + (end - start) * ratio


def interpolate_heading(start: float, end: float, ratio: float) -> float:
    """Blend two compass headings along the shorter arc."""
    diff = end - start
    if diff > 180:
        diff -= 360
    elif diff < -180:
        diff += 360
    return normalize_heading(start + diff * ratio)


def find_bracket(samples: Sequence[TelemetrySample], target_time: float) -> int:
    """Return i such that samples[i].time <= target_time < samples[i + 1].time.

    Caller guarantees samples[0].time <= target_time < samples[-1].time.
    """
    left = 0
    right = len(samples) - 1
    while left + 1 < right:
        mid = (left + right) // 2
        if samples[mid].time_from_start <= target_time:
            left = mid
        else:
            right = mid
    return left


def interpolate(samples: Sequence[TelemetrySample],
                target_time: float) -> TelemetrySample:
    """Synthesize the drone state at target_time (ms from log start).

    Times outside the log return the boundary sample unchanged. The
    recording flag is carried from the earlier sample.
    """
    if not samples:
        raise ProcessingError("No telemetry data available for interpolation")

    first, last = samples[0], samples[-1]
    if target_time <= first.time_from_start:
        return first
    if target_time >= last.time_from_start:
        return last

    index = find_bracket(samples, target_time)
    before = samples[index]
    after = samples[index + 1]
    if target_time == before.time_from_start:
        return before

    ratio = ((target_time - before.time_from_start)
             / (after.time_from_start - before.time_from_start))

    logger.debug("Interpolating t=%s between %s and %s (ratio %.4f)",
                 target_time, before.time_from_start, after.time_from_start, ratio)

    return TelemetrySample(
        time_from_start=target_time,
        timestamp=before.timestamp + (after.timestamp - before.timestamp) * ratio,
        latitude=_lerp(before.latitude, after.latitude, ratio),
        longitude=_lerp(before.longitude, after.longitude, ratio),
        altitude=_lerp(before.altitude, after.altitude, ratio),
        heading=interpolate_heading(before.heading, after.heading, ratio),
        is_recording=before.is_recording,
    )
