"""Flight orchestrator: log -> segments -> video matching -> fusion -> storage."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from flightfusion.config import AppConfig
from flightfusion.errors import ProcessingError, ValidationError
from flightfusion.parsing.telemetry import parse_telemetry_csv
from flightfusion.parsing.tracking import TrackingFile, parse_tracking
from flightfusion.processing.fusion import run_fusion
from flightfusion.processing.segments import (
    detect_segments,
    match_segments,
    validate_duration,
)
from flightfusion.recording.models import (
    FlightRequest,
    FusionResult,
    Segment,
    TelemetrySample,
)
from flightfusion.recording.store import FlightStore

logger = logging.getLogger(__name__)


@dataclass
class VideoJob:
    """One matched (video, segment, tracking) triple ready for fusion."""
    video_path: str
    tracking_path: str
    segment: Segment
    tracking: TrackingFile


def _read_text(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"Cannot read {path}: {e}") from e


class FlightProcessor:
    """Processes one flight's log, videos and tracking files into the store."""

    def __init__(self, config: AppConfig, store: FlightStore):
        self._config = config
        self._store = store

    @property
    def store(self) -> FlightStore:
        return self._store

    def load_telemetry(self, log_path: str) -> list[TelemetrySample]:
        logger.info("Parsing flight log: %s", log_path)
        return parse_telemetry_csv(_read_text(log_path))

    def analyze_log(self, log_path: str) -> list[Segment]:
        """Detect the recording segments of a flight log without storing anything."""
        return detect_segments(self.load_telemetry(log_path))

    def process(self, request: FlightRequest) -> int:
        """Run the whole flight through the engine. Returns the new flight_id."""
        cfg = self._config.fusion
        fov = request.camera_fov if request.camera_fov is not None else cfg.camera_fov

        if len(request.video_paths) != len(request.tracking_paths):
            raise ValidationError(
                f"Number of videos ({len(request.video_paths)}) does not match "
                f"number of tracking files ({len(request.tracking_paths)})"
            )
        if request.video_paths and not request.log_path:
            raise ValidationError("Videos were given without a flight log")

        # Parse and fuse everything before the first write
        samples: list[TelemetrySample] = []
        jobs: list[VideoJob] = []
        if request.log_path:
            samples = self.load_telemetry(request.log_path)
        if request.video_paths:
            jobs = self._plan_videos(samples, request)
        results = self._fuse_all(jobs, samples, fov)

        # One transaction: a storage error leaves no partial flight
        with self._store.transaction():
            flight_id = self._store.create_flight(
                name=request.name,
                date=request.date,
                description=request.description,
                log_path=request.log_path,
            )
            if samples:
                self._store.add_telemetry(flight_id, samples)

            for job, result in zip(jobs, results):
                video_id = self._store.create_video(
                    flight_id,
                    result.video,
                    job.video_path,
                    segment=job.segment,
                    model_name=job.tracking.model_name,
                    tracker_name=job.tracking.tracker_name,
                )
                self._store.add_fusion_result(video_id, result)

        logger.info("Flight #%d processed: %d telemetry samples, %d video(s)",
                    flight_id, len(samples), len(jobs))
        return flight_id

    def _plan_videos(self, samples: list[TelemetrySample],
                     request: FlightRequest) -> list[VideoJob]:
        cfg = self._config.fusion
        segments = detect_segments(samples)

        # Tracking files follow the caller's video order
        tracking_for = dict(zip(request.video_paths, request.tracking_paths))

        jobs = []
        for video_path, segment in match_segments(segments, request.video_paths):
            tracking_path = tracking_for[video_path]
            logger.info("Parsing tracking file: %s", tracking_path)
            tracking = parse_tracking(_read_text(tracking_path))
            tracking.video.validate()

            try:
                validate_duration(segment, tracking.video, cfg.duration_tolerance_ms)
            except ProcessingError as e:
                if cfg.strict_duration:
                    raise
                logger.warning("%s (continuing)", e)

            jobs.append(VideoJob(
                video_path=video_path,
                tracking_path=tracking_path,
                segment=segment,
                tracking=tracking,
            ))
        return jobs

    def _fuse_all(self, jobs: list[VideoJob], samples: list[TelemetrySample],
                  fov: float) -> list[FusionResult]:
        """Fuse videos in parallel; each worker owns its own state."""
        if not jobs:
            return []

        cfg = self._config.fusion
        workers = max(1, min(cfg.max_workers, len(jobs)))
        with ThreadPoolExecutor(max_workers=workers,
                                thread_name_prefix="fusion") as pool:
            futures = [
                pool.submit(
                    run_fusion,
                    job.tracking.video,
                    job.segment,
                    job.tracking.results,
                    samples,
                    fov,
                    cfg.progress_interval,
                )
                for job in jobs
            ]
            # result() re-raises the first worker failure
            return [future.result() for future in futures]
