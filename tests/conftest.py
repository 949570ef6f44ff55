"""Shared test fixtures: synthetic flight logs, telemetry sequences and tracker output."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from flightfusion.config import AppConfig, FusionConfig, StorageConfig
from flightfusion.recording.models import (
    BoundingBox,
    TelemetrySample,
    TrackedObject,
    VideoMetadata,
)

T0 = datetime(2024, 9, 11, 5, 47, 13, tzinfo=timezone.utc)

CSV_HEADER = ("time(millisecond),datetime(utc),latitude,longitude,"
              "ascent(feet),compass_heading(degrees),isVideo")


@pytest.fixture
def fusion_config() -> FusionConfig:
    return FusionConfig(camera_fov=84.0, duration_tolerance_ms=100.0,
                        max_workers=2)


@pytest.fixture
def app_config(tmp_path, fusion_config) -> AppConfig:
    return AppConfig(
        fusion=fusion_config,
        storage=StorageConfig(
            db_path=str(tmp_path / "db" / "flights.db"),
            upload_dir=str(tmp_path / "uploads"),
            log_dir=str(tmp_path / "logs"),
        ),
    )


@pytest.fixture
def video() -> VideoMetadata:
    return VideoMetadata(name="DJI_0001.MP4", width=1920, height=1080,
                         fps=10.0, total_frames=10)


def make_sample(time_ms: float, lat: float = 52.0, lon: float = 21.0,
                alt: float = 100.0, heading: float = 0.0,
                recording: bool = False) -> TelemetrySample:
    return TelemetrySample(
        time_from_start=time_ms,
        timestamp=T0 + timedelta(milliseconds=time_ms),
        latitude=lat,
        longitude=lon,
        altitude=alt,
        heading=heading,
        is_recording=recording,
    )


def make_sequence(flags: list[bool], step_ms: int = 200,
                  lat_step: float = 0.0001) -> list[TelemetrySample]:
    """Samples every step_ms drifting north, recording according to flags."""
    return [
        make_sample(i * step_ms, lat=52.0 + i * lat_step, recording=flag)
        for i, flag in enumerate(flags)
    ]


def make_object(tid: int, cx: float, cy: float, size: float = 20.0) -> TrackedObject:
    half = size / 2
    return TrackedObject(
        tracking_id=tid,
        bounding_box=BoundingBox(cx - half, cy - half, cx + half, cy + half),
        confidence=0.9,
        class_id=0,
    )


def make_csv(rows: list[tuple]) -> str:
    """Rows of (time_ms, datetime_text, lat, lon, feet, heading, is_video)."""
    lines = [CSV_HEADER]
    for row in rows:
        lines.append(",".join(str(v) for v in row))
    return "\n".join(lines) + "\n"


def make_flight_csv(flags: list[bool], step_ms: int = 200) -> str:
    """A flight log with one row every step_ms and the given recording flags."""
    rows = []
    for i, flag in enumerate(flags):
        t = i * step_ms
        stamp = (T0 + timedelta(milliseconds=t)).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        rows.append((t, stamp, 52.0 + i * 0.0001, 21.0, 328.084, 90.0,
                     1 if flag else 0))
    return make_csv(rows)


def make_tracking_json(name: str = "DJI_0001.MP4", width: int = 1920,
                       height: int = 1080, fps: float = 10.0,
                       total_frames: int = 10,
                       results: list[dict] | None = None) -> str:
    """Tracker output document; results default to one object drifting right."""
    if results is None:
        results = [
            {"i": i, "res": [{"tid": 1,
                              "bbox": [950.0 + i * 10, 530.0, 970.0 + i * 10, 550.0],
                              "conf": 0.8, "cid": 2}]}
            for i in range(total_frames)
        ]
    return json.dumps({
        "model": {"name": "yolov11s", "confidence_threshold": 0.25, "nms": True},
        "tracker": {"name": "bytetrack"},
        "video": {"name": name, "width": width, "height": height,
                  "fps": fps, "total_frames": total_frames},
        "tracking_results": results,
    })
