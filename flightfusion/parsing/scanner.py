"""Discover a flight's log, videos and tracking files in one directory.

Expected layout:

    data/
      flight_log.csv
      DJI_0268.MP4
      bytetrack_yolov11s_v4_2560_b8_e60_DJI_0268.json
      yolov11s_v4_2560_b8_e60_DJI_0268_nms.json   (ignored)
      DJI_0269.MP4
      ...
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from flightfusion.errors import ValidationError

logger = logging.getLogger(__name__)

VIDEO_PATTERN = re.compile(r"^DJI_(\d+)\.mp4$", re.IGNORECASE)


@dataclass
class VideoFiles:
    video: Path
    tracking: Path


@dataclass
class FlightFiles:
    log: Path
    videos: list[VideoFiles] = field(default_factory=list)

    @property
    def video_paths(self) -> list[str]:
        return [str(v.video) for v in self.videos]

    @property
    def tracking_paths(self) -> list[str]:
        return [str(v.tracking) for v in self.videos]


def _find_tracking(files: list[Path], number: str) -> Path | None:
    tag = re.compile(rf"DJI_{number}(?!\d)")
    for path in files:
        name = path.name
        if (path.suffix.lower() == ".json" and tag.search(name)
                and not name.lower().endswith("_nms.json")):
            return path
    return None


def scan_directory(directory: str | Path) -> FlightFiles:
    """Find the flight log and each video's tracking file, videos in name order."""
    root = Path(directory)
    if not root.is_dir():
        raise ValidationError(f"Directory not found: {root}")

    files = sorted(p for p in root.iterdir() if p.is_file())

    logs = [p for p in files if p.suffix.lower() == ".csv"]
    if not logs:
        raise ValidationError(f"No flight log found in {root}")
    if len(logs) > 1:
        raise ValidationError(
            f"Expected one flight log in {root}, found {len(logs)}: "
            f"{', '.join(p.name for p in logs)}"
        )

    flight = FlightFiles(log=logs[0])
    for path in files:
        match = VIDEO_PATTERN.match(path.name)
        if not match:
            continue
        tracking = _find_tracking(files, match.group(1))
        if tracking is None:
            raise ValidationError(
                f"Missing tracking file for video {path.name} "
                f"(expected *DJI_{match.group(1)}*.json)"
            )
        flight.videos.append(VideoFiles(video=path, tracking=tracking))

    logger.info("Scanned %s: log=%s, %d video(s)",
                root, flight.log.name, len(flight.videos))
    return flight
