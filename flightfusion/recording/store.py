"""SQLite persistence for flights, telemetry, videos and fused frames (WAL mode)."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from flightfusion.recording.models import (
    FusionResult,
    Segment,
    TelemetrySample,
    VideoMetadata,
)

logger = logging.getLogger(__name__)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS flights (
    flight_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    date TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    log_path TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS telemetry (
    telemetry_id INTEGER PRIMARY KEY AUTOINCREMENT,
    flight_id INTEGER NOT NULL REFERENCES flights(flight_id),
    time_from_start REAL NOT NULL,
    timestamp TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    altitude REAL NOT NULL,
    heading REAL NOT NULL,
    is_recording INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS videos (
    video_id INTEGER PRIMARY KEY AUTOINCREMENT,
    flight_id INTEGER NOT NULL REFERENCES flights(flight_id),
    name TEXT NOT NULL,
    file_path TEXT NOT NULL,
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    fps REAL NOT NULL,
    total_frames INTEGER NOT NULL,
    segment_start REAL,
    segment_end REAL,
    model_name TEXT,
    tracker_name TEXT
);
CREATE TABLE IF NOT EXISTS frames (
    frame_id INTEGER PRIMARY KEY AUTOINCREMENT,
    video_id INTEGER NOT NULL REFERENCES videos(video_id),
    frame_index INTEGER NOT NULL,
    time_ms REAL NOT NULL,
    timestamp TEXT NOT NULL,
    latitude REAL,
    longitude REAL,
    altitude REAL,
    heading REAL
);
CREATE TABLE IF NOT EXISTS objects (
    object_id INTEGER PRIMARY KEY AUTOINCREMENT,
    frame_id INTEGER NOT NULL REFERENCES frames(frame_id),
    video_id INTEGER NOT NULL REFERENCES videos(video_id),
    tracking_id INTEGER NOT NULL,
    bbox TEXT NOT NULL,
    confidence REAL NOT NULL,
    class_id INTEGER NOT NULL,
    pixel_speed REAL,
    ground_speed REAL,
    latitude REAL,
    longitude REAL,
    course_heading REAL
);
CREATE INDEX IF NOT EXISTS idx_frames_video ON frames(video_id, frame_index);
CREATE INDEX IF NOT EXISTS idx_objects_frame ON objects(frame_id);
"""

INSERT_FLIGHT_SQL = """
INSERT INTO flights (name, date, description, log_path, created_at)
VALUES (?, ?, ?, ?, ?);
"""

INSERT_TELEMETRY_SQL = """
INSERT INTO telemetry (
    flight_id, time_from_start, timestamp, latitude, longitude,
    altitude, heading, is_recording
) VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

INSERT_VIDEO_SQL = """
INSERT INTO videos (
    flight_id, name, file_path, width, height, fps, total_frames,
    segment_start, segment_end, model_name, tracker_name
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

INSERT_FRAME_SQL = """
INSERT INTO frames (
    video_id, frame_index, time_ms, timestamp, latitude, longitude,
    altitude, heading
) VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

INSERT_OBJECT_SQL = """
INSERT INTO objects (
    frame_id, video_id, tracking_id, bbox, confidence, class_id,
    pixel_speed, ground_speed, latitude, longitude, course_heading
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""


class FlightStore:
    """Stores processed flights in SQLite."""

    def __init__(self, db_path: str):
        self._db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(CREATE_TABLES_SQL)
        self._conn.commit()
        # Re-entrant so a transaction can wrap the single-row writers
        self._lock = threading.RLock()
        self._depth = 0
        logger.info("Flight store initialized: %s", self._db_path)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the connection and commit once on exit, rolling back on error.

        Nested transactions join the outermost one. Readers on other threads
        wait until it ends, so they never see uncommitted rows.
        """
        with self._lock:
            self._depth += 1
            try:
                yield
            except BaseException:
                if self._depth == 1:
                    self._conn.rollback()
                raise
            else:
                if self._depth == 1:
                    self._conn.commit()
            finally:
                self._depth -= 1

    def create_flight(self, name: str, date: datetime, description: str = "",
                      log_path: Optional[str] = None) -> int:
        """Insert a flight record. Returns the flight_id."""
        with self.transaction():
            cursor = self._conn.execute(INSERT_FLIGHT_SQL, (
                name,
                date.isoformat(),
                description or "",
                log_path or "",
                time.time(),
            ))
        flight_id = cursor.lastrowid
        logger.info("Created flight #%d (%s)", flight_id, name)
        return flight_id

    def add_telemetry(self, flight_id: int,
                      samples: Sequence[TelemetrySample]) -> int:
        """Bulk-insert a flight's telemetry. Returns the number of rows."""
        with self.transaction():
            self._conn.executemany(INSERT_TELEMETRY_SQL, [
                (
                    flight_id,
                    s.time_from_start,
                    s.timestamp.isoformat(),
                    s.latitude,
                    s.longitude,
                    s.altitude,
                    s.heading,
                    int(s.is_recording),
                )
                for s in samples
            ])
        logger.debug("Stored %d telemetry rows for flight #%d",
                     len(samples), flight_id)
        return len(samples)

    def create_video(self, flight_id: int, metadata: VideoMetadata,
                     file_path: str, segment: Optional[Segment] = None,
                     model_name: Optional[str] = None,
                     tracker_name: Optional[str] = None) -> int:
        """Insert a video record. Returns the video_id."""
        with self.transaction():
            cursor = self._conn.execute(INSERT_VIDEO_SQL, (
                flight_id,
                metadata.name,
                file_path,
                metadata.width,
                metadata.height,
                metadata.fps,
                metadata.total_frames,
                segment.start_time if segment else None,
                segment.end_time if segment else None,
                model_name,
                tracker_name,
            ))
        return cursor.lastrowid

    def add_fusion_result(self, video_id: int, result: FusionResult) -> int:
        """Store every fused frame and its objects. Returns the object count."""
        count = 0
        with self.transaction():
            for frame in result.frames:
                t = frame.telemetry
                cursor = self._conn.execute(INSERT_FRAME_SQL, (
                    video_id,
                    frame.frame_index,
                    frame.time_ms,
                    t.timestamp.isoformat(),
                    t.latitude,
                    t.longitude,
                    t.altitude,
                    t.heading,
                ))
                frame_id = cursor.lastrowid
                if not frame.objects:
                    continue
                self._conn.executemany(INSERT_OBJECT_SQL, [
                    (
                        frame_id,
                        video_id,
                        obj.tracked.tracking_id,
                        json.dumps(obj.tracked.bounding_box.as_list()),
                        obj.tracked.confidence,
                        obj.tracked.class_id,
                        obj.metrics.pixel_speed,
                        obj.metrics.ground_speed,
                        obj.metrics.location.latitude,
                        obj.metrics.location.longitude,
                        obj.metrics.course_heading,
                    )
                    for obj in frame.objects
                ])
                count += len(frame.objects)
        logger.info("Stored video #%d: %d frames, %d objects",
                    video_id, len(result.frames), count)
        return count

    def list_flights(self, limit: int = 100) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM flights ORDER BY flight_id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]

    def get_flight(self, flight_id: int) -> Optional[dict[str, Any]]:
        """Flight record with its videos and telemetry row count."""
        with self._lock:
            return self._read_flight(flight_id)

    def _read_flight(self, flight_id: int) -> Optional[dict[str, Any]]:
        row = self._conn.execute(
            "SELECT * FROM flights WHERE flight_id = ?", (flight_id,)
        ).fetchone()
        if row is None:
            return None
        flight = dict(row)
        flight["videos"] = [
            dict(v) for v in self._conn.execute(
                "SELECT * FROM videos WHERE flight_id = ? ORDER BY video_id",
                (flight_id,),
            ).fetchall()
        ]
        flight["telemetry_count"] = self._conn.execute(
            "SELECT COUNT(*) FROM telemetry WHERE flight_id = ?", (flight_id,)
        ).fetchone()[0]
        return flight

    def get_video(self, video_id: int) -> Optional[dict[str, Any]]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM videos WHERE video_id = ?", (video_id,)
            ).fetchone()
        return dict(row) if row is not None else None

    def get_frames(self, video_id: int) -> list[dict[str, Any]]:
        """Frames of a video in index order, each with its objects."""
        with self._lock:
            return self._read_frames(video_id)

    def _read_frames(self, video_id: int) -> list[dict[str, Any]]:
        frames = [
            dict(row) for row in self._conn.execute(
                "SELECT * FROM frames WHERE video_id = ? ORDER BY frame_index",
                (video_id,),
            ).fetchall()
        ]
        by_id = {f["frame_id"]: f for f in frames}
        for f in frames:
            f["objects"] = []

        cursor = self._conn.execute(
            "SELECT * FROM objects WHERE video_id = ? ORDER BY object_id",
            (video_id,),
        )
        for row in cursor.fetchall():
            obj = dict(row)
            obj["bbox"] = json.loads(obj["bbox"])
            by_id[obj["frame_id"]]["objects"].append(obj)
        return frames

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
