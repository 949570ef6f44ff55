"""Per-object geodetic projection and motion metrics.

Projects a bounding-box center through a pinhole camera looking straight
down from the drone, onto flat ground at the drone's altitude, and from there
onto the sphere with the Haversine direct formula. The vertical field of view
is derived from the horizontal one via the frame's aspect ratio.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from flightfusion.errors import ProcessingError
from flightfusion.processing.geodesy import (
    destination_point,
    initial_bearing,
    normalize_heading,
)
from flightfusion.recording.models import (
    BoundingBox,
    GeoPoint,
    ObjectMetrics,
    TelemetrySample,
    TrackedObject,
    TrackState,
    VideoMetadata,
)


def pixel_distance(a: BoundingBox, b: BoundingBox) -> float:
    """Euclidean distance between two bounding-box centers."""
    return float(np.linalg.norm(np.subtract(b.center, a.center)))


def ground_resolution(altitude: float, fov_deg: float, image_width: int) -> float:
    """Meters of ground covered by one pixel at the given altitude."""
    ground_width = 2 * altitude * math.tan(math.radians(fov_deg / 2))
    return ground_width / image_width


def project_to_ground(drone: TelemetrySample, box: BoundingBox,
                      video: VideoMetadata, fov_deg: float) -> GeoPoint:
    """Estimate the GPS position of a bounding-box center."""
    cx, cy = box.center
    delta_x = cx - video.width / 2
    delta_y = video.height / 2 - cy  # image y grows downward

    angle_x = (delta_x / video.width) * fov_deg
    angle_y = (delta_y / video.height) * (fov_deg * (video.height / video.width))

    # Flat-ground approximation, exact only at nadir
    distance = drone.altitude * math.sqrt(
        math.tan(math.radians(angle_x)) ** 2
        + math.tan(math.radians(angle_y)) ** 2
    )
    bearing = (drone.heading + math.degrees(math.atan2(delta_x, delta_y)) + 360) % 360

    origin = GeoPoint(latitude=drone.latitude, longitude=drone.longitude)
    return destination_point(origin, bearing, distance)


def compute_metrics(previous: Optional[TrackState], current: TrackedObject,
                    time_delta_s: float, drone: TelemetrySample,
                    video: VideoMetadata, fov_deg: float) -> ObjectMetrics:
    """Compute speed, location and course for one object in one frame.

    ``previous`` is the last observation of the same tracking ID, or None the
    first time the ID is seen. Without it both speeds are 0 and the course
    falls back to the drone heading.
    """
    location = project_to_ground(drone, current.bounding_box, video, fov_deg)

    if previous is None:
        return ObjectMetrics(
            pixel_speed=0.0,
            ground_speed=0.0,
            location=location,
            course_heading=normalize_heading(drone.heading),
        )

    if time_delta_s <= 0:
        raise ProcessingError(
            f"Tracking ID {current.tracking_id}: time delta must be positive, "
            f"got {time_delta_s}s"
        )

    pixel_speed = pixel_distance(previous.bounding_box, current.bounding_box) / time_delta_s
    ground_speed = pixel_speed * ground_resolution(drone.altitude, fov_deg, video.width)

    return ObjectMetrics(
        pixel_speed=pixel_speed,
        ground_speed=ground_speed,
        location=location,
        course_heading=initial_bearing(previous.metrics.location, location),
    )
