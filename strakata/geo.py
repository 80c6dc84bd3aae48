"""Geodesic primitives: great-circle distance and point-to-polyline distance."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime

import numpy as np

from strakata.constants import EARTH_RADIUS_KM, EARTH_RADIUS_M

# (latitude, longitude) in decimal degrees
LatLon = tuple[float, float]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers between two GPS coordinates.

    NaN inputs propagate to a NaN result.
    """
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)
    dlat = rlat2 - rlat1
    dlon = rlon2 - rlon1
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def point_to_path_distance(point: LatLon, path: Sequence[LatLon]) -> float | None:
    """Minimum distance in meters from *point* to the nearest segment of *path*.

    The path is projected onto a local equirectangular plane centered on the
    point, which is accurate to well under a meter at the scale of a hike.

    Returns ``None`` when the path has fewer than two vertices: there is no
    segment to measure against, and callers treat that as "cannot validate".
    """
    if len(path) < 2:
        return None

    lat0, lon0 = point
    coords = np.asarray(path, dtype=float)
    cos_lat0 = math.cos(math.radians(lat0))
    # Planar coordinates in meters, point at the origin
    x = np.radians(coords[:, 1] - lon0) * cos_lat0 * EARTH_RADIUS_M
    y = np.radians(coords[:, 0] - lat0) * EARTH_RADIUS_M

    ax, ay = x[:-1], y[:-1]
    dx, dy = x[1:] - ax, y[1:] - ay
    seg_len_sq = dx * dx + dy * dy
    # Projection parameter of the origin onto each segment, clamped to [0, 1].
    # Degenerate (zero-length) segments collapse to their start vertex.
    with np.errstate(invalid="ignore", divide="ignore"):
        t = np.where(seg_len_sq > 0, -(ax * dx + ay * dy) / seg_len_sq, 0.0)
    t = np.clip(t, 0.0, 1.0)
    px = ax + t * dx
    py = ay + t * dy
    return float(np.min(np.hypot(px, py)))


def track_distance_km(points: Sequence[LatLon]) -> float:
    """Sum of haversine legs between consecutive points (0 for < 2 points)."""
    if len(points) < 2:
        return 0.0
    total = 0.0
    for (lat1, lon1), (lat2, lon2) in zip(points, points[1:], strict=False):
        total += haversine_distance(lat1, lon1, lat2, lon2)
    return total


def start_end_distance_m(points: Sequence[LatLon]) -> float:
    """Straight-line distance in meters between the first and last point."""
    if len(points) < 2:
        return 0.0
    (lat1, lon1), (lat2, lon2) = points[0], points[-1]
    return haversine_distance(lat1, lon1, lat2, lon2) * 1000.0


def track_duration_s(timestamps: Sequence[datetime | None]) -> float:
    """Elapsed seconds between the first and last timestamp, 0 when unknown."""
    if len(timestamps) < 2:
        return 0.0
    first, last = timestamps[0], timestamps[-1]
    if first is None or last is None:
        return 0.0
    return max(0.0, (last - first).total_seconds())
