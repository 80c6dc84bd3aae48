"""Duplicate-route detection against a user's earlier submissions.

Two tracks are compared by downsampling both to at most
:data:`SIMILARITY_MAX_SAMPLES` points and counting how many samples of the new
track have a sample of the old track within ~100 m.  The 100 m threshold is
expressed as 0.001 decimal degrees, an approximation that holds at moderate
latitudes rather than a true metric distance.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from strakata.constants import (
    SIMILARITY_DEGREE_THRESHOLD,
    SIMILARITY_DUPLICATE_THRESHOLD,
    SIMILARITY_MAX_SAMPLES,
    SIMILARITY_MIN_POINTS,
)
from strakata.geo import LatLon
from strakata.models import VisitState, parse_route
from strakata.protocols import VisitStore

logger = logging.getLogger(__name__)

# Visits a new route is checked against: anything not rejected
_COMPARED_STATES = (VisitState.PENDING_REVIEW, VisitState.APPROVED)


@dataclass(frozen=True)
class SimilarityResult:
    """Outcome of a duplicate-route check."""

    is_duplicate: bool
    similar_route: str | None = None
    visit_id: str | None = None
    similarity: float = 0.0

    @property
    def message(self) -> str | None:
        if not self.is_duplicate:
            return None
        return (
            f"route is {self.similarity:.0%} identical to your earlier route "
            f'"{self.similar_route}"'
        )


def downsample(track: Sequence[LatLon], max_samples: int = SIMILARITY_MAX_SAMPLES) -> np.ndarray:
    """Uniform stride sampling to at most *max_samples* points, as an (n, 2) array."""
    arr = np.asarray(track, dtype=float).reshape(-1, 2)
    if len(arr) <= max_samples:
        return arr
    step = math.ceil(len(arr) / max_samples)
    return arr[::step]


def track_similarity(new_track: Sequence[LatLon], old_track: Sequence[LatLon]) -> float:
    """Fraction of sampled points of *new_track* lying near some sample of *old_track*.

    Returns a value in [0, 1]; 0 when either track is empty.
    """
    a = downsample(new_track)
    b = downsample(old_track)
    if len(a) == 0 or len(b) == 0:
        return 0.0

    # Pairwise planar distances in degrees: (len(a), len(b))
    diff = a[:, np.newaxis, :] - b[np.newaxis, :, :]
    dist = np.hypot(diff[..., 0], diff[..., 1])
    matched = np.any(dist < SIMILARITY_DEGREE_THRESHOLD, axis=1)
    return float(np.count_nonzero(matched)) / len(a)


async def check_route_similarity(
    store: VisitStore,
    user_id: str,
    new_track: Sequence[LatLon],
    exclude_visit_id: str | None = None,
) -> SimilarityResult:
    """Flag *new_track* as a duplicate if it matches any earlier route of the user.

    Only the user's pending and approved visits are considered.  A stored
    track that cannot be parsed is logged and skipped rather than aborting
    the whole check.
    """
    if len(new_track) < SIMILARITY_MIN_POINTS:
        return SimilarityResult(is_duplicate=False)

    visits = await store.find_visits_by_user(user_id, _COMPARED_STATES, exclude_visit_id)
    for visit in visits:
        if visit.id == exclude_visit_id or visit.route_raw is None:
            continue
        try:
            existing = parse_route(visit.route_raw).track.latlons
        except ValueError:
            logger.warning("Skipping visit %s: stored track is malformed", visit.id, exc_info=True)
            continue
        if len(existing) < SIMILARITY_MIN_POINTS:
            continue

        similarity = track_similarity(new_track, existing)
        logger.debug("Visit %s similarity %.3f", visit.id, similarity)
        if similarity > SIMILARITY_DUPLICATE_THRESHOLD:
            return SimilarityResult(
                is_duplicate=True,
                similar_route=visit.label,
                visit_id=visit.id,
                similarity=similarity,
            )

    return SimilarityResult(is_duplicate=False)
