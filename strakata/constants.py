"""Competition policy constants shared across the scoring and validation modules.

These are rules of the current season, not user settings.  Deployment-level
overrides live in ``backend.api.config.Settings``.
"""

from __future__ import annotations

# Mean Earth radius used by all great-circle computations.
EARTH_RADIUS_KM: float = 6371.0
EARTH_RADIUS_M: float = EARTH_RADIUS_KM * 1000.0

# Trail proximity: a visited place must lie within this distance of the track.
PROXIMITY_MAX_DISTANCE_M: float = 100.0

# Route similarity
SIMILARITY_MIN_POINTS = 5
SIMILARITY_MAX_SAMPLES = 100
# ~100 m expressed in decimal degrees (0.001 deg latitude is ~111 m)
SIMILARITY_DEGREE_THRESHOLD: float = 0.001
SIMILARITY_DUPLICATE_THRESHOLD: float = 0.85

# Proof photo must be taken at most this many days before upload.
PHOTO_MAX_DAYS_OLD = 14

# Season 2025/2026 allows walking only.
ALLOWED_ACTIVITY_TYPES: tuple[str, ...] = ("WALKING",)

# A route whose start and end are further apart than this is not a loop.
LOOP_MAX_START_END_M: float = 3000.0

# Summed haversine distances land a few 1e-13 km short of round values;
# anything this close to the qualifying minimum counts as reaching it.
DISTANCE_TOLERANCE_KM: float = 1e-9

# Flat monthly theme bonus, independent of the number of matched keywords.
THEME_BONUS_POINTS: float = 5.0

# Category ledger points: completion point plus one for the first in a month.
CATEGORY_COMPLETION_POINTS = 1
CATEGORY_FIRST_BONUS_POINTS = 1

# extraPoints.type tag of synthetic award visits that must never be rescored.
ROUTE_CREATOR_BONUS_TYPE = "route_creator_bonus"

SCORING_MODEL = "configurable_v1"
