"""Point calculation for a visit from its route, places and the active ruleset.

Scoring is a pure function of its inputs: the same route, places, config and
theme keywords always produce the same :class:`~strakata.models.ScoreBreakdown`.
Validity gating (required places, loop closure, proximity) is layered on by
the rule validators and never changes the points computed here.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from strakata.constants import DISTANCE_TOLERANCE_KM, ROUTE_CREATOR_BONUS_TYPE
from strakata.geo import start_end_distance_m, track_distance_km, track_duration_s
from strakata.models import Place, RouteData, ScoreBreakdown, ScoringConfig
from strakata.theme_bonus import ThemeBonus, match_theme_keywords


def route_distance_km(route: RouteData) -> float:
    """Declared total distance when present, else the summed track length."""
    if route.total_distance_m:
        return route.total_distance_m / 1000.0
    return track_distance_km(route.track.latlons)


def route_duration_minutes(route: RouteData) -> int:
    seconds = route.duration_s or track_duration_s(route.track.timestamps)
    return int(seconds // 60)


def distance_points(distance_km: float, config: ScoringConfig) -> float:
    """Fractional points for distance; nothing below the qualifying minimum."""
    if distance_km < config.min_distance_km and not math.isclose(
        distance_km, config.min_distance_km, rel_tol=0.0, abs_tol=DISTANCE_TOLERANCE_KM
    ):
        return 0.0
    return distance_km * config.points_per_km


def place_points(places: Sequence[Place], config: ScoringConfig) -> float:
    """Sum of per-type points; types missing from the config score 0."""
    return sum(config.place_type_points.get(p.type_key, 0.0) for p in places)


def calculate_points(
    route: RouteData,
    places: Sequence[Place],
    config: ScoringConfig,
    *,
    theme_keywords: Iterable[str] = (),
    route_description: str | None = None,
    theme: ThemeBonus | None = None,
) -> ScoreBreakdown:
    """Score a visit.

    ``total = distance points + place points + theme bonus``, never negative.
    An empty place list is valid (distance-only scoring); a missing or
    single-point track with no declared distance scores no distance points.
    An already resolved *theme* (see :func:`~strakata.theme_bonus.calculate_theme_bonus`)
    is used as is; otherwise *theme_keywords* are matched here.
    """
    distance_km = route_distance_km(route)
    d_points = distance_points(distance_km, config)
    p_points = place_points(places, config)
    if theme is None:
        theme = match_theme_keywords(theme_keywords, places, route_description)

    total = max(0.0, d_points + p_points + theme.bonus)
    counts = Counter(p.type_key for p in places)

    return ScoreBreakdown(
        distance_km=distance_km,
        distance_points=d_points,
        place_points=p_points,
        place_counts=dict(counts),
        place_names=[p.name for p in places],
        theme_bonus=theme.bonus,
        matched_keywords=theme.matched_keywords,
        total_points=total,
        duration_minutes=route_duration_minutes(route),
        start_end_distance_m=start_end_distance_m(route.track.latlons),
        config=config,
    )


def is_route_creator_bonus(extra_points: Mapping[str, Any] | None) -> bool:
    """True for synthetic award visits granted to custom-route authors.

    Their points are granted by hand and must never be recalculated from
    track and place data.
    """
    return bool(extra_points) and extra_points.get("type") == ROUTE_CREATOR_BONUS_TYPE
