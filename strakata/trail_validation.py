"""Trail proximity: a visited place must lie near the tracked path."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from strakata.constants import PROXIMITY_MAX_DISTANCE_M
from strakata.geo import LatLon, point_to_path_distance
from strakata.models import Place


@dataclass(frozen=True)
class ProximityResult:
    """Outcome of a proximity check for one point."""

    valid: bool
    distance_m: float
    message: str | None = None
    place_name: str | None = None


def validate_proximity_to_path(
    point: LatLon,
    path: Sequence[LatLon],
    max_distance_m: float = PROXIMITY_MAX_DISTANCE_M,
) -> ProximityResult:
    """Check that *point* is within *max_distance_m* of *path* (inclusive).

    A path with fewer than two points cannot be validated against and passes.
    """
    distance = point_to_path_distance(point, path)
    if distance is None:
        return ProximityResult(valid=True, distance_m=0.0)

    if distance > max_distance_m:
        return ProximityResult(
            valid=False,
            distance_m=distance,
            message=(
                f"point is {round(distance)}m from the trail, "
                f"limit is {max_distance_m:g}m"
            ),
        )
    return ProximityResult(valid=True, distance_m=distance)


def validate_places_proximity(
    places: Sequence[Place],
    path: Sequence[LatLon],
    *,
    is_free_category: bool = False,
    max_distance_m: float = PROXIMITY_MAX_DISTANCE_M,
) -> list[ProximityResult]:
    """Validate every place against the path, one result per place.

    Free-category places are not expected to lie on a tracked trail, so the
    whole check is skipped and an empty list is returned.  Places without
    coordinates pass with a distance of 0.
    """
    if is_free_category:
        return []

    results: list[ProximityResult] = []
    for place in places:
        latlon = place.latlon
        if latlon is None:
            results.append(ProximityResult(valid=True, distance_m=0.0, place_name=place.name))
            continue
        res = validate_proximity_to_path(latlon, path, max_distance_m)
        message = f"{place.name}: {res.message}" if res.message else None
        results.append(
            ProximityResult(
                valid=res.valid,
                distance_m=res.distance_m,
                message=message,
                place_name=place.name,
            )
        )
    return results
