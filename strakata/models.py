"""Data model for visits, tracks, places, scoring configuration and results.

Stored visits carry their route and places as loosely-typed JSON.  The
``parse_*`` functions in this module are the single boundary where that JSON
becomes typed values; anything malformed is rejected here with a
``ValueError`` subclass instead of silently defaulting mid-computation.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from strakata.constants import SCORING_MODEL
from strakata.geo import LatLon

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TrackParseError(ValueError):
    """Stored or submitted track data has an invalid shape."""


class PlaceParseError(ValueError):
    """Stored or submitted place data has an invalid shape."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PlaceType(StrEnum):
    """Scoring types of a point of interest."""

    PEAK = "PEAK"
    TOWER = "TOWER"
    TREE = "TREE"  # memorial tree
    RUINS = "RUINS"
    CAVE = "CAVE"
    UNUSUAL_NAME = "UNUSUAL_NAME"
    OTHER = "OTHER"


class RouteSource(StrEnum):
    """How the route of a visit was captured."""

    GPS_TRACKING = "gps_tracking"
    GPX_UPLOAD = "gpx_upload"
    MANUAL = "manual"
    SCREENSHOT = "screenshot"


class VisitState(StrEnum):
    """Review state of a submitted visit."""

    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# ---------------------------------------------------------------------------
# Track and places
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrackPoint:
    """A single GPS sample."""

    latitude: float
    longitude: float
    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    timestamp: datetime | None = None

    @property
    def latlon(self) -> LatLon:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Track:
    """An ordered, read-only sequence of GPS samples."""

    points: tuple[TrackPoint, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    @property
    def latlons(self) -> list[LatLon]:
        return [p.latlon for p in self.points]

    @property
    def timestamps(self) -> list[datetime | None]:
        return [p.timestamp for p in self.points]


@dataclass(frozen=True)
class Place:
    """A visited point of interest.

    ``type_key`` keeps the raw type string so that configuration-defined
    types beyond :class:`PlaceType` can still be looked up in a scoring
    config; :attr:`kind` maps it onto the fixed enumeration.
    """

    name: str
    type_key: str = PlaceType.OTHER
    description: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def kind(self) -> PlaceType:
        try:
            return PlaceType(self.type_key)
        except ValueError:
            return PlaceType.OTHER

    @property
    def latlon(self) -> LatLon | None:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class RouteData:
    """Route part of a visit: a track and/or a declared total distance."""

    track: Track = field(default_factory=Track)
    total_distance_m: float | None = None
    duration_s: float | None = None
    source: RouteSource = RouteSource.MANUAL


# ---------------------------------------------------------------------------
# Scoring configuration and result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringConfig:
    """Immutable snapshot of the active scoring ruleset."""

    points_per_km: float
    min_distance_km: float
    require_at_least_one_place: bool
    place_type_points: Mapping[str, float]

    def __post_init__(self) -> None:
        if self.points_per_km < 0:
            msg = f"points_per_km must be non-negative, got {self.points_per_km}"
            raise ValueError(msg)
        if self.min_distance_km < 0:
            msg = f"min_distance_km must be non-negative, got {self.min_distance_km}"
            raise ValueError(msg)
        for key, value in self.place_type_points.items():
            if value < 0:
                msg = f"place type {key} has negative points {value}"
                raise ValueError(msg)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ScoringConfig:
        """Build from the stored camelCase shape."""
        return cls(
            points_per_km=float(raw["pointsPerKm"]),
            min_distance_km=float(raw["minDistanceKm"]),
            require_at_least_one_place=bool(raw.get("requireAtLeastOnePlace", True)),
            place_type_points={
                str(k): float(v) for k, v in (raw.get("placeTypePoints") or {}).items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pointsPerKm": self.points_per_km,
            "minDistanceKm": self.min_distance_km,
            "requireAtLeastOnePlace": self.require_at_least_one_place,
            "placeTypePoints": dict(self.place_type_points),
        }


def default_scoring_config() -> ScoringConfig:
    """Ruleset used when an administrator has not configured one yet."""
    return ScoringConfig(
        points_per_km=2.0,
        min_distance_km=3.0,
        require_at_least_one_place=True,
        place_type_points={
            PlaceType.PEAK: 1.0,
            PlaceType.TOWER: 1.0,
            PlaceType.TREE: 1.0,
            PlaceType.RUINS: 1.0,
            PlaceType.CAVE: 1.0,
            PlaceType.UNUSUAL_NAME: 1.0,
            PlaceType.OTHER: 0.0,
        },
    )


# Legacy breakdown keys for the four original place types
_LEGACY_COUNT_KEYS: dict[str, str] = {
    PlaceType.PEAK: "peaks",
    PlaceType.TOWER: "towers",
    PlaceType.TREE: "trees",
    PlaceType.OTHER: "others",
}


@dataclass(frozen=True)
class ScoreBreakdown:
    """Full explanation of how a visit's points were derived."""

    distance_km: float
    distance_points: float
    place_points: float
    place_counts: dict[str, int]
    place_names: list[str]
    theme_bonus: float
    matched_keywords: list[str]
    total_points: float
    duration_minutes: int = 0
    start_end_distance_m: float = 0.0
    config: ScoringConfig | None = None
    scoring_model: str = SCORING_MODEL
    recalculated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Render the stored ``extraPoints`` JSON shape."""
        out: dict[str, Any] = {
            "scoringModel": self.scoring_model,
            "distanceKm": round(self.distance_km, 3),
            "distancePoints": self.distance_points,
            "placePoints": self.place_points,
            "placeCounts": dict(self.place_counts),
            "places": list(self.place_names),
            "themeBonus": self.theme_bonus,
            "matchedKeywords": list(self.matched_keywords),
            "totalPoints": self.total_points,
            "durationMinutes": self.duration_minutes,
            "startEndDistance": round(self.start_end_distance_m),
        }
        for type_key, legacy_key in _LEGACY_COUNT_KEYS.items():
            out[legacy_key] = self.place_counts.get(type_key, 0)
        if self.config is not None:
            out["config"] = self.config.to_dict()
        if self.recalculated_at is not None:
            out["recalculatedAt"] = self.recalculated_at.isoformat()
        return out


# ---------------------------------------------------------------------------
# Visits and ledgers
# ---------------------------------------------------------------------------


@dataclass
class StoredVisit:
    """A persisted visit as handed to the core by the storage collaborator."""

    id: str
    user_id: str | None
    state: VisitState
    route_raw: Any = None
    places_raw: Any = None
    visit_date: datetime | None = None
    route_title: str | None = None
    route_description: str | None = None
    extra_points: dict[str, Any] = field(default_factory=dict)
    points: float = 0.0

    @property
    def label(self) -> str:
        return self.route_title or self.id


@dataclass(frozen=True)
class CategoryUsage:
    """Ledger entry: a user consumed a category's allowance for a month."""

    user_id: str
    category_id: str
    month: str  # "YYYY-MM"
    points: int = 1
    visit_id: str | None = None


@dataclass(frozen=True)
class FreeCategoryUsage:
    """Ledger entry: a user consumed the weekly free-category submission."""

    user_id: str
    iso_year: int
    iso_week: int
    visit_id: str | None = None


@dataclass(frozen=True)
class MonthlyTheme:
    """Keyword theme active for one calendar month."""

    year: int
    month: int
    keywords: tuple[str, ...] = ()
    name: str = ""


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a competition rule check.

    A failed rule is an expected, user-facing outcome rather than a defect,
    so it is returned instead of raised.
    """

    valid: bool
    message: str | None = None
    code: str | None = None


OK = ValidationResult(valid=True)


# ---------------------------------------------------------------------------
# Boundary parsing
# ---------------------------------------------------------------------------


def _coerce_float(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        msg = f"{what} must be a number, got {type(value).__name__}"
        raise TrackParseError(msg)
    try:
        out = float(value)
    except ValueError as exc:
        msg = f"{what} is not numeric: {value!r}"
        raise TrackParseError(msg) from exc
    if not math.isfinite(out):
        msg = f"{what} is not finite: {value!r}"
        raise TrackParseError(msg)
    return out


def _optional_float(raw: Mapping[str, Any], key: str) -> float | None:
    value = raw.get(key)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO string, epoch milliseconds or datetime; ``None`` if absent.

    Raises:
        TrackParseError: If the value is present but not a recognisable time.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=UTC)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            msg = f"Unparseable timestamp {value!r}"
            raise TrackParseError(msg) from exc
    msg = f"Unsupported timestamp type {type(value).__name__}"
    raise TrackParseError(msg)


def parse_track_point(raw: Any) -> TrackPoint:
    """Parse one stored point; legacy ``lat``/``lng`` keys are accepted."""
    if not isinstance(raw, Mapping):
        msg = f"Track point must be an object, got {type(raw).__name__}"
        raise TrackParseError(msg)
    lat_raw = raw.get("latitude", raw.get("lat"))
    lon_raw = raw.get("longitude", raw.get("lng", raw.get("lon")))
    if lat_raw is None or lon_raw is None:
        msg = "Track point is missing latitude or longitude"
        raise TrackParseError(msg)
    lat = _coerce_float(lat_raw, "latitude")
    lon = _coerce_float(lon_raw, "longitude")
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        msg = f"Coordinates out of range: ({lat}, {lon})"
        raise TrackParseError(msg)
    return TrackPoint(
        latitude=lat,
        longitude=lon,
        altitude=_optional_float(raw, "altitude"),
        speed=_optional_float(raw, "speed"),
        heading=_optional_float(raw, "heading"),
        accuracy=_optional_float(raw, "accuracy"),
        timestamp=parse_timestamp(raw.get("timestamp")),
    )


def parse_track(raw: Any) -> Track:
    """Parse a list of stored points into a :class:`Track`.

    Timestamps, where present on consecutive points, must not decrease.

    Raises:
        TrackParseError: On any malformed point or ordering violation.
    """
    if raw is None:
        return Track()
    if not isinstance(raw, list | tuple):
        msg = f"Track must be a list of points, got {type(raw).__name__}"
        raise TrackParseError(msg)
    points = tuple(parse_track_point(p) for p in raw)
    for prev, cur in zip(points, points[1:], strict=False):
        if prev.timestamp is None or cur.timestamp is None:
            continue
        try:
            decreasing = cur.timestamp < prev.timestamp
        except TypeError as exc:
            msg = "Track mixes timezone-aware and naive timestamps"
            raise TrackParseError(msg) from exc
        if decreasing:
            msg = f"Track timestamps decrease at {cur.timestamp.isoformat()}"
            raise TrackParseError(msg)
    return Track(points=points)


def parse_route(raw: Any) -> RouteData:
    """Parse the stored ``route`` JSON (object form or a bare list of points)."""
    if raw is None:
        return RouteData()
    if isinstance(raw, list | tuple):
        return RouteData(track=parse_track(raw))
    if not isinstance(raw, Mapping):
        msg = f"Route must be an object or a list, got {type(raw).__name__}"
        raise TrackParseError(msg)

    total = raw.get("totalDistance")
    duration = raw.get("duration")
    try:
        source = RouteSource(raw.get("source") or RouteSource.MANUAL)
    except ValueError:
        source = RouteSource.MANUAL
    return RouteData(
        track=parse_track(raw.get("trackPoints")),
        total_distance_m=_coerce_float(total, "totalDistance") if total is not None else None,
        duration_s=_coerce_float(duration, "duration") if duration is not None else None,
        source=source,
    )


def parse_place(raw: Any) -> Place:
    if not isinstance(raw, Mapping):
        msg = f"Place must be an object, got {type(raw).__name__}"
        raise PlaceParseError(msg)
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        msg = "Place is missing a name"
        raise PlaceParseError(msg)
    type_key = str(raw.get("type") or PlaceType.OTHER).strip().upper()

    lat = raw.get("lat", raw.get("latitude"))
    lng = raw.get("lng", raw.get("longitude"))
    try:
        latitude = float(lat) if lat is not None else None
        longitude = float(lng) if lng is not None else None
    except (TypeError, ValueError) as exc:
        msg = f"Place {name!r} has non-numeric coordinates"
        raise PlaceParseError(msg) from exc
    if latitude is None or longitude is None:
        latitude = longitude = None

    return Place(
        name=name.strip(),
        type_key=type_key,
        description=str(raw.get("description") or ""),
        latitude=latitude,
        longitude=longitude,
    )


def parse_places(raw: Any) -> list[Place]:
    """Parse the stored ``places`` JSON array.

    Raises:
        PlaceParseError: If the value is not a list or a place is malformed.
    """
    if raw is None:
        return []
    if not isinstance(raw, list | tuple):
        msg = f"Places must be a list, got {type(raw).__name__}"
        raise PlaceParseError(msg)
    return [parse_place(p) for p in raw]
