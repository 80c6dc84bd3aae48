"""Pydantic schemas for visit submissions.

Validates the submitted payload and converts it into the typed core values
(:class:`~strakata.models.RouteData`, :class:`~strakata.models.Place`) and
into the JSON shapes stored on :class:`~backend.api.db.models.VisitData`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from strakata.engine import Submission
from strakata.models import (
    Place,
    PlaceType,
    RouteData,
    RouteSource,
    Track,
    TrackPoint,
    VisitState,
)


class TrackPointIn(BaseModel):
    """One GPS sample; accepts ``lat``/``lng`` and ``latitude``/``longitude``."""

    lat: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("lat", "latitude"))
    lng: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("lng", "longitude"))
    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    timestamp: datetime | None = None

    def to_domain(self) -> TrackPoint:
        return TrackPoint(
            latitude=self.lat,
            longitude=self.lng,
            altitude=self.altitude,
            speed=self.speed,
            heading=self.heading,
            accuracy=self.accuracy,
            timestamp=self.timestamp,
        )


class PlaceIn(BaseModel):
    """A visited place as submitted."""

    name: str = Field(..., min_length=1, max_length=200)
    type: str = PlaceType.OTHER
    description: str = ""
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("type")
    @classmethod
    def _normalise_type(cls, v: str) -> str:
        return v.strip().upper() or PlaceType.OTHER

    def to_domain(self) -> Place:
        has_coords = self.lat is not None and self.lng is not None
        return Place(
            name=self.name.strip(),
            type_key=self.type,
            description=self.description,
            latitude=self.lat if has_coords else None,
            longitude=self.lng if has_coords else None,
        )


class ExtraPointsIn(BaseModel):
    """Summary the client computed while tracking."""

    description: str = ""
    distance: float | None = Field(default=None, ge=0)  # km
    elapsed_time: float | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("elapsed_time", "elapsedTime")
    )  # minutes
    total_ascent: float | None = Field(
        default=None, validation_alias=AliasChoices("total_ascent", "totalAscent")
    )
    source: str | None = None


class VisitSubmissionIn(BaseModel):
    """Request body for submitting a visit."""

    user_id: str
    visit_date: datetime
    route_title: str = "Untitled Route"
    route_description: str | None = None
    route: list[TrackPointIn] = Field(default_factory=list)
    places: list[PlaceIn] = Field(default_factory=list)
    extra_points: ExtraPointsIn | None = None
    extra_data: dict[str, Any] | None = None
    activity_type: str | None = None
    category_id: str | None = None
    is_free_category: bool = False
    state: VisitState = VisitState.DRAFT

    @field_validator("route")
    @classmethod
    def _timestamps_non_decreasing(cls, v: list[TrackPointIn]) -> list[TrackPointIn]:
        stamps = [p.timestamp for p in v if p.timestamp is not None]
        try:
            decreasing = any(b < a for a, b in zip(stamps, stamps[1:], strict=False))
        except TypeError:
            msg = "track mixes timezone-aware and naive timestamps"
            raise ValueError(msg) from None
        if decreasing:
            msg = "track timestamps must not decrease"
            raise ValueError(msg)
        return v

    @property
    def source(self) -> RouteSource:
        raw = self.extra_points.source if self.extra_points else None
        try:
            return RouteSource(raw or RouteSource.MANUAL)
        except ValueError:
            return RouteSource.MANUAL

    def to_route_data(self) -> RouteData:
        """Client distance is in km and elapsed time in minutes."""
        extra = self.extra_points
        return RouteData(
            track=Track(points=tuple(p.to_domain() for p in self.route)),
            total_distance_m=extra.distance * 1000.0 if extra and extra.distance else None,
            duration_s=extra.elapsed_time * 60.0 if extra and extra.elapsed_time else None,
            source=self.source,
        )

    def to_places(self) -> list[Place]:
        return [p.to_domain() for p in self.places]

    def to_submission(self, upload_date: datetime | None = None) -> Submission:
        return Submission(
            user_id=self.user_id,
            route=self.to_route_data(),
            places=self.to_places(),
            visit_date=self.visit_date,
            upload_date=upload_date,
            activity_type=self.activity_type,
            route_description=self.route_description,
            category_id=self.category_id,
            is_free_category=self.is_free_category,
        )

    def route_json(self) -> dict[str, Any]:
        """Stored ``route`` shape: meters and seconds."""
        route = self.to_route_data()
        return {
            "trackPoints": [
                {
                    k: v
                    for k, v in {
                        "latitude": p.lat,
                        "longitude": p.lng,
                        "altitude": p.altitude,
                        "timestamp": p.timestamp.isoformat() if p.timestamp else None,
                    }.items()
                    if v is not None
                }
                for p in self.route
            ],
            "totalDistance": route.total_distance_m or 0,
            "duration": route.duration_s or 0,
            "source": route.source.value,
        }

    def places_json(self) -> list[dict[str, Any]]:
        return [p.model_dump(exclude_none=True) for p in self.places]
