"""Pydantic schemas for scoring configuration and recalculation results."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from strakata.models import ScoreBreakdown, ScoringConfig
from strakata.recalculation import RecalculationReport


class ScoringConfigUpdate(BaseModel):
    """Request body for replacing the active scoring ruleset."""

    points_per_km: float = Field(..., ge=0)
    min_distance_km: float = Field(..., ge=0)
    require_at_least_one_place: bool = True
    place_type_points: dict[str, float] | None = None

    @field_validator("place_type_points")
    @classmethod
    def _non_negative_points(cls, v: dict[str, float] | None) -> dict[str, float] | None:
        if v is None:
            return v
        for key, points in v.items():
            if points < 0:
                msg = f"points for {key} must be non-negative"
                raise ValueError(msg)
        return {key.strip().upper(): points for key, points in v.items()}


class ScoringConfigResponse(BaseModel):
    """The active scoring ruleset."""

    points_per_km: float
    min_distance_km: float
    require_at_least_one_place: bool
    place_type_points: dict[str, float]

    @classmethod
    def from_domain(cls, config: ScoringConfig) -> ScoringConfigResponse:
        return cls(
            points_per_km=config.points_per_km,
            min_distance_km=config.min_distance_km,
            require_at_least_one_place=config.require_at_least_one_place,
            place_type_points={str(k): v for k, v in config.place_type_points.items()},
        )


class ScoreBreakdownResponse(BaseModel):
    """Why a visit earned its points."""

    total_points: float
    distance_km: float
    distance_points: float
    place_points: float
    place_counts: dict[str, int]
    theme_bonus: float
    matched_keywords: list[str]
    recalculated_at: str | None = None

    @classmethod
    def from_domain(cls, breakdown: ScoreBreakdown) -> ScoreBreakdownResponse:
        return cls(
            total_points=breakdown.total_points,
            distance_km=round(breakdown.distance_km, 3),
            distance_points=breakdown.distance_points,
            place_points=breakdown.place_points,
            place_counts=breakdown.place_counts,
            theme_bonus=breakdown.theme_bonus,
            matched_keywords=breakdown.matched_keywords,
            recalculated_at=(
                breakdown.recalculated_at.isoformat() if breakdown.recalculated_at else None
            ),
        )


class RecalculationResponse(BaseModel):
    """Aggregate result of a recalculation run."""

    success: bool
    count: int
    selected: int
    skipped: int
    failed: int
    cancelled: bool = False
    errors: dict[str, str] = Field(default_factory=dict)
    message: str | None = None

    @classmethod
    def from_report(cls, report: RecalculationReport) -> RecalculationResponse:
        return cls(
            success=report.success,
            count=report.updated,
            selected=report.selected,
            skipped=report.skipped,
            failed=report.failed,
            cancelled=report.cancelled,
            errors=report.errors,
            message="No visits found to recalculate" if report.selected == 0 else None,
        )
