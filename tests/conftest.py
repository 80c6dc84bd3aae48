"""Shared test fixtures for the Strakatá scoring core."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import pytest

from strakata.models import (
    CategoryUsage,
    FreeCategoryUsage,
    MonthlyTheme,
    ScoreBreakdown,
    ScoringConfig,
    StoredVisit,
    VisitState,
)
from strakata.protocols import RecalculationFilter

# Roughly the centre of Brno
BASE_LAT = 49.19
BASE_LON = 16.61

# Degrees of latitude per meter on the 6371 km sphere
DEG_PER_M = 180.0 / (math.pi * 6_371_000.0)


def line_track(
    n: int,
    *,
    start: tuple[float, float] = (BASE_LAT, BASE_LON),
    step_m: float = 50.0,
    offset_m: float = 0.0,
) -> list[tuple[float, float]]:
    """Build *n* points heading north in *step_m* increments, shifted east by *offset_m*."""
    lat0, lon0 = start
    dlon = offset_m * DEG_PER_M / math.cos(math.radians(lat0))
    return [(lat0 + i * step_m * DEG_PER_M, lon0 + dlon) for i in range(n)]


def route_json(latlons: list[tuple[float, float]], **extra: Any) -> dict[str, Any]:
    """Stored ``route`` JSON for a list of coordinates."""
    return {
        "trackPoints": [{"latitude": lat, "longitude": lon} for lat, lon in latlons],
        **extra,
    }


@dataclass
class FakeVisitStore:
    """In-memory ``VisitStore`` recording every persisted breakdown."""

    visits: list[StoredVisit] = field(default_factory=list)
    config: ScoringConfig | None = None
    themes: list[MonthlyTheme] = field(default_factory=list)
    category_usage: list[CategoryUsage] = field(default_factory=list)
    free_usage: list[FreeCategoryUsage] = field(default_factory=list)
    persisted: dict[str, ScoreBreakdown] = field(default_factory=dict)
    fail_persist: set[str] = field(default_factory=set)

    async def find_visits_by_user(
        self,
        user_id: str,
        states: Any,
        exclude_visit_id: str | None = None,
    ) -> list[StoredVisit]:
        return [
            v
            for v in self.visits
            if v.user_id == user_id and v.state in states and v.id != exclude_visit_id
        ]

    async def find_active_scoring_config(self) -> ScoringConfig | None:
        return self.config

    async def find_active_theme(self, year: int, month: int) -> MonthlyTheme | None:
        for theme in self.themes:
            if theme.year == year and theme.month == month:
                return theme
        return None

    async def find_category_usage(
        self, user_id: str, category_id: str, month: str
    ) -> CategoryUsage | None:
        for usage in self.category_usage:
            if (usage.user_id, usage.category_id, usage.month) == (user_id, category_id, month):
                return usage
        return None

    async def find_any_category_usage(self, category_id: str, month: str) -> CategoryUsage | None:
        for usage in self.category_usage:
            if (usage.category_id, usage.month) == (category_id, month):
                return usage
        return None

    async def find_free_category_usage(
        self, user_id: str, iso_year: int, iso_week: int
    ) -> FreeCategoryUsage | None:
        for usage in self.free_usage:
            if (usage.user_id, usage.iso_year, usage.iso_week) == (user_id, iso_year, iso_week):
                return usage
        return None

    async def find_visits_to_recalculate(self, flt: RecalculationFilter) -> list[StoredVisit]:
        if flt.visit_id is not None:
            return [v for v in self.visits if v.id == flt.visit_id]
        return [
            v
            for v in self.visits
            if v.state == flt.state
            and (flt.season is None or v.visit_date is None or v.visit_date.year == flt.season)
        ]

    async def persist_score(self, visit_id: str, breakdown: ScoreBreakdown) -> None:
        if visit_id in self.fail_persist:
            msg = f"write of {visit_id} rejected"
            raise RuntimeError(msg)
        self.persisted[visit_id] = breakdown
        for visit in self.visits:
            if visit.id == visit_id:
                visit.points = breakdown.total_points
                visit.extra_points = {**visit.extra_points, **breakdown.to_dict()}


@pytest.fixture
def store() -> FakeVisitStore:
    return FakeVisitStore()


@pytest.fixture
def config() -> ScoringConfig:
    """``minDistanceKm=3, pointsPerKm=2`` with one point per PEAK."""
    return ScoringConfig(
        points_per_km=2.0,
        min_distance_km=3.0,
        require_at_least_one_place=True,
        place_type_points={"PEAK": 1.0, "TOWER": 2.0},
    )


@pytest.fixture
def approved_visit() -> StoredVisit:
    return StoredVisit(
        id="visit-1",
        user_id="user-a",
        state=VisitState.APPROVED,
        route_raw=route_json(line_track(40)),
        places_raw=[{"name": "Hády", "type": "PEAK"}],
        route_title="Hády loop",
    )
