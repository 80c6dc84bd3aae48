"""SQLAlchemy implementation of the scoring core's storage collaborator.

:class:`SqlVisitStore` satisfies :class:`strakata.protocols.VisitStore` over a
single ``AsyncSession``.  It only flushes; committing is the caller's job
(``session_scope`` commits at the end of a unit of work).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.db.models import (
    FreeCategoryUsageDB,
    MonthlyTheme as MonthlyThemeDB,
    UserCategoryUsage,
    VisitData,
)
from backend.api.services.cache import TTLCache
from backend.api.services.scoring_config import ACTIVE_CONFIG_KEY, get_active_config
from strakata.category_availability import category_completion_points, month_key
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

logger = logging.getLogger(__name__)


def visit_to_domain(row: VisitData) -> StoredVisit:
    try:
        state = VisitState(row.state)
    except ValueError:
        state = VisitState.DRAFT
    return StoredVisit(
        id=row.id,
        user_id=row.user_id,
        state=state,
        route_raw=row.route,
        places_raw=row.places,
        visit_date=row.visit_date,
        route_title=row.route_title,
        route_description=row.route_description,
        extra_points=dict(row.extra_points or {}),
        points=row.points or 0.0,
    )


def _usage_to_domain(row: UserCategoryUsage) -> CategoryUsage:
    return CategoryUsage(
        user_id=row.user_id,
        category_id=row.category_id,
        month=row.month,
        points=row.points,
        visit_id=row.visit_id,
    )


class SqlVisitStore:
    """Visit, configuration and ledger access backed by the ORM models."""

    def __init__(
        self,
        db: AsyncSession,
        config_cache: TTLCache[ScoringConfig] | None = None,
    ) -> None:
        self.db = db
        self.config_cache = config_cache

    async def find_visits_by_user(
        self,
        user_id: str,
        states: Sequence[VisitState],
        exclude_visit_id: str | None = None,
    ) -> list[StoredVisit]:
        stmt = select(VisitData).where(
            VisitData.user_id == user_id,
            VisitData.state.in_([str(s) for s in states]),
        )
        if exclude_visit_id is not None:
            stmt = stmt.where(VisitData.id != exclude_visit_id)
        result = await self.db.execute(stmt.order_by(VisitData.created_at.asc()))
        return [visit_to_domain(row) for row in result.scalars().all()]

    async def find_active_scoring_config(self) -> ScoringConfig | None:
        if self.config_cache is None:
            return await get_active_config(self.db)
        return await self.config_cache.get_or_compute(
            ACTIVE_CONFIG_KEY, lambda: get_active_config(self.db)
        )

    async def find_active_theme(self, year: int, month: int) -> MonthlyTheme | None:
        result = await self.db.execute(
            select(MonthlyThemeDB).where(
                MonthlyThemeDB.year == year,
                MonthlyThemeDB.month == month,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        keywords = row.keywords if isinstance(row.keywords, list) else []
        return MonthlyTheme(
            year=row.year,
            month=row.month,
            keywords=tuple(str(k) for k in keywords),
            name=row.name,
        )

    async def find_category_usage(
        self, user_id: str, category_id: str, month: str
    ) -> CategoryUsage | None:
        result = await self.db.execute(
            select(UserCategoryUsage)
            .where(
                UserCategoryUsage.user_id == user_id,
                UserCategoryUsage.category_id == category_id,
                UserCategoryUsage.month == month,
            )
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _usage_to_domain(row) if row is not None else None

    async def find_any_category_usage(self, category_id: str, month: str) -> CategoryUsage | None:
        result = await self.db.execute(
            select(UserCategoryUsage)
            .where(
                UserCategoryUsage.category_id == category_id,
                UserCategoryUsage.month == month,
            )
            .order_by(UserCategoryUsage.id.asc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _usage_to_domain(row) if row is not None else None

    async def find_free_category_usage(
        self, user_id: str, iso_year: int, iso_week: int
    ) -> FreeCategoryUsage | None:
        result = await self.db.execute(
            select(FreeCategoryUsageDB).where(
                FreeCategoryUsageDB.user_id == user_id,
                FreeCategoryUsageDB.iso_year == iso_year,
                FreeCategoryUsageDB.iso_week == iso_week,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return FreeCategoryUsage(
            user_id=row.user_id,
            iso_year=row.iso_year,
            iso_week=row.iso_week,
            visit_id=row.visit_id,
        )

    async def find_visits_to_recalculate(self, flt: RecalculationFilter) -> list[StoredVisit]:
        stmt = select(VisitData)
        if flt.visit_id is not None:
            stmt = stmt.where(VisitData.id == flt.visit_id)
        else:
            stmt = stmt.where(VisitData.state == str(flt.state))
            if flt.season is not None:
                stmt = stmt.where(VisitData.year == flt.season)
        result = await self.db.execute(stmt.order_by(VisitData.id.asc()))
        return [visit_to_domain(row) for row in result.scalars().all()]

    async def persist_score(self, visit_id: str, breakdown: ScoreBreakdown) -> None:
        """Write the total and merge the breakdown into ``extra_points``.

        Raises:
            LookupError: If the visit does not exist.
        """
        row = await self.db.get(VisitData, visit_id)
        if row is None:
            msg = f"Visit {visit_id} not found"
            raise LookupError(msg)
        row.points = breakdown.total_points
        # Assign a new dict so the JSON column change is detected
        row.extra_points = {**(row.extra_points or {}), **breakdown.to_dict()}
        await self.db.flush()


# ---------------------------------------------------------------------------
# Ledger writers (submission handler side; the scoring core never writes these)
# ---------------------------------------------------------------------------


async def record_category_usage(
    db: AsyncSession,
    user_id: str,
    category_id: str,
    visit_id: str,
    on_date: date,
) -> tuple[int, bool]:
    """Record that *user_id* completed *category_id*; returns ``(points, is_first)``.

    The "first this month" flag is re-read here, at write time, rather than
    trusted from an earlier availability check.
    """
    month = month_key(on_date)
    existing = await db.execute(
        select(UserCategoryUsage.id)
        .where(UserCategoryUsage.category_id == category_id, UserCategoryUsage.month == month)
        .limit(1)
    )
    is_first = existing.scalar_one_or_none() is None
    points = category_completion_points(is_first)
    db.add(
        UserCategoryUsage(
            user_id=user_id,
            category_id=category_id,
            month=month,
            points=points,
            visit_id=visit_id,
        )
    )
    await db.flush()
    logger.info(
        "User %s used category %s in %s (%d pts%s)",
        user_id,
        category_id,
        month,
        points,
        ", first" if is_first else "",
    )
    return points, is_first


async def record_free_category_usage(
    db: AsyncSession,
    user_id: str,
    visit_id: str,
    on_date: date,
) -> FreeCategoryUsage:
    """Record the weekly free-category submission, replacing any entry for that week."""
    iso_year, iso_week, _ = on_date.isocalendar()
    result = await db.execute(
        select(FreeCategoryUsageDB).where(
            FreeCategoryUsageDB.user_id == user_id,
            FreeCategoryUsageDB.iso_year == iso_year,
            FreeCategoryUsageDB.iso_week == iso_week,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        db.add(
            FreeCategoryUsageDB(
                user_id=user_id, iso_year=iso_year, iso_week=iso_week, visit_id=visit_id
            )
        )
    else:
        row.visit_id = visit_id
    await db.flush()
    return FreeCategoryUsage(
        user_id=user_id, iso_year=iso_year, iso_week=iso_week, visit_id=visit_id
    )
