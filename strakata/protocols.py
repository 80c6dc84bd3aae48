"""Storage collaborator interface consumed by the scoring core.

The core never talks to a database directly.  Everything it needs to read,
and the single write it performs (persisting a score breakdown), goes
through an object satisfying :class:`VisitStore`.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from strakata.models import (
    CategoryUsage,
    FreeCategoryUsage,
    MonthlyTheme,
    ScoreBreakdown,
    ScoringConfig,
    StoredVisit,
    VisitState,
)


@dataclass(frozen=True)
class RecalculationFilter:
    """Selects the visits a recalculation run should touch.

    With ``visit_id`` set only that visit is selected; otherwise all visits
    of ``season`` in ``state``.
    """

    visit_id: str | None = None
    season: int | None = None
    state: VisitState = VisitState.APPROVED


@runtime_checkable
class VisitStore(Protocol):
    """Async read/write access to visits, configuration and usage ledgers."""

    async def find_visits_by_user(
        self,
        user_id: str,
        states: Sequence[VisitState],
        exclude_visit_id: str | None = None,
    ) -> list[StoredVisit]:
        """Return the user's visits in any of *states*, minus *exclude_visit_id*."""
        ...

    async def find_active_scoring_config(self) -> ScoringConfig | None:
        """Return the single active scoring configuration, if any."""
        ...

    async def find_active_theme(self, year: int, month: int) -> MonthlyTheme | None:
        """Return the keyword theme for a calendar month, if any."""
        ...

    async def find_category_usage(
        self, user_id: str, category_id: str, month: str
    ) -> CategoryUsage | None:
        """Return the user's ledger entry for a category in a ``YYYY-MM`` month."""
        ...

    async def find_any_category_usage(self, category_id: str, month: str) -> CategoryUsage | None:
        """Return any user's ledger entry for a category in a month."""
        ...

    async def find_free_category_usage(
        self, user_id: str, iso_year: int, iso_week: int
    ) -> FreeCategoryUsage | None:
        """Return the user's free-category ledger entry for an ISO week."""
        ...

    async def find_visits_to_recalculate(self, flt: RecalculationFilter) -> list[StoredVisit]:
        """Return the visits selected by *flt*."""
        ...

    async def persist_score(self, visit_id: str, breakdown: ScoreBreakdown) -> None:
        """Store the visit's new total and breakdown."""
        ...
