"""Usage limits for Strakatá route categories and the weekly free category.

Rules:

1. Each category can be used at most once per user per calendar month.
2. The first completion of a category in a month (by anyone) earns a bonus.
3. One free-category ("VOLNÁ") submission is allowed per user per ISO week.

These checks only read the usage ledger; recording usage is up to the
submission handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from strakata.constants import CATEGORY_COMPLETION_POINTS, CATEGORY_FIRST_BONUS_POINTS
from strakata.protocols import VisitStore


@dataclass(frozen=True)
class CategoryAvailability:
    available: bool
    is_first_this_month: bool = False
    message: str | None = None


@dataclass(frozen=True)
class FreeCategoryStatus:
    available: bool
    iso_year: int
    iso_week: int
    last_visit_id: str | None = None

    @property
    def message(self) -> str | None:
        if self.available:
            return None
        return f"the free category was already used in week {self.iso_week}/{self.iso_year}"


def month_key(day: date) -> str:
    """Ledger month key, e.g. ``"2025-06"``."""
    return f"{day.year:04d}-{day.month:02d}"


async def check_category_availability(
    store: VisitStore,
    user_id: str,
    category_id: str,
    month: str,
) -> CategoryAvailability:
    """Can *user_id* use *category_id* in *month*, and would they be the first?

    ``is_first_this_month`` is a global flag, independent of the user's own
    availability: it is true while nobody has a ledger entry for the
    category in that month.
    """
    own = await store.find_category_usage(user_id, category_id, month)
    anyone = own or await store.find_any_category_usage(category_id, month)
    is_first = anyone is None

    if own is not None:
        return CategoryAvailability(
            available=False,
            is_first_this_month=is_first,
            message="this category was already used this month; each category counts once a month",
        )
    return CategoryAvailability(available=True, is_first_this_month=is_first)


async def check_free_category_availability(
    store: VisitStore,
    user_id: str,
    on_date: date,
) -> FreeCategoryStatus:
    """One free-category submission per ISO week."""
    iso_year, iso_week, _ = on_date.isocalendar()
    usage = await store.find_free_category_usage(user_id, iso_year, iso_week)
    if usage is not None:
        return FreeCategoryStatus(
            available=False,
            iso_year=iso_year,
            iso_week=iso_week,
            last_visit_id=usage.visit_id,
        )
    return FreeCategoryStatus(available=True, iso_year=iso_year, iso_week=iso_week)


def category_completion_points(is_first: bool) -> int:
    """Ledger points for completing a category: one more for the month's first."""
    return CATEGORY_COMPLETION_POINTS + (CATEGORY_FIRST_BONUS_POINTS if is_first else 0)
