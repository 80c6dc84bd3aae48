"""Monthly theme bonus: flat points for visits matching the month's keywords."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from strakata.constants import THEME_BONUS_POINTS
from strakata.models import Place
from strakata.protocols import VisitStore


@dataclass(frozen=True)
class ThemeBonus:
    """Bonus awarded and the distinct keywords that triggered it."""

    bonus: float = 0.0
    matched_keywords: list[str] = field(default_factory=list)


NO_BONUS = ThemeBonus()


def match_theme_keywords(
    keywords: Iterable[str],
    places: Sequence[Place],
    route_description: str | None = None,
) -> ThemeBonus:
    """Case-insensitive substring match of *keywords* against places and route text.

    Each place is searched as ``name + description``; the route description is
    searched separately.  The bonus is flat: one matched keyword earns the
    same as ten.
    """
    normalized: list[str] = []
    for kw in keywords:
        k = kw.strip().lower()
        if k and k not in normalized:
            normalized.append(k)
    if not normalized:
        return NO_BONUS

    texts = [f"{p.name} {p.description or ''}".lower() for p in places]
    if route_description:
        texts.append(route_description.lower())

    matched = [kw for kw in normalized if any(kw in text for text in texts)]
    if not matched:
        return NO_BONUS
    return ThemeBonus(bonus=THEME_BONUS_POINTS, matched_keywords=matched)


async def calculate_theme_bonus(
    store: VisitStore,
    visit_date: date,
    places: Sequence[Place],
    route_description: str | None = None,
) -> ThemeBonus:
    """Resolve the theme active in the visit's month and match against it.

    No theme, or a theme without keywords, yields no bonus.
    """
    theme = await store.find_active_theme(visit_date.year, visit_date.month)
    if theme is None or not theme.keywords:
        return NO_BONUS
    return match_theme_keywords(theme.keywords, places, route_description)
