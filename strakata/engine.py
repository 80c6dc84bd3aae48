"""Submission evaluation: run every competition rule, then score.

:func:`evaluate_submission` is the entry point a submission handler calls.
It never raises for a rule violation; violations are collected on the
returned :class:`SubmissionVerdict` together with the full score breakdown,
so a reviewer sees both why a visit is invalid and what it would be worth.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from strakata.category_availability import (
    CategoryAvailability,
    FreeCategoryStatus,
    check_category_availability,
    check_free_category_availability,
    month_key,
)
from strakata.constants import (
    ALLOWED_ACTIVITY_TYPES,
    LOOP_MAX_START_END_M,
    PHOTO_MAX_DAYS_OLD,
    PROXIMITY_MAX_DISTANCE_M,
)
from strakata.models import Place, RouteData, ScoreBreakdown, ScoringConfig, ValidationResult
from strakata.protocols import VisitStore
from strakata.route_similarity import SimilarityResult, check_route_similarity
from strakata.scoring import calculate_points
from strakata.submission_rules import (
    validate_activity_type,
    validate_loop_closure,
    validate_place_requirement,
    validate_visit_submission,
)
from strakata.theme_bonus import NO_BONUS, calculate_theme_bonus
from strakata.trail_validation import ProximityResult, validate_places_proximity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleSettings:
    """Deployment-level rule parameters."""

    photo_max_days_old: float = PHOTO_MAX_DAYS_OLD
    proximity_max_distance_m: float = PROXIMITY_MAX_DISTANCE_M
    loop_max_start_end_m: float = LOOP_MAX_START_END_M
    allowed_activity_types: tuple[str, ...] = ALLOWED_ACTIVITY_TYPES


@dataclass
class Submission:
    """A visit as submitted, already parsed into typed values."""

    user_id: str
    route: RouteData
    places: list[Place]
    visit_date: date
    upload_date: datetime | None = None
    activity_type: str | None = None
    route_description: str | None = None
    category_id: str | None = None
    is_free_category: bool = False
    # Set when re-validating an edit so the visit is not compared with itself
    visit_id: str | None = None


@dataclass
class SubmissionVerdict:
    """Validity verdict plus point breakdown for one submission."""

    breakdown: ScoreBreakdown
    violations: list[ValidationResult] = field(default_factory=list)
    proximity: list[ProximityResult] = field(default_factory=list)
    similarity: SimilarityResult | None = None
    category: CategoryAvailability | None = None
    free_category: FreeCategoryStatus | None = None

    @property
    def valid(self) -> bool:
        return not self.violations

    @property
    def messages(self) -> list[str]:
        return [v.message for v in self.violations if v.message]


def _upload_datetime(submission: Submission) -> datetime:
    return submission.upload_date or datetime.now(UTC)


async def evaluate_submission(
    store: VisitStore,
    submission: Submission,
    config: ScoringConfig,
    *,
    rules: RuleSettings | None = None,
) -> SubmissionVerdict:
    """Validate *submission* against every rule and compute its points."""
    rules = rules or RuleSettings()
    uploaded = _upload_datetime(submission)
    track = submission.route.track
    violations: list[ValidationResult] = []

    for result in (
        validate_visit_submission(submission.visit_date, uploaded, rules.photo_max_days_old),
        validate_activity_type(submission.activity_type, rules.allowed_activity_types),
        validate_place_requirement(submission.places, config),
        validate_loop_closure(
            track, rules.loop_max_start_end_m, exempt=submission.is_free_category
        ),
    ):
        if not result.valid:
            violations.append(result)

    proximity = validate_places_proximity(
        submission.places,
        track.latlons,
        is_free_category=submission.is_free_category,
        max_distance_m=rules.proximity_max_distance_m,
    )
    for res in proximity:
        if not res.valid:
            violations.append(
                ValidationResult(valid=False, code="too_far_from_trail", message=res.message)
            )

    similarity = await check_route_similarity(
        store, submission.user_id, track.latlons, submission.visit_id
    )
    if similarity.is_duplicate:
        violations.append(
            ValidationResult(valid=False, code="duplicate_route", message=similarity.message)
        )

    category: CategoryAvailability | None = None
    if submission.category_id:
        category = await check_category_availability(
            store, submission.user_id, submission.category_id, month_key(uploaded)
        )
        if not category.available:
            violations.append(
                ValidationResult(valid=False, code="category_used", message=category.message)
            )

    free_category: FreeCategoryStatus | None = None
    if submission.is_free_category:
        free_category = await check_free_category_availability(
            store, submission.user_id, uploaded.date()
        )
        if not free_category.available:
            violations.append(
                ValidationResult(
                    valid=False, code="free_category_used", message=free_category.message
                )
            )

    breakdown = await score_visit(
        store,
        submission.route,
        submission.places,
        config,
        visit_date=submission.visit_date,
        route_description=submission.route_description,
    )

    if violations:
        logger.info(
            "Submission by %s has %d rule violation(s): %s",
            submission.user_id,
            len(violations),
            [v.code for v in violations],
        )
    return SubmissionVerdict(
        breakdown=breakdown,
        violations=violations,
        proximity=proximity,
        similarity=similarity,
        category=category,
        free_category=free_category,
    )


async def score_visit(
    store: VisitStore,
    route: RouteData,
    places: Sequence[Place],
    config: ScoringConfig,
    *,
    visit_date: date | None,
    route_description: str | None = None,
) -> ScoreBreakdown:
    """Resolve the month's theme bonus, then :func:`calculate_points`."""
    theme = NO_BONUS
    if visit_date is not None:
        theme = await calculate_theme_bonus(store, visit_date, places, route_description)
    return calculate_points(
        route, places, config, route_description=route_description, theme=theme
    )
