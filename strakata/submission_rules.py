"""Per-submission competition rules: proof age, activity type, places, loop closure.

Each rule returns a :class:`~strakata.models.ValidationResult`.  Rules fail
open on data-quality problems they cannot judge (an unparseable date, a
missing track) so that a submission is not rejected for something outside
the submitter's control.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime

from strakata.constants import (
    ALLOWED_ACTIVITY_TYPES,
    LOOP_MAX_START_END_M,
    PHOTO_MAX_DAYS_OLD,
)
from strakata.geo import start_end_distance_m
from strakata.models import OK, Place, ScoringConfig, Track, ValidationResult

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


def _to_datetime(value: datetime | date | str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        msg = f"Unsupported date type {type(value).__name__}"
        raise TypeError(msg)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _align_tz(a: datetime, b: datetime) -> tuple[datetime, datetime]:
    """Treat a naive value as UTC when the other one is timezone-aware."""
    if (a.tzinfo is None) == (b.tzinfo is None):
        return a, b
    if a.tzinfo is None:
        return a.replace(tzinfo=UTC), b
    return a, b.replace(tzinfo=UTC)


def _days_between(visit_date: datetime | date | str, upload_date: datetime | None) -> float | None:
    try:
        visit_dt = _to_datetime(visit_date)
    except (TypeError, ValueError):
        logger.warning("Unparseable visit date %r, skipping age check", visit_date)
        return None
    upload_dt = upload_date if upload_date is not None else datetime.now(UTC)
    visit_dt, upload_dt = _align_tz(visit_dt, upload_dt)
    return (upload_dt - visit_dt).total_seconds() / _SECONDS_PER_DAY


def is_photo_within_time_limit(
    visit_date: datetime | date | str,
    upload_date: datetime | None = None,
    max_days_old: float = PHOTO_MAX_DAYS_OLD,
) -> bool:
    """True if the proof was uploaded at most *max_days_old* days after the visit.

    Uploads dated before the visit are accepted; no future-dating check is made.
    """
    days = _days_between(visit_date, upload_date)
    if days is None:
        return True
    return days <= max_days_old


def validate_visit_submission(
    visit_date: datetime | date | str,
    upload_date: datetime | None = None,
    max_days_old: float = PHOTO_MAX_DAYS_OLD,
) -> ValidationResult:
    """Photo-age rule as a user-facing result."""
    days = _days_between(visit_date, upload_date)
    if days is None or days <= max_days_old:
        return OK
    return ValidationResult(
        valid=False,
        code="photo_too_old",
        message=(
            f"proof was uploaded {int(days)} days after the visit, "
            f"limit is {max_days_old:g} days; the visit will not be accepted"
        ),
    )


def is_activity_type_allowed(
    activity_type: str | None,
    allowed: Iterable[str] = ALLOWED_ACTIVITY_TYPES,
) -> bool:
    """Case-insensitive allow-list check; a missing type counts as allowed."""
    if not activity_type:
        return True
    return activity_type.strip().upper() in {a.upper() for a in allowed}


def validate_activity_type(
    activity_type: str | None,
    allowed: Sequence[str] = ALLOWED_ACTIVITY_TYPES,
) -> ValidationResult:
    if is_activity_type_allowed(activity_type, allowed):
        return OK
    allowed_text = ", ".join(a.lower() for a in allowed)
    return ValidationResult(
        valid=False,
        code="activity_not_allowed",
        message=(
            f'activity "{activity_type}" is not allowed this season; '
            f"allowed: {allowed_text}"
        ),
    )


def validate_place_requirement(places: Sequence[Place], config: ScoringConfig) -> ValidationResult:
    """Flag a submission without places when the ruleset requires one.

    Scoring is unaffected; this only marks the visit invalid for review.
    """
    if config.require_at_least_one_place and not places:
        return ValidationResult(
            valid=False,
            code="no_places",
            message="at least one visited place is required",
        )
    return OK


def validate_loop_closure(
    track: Track,
    max_start_end_m: float = LOOP_MAX_START_END_M,
    *,
    exempt: bool = False,
) -> ValidationResult:
    """Start and end of a route must be within *max_start_end_m* of each other."""
    if exempt or len(track) < 2:
        return OK
    gap = start_end_distance_m(track.latlons)
    if gap <= max_start_end_m:
        return OK
    return ValidationResult(
        valid=False,
        code="not_a_loop",
        message=(
            f"start and end of the route are {gap / 1000:.1f} km apart, "
            f"limit is {max_start_end_m / 1000:g} km"
        ),
    )
