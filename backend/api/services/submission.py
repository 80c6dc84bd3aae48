"""Submission handler: validate, score and store a new visit.

Rule violations do not raise.  An invalid submission is not stored and its
verdict is returned so the caller can show every message at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.config import Settings
from backend.api.db.models import VisitData
from backend.api.schemas.visit import VisitSubmissionIn
from backend.api.services.cache import TTLCache
from backend.api.services.scoring_config import get_or_create_active_config
from backend.api.services.visit_store import (
    SqlVisitStore,
    record_category_usage,
    record_free_category_usage,
)
from strakata.engine import SubmissionVerdict, evaluate_submission
from strakata.models import ScoringConfig

logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    """Verdict for a submission plus the stored visit id when accepted."""

    verdict: SubmissionVerdict
    visit_id: str | None = None
    category_points: int = 0

    @property
    def accepted(self) -> bool:
        return self.visit_id is not None


async def submit_visit(
    db: AsyncSession,
    payload: VisitSubmissionIn,
    settings: Settings,
    *,
    upload_date: datetime | None = None,
    config_cache: TTLCache[ScoringConfig] | None = None,
) -> SubmissionOutcome:
    """Evaluate *payload* and, when every rule passes, persist it.

    Category and free-category ledger entries are written in the same unit
    of work as the visit row.
    """
    uploaded = upload_date or datetime.now(UTC)
    store = SqlVisitStore(db, config_cache=config_cache)
    config = await store.find_active_scoring_config() or await get_or_create_active_config(db)

    verdict = await evaluate_submission(
        store,
        payload.to_submission(uploaded),
        config,
        rules=settings.rule_settings(),
    )
    if not verdict.valid:
        return SubmissionOutcome(verdict=verdict)

    breakdown = verdict.breakdown
    visit = VisitData(
        user_id=payload.user_id,
        route_title=payload.route_title,
        route_description=payload.route_description,
        visited_places=", ".join(p.name for p in payload.places),
        visit_date=payload.visit_date,
        year=payload.visit_date.year,
        state=str(payload.state),
        activity_type=payload.activity_type,
        route=payload.route_json(),
        places=payload.places_json(),
        extra_points=breakdown.to_dict(),
        extra_data=payload.extra_data,
        points=breakdown.total_points,
    )
    db.add(visit)
    await db.flush()

    category_points = 0
    if payload.category_id:
        category_points, _ = await record_category_usage(
            db, payload.user_id, payload.category_id, visit.id, uploaded.date()
        )
        visit.extra_points = {**(visit.extra_points or {}), "categoryPoints": category_points}
    if payload.is_free_category:
        await record_free_category_usage(db, payload.user_id, visit.id, uploaded.date())
    await db.flush()

    logger.info(
        "Visit %s stored for user %s: %.2f pts",
        visit.id,
        payload.user_id,
        breakdown.total_points,
    )
    return SubmissionOutcome(verdict=verdict, visit_id=visit.id, category_points=category_points)
