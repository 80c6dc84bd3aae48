"""Batch recalculation of stored visits after the scoring configuration changes.

Each visit is rescored independently against the active configuration and
its breakdown persisted with a ``recalculated_at`` timestamp.  Synthetic
route-creator bonus visits are left untouched.  A failure on one visit is
logged and counted; the batch carries on.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

from strakata.engine import score_visit
from strakata.models import ScoreBreakdown, ScoringConfig, StoredVisit, parse_places, parse_route
from strakata.protocols import RecalculationFilter, VisitStore
from strakata.scoring import is_route_creator_bonus

logger = logging.getLogger(__name__)


@dataclass
class RecalculationReport:
    """Aggregate outcome of a recalculation run."""

    selected: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    not_processed: int = 0
    cancelled: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.cancelled


class VisitLocks:
    """Registry of per-visit locks: at most one in-flight recalculation per visit.

    Share one instance between concurrent runs to serialise writes to the
    same visit across them.  A visit's lock is dropped once nobody holds or
    waits on it, so the registry only contains visits currently in flight.
    Locks belong to the event loop they are first used on; keep one registry
    per loop.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, visit_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(visit_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[visit_id] = lock
        self._users[visit_id] = self._users.get(visit_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[visit_id] -= 1
            if self._users[visit_id] == 0:
                del self._users[visit_id]
                del self._locks[visit_id]

    def __len__(self) -> int:
        return len(self._locks)


async def recalculate_visit(
    store: VisitStore,
    visit: StoredVisit,
    config: ScoringConfig,
    *,
    now: datetime | None = None,
) -> ScoreBreakdown:
    """Rescore one stored visit and persist the result.

    Raises:
        ValueError: If the stored route or places are malformed.
    """
    route = parse_route(visit.route_raw)
    places = parse_places(visit.places_raw)
    breakdown = await score_visit(
        store,
        route,
        places,
        config,
        visit_date=visit.visit_date,
        route_description=visit.route_description,
    )
    breakdown = dataclasses.replace(breakdown, recalculated_at=now or datetime.now(UTC))
    await store.persist_score(visit.id, breakdown)
    return breakdown


async def recalculate_points(
    store: VisitStore,
    config: ScoringConfig | None = None,
    *,
    visit_id: str | None = None,
    season: int | None = None,
    concurrency: int = 1,
    cancel_event: asyncio.Event | None = None,
    locks: VisitLocks | None = None,
    now: datetime | None = None,
) -> RecalculationReport:
    """Re-apply scoring to one visit (by id) or to a season's approved visits.

    When *config* is omitted the store's active configuration is used.

    Setting *cancel_event* stops the run before the next visit starts;
    visits already in flight finish.

    Raises:
        LookupError: If no config is given and none is active.
    """
    if concurrency < 1:
        msg = f"concurrency must be at least 1, got {concurrency}"
        raise ValueError(msg)
    if config is None:
        config = await store.find_active_scoring_config()
        if config is None:
            msg = "No active scoring config found"
            raise LookupError(msg)

    now = now or datetime.now(UTC)
    if visit_id is not None:
        flt = RecalculationFilter(visit_id=visit_id)
    else:
        flt = RecalculationFilter(season=season or now.year)
    visits = await store.find_visits_to_recalculate(flt)
    report = RecalculationReport(selected=len(visits))
    if not visits:
        logger.info("No visits found to recalculate (%s)", flt)
        return report

    visit_locks = locks if locks is not None else VisitLocks()
    semaphore = asyncio.Semaphore(concurrency)

    async def _run(visit: StoredVisit) -> None:
        if is_route_creator_bonus(visit.extra_points):
            logger.debug("Skipping route-creator bonus visit %s", visit.id)
            report.skipped += 1
            return
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                report.not_processed += 1
                return
            async with visit_locks.hold(visit.id):
                try:
                    breakdown = await recalculate_visit(store, visit, config, now=now)
                except Exception as exc:
                    logger.warning("Recalculation of visit %s failed", visit.id, exc_info=True)
                    report.failed += 1
                    report.errors[visit.id] = str(exc) or type(exc).__name__
                    return
        report.updated += 1
        logger.debug("Visit %s: %.1f -> %.1f", visit.id, visit.points, breakdown.total_points)

    await asyncio.gather(*(_run(v) for v in visits))

    logger.info(
        "Recalculated %d of %d visit(s): %d skipped, %d failed%s",
        report.updated,
        report.selected,
        report.skipped,
        report.failed,
        ", cancelled" if report.cancelled else "",
    )
    return report
