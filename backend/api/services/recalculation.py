"""Recalculation service: rescore stored visits with the active ruleset.

Run as a module to recalculate the configured season::

    python -m backend.api.services.recalculation
"""

from __future__ import annotations

import asyncio
import logging
import weakref

from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.config import Settings
from backend.api.db.database import create_db_engine, create_session_factory, session_scope
from backend.api.schemas.scoring import RecalculationResponse
from backend.api.services.cache import TTLCache
from backend.api.services.visit_store import SqlVisitStore
from strakata.models import ScoringConfig
from strakata.recalculation import VisitLocks, recalculate_points

logger = logging.getLogger(__name__)

# One registry per event loop; overlapping runs on a loop share it
_locks_by_loop: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, VisitLocks] = (
    weakref.WeakKeyDictionary()
)


def shared_visit_locks() -> VisitLocks:
    """Lock registry shared by every recalculation on the running event loop."""
    loop = asyncio.get_running_loop()
    locks = _locks_by_loop.get(loop)
    if locks is None:
        locks = VisitLocks()
        _locks_by_loop[loop] = locks
    return locks


async def run_recalculation(
    db: AsyncSession,
    settings: Settings,
    *,
    visit_id: str | None = None,
    cancel_event: asyncio.Event | None = None,
    config_cache: TTLCache[ScoringConfig] | None = None,
) -> RecalculationResponse:
    """Recalculate one visit or the configured season's approved visits.

    Returns a failed response instead of raising when no scoring config
    is active.
    """
    store = SqlVisitStore(db, config_cache=config_cache)
    try:
        report = await recalculate_points(
            store,
            visit_id=visit_id,
            season=settings.season_year or None,
            concurrency=settings.recalculation_concurrency,
            cancel_event=cancel_event,
            locks=shared_visit_locks(),
        )
    except LookupError as exc:
        logger.warning("Recalculation aborted: %s", exc)
        return RecalculationResponse(
            success=False, count=0, selected=0, skipped=0, failed=0, message=str(exc)
        )
    return RecalculationResponse.from_report(report)


async def _main(settings: Settings) -> RecalculationResponse:
    cache: TTLCache[ScoringConfig] = TTLCache(ttl_s=settings.config_cache_ttl_s)
    engine = create_db_engine(settings)
    try:
        async with session_scope(create_session_factory(engine)) as session:
            return await run_recalculation(session, settings, config_cache=cache)
    finally:
        await engine.dispose()


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    response = asyncio.run(_main(settings))
    logger.info("Recalculation finished: %s", response.model_dump_json())


if __name__ == "__main__":
    main()
