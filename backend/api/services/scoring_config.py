"""Service layer for the active scoring configuration.

At most one ``ScoringConfigDB`` row is active.  Reads fall back to creating
the default ruleset so a fresh deployment can score immediately.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.db.models import ScoringConfigDB
from backend.api.schemas.scoring import ScoringConfigUpdate
from backend.api.services.cache import TTLCache
from strakata.models import ScoringConfig, default_scoring_config

logger = logging.getLogger(__name__)

ACTIVE_CONFIG_KEY = "active"


def config_to_domain(row: ScoringConfigDB) -> ScoringConfig:
    return ScoringConfig(
        points_per_km=row.points_per_km,
        min_distance_km=row.min_distance_km,
        require_at_least_one_place=row.require_at_least_one_place,
        place_type_points={str(k): float(v) for k, v in (row.place_type_points or {}).items()},
    )


async def _first_active_row(db: AsyncSession) -> ScoringConfigDB | None:
    result = await db.execute(
        select(ScoringConfigDB)
        .where(ScoringConfigDB.active.is_(True))
        .order_by(ScoringConfigDB.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_config(db: AsyncSession) -> ScoringConfig | None:
    """Return the active ruleset, or None if none is configured."""
    row = await _first_active_row(db)
    return config_to_domain(row) if row is not None else None


async def get_or_create_active_config(db: AsyncSession) -> ScoringConfig:
    """Return the active ruleset, creating the default one if missing."""
    row = await _first_active_row(db)
    if row is not None:
        return config_to_domain(row)

    default = default_scoring_config()
    db.add(
        ScoringConfigDB(
            points_per_km=default.points_per_km,
            min_distance_km=default.min_distance_km,
            require_at_least_one_place=default.require_at_least_one_place,
            place_type_points={str(k): v for k, v in default.place_type_points.items()},
            active=True,
        )
    )
    await db.flush()
    logger.info("Created default scoring config")
    return default


async def update_active_config(
    db: AsyncSession,
    body: ScoringConfigUpdate,
    cache: TTLCache[ScoringConfig] | None = None,
) -> ScoringConfig:
    """Replace the active ruleset in place and deactivate any stray active rows.

    Omitted ``place_type_points`` keep the current mapping (or the defaults
    when creating the first row).
    """
    row = await _first_active_row(db)
    if row is None:
        default_points = default_scoring_config().place_type_points
        row = ScoringConfigDB(
            points_per_km=body.points_per_km,
            min_distance_km=body.min_distance_km,
            require_at_least_one_place=body.require_at_least_one_place,
            place_type_points=body.place_type_points
            or {str(k): v for k, v in default_points.items()},
            active=True,
        )
        db.add(row)
        await db.flush()
    else:
        row.points_per_km = body.points_per_km
        row.min_distance_km = body.min_distance_km
        row.require_at_least_one_place = body.require_at_least_one_place
        if body.place_type_points is not None:
            row.place_type_points = body.place_type_points
        await db.flush()
        await db.execute(
            update(ScoringConfigDB)
            .where(ScoringConfigDB.active.is_(True), ScoringConfigDB.id != row.id)
            .values(active=False)
        )

    if cache is not None:
        cache.invalidate(ACTIVE_CONFIG_KEY)
    config = config_to_domain(row)
    logger.info(
        "Scoring config updated: %.2f pts/km, min %.1f km",
        config.points_per_km,
        config.min_distance_km,
    )
    return config
