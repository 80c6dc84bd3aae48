"""Test fixtures for the backend test suite."""

from __future__ import annotations

import math
from collections.abc import AsyncGenerator

import pytest_asyncio
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.api.db.models import Base, StrataCategory, User

# In-memory SQLite for test isolation; map JSONB -> JSON for SQLite compat
_test_engine = create_async_engine("sqlite+aiosqlite:///", echo=False)


@event.listens_for(_test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn: object, connection_record: object) -> None:
    """Enable foreign keys for the SQLite test database."""
    cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Patch JSONB columns to use JSON for SQLite
for table in Base.metadata.tables.values():
    for column in table.columns:
        if isinstance(column.type, JSONB):
            column.type = JSON()

_test_session_factory = async_sessionmaker(
    bind=_test_engine, class_=AsyncSession, expire_on_commit=False
)

BASE_LAT = 49.19
BASE_LON = 16.61
_DEG_PER_M = 180.0 / (math.pi * 6_371_000.0)


def loop_points(n: int = 40, step_m: float = 50.0) -> list[dict[str, float]]:
    """Out-and-back track as submitted: ``n`` points north, then back again."""
    out = [{"lat": BASE_LAT + i * step_m * _DEG_PER_M, "lng": BASE_LON} for i in range(n)]
    return out + out[::-1]


@pytest_asyncio.fixture(autouse=True)
async def _setup_db() -> AsyncGenerator[None, None]:
    """Create tables and seed users and categories before each test."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with _test_session_factory() as session:
        session.add(User(id="user-a", email="a@test.com", name="Alice"))
        session.add(User(id="user-b", email="b@test.com", name="Bob"))
        session.add(StrataCategory(id="lesy", name="Lesy"))
        session.add(StrataCategory(id="vrcholy", name="Vrcholy", order=1))
        await session.commit()

    yield

    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with _test_session_factory() as session:
        yield session
