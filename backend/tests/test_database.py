"""Tests for the database session helpers."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.api.config import Settings
from backend.api.db.database import create_db_engine, create_session_factory, session_scope
from backend.api.db.models import User
from backend.tests.conftest import _test_session_factory


class TestSessionScope:
    @pytest.mark.asyncio
    async def test_commits_on_success(self) -> None:
        async with session_scope(_test_session_factory) as session:
            session.add(User(id="user-c", email="c@test.com", name="Cyril"))

        async with _test_session_factory() as check:
            user = await check.get(User, "user-c")
            assert user is not None
            assert user.name == "Cyril"

    @pytest.mark.asyncio
    async def test_rolls_back_and_reraises(self) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            async with session_scope(_test_session_factory) as session:
                session.add(User(id="user-d", email="d@test.com", name="Dana"))
                await session.flush()
                raise RuntimeError("boom")

        async with _test_session_factory() as check:
            rows = (await check.execute(select(User.id))).scalars().all()
            assert "user-d" not in rows


class TestEngineFactory:
    @pytest.mark.asyncio
    async def test_engine_from_settings(self) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, database_url="sqlite+aiosqlite:///", debug=True
        )
        engine = create_db_engine(settings)
        try:
            assert isinstance(engine, AsyncEngine)
            assert engine.echo is True
            factory = create_session_factory(engine)
            async with factory() as session:
                assert session.bind is engine
        finally:
            await engine.dispose()
