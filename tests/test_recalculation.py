"""Tests for strakata.recalculation: batch rescoring of stored visits."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from strakata.models import MonthlyTheme, ScoreBreakdown, ScoringConfig, StoredVisit, VisitState
from strakata.recalculation import VisitLocks, recalculate_points, recalculate_visit
from tests.conftest import FakeVisitStore, line_track, route_json

NOW = datetime(2025, 7, 1, 12, 0, tzinfo=UTC)


def _visit(i: int, **overrides: object) -> StoredVisit:
    fields: dict[str, object] = {
        "id": f"v{i}",
        "user_id": "user-a",
        "state": VisitState.APPROVED,
        "route_raw": route_json(line_track(10), totalDistance=4000 + i * 1000),
        "places_raw": [{"name": "Hády", "type": "PEAK"}],
        "visit_date": datetime(2025, 6, 1 + i, tzinfo=UTC),
        "points": 1.0,
    }
    fields.update(overrides)
    return StoredVisit(**fields)  # type: ignore[arg-type]


class TestRecalculateVisit:
    @pytest.mark.asyncio
    async def test_persists_breakdown_with_timestamp(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        visit = _visit(0)
        store.visits.append(visit)
        breakdown = await recalculate_visit(store, visit, config, now=NOW)
        assert breakdown.total_points == 9.0
        assert breakdown.recalculated_at == NOW
        assert store.persisted["v0"] == breakdown
        assert visit.points == 9.0
        assert visit.extra_points["recalculatedAt"] == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_applies_theme_of_visit_month(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.themes.append(MonthlyTheme(year=2025, month=6, keywords=("hády",)))
        breakdown = await recalculate_visit(store, _visit(0), config, now=NOW)
        assert breakdown.theme_bonus == 5.0

    @pytest.mark.asyncio
    async def test_malformed_route_raises(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        visit = _visit(0, route_raw={"trackPoints": "nope"})
        with pytest.raises(ValueError):
            await recalculate_visit(store, visit, config, now=NOW)
        assert store.persisted == {}


class TestRecalculatePoints:
    @pytest.mark.asyncio
    async def test_route_creator_bonus_left_untouched(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.visits.extend(_visit(i) for i in range(9))
        bonus = _visit(
            9,
            extra_points={"type": "route_creator_bonus", "reason": "new route"},
            points=20.0,
        )
        store.visits.append(bonus)

        report = await recalculate_points(store, config, season=2025, now=NOW)

        assert report.selected == 10
        assert report.updated == 9
        assert report.skipped == 1
        assert report.success
        assert "v9" not in store.persisted
        assert bonus.points == 20.0
        assert bonus.extra_points == {"type": "route_creator_bonus", "reason": "new route"}

    @pytest.mark.asyncio
    async def test_uses_active_config_when_omitted(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.config = config
        store.visits.append(_visit(0))
        report = await recalculate_points(store, season=2025, now=NOW)
        assert report.updated == 1
        assert store.persisted["v0"].config == config

    @pytest.mark.asyncio
    async def test_no_active_config(self, store: FakeVisitStore) -> None:
        with pytest.raises(LookupError, match="No active scoring config"):
            await recalculate_points(store, now=NOW)

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self, store: FakeVisitStore, config: ScoringConfig) -> None:
        with pytest.raises(ValueError, match="concurrency"):
            await recalculate_points(store, config, concurrency=0)

    @pytest.mark.asyncio
    async def test_single_visit_by_id(self, store: FakeVisitStore, config: ScoringConfig) -> None:
        store.visits.extend(_visit(i) for i in range(3))
        report = await recalculate_points(store, config, visit_id="v1", now=NOW)
        assert report.selected == 1
        assert list(store.persisted) == ["v1"]

    @pytest.mark.asyncio
    async def test_only_approved_visits_of_season(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.visits.extend(
            [
                _visit(0),
                _visit(1, state=VisitState.PENDING_REVIEW),
                _visit(2, visit_date=datetime(2024, 6, 1, tzinfo=UTC)),
            ]
        )
        report = await recalculate_points(store, config, now=NOW)
        assert report.selected == 1
        assert list(store.persisted) == ["v0"]

    @pytest.mark.asyncio
    async def test_nothing_selected(self, store: FakeVisitStore, config: ScoringConfig) -> None:
        report = await recalculate_points(store, config, season=2025, now=NOW)
        assert report.selected == 0
        assert report.updated == 0
        assert report.success

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, store: FakeVisitStore, config: ScoringConfig) -> None:
        store.visits.extend(_visit(i) for i in range(4))
        store.visits.append(_visit(4, route_raw={"trackPoints": [{"latitude": 1}]}))
        store.fail_persist.add("v2")

        report = await recalculate_points(store, config, season=2025, concurrency=2, now=NOW)

        assert report.updated == 3
        assert report.failed == 2
        assert set(report.errors) == {"v2", "v4"}
        assert "rejected" in report.errors["v2"]
        assert not report.success

    @pytest.mark.asyncio
    async def test_concurrent_run_updates_everything(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.visits.extend(_visit(i) for i in range(8))
        report = await recalculate_points(store, config, season=2025, concurrency=4, now=NOW)
        assert report.updated == 8
        assert {v.points for v in store.visits} == {9.0 + 2 * i for i in range(8)}

    @pytest.mark.asyncio
    async def test_cancelled_before_start(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.visits.extend(_visit(i) for i in range(3))
        cancel = asyncio.Event()
        cancel.set()
        report = await recalculate_points(
            store, config, season=2025, cancel_event=cancel, now=NOW
        )
        assert report.cancelled
        assert report.not_processed == 3
        assert report.updated == 0
        assert not report.success

    @pytest.mark.asyncio
    async def test_cancelled_mid_run(self, config: ScoringConfig) -> None:
        cancel = asyncio.Event()

        class CancellingStore(FakeVisitStore):
            async def persist_score(self, visit_id: str, breakdown: ScoreBreakdown) -> None:
                await super().persist_score(visit_id, breakdown)
                cancel.set()

        store = CancellingStore(visits=[_visit(i) for i in range(5)])
        report = await recalculate_points(
            store, config, season=2025, concurrency=1, cancel_event=cancel, now=NOW
        )
        assert report.updated == 1
        assert report.not_processed == 4
        assert report.cancelled


@dataclass
class SlowStore(FakeVisitStore):
    """Yields mid-write and records how many writes per visit overlap."""

    in_flight: dict[str, int] = field(default_factory=dict)
    max_in_flight: dict[str, int] = field(default_factory=dict)

    async def persist_score(self, visit_id: str, breakdown: ScoreBreakdown) -> None:
        self.in_flight[visit_id] = self.in_flight.get(visit_id, 0) + 1
        self.max_in_flight[visit_id] = max(
            self.max_in_flight.get(visit_id, 0), self.in_flight[visit_id]
        )
        try:
            await asyncio.sleep(0.01)
            await super().persist_score(visit_id, breakdown)
        finally:
            self.in_flight[visit_id] -= 1


class TestVisitLocks:
    @pytest.mark.asyncio
    async def test_hold_serialises_same_visit(self) -> None:
        locks = VisitLocks()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("v1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_lock_dropped_after_last_holder(self) -> None:
        locks = VisitLocks()
        async with locks.hold("v1"):
            async with locks.hold("v2"):
                assert len(locks) == 2
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_dropped_when_holder_raises(self) -> None:
        locks = VisitLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("v1"):
                raise RuntimeError("write failed")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_empty_shared_registry_still_used(self, config: ScoringConfig) -> None:
        store = SlowStore(visits=[_visit(1)])
        locks = VisitLocks()
        assert not locks
        first, second = await asyncio.gather(
            recalculate_points(store, config, visit_id="v1", locks=locks, now=NOW),
            recalculate_points(store, config, visit_id="v1", locks=locks, now=NOW),
        )
        assert first.updated == second.updated == 1
        assert store.max_in_flight["v1"] == 1

    @pytest.mark.asyncio
    async def test_shared_locks_serialise_overlapping_runs(self, config: ScoringConfig) -> None:
        store = SlowStore(visits=[_visit(i) for i in range(3)])
        locks = VisitLocks()
        first, second = await asyncio.gather(
            recalculate_points(store, config, season=2025, concurrency=3, locks=locks, now=NOW),
            recalculate_points(store, config, season=2025, concurrency=3, locks=locks, now=NOW),
        )
        assert first.updated == second.updated == 3
        assert store.max_in_flight == {"v0": 1, "v1": 1, "v2": 1}
        assert len(locks) == 0


class TestIdempotence:
    @staticmethod
    def _scores(store: FakeVisitStore) -> dict[str, tuple[float, dict[str, object]]]:
        out: dict[str, tuple[float, dict[str, object]]] = {}
        for visit in store.visits:
            extra = {k: v for k, v in visit.extra_points.items() if k != "recalculatedAt"}
            out[visit.id] = (visit.points, extra)
        return out

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(
        self, store: FakeVisitStore, config: ScoringConfig
    ) -> None:
        store.themes.append(MonthlyTheme(year=2025, month=6, keywords=("hády",)))
        store.visits.extend(_visit(i) for i in range(4))

        first = await recalculate_points(store, config, season=2025, now=NOW)
        after_first = self._scores(store)
        later = datetime(2025, 8, 1, 9, 0, tzinfo=UTC)
        second = await recalculate_points(store, config, season=2025, now=later)

        assert first.updated == second.updated == 4
        assert self._scores(store) == after_first
        assert all(v.extra_points["recalculatedAt"] == later.isoformat() for v in store.visits)
