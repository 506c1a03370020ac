"""
Unit tests for BatchMigrationManager.

Tests for:
- Plan creation, replacement and lookup
- Sequential and concurrent execution with per-unit results
- Failure isolation and abort_on_failure
- Resuming plans left running, cancellation
- Rollback of moved units
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from switchboard.batch import BatchMigrationManager
from switchboard.exceptions import (
    PlanAlreadyExistsError,
    PlanError,
    PlanNotFoundError,
    PlanStateError,
)
from switchboard.models import Backend, MigrationPlan, MigrationUnit, PlanStatus
from switchboard.observability import MockTracer
from switchboard.status_store import MigrationStatusStore
from tests.fixtures import (
    FailingStatusRepository,
    GatedStatusRepository,
    YieldingPlanRepository,
)

UNITS = [
    MigrationUnit.entity("Team"),
    MigrationUnit.entity("Player"),
    MigrationUnit.function("generateReport"),
]


@pytest.fixture
def failing_repo() -> FailingStatusRepository:
    return FailingStatusRepository({UNITS[1]})


@pytest.fixture
def failing_manager(failing_repo, plan_repo, config, metrics) -> BatchMigrationManager:
    store = MigrationStatusStore(failing_repo, config=config)
    return BatchMigrationManager(store, plan_repo, config=config, metrics=metrics)


@pytest.fixture
def gated_repo() -> GatedStatusRepository:
    return GatedStatusRepository()


@pytest.fixture
def gated_manager(gated_repo, plan_repo, config) -> BatchMigrationManager:
    store = MigrationStatusStore(gated_repo, config=config)
    return BatchMigrationManager(store, plan_repo, config=config)


class TestPlanDefinition:
    async def test_create_plan(self, batch_manager):
        plan = await batch_manager.create_plan("wave-1", UNITS)

        assert plan.status is PlanStatus.PENDING
        assert plan.units == UNITS
        assert plan.progress_percent == 0.0
        assert (await batch_manager.get_plan("wave-1")).units == UNITS

    async def test_duplicate_name_rejected(self, batch_manager):
        await batch_manager.create_plan("wave-1", UNITS)
        with pytest.raises(PlanAlreadyExistsError):
            await batch_manager.create_plan("wave-1", UNITS[:1])

    async def test_replace_discards_results(self, batch_manager):
        await batch_manager.create_plan("wave-1", UNITS)
        await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        plan = await batch_manager.create_plan("wave-1", UNITS[:1], replace=True)

        assert plan.status is PlanStatus.PENDING
        assert plan.results == []
        assert (await batch_manager.get_plan("wave-1")).units == UNITS[:1]

    async def test_unknown_plan(self, batch_manager):
        with pytest.raises(PlanNotFoundError):
            await batch_manager.get_plan("missing")
        with pytest.raises(PlanNotFoundError):
            await batch_manager.execute_plan("missing", Backend.SECONDARY)
        with pytest.raises(PlanNotFoundError):
            await batch_manager.cancel_plan("missing")
        with pytest.raises(PlanNotFoundError):
            await batch_manager.rollback_plan("missing")

    async def test_list_plans(self, batch_manager):
        await batch_manager.create_plan("wave-1", UNITS[:1])
        await batch_manager.create_plan("wave-2", UNITS[1:])
        assert [p.name for p in await batch_manager.list_plans()] == ["wave-1", "wave-2"]


class TestExecution:
    async def test_all_units_migrate(self, batch_manager, store):
        await batch_manager.create_plan("wave-1", UNITS)

        plan = await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        assert plan.status is PlanStatus.COMPLETED
        assert plan.progress_percent == 100.0
        assert plan.target_backend is Backend.SECONDARY
        assert plan.started_at is not None
        assert plan.completed_at is not None
        assert [r.unit for r in plan.results] == UNITS
        assert all(r.previous_backend is Backend.PRIMARY for r in plan.results)
        for unit in UNITS:
            assert await store.get(unit) is Backend.SECONDARY

    async def test_failed_unit_does_not_stop_plan(self, failing_manager, failing_repo):
        await failing_manager.create_plan("wave-1", UNITS)

        plan = await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        assert plan.status is PlanStatus.FAILED
        assert len(plan.results) == 3
        assert plan.progress_percent == 100.0
        assert [r.success for r in plan.results] == [True, False, True]
        assert plan.results[1].error == f"RuntimeError: database unavailable for {UNITS[1]}"
        assert plan.failed_units == [UNITS[1]]
        assert await failing_manager.failed_units("wave-1") == [UNITS[1]]
        assert (await failing_repo.get(UNITS[2])).backend is Backend.SECONDARY

    async def test_progress_is_persisted(self, failing_manager):
        await failing_manager.create_plan("wave-1", UNITS)
        await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        stored = await failing_manager.get_plan("wave-1")

        assert stored.status is PlanStatus.FAILED
        assert stored.progress_percent == 100.0
        assert len(stored.results) == 3

    async def test_plan_saved_after_every_unit(self, batch_manager, plan_repo):
        await batch_manager.create_plan("wave-1", UNITS)
        plan_repo.save = AsyncMock(wraps=plan_repo.save)

        await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        # start, one per unit, finish
        assert plan_repo.save.await_count == len(UNITS) + 2

    async def test_terminal_plan_cannot_rerun(self, failing_manager, failing_repo):
        await failing_manager.create_plan("wave-1", UNITS)
        await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        with pytest.raises(PlanStateError):
            await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        failing_repo.failing_units.clear()
        await failing_manager.create_plan("wave-1", UNITS, replace=True)
        plan = await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        assert plan.status is PlanStatus.COMPLETED
        assert [r.skipped for r in plan.results] == [True, False, True]

    async def test_unit_already_on_target_is_skipped(self, batch_manager, store):
        await store.set(UNITS[0], Backend.SECONDARY)
        await batch_manager.create_plan("wave-1", UNITS)

        plan = await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        assert plan.results[0].skipped is True
        assert plan.results[0].success is True
        assert plan.results[0].previous_backend is None
        assert plan.status is PlanStatus.COMPLETED

    async def test_migrating_to_default_backend_skips(self, batch_manager):
        await batch_manager.create_plan("wave-1", UNITS[:1])
        plan = await batch_manager.execute_plan("wave-1", Backend.PRIMARY)
        assert plan.results[0].skipped is True

    async def test_empty_plan(self, batch_manager):
        created = await batch_manager.create_plan("empty", [])
        assert created.progress_percent == 0.0

        plan = await batch_manager.execute_plan("empty", Backend.SECONDARY)

        assert plan.status is PlanStatus.COMPLETED
        assert plan.progress_percent == 100.0

    async def test_abort_on_failure(self, failing_manager, failing_repo):
        await failing_manager.create_plan("wave-1", UNITS)

        plan = await failing_manager.execute_plan(
            "wave-1", Backend.SECONDARY, abort_on_failure=True
        )

        assert plan.status is PlanStatus.FAILED
        assert [r.unit for r in plan.results] == UNITS[:2]
        assert await failing_repo.get(UNITS[2]) is None

    async def test_concurrent_execution_keeps_unit_order(self, batch_manager, store):
        units = [MigrationUnit.entity(f"Entity{i}") for i in range(8)]
        await batch_manager.create_plan("wide", units)

        plan = await batch_manager.execute_plan("wide", Backend.SECONDARY, max_in_flight=3)

        assert plan.status is PlanStatus.COMPLETED
        assert [r.unit for r in plan.results] == units
        snapshot = await store.snapshot()
        assert all(snapshot[unit] is Backend.SECONDARY for unit in units)

    @pytest.mark.parametrize("max_in_flight", [0, -1])
    async def test_invalid_max_in_flight(self, batch_manager, max_in_flight):
        await batch_manager.create_plan("wave-1", UNITS)
        with pytest.raises(ValueError):
            await batch_manager.execute_plan(
                "wave-1", Backend.SECONDARY, max_in_flight=max_in_flight
            )

    async def test_plan_metrics(self, failing_manager, metrics):
        await failing_manager.create_plan("wave-1", UNITS)
        await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        snapshot = metrics.get_snapshot()
        assert snapshot.plan_units_succeeded == 2
        assert snapshot.plan_units_failed == 1

    async def test_execute_creates_span(self, store, plan_repo):
        tracer = MockTracer()
        manager = BatchMigrationManager(store, plan_repo, tracer=tracer)
        await manager.create_plan("wave-1", UNITS[:1])

        await manager.execute_plan("wave-1", Backend.SECONDARY)

        span = tracer.find("switchboard.batch.execute_plan")
        assert span.attributes["switchboard.plan.name"] == "wave-1"
        assert span.attributes["switchboard.plan.unit_count"] == 1
        assert span.attributes["switchboard.plan.status"] == "completed"
        assert span.attributes["switchboard.plan.progress_percent"] == 100.0


class TestResume:
    async def test_plan_left_running_is_resumed(self, batch_manager, plan_repo, store):
        await store.set(UNITS[0], Backend.SECONDARY)
        await plan_repo.save(
            MigrationPlan(
                name="wave-1",
                units=UNITS,
                status=PlanStatus.RUNNING,
                target_backend=Backend.SECONDARY,
            )
        )

        plan = await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        assert plan.status is PlanStatus.COMPLETED
        assert [r.skipped for r in plan.results] == [True, False, False]

    async def test_plan_running_here_cannot_start_twice(self, gated_manager, gated_repo):
        await gated_manager.create_plan("wave-1", UNITS)
        task = asyncio.create_task(gated_manager.execute_plan("wave-1", Backend.SECONDARY))
        await gated_repo.entered.wait()

        with pytest.raises(PlanStateError):
            await gated_manager.execute_plan("wave-1", Backend.SECONDARY)
        with pytest.raises(PlanStateError):
            await gated_manager.create_plan("wave-1", UNITS, replace=True)
        with pytest.raises(PlanError):
            await gated_manager.rollback_plan("wave-1")

        gated_repo.release.set()
        plan = await task
        assert plan.status is PlanStatus.COMPLETED

    async def test_simultaneous_starts_run_once(self, store, config):
        manager = BatchMigrationManager(store, YieldingPlanRepository(), config=config)
        await manager.create_plan("wave-1", UNITS)

        outcomes = await asyncio.gather(
            manager.execute_plan("wave-1", Backend.SECONDARY),
            manager.execute_plan("wave-1", Backend.SECONDARY),
            return_exceptions=True,
        )

        plans = [o for o in outcomes if isinstance(o, MigrationPlan)]
        errors = [o for o in outcomes if isinstance(o, PlanStateError)]
        assert len(plans) == 1
        assert len(errors) == 1
        assert plans[0].status is PlanStatus.COMPLETED
        assert [r.unit for r in plans[0].results] == UNITS

    async def test_rejected_start_keeps_cancel_working(self, gated_repo, config):
        store = MigrationStatusStore(gated_repo, config=config)
        manager = BatchMigrationManager(store, YieldingPlanRepository(), config=config)
        await manager.create_plan("wave-1", UNITS)
        task = asyncio.create_task(manager.execute_plan("wave-1", Backend.SECONDARY))
        await gated_repo.entered.wait()

        with pytest.raises(PlanStateError):
            await manager.execute_plan("wave-1", Backend.SECONDARY)
        await manager.cancel_plan("wave-1")
        gated_repo.release.set()
        plan = await task

        assert plan.status is PlanStatus.FAILED
        assert plan.cancel_requested is True
        assert [r.unit for r in plan.results] == UNITS[:1]

    async def test_unknown_plan_releases_its_claim(self, batch_manager):
        with pytest.raises(PlanNotFoundError):
            await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        await batch_manager.create_plan("wave-1", UNITS[:1])
        plan = await batch_manager.execute_plan("wave-1", Backend.SECONDARY)
        assert plan.status is PlanStatus.COMPLETED


class TestCancellation:
    async def test_cancel_running_plan(self, gated_manager, gated_repo):
        await gated_manager.create_plan("wave-1", UNITS)
        task = asyncio.create_task(gated_manager.execute_plan("wave-1", Backend.SECONDARY))
        await gated_repo.entered.wait()

        requested = await gated_manager.cancel_plan("wave-1")
        gated_repo.release.set()
        plan = await task

        assert requested.cancel_requested is True
        assert plan.status is PlanStatus.FAILED
        assert plan.cancel_requested is True
        assert [r.unit for r in plan.results] == UNITS[:1]
        assert await gated_repo.get(UNITS[1]) is None

    async def test_cancel_pending_plan(self, batch_manager):
        await batch_manager.create_plan("wave-1", UNITS)
        with pytest.raises(PlanStateError):
            await batch_manager.cancel_plan("wave-1")

    async def test_cancel_orphaned_plan(self, batch_manager, plan_repo):
        await plan_repo.save(MigrationPlan(name="wave-1", units=UNITS, status=PlanStatus.RUNNING))

        plan = await batch_manager.cancel_plan("wave-1")

        assert plan.status is PlanStatus.FAILED
        stored = await batch_manager.get_plan("wave-1")
        assert stored.status is PlanStatus.FAILED
        assert stored.cancel_requested is True
        assert stored.completed_at is not None


class TestRollback:
    async def test_rollback_restores_moved_units(self, batch_manager, store):
        await store.set(UNITS[0], Backend.SECONDARY)
        await batch_manager.create_plan("wave-1", UNITS)
        await batch_manager.execute_plan("wave-1", Backend.SECONDARY)

        restored = await batch_manager.rollback_plan("wave-1")

        assert restored == [UNITS[2], UNITS[1]]
        assert await store.get(UNITS[0]) is Backend.SECONDARY
        assert await store.get(UNITS[1]) is Backend.PRIMARY
        assert await store.get(UNITS[2]) is Backend.PRIMARY

    async def test_rollback_skips_failed_units(self, failing_manager, failing_repo):
        await failing_manager.create_plan("wave-1", UNITS)
        await failing_manager.execute_plan("wave-1", Backend.SECONDARY)

        restored = await failing_manager.rollback_plan("wave-1")

        assert restored == [UNITS[2], UNITS[0]]
        assert (await failing_repo.get(UNITS[0])).backend is Backend.PRIMARY

    async def test_rollback_of_pending_plan_is_noop(self, batch_manager):
        await batch_manager.create_plan("wave-1", UNITS)
        assert await batch_manager.rollback_plan("wave-1") == []
