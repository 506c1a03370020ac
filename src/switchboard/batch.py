"""
BatchMigrationManager - named, ordered cut-over plans.

A plan moves a list of units to a target backend, one status write per
unit, recording a PlanResult for each and persisting the plan document
after every unit. A failing unit is recorded and the run continues
(unless abort_on_failure), so one bad unit never blocks the rest.

Plan lifecycle:
    PENDING -> RUNNING -> COMPLETED   every unit succeeded
                       -> FAILED      any unit failed, or the run was cancelled

A plan left RUNNING by a crashed process can be executed again; units
that already route to the target are recorded as skipped.

Example:
    >>> manager = BatchMigrationManager(store, SQLiteMigrationPlanRepository(db))
    >>> await manager.create_plan("wave-1", [MigrationUnit.entity("Team"), ...])
    >>> plan = await manager.execute_plan("wave-1", Backend.SECONDARY)
    >>> plan.status, plan.progress_percent
    (<PlanStatus.COMPLETED: 'completed'>, 100.0)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from switchboard.config import SwitchboardConfig
from switchboard.exceptions import (
    PlanAlreadyExistsError,
    PlanError,
    PlanNotFoundError,
    PlanStateError,
)
from switchboard.metrics import SwitchboardMetrics
from switchboard.models import Backend, MigrationPlan, MigrationUnit, PlanResult, PlanStatus
from switchboard.observability import (
    ATTR_BACKEND,
    ATTR_PLAN_NAME,
    ATTR_PLAN_PROGRESS_PERCENT,
    ATTR_PLAN_STATUS,
    ATTR_PLAN_UNIT_COUNT,
    Tracer,
    create_tracer,
)
from switchboard.repositories.plans import InMemoryMigrationPlanRepository, MigrationPlanRepository
from switchboard.status_store import MigrationStatusStore

logger = logging.getLogger(__name__)


class BatchMigrationManager:
    """
    Creates, executes, cancels and rolls back migration plans.

    Args:
        store: Status store the plan writes through
        repository: Plan persistence (in-memory when omitted)
        config: Supplies the default max_in_flight
        metrics: Shared metrics container
        tracer: Optional custom Tracer
    """

    def __init__(
        self,
        store: MigrationStatusStore,
        repository: MigrationPlanRepository | None = None,
        *,
        config: SwitchboardConfig | None = None,
        metrics: SwitchboardMetrics | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._store = store
        self._config = config or SwitchboardConfig()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._repository = repository or InMemoryMigrationPlanRepository(tracer=self._tracer)
        self._metrics = metrics or SwitchboardMetrics(enable_metrics=self._config.enable_metrics)
        # Plans executing in this process, with their cancel flags
        self._running: dict[str, asyncio.Event] = {}

    # =========================================================================
    # Plan definition and lookup
    # =========================================================================

    async def create_plan(
        self,
        name: str,
        units: Sequence[MigrationUnit],
        replace: bool = False,
    ) -> MigrationPlan:
        """
        Define a plan.

        Args:
            name: Unique plan name
            units: Units in execution order
            replace: Discard an existing plan of the same name and its results

        Raises:
            PlanAlreadyExistsError: If the name is taken and replace is False
            PlanStateError: If replacing a plan that is executing
        """
        existing = await self._repository.get(name)
        if existing is not None:
            if not replace:
                raise PlanAlreadyExistsError(name)
            if name in self._running:
                raise PlanStateError(name, existing.status, PlanStatus.PENDING)
            logger.info("Replacing migration plan %s (was %s)", name, existing.status.value)

        plan = MigrationPlan(name=name, units=list(units))
        await self._repository.save(plan)
        logger.info("Created migration plan %s with %d unit(s)", name, len(plan.units))
        return plan

    async def get_plan(self, name: str) -> MigrationPlan:
        """
        Raises:
            PlanNotFoundError: If no plan has this name
        """
        plan = await self._repository.get(name)
        if plan is None:
            raise PlanNotFoundError(name)
        return plan

    async def list_plans(self) -> list[MigrationPlan]:
        return await self._repository.list_all()

    async def failed_units(self, name: str) -> list[MigrationUnit]:
        """Units whose last recorded step failed."""
        return (await self.get_plan(name)).failed_units

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute_plan(
        self,
        name: str,
        target_backend: Backend,
        abort_on_failure: bool = False,
        max_in_flight: int | None = None,
    ) -> MigrationPlan:
        """
        Move every unit of a plan to target_backend.

        Args:
            name: Plan to execute
            target_backend: Backend each unit should route to afterwards
            abort_on_failure: Stop at the first failed unit
            max_in_flight: Units migrated concurrently (default from config,
                normally 1). Results are recorded in unit order either way.

        Returns:
            The finished plan, COMPLETED or FAILED

        Raises:
            PlanNotFoundError: If no plan has this name
            PlanStateError: If the plan already finished or is executing
        """
        if max_in_flight is None:
            max_in_flight = self._config.plan_max_in_flight
        if max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")

        # Claimed before the first await so a concurrent call sees it
        if name in self._running:
            raise PlanStateError(name, PlanStatus.RUNNING, PlanStatus.RUNNING)
        cancel_event = asyncio.Event()
        self._running[name] = cancel_event
        try:
            plan = await self.get_plan(name)
            if plan.status is PlanStatus.RUNNING:
                logger.warning(
                    "Resuming migration plan %s left running by an earlier process", name
                )
            elif not plan.status.can_transition_to(PlanStatus.RUNNING):
                raise PlanStateError(name, plan.status, PlanStatus.RUNNING)

            with self._tracer.span(
                "switchboard.batch.execute_plan",
                {
                    ATTR_PLAN_NAME: name,
                    ATTR_PLAN_UNIT_COUNT: len(plan.units),
                    ATTR_BACKEND: target_backend.value,
                },
            ) as span:
                now = datetime.now(UTC)
                plan.status = PlanStatus.RUNNING
                plan.target_backend = target_backend
                plan.results = []
                plan.started_at = now
                plan.completed_at = None
                plan.cancel_requested = False
                plan.updated_at = now
                await self._repository.save(plan)
                logger.info(
                    "Executing migration plan %s: %d unit(s) to %s",
                    name,
                    len(plan.units),
                    target_backend.value,
                )

                if max_in_flight == 1:
                    await self._run_sequential(plan, target_backend, abort_on_failure, cancel_event)
                else:
                    await self._run_concurrent(
                        plan, target_backend, abort_on_failure, max_in_flight, cancel_event
                    )

                all_done = len(plan.results) == len(plan.units) and plan.succeeded
                if all_done and not cancel_event.is_set():
                    plan.status = PlanStatus.COMPLETED
                else:
                    plan.status = PlanStatus.FAILED
                plan.cancel_requested = cancel_event.is_set()
                plan.completed_at = plan.updated_at = datetime.now(UTC)
                await self._repository.save(plan)

                if span:
                    span.set_attribute(ATTR_PLAN_STATUS, plan.status.value)
                    span.set_attribute(ATTR_PLAN_PROGRESS_PERCENT, plan.progress_percent)
        finally:
            if self._running.get(name) is cancel_event:
                del self._running[name]

        if plan.status is PlanStatus.COMPLETED:
            logger.info("Migration plan %s completed", name)
        else:
            logger.warning(
                "Migration plan %s failed: %d of %d unit(s) recorded, %d failed%s",
                name,
                len(plan.results),
                len(plan.units),
                len(plan.failed_units),
                ", cancelled" if plan.cancel_requested else "",
            )
        return plan

    async def _run_sequential(
        self,
        plan: MigrationPlan,
        target: Backend,
        abort_on_failure: bool,
        cancel_event: asyncio.Event,
    ) -> None:
        for unit in plan.units:
            if cancel_event.is_set():
                logger.info("Migration plan %s cancelled before %s", plan.name, unit)
                return
            result = await self._migrate_unit(plan.name, unit, target)
            await self._record(plan, result)
            if not result.success and abort_on_failure:
                return

    async def _run_concurrent(
        self,
        plan: MigrationPlan,
        target: Backend,
        abort_on_failure: bool,
        max_in_flight: int,
        cancel_event: asyncio.Event,
    ) -> None:
        semaphore = asyncio.Semaphore(max_in_flight)
        stop = asyncio.Event()

        async def step(unit: MigrationUnit) -> PlanResult | None:
            async with semaphore:
                if stop.is_set() or cancel_event.is_set():
                    return None
                result = await self._migrate_unit(plan.name, unit, target)
                if not result.success and abort_on_failure:
                    stop.set()
                return result

        tasks = [asyncio.create_task(step(unit)) for unit in plan.units]
        try:
            for task in tasks:
                result = await task
                if result is not None:
                    await self._record(plan, result)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _migrate_unit(self, plan_name: str, unit: MigrationUnit, target: Backend) -> PlanResult:
        try:
            status = await self._store.get_status(unit)
            current = status.backend if status is not None else self._store.default_backend
            if current is target:
                logger.debug("Plan %s: %s already on %s", plan_name, unit, target.value)
                return PlanResult(unit=unit, success=True, skipped=True)
            await self._store.set(unit, target)
        except Exception as e:
            logger.warning("Plan %s: migrating %s failed: %s", plan_name, unit, e, exc_info=True)
            return PlanResult(unit=unit, success=False, error=f"{type(e).__name__}: {e}")
        return PlanResult(unit=unit, success=True, previous_backend=current)

    async def _record(self, plan: MigrationPlan, result: PlanResult) -> None:
        plan.results.append(result)
        plan.updated_at = result.timestamp
        await self._repository.save(plan)
        self._metrics.record_plan_unit(plan.name, success=result.success, skipped=result.skipped)

    # =========================================================================
    # Cancellation and rollback
    # =========================================================================

    async def cancel_plan(self, name: str) -> MigrationPlan:
        """
        Ask a running plan to stop after its current unit.

        A plan marked RUNNING that is not executing in this process is
        failed immediately.

        Raises:
            PlanNotFoundError: If no plan has this name
            PlanStateError: If the plan is not running
        """
        plan = await self.get_plan(name)
        cancel_event = self._running.get(name)
        if cancel_event is not None:
            cancel_event.set()
            logger.info("Cancellation requested for migration plan %s", name)
            plan.cancel_requested = True
            return plan

        if plan.status is not PlanStatus.RUNNING:
            raise PlanStateError(name, plan.status, PlanStatus.FAILED)

        plan.status = PlanStatus.FAILED
        plan.cancel_requested = True
        plan.completed_at = plan.updated_at = datetime.now(UTC)
        await self._repository.save(plan)
        logger.info("Marked orphaned migration plan %s as failed", name)
        return plan

    async def rollback_plan(self, name: str) -> list[MigrationUnit]:
        """
        Restore the previous backend of every unit the plan actually moved.

        Units are restored in reverse order. Skipped and failed units are
        left alone.

        Returns:
            The restored units

        Raises:
            PlanNotFoundError: If no plan has this name
            PlanError: If the plan is executing
        """
        plan = await self.get_plan(name)
        if name in self._running:
            raise PlanError(f"Cannot roll back plan {name} while it is executing", plan_name=name)

        restored: list[MigrationUnit] = []
        for result in reversed(plan.results):
            if not result.success or result.skipped or result.previous_backend is None:
                continue
            await self._store.set(result.unit, result.previous_backend)
            restored.append(result.unit)

        logger.info("Rolled back migration plan %s: %d unit(s) restored", name, len(restored))
        return restored


__all__ = ["BatchMigrationManager"]
