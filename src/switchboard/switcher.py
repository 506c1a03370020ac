"""
Switcher - the single entry point for backend-routed calls.

Every data-access call names a migration unit and an operation. The
Switcher resolves which backend serves it, executes the call against that
backend's adapter with a timeout, and normalizes the outcome.

Backend resolution (once per call, before dispatch):
    1. options.force_backend
    2. The unit's active A/B experiment, when not forced
    3. MigrationStatusStore.get(unit): override > persisted > default

A call already dispatched is unaffected by routing changes made while it
is in flight.

Fallback:
    NetworkError and BackendError are retried exactly once against the
    alternate backend when allowed. ValidationError and NotFoundError are
    raised immediately. If the retry fails too, the original error is
    raised.

Example:
    >>> switcher = Switcher(BackendRegistry.of(primary=sdk, secondary=rest), store)
    >>> teams = switcher.entity("Team")
    >>> await teams.list({"owner": "u-1"})
    >>> result = await switcher.execute(
    ...     MigrationUnit.function("generateReport"),
    ...     "invoke",
    ...     {"team_id": "t-1"},
    ...     ExecuteOptions(force_backend=Backend.SECONDARY, allow_fallback=False),
    ... )
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from switchboard.ab_testing import ABTester
from switchboard.adapters.interface import ENTITY_OPERATIONS, FUNCTION_OPERATION, BackendAdapter
from switchboard.adapters.registry import BackendRegistry
from switchboard.config import SwitchboardConfig
from switchboard.exceptions import (
    AdapterError,
    BackendError,
    ExperimentNotFoundError,
    ExperimentUnitMismatchError,
    NetworkError,
    NoSwitchHistoryError,
    UnsupportedOperationError,
    is_fallback_eligible,
)
from switchboard.metrics import SwitchboardMetrics
from switchboard.models import (
    Backend,
    ExecutionResult,
    MigrationUnit,
    Override,
    PerformanceSample,
    SwitchRecord,
    UnitKind,
)
from switchboard.observability import (
    ATTR_BACKEND,
    ATTR_EXPERIMENT_ID,
    ATTR_FELL_BACK,
    ATTR_LATENCY_MS,
    ATTR_OPERATION,
    ATTR_ROUTING_SOURCE,
    ATTR_UNIT,
    ATTR_UNIT_KIND,
    Tracer,
    create_tracer,
)
from switchboard.status_store import MigrationStatusStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecuteOptions:
    """
    Per-call options for Switcher.execute().

    Attributes:
        force_backend: Bypass experiment and status routing.
        allow_fallback: Retry transient failures against the alternate
            backend. None uses SwitchboardConfig.allow_fallback.
        timeout_seconds: Bound for each adapter attempt. None uses
            SwitchboardConfig.call_timeout_seconds.
        experiment_id: Attribute the measured call to this experiment.
            Needed for forced calls only; experiment-routed calls are
            attributed automatically.
    """

    force_backend: Backend | None = None
    allow_fallback: bool | None = None
    timeout_seconds: float | None = None
    experiment_id: str | None = None

    def __post_init__(self) -> None:
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")


@dataclass(frozen=True)
class _Route:
    backend: Backend
    source: str
    experiment_id: str | None


class Switcher:
    """
    Routing facade over the two registered backend adapters.

    Args:
        registry: Adapters for Backend.PRIMARY and Backend.SECONDARY
        store: Status store consulted for unforced, non-experiment calls
        ab_tester: Experiment owner; without one no call is experiment-routed
        config: Timeouts, fallback default and history limit
        metrics: Shared metrics container
        tracer: Optional custom Tracer
    """

    def __init__(
        self,
        registry: BackendRegistry,
        store: MigrationStatusStore,
        *,
        ab_tester: ABTester | None = None,
        config: SwitchboardConfig | None = None,
        metrics: SwitchboardMetrics | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._ab_tester = ab_tester
        self._config = config or SwitchboardConfig()
        self._metrics = metrics or SwitchboardMetrics(enable_metrics=self._config.enable_metrics)
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._history: deque[SwitchRecord] = deque(maxlen=self._config.switch_history_limit)

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    @property
    def store(self) -> MigrationStatusStore:
        return self._store

    @property
    def ab_tester(self) -> ABTester | None:
        return self._ab_tester

    @property
    def metrics(self) -> SwitchboardMetrics:
        return self._metrics

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(
        self,
        unit: MigrationUnit,
        operation: str,
        payload: dict[str, Any] | None = None,
        options: ExecuteOptions | None = None,
    ) -> ExecutionResult:
        """
        Execute an operation on the backend currently serving a unit.

        Args:
            unit: The migration unit addressed
            operation: create/get/list/update/delete for entities,
                "invoke" for functions
            payload: Operation payload
            options: Per-call options

        Returns:
            ExecutionResult with the adapter's data and the serving backend

        Raises:
            UnsupportedOperationError: If the operation does not apply to the unit
            ExperimentNotFoundError: If options.experiment_id is unknown
            ExperimentUnitMismatchError: If that experiment splits another unit
            UnknownBackendError: If the resolved backend has no adapter
            ValidationError, NotFoundError: Raised by the backend, never retried
            NetworkError, BackendError: When the call failed and fallback
                was disallowed, unavailable or failed too
        """
        options = options or ExecuteOptions()
        _check_operation(unit, operation)
        route = await self._resolve(unit, options)

        allow_fallback = (
            self._config.allow_fallback if options.allow_fallback is None else options.allow_fallback
        )
        timeout = options.timeout_seconds
        if timeout is None:
            timeout = self._config.call_timeout_seconds

        with self._tracer.span(
            "switchboard.switcher.execute",
            {
                ATTR_UNIT: str(unit),
                ATTR_UNIT_KIND: unit.kind.value,
                ATTR_OPERATION: operation,
                ATTR_BACKEND: route.backend.value,
                ATTR_ROUTING_SOURCE: route.source,
                ATTR_EXPERIMENT_ID: route.experiment_id or "",
            },
        ) as span:
            try:
                data, latency_ms = await self._attempt(
                    unit, operation, payload, route.backend, timeout, route.experiment_id
                )
                served_by, fell_back = route.backend, False
            except AdapterError as error:
                alternate = route.backend.alternate
                if not (allow_fallback and is_fallback_eligible(error) and alternate in self._registry):
                    raise

                logger.warning(
                    "Call %s %s failed on %s (%s), falling back to %s",
                    unit,
                    operation,
                    route.backend.value,
                    error,
                    alternate.value,
                )
                self._metrics.record_fallback(str(unit), route.backend.value, alternate.value)
                try:
                    data, latency_ms = await self._attempt(
                        unit, operation, payload, alternate, timeout, route.experiment_id
                    )
                except AdapterError as retry_error:
                    logger.warning(
                        "Fallback for %s %s on %s failed too: %s",
                        unit,
                        operation,
                        alternate.value,
                        retry_error,
                    )
                    raise error from error.__cause__
                served_by, fell_back = alternate, True

            if span:
                span.set_attribute(ATTR_FELL_BACK, fell_back)
                span.set_attribute(ATTR_LATENCY_MS, latency_ms)

        return ExecutionResult(
            data=data,
            backend=served_by,
            latency_ms=latency_ms,
            fell_back=fell_back,
            unit=unit,
            operation=operation,
        )

    async def _resolve(self, unit: MigrationUnit, options: ExecuteOptions) -> _Route:
        if options.experiment_id is not None:
            if self._ab_tester is None:
                raise ExperimentNotFoundError(options.experiment_id)
            experiment = self._ab_tester.get_experiment(options.experiment_id)
            if experiment.unit != unit:
                raise ExperimentUnitMismatchError(unit, experiment.id, experiment.unit)

        if options.force_backend is not None:
            return _Route(options.force_backend, "forced", options.experiment_id)

        if self._ab_tester is not None:
            assignment = self._ab_tester.assign(unit)
            if assignment is not None:
                return _Route(assignment.backend, "experiment", assignment.experiment_id)

        return _Route(await self._store.get(unit), "store", options.experiment_id)

    async def _attempt(
        self,
        unit: MigrationUnit,
        operation: str,
        payload: dict[str, Any] | None,
        backend: Backend,
        timeout: float,
        experiment_id: str | None,
    ) -> tuple[Any, float]:
        """Run one adapter call, returning its data and latency in ms."""
        adapter = self._registry.get(backend)
        started = time.perf_counter()
        try:
            try:
                data = await asyncio.wait_for(
                    _dispatch(adapter, unit, operation, payload or {}), timeout
                )
            except AdapterError:
                raise
            except TimeoutError as e:
                raise NetworkError(
                    f"{backend.value} call timed out after {timeout:.1f}s", unit=unit
                ) from e
            except Exception as e:
                raise BackendError(f"{backend.value} call failed: {e}", unit=unit) from e
        except AdapterError as error:
            if error.unit is None:
                error.unit = unit
            latency_ms = (time.perf_counter() - started) * 1000.0
            self._observe(unit, operation, backend, latency_ms, experiment_id, error)
            raise

        latency_ms = (time.perf_counter() - started) * 1000.0
        self._observe(unit, operation, backend, latency_ms, experiment_id, None)
        logger.debug("Call %s %s served by %s in %.1fms", unit, operation, backend.value, latency_ms)
        return data, latency_ms

    def _observe(
        self,
        unit: MigrationUnit,
        operation: str,
        backend: Backend,
        latency_ms: float,
        experiment_id: str | None,
        error: AdapterError | None,
    ) -> None:
        error_type = type(error).__name__ if error is not None else None
        self._metrics.record_call(
            str(unit),
            operation,
            backend.value,
            latency_ms,
            success=error is None,
            error_type=error_type,
        )
        if experiment_id is not None and self._ab_tester is not None:
            self._ab_tester.record(
                PerformanceSample(
                    unit=unit,
                    backend=backend,
                    latency_ms=latency_ms,
                    succeeded=error is None,
                    experiment_id=experiment_id,
                    error_type=error_type,
                )
            )

    # =========================================================================
    # Administration
    # =========================================================================

    async def switch_unit(
        self,
        unit: MigrationUnit,
        backend: Backend,
        reason: str | None = None,
    ) -> SwitchRecord:
        """
        Persist a new backend for a unit and remember the switch.

        Returns:
            The recorded switch
        """
        status = await self._store.get_status(unit)
        previous = status.backend if status is not None else self._store.default_backend
        await self._store.set(unit, backend)
        record = SwitchRecord(unit=unit, from_backend=previous, to_backend=backend, reason=reason)
        self._history.append(record)
        logger.info(
            "Switched %s from %s to %s%s",
            unit,
            previous.value,
            backend.value,
            f" ({reason})" if reason else "",
        )
        return record

    async def rollback_unit(self, unit: MigrationUnit) -> SwitchRecord:
        """
        Switch a unit back to the backend it had before its latest switch.

        Raises:
            NoSwitchHistoryError: If the unit was never switched
        """
        for record in reversed(self._history):
            if record.unit == unit:
                return await self.switch_unit(
                    unit,
                    record.from_backend,
                    reason=f"rollback from {record.to_backend.value}",
                )
        raise NoSwitchHistoryError(unit)

    def switch_history(self, unit: MigrationUnit | None = None) -> list[SwitchRecord]:
        """Recorded switches, oldest first, optionally for one unit."""
        if unit is None:
            return list(self._history)
        return [record for record in self._history if record.unit == unit]

    async def set_override(self, unit: MigrationUnit, backend: Backend) -> Override:
        return await self._store.set_override(unit, backend)

    async def clear_override(self, unit: MigrationUnit) -> bool:
        return await self._store.clear_override(unit)

    # =========================================================================
    # Bound handles
    # =========================================================================

    def entity(self, name: str) -> EntityHandle:
        return EntityHandle(self, MigrationUnit.entity(name))

    def function(self, name: str) -> FunctionHandle:
        return FunctionHandle(self, MigrationUnit.function(name))


class EntityHandle:
    """
    CRUD calls for one entity unit, returning the backend's data.

    Example:
        >>> teams = switcher.entity("Team")
        >>> team = await teams.create({"name": "Blue"})
        >>> await teams.get({"id": team["id"]})
    """

    def __init__(self, switcher: Switcher, unit: MigrationUnit) -> None:
        self._switcher = switcher
        self.unit = unit

    async def _run(
        self, operation: str, payload: dict[str, Any] | None, options: ExecuteOptions | None
    ) -> Any:
        result = await self._switcher.execute(self.unit, operation, payload, options)
        return result.data

    async def create(self, payload: dict[str, Any], options: ExecuteOptions | None = None) -> Any:
        return await self._run("create", payload, options)

    async def get(self, payload: dict[str, Any], options: ExecuteOptions | None = None) -> Any:
        return await self._run("get", payload, options)

    async def list(
        self, payload: dict[str, Any] | None = None, options: ExecuteOptions | None = None
    ) -> Any:
        return await self._run("list", payload, options)

    async def update(self, payload: dict[str, Any], options: ExecuteOptions | None = None) -> Any:
        return await self._run("update", payload, options)

    async def delete(self, payload: dict[str, Any], options: ExecuteOptions | None = None) -> Any:
        return await self._run("delete", payload, options)


class FunctionHandle:
    """Callable bound to one function unit."""

    def __init__(self, switcher: Switcher, unit: MigrationUnit) -> None:
        self._switcher = switcher
        self.unit = unit

    async def __call__(
        self, payload: dict[str, Any] | None = None, options: ExecuteOptions | None = None
    ) -> Any:
        result = await self._switcher.execute(self.unit, FUNCTION_OPERATION, payload, options)
        return result.data


def _check_operation(unit: MigrationUnit, operation: str) -> None:
    if unit.kind is UnitKind.ENTITY and operation not in ENTITY_OPERATIONS:
        raise UnsupportedOperationError(unit, operation)
    if unit.kind is UnitKind.FUNCTION and operation != FUNCTION_OPERATION:
        raise UnsupportedOperationError(unit, operation)


async def _dispatch(
    adapter: BackendAdapter,
    unit: MigrationUnit,
    operation: str,
    payload: dict[str, Any],
) -> Any:
    if unit.kind is UnitKind.FUNCTION:
        return await adapter.invoke(unit.name, payload)
    method = getattr(adapter, operation)
    return await method(unit.name, payload)


__all__ = ["Switcher", "ExecuteOptions", "EntityHandle", "FunctionHandle"]
