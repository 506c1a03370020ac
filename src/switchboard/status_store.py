"""
MigrationStatusStore - which backend serves each migration unit.

Resolution order for get():
    1. Process-local override (set_override), if present
    2. Persisted MigrationStatus from the repository
    3. The configured default backend (PRIMARY unless configured)

Writes go through the repository and then notify subscribers. Subscribers
take no arguments and re-read via get(); synchronous callbacks run inline,
coroutine callbacks are scheduled as background tasks. A failing subscriber
is logged and never affects the writer or other subscribers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from switchboard.config import SwitchboardConfig
from switchboard.models import Backend, MigrationStatus, MigrationUnit, Override
from switchboard.observability import ATTR_BACKEND, ATTR_ROUTING_SOURCE, ATTR_UNIT, Tracer, create_tracer
from switchboard.repositories.status import (
    InMemoryMigrationStatusRepository,
    MigrationStatusRepository,
)

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None] | Callable[[], Awaitable[None]]
Unsubscribe = Callable[[], None]


class MigrationStatusStore:
    """
    Durable unit -> backend mapping with a transient override layer.

    Example:
        >>> store = MigrationStatusStore(InMemoryMigrationStatusRepository())
        >>> unsubscribe = store.subscribe(lambda: print("changed"))
        >>> await store.set(MigrationUnit.entity("Team"), Backend.SECONDARY)
        changed
        >>> await store.get(MigrationUnit.entity("Team"))
        <Backend.SECONDARY: 'new'>
    """

    def __init__(
        self,
        repository: MigrationStatusRepository | None = None,
        *,
        config: SwitchboardConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._config = config or SwitchboardConfig()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._repository = repository or InMemoryMigrationStatusRepository(tracer=self._tracer)
        self._overrides: dict[MigrationUnit, Override] = {}
        self._locks: defaultdict[MigrationUnit, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._subscribers: list[ChangeCallback] = []
        # Track background tasks to prevent orphaned coroutines
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def default_backend(self) -> Backend:
        return self._config.default_backend

    @property
    def repository(self) -> MigrationStatusRepository:
        return self._repository

    async def get(self, unit: MigrationUnit) -> Backend:
        """
        Resolve the active backend for a unit.

        Args:
            unit: The migration unit

        Returns:
            Override backend, else persisted backend, else the default
        """
        override = self._overrides.get(unit)
        if override is not None:
            source, backend = "override", override.backend
        else:
            status = await self._repository.get(unit)
            if status is not None:
                source, backend = "status", status.backend
            else:
                source, backend = "default", self._config.default_backend

        logger.debug("Resolved %s to %s from %s", unit, backend.value, source)
        return backend

    async def get_status(self, unit: MigrationUnit) -> MigrationStatus | None:
        """Persisted status for a unit, ignoring overrides and the default."""
        return await self._repository.get(unit)

    async def set(self, unit: MigrationUnit, backend: Backend) -> None:
        """
        Persist the backend for a unit and notify subscribers.

        Idempotent: setting the current backend again rewrites the record
        and notifies again.
        """
        with self._tracer.span(
            "switchboard.status_store.set",
            {ATTR_UNIT: str(unit), ATTR_BACKEND: backend.value},
        ):
            async with self._locks[unit]:
                await self._repository.save(MigrationStatus(unit=unit, backend=backend))
            logger.info("Migration status for %s set to %s", unit, backend.value)
            self._notify()

    async def set_override(self, unit: MigrationUnit, backend: Backend) -> Override:
        """
        Force a backend for a unit in this process only.

        The override outranks the persisted status until cleared and is
        never written to the repository.
        """
        with self._tracer.span(
            "switchboard.status_store.set_override",
            {ATTR_UNIT: str(unit), ATTR_BACKEND: backend.value, ATTR_ROUTING_SOURCE: "override"},
        ):
            async with self._locks[unit]:
                override = Override(unit=unit, backend=backend)
                self._overrides[unit] = override
            logger.info("Override for %s set to %s", unit, backend.value)
            self._notify()
            return override

    async def clear_override(self, unit: MigrationUnit) -> bool:
        """
        Drop the override for a unit.

        Returns:
            True if an override was removed
        """
        async with self._locks[unit]:
            removed = self._overrides.pop(unit, None) is not None
        if removed:
            logger.info("Override for %s cleared", unit)
            self._notify()
        return removed

    def get_override(self, unit: MigrationUnit) -> Override | None:
        return self._overrides.get(unit)

    def list_overrides(self) -> list[Override]:
        return sorted(self._overrides.values(), key=lambda o: o.created_at)

    async def list_statuses(self) -> list[MigrationStatus]:
        return await self._repository.list_all()

    async def snapshot(self) -> dict[MigrationUnit, Backend]:
        """
        Effective backend for every known unit.

        Known units are those with a persisted status or an override.
        """
        result = {status.unit: status.backend for status in await self._repository.list_all()}
        for unit, override in self._overrides.items():
            result[unit] = override.backend
        return result

    # =========================================================================
    # Change notification
    # =========================================================================

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        """
        Register a zero-argument change callback.

        Returns:
            A function that removes the callback; calling it more than
            once has no effect.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback()
            except Exception as e:
                logger.error(
                    "Status subscriber %r failed: %s",
                    callback,
                    e,
                    exc_info=True,
                )
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(self._on_background_task_done)
                self._background_tasks.add(task)

    def _on_background_task_done(self, task: asyncio.Task[None]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled():
            exc = task.exception()
            if exc:
                logger.error("Status subscriber task failed: %s", exc, exc_info=exc)

    async def drain(self, timeout: float = 30.0) -> None:
        """
        Wait for pending coroutine subscribers to finish.

        Tasks still running after timeout are cancelled.
        """
        if not self._background_tasks:
            return
        _, remaining = await asyncio.wait(list(self._background_tasks), timeout=timeout)
        if remaining:
            logger.warning(
                "%d status subscriber task(s) did not complete within %.1fs",
                len(remaining),
                timeout,
            )
            for task in remaining:
                task.cancel()


__all__ = ["MigrationStatusStore", "ChangeCallback", "Unsubscribe"]
