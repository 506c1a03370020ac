"""
Unit tests for MigrationStatusStore.

Tests for:
- Resolution order: override > persisted status > default
- set/get round trip and persistence through the repository
- Override layer never reaching storage
- Change notification and subscriber isolation
"""

import asyncio
from unittest.mock import MagicMock

from switchboard.config import SwitchboardConfig
from switchboard.models import Backend, MigrationUnit
from switchboard.observability import MockTracer
from switchboard.repositories.status import InMemoryMigrationStatusRepository
from switchboard.status_store import MigrationStatusStore


class TestResolution:
    async def test_default_is_primary(self, store, team_unit):
        assert await store.get(team_unit) is Backend.PRIMARY

    async def test_configured_default(self, status_repo, team_unit):
        store = MigrationStatusStore(
            status_repo,
            config=SwitchboardConfig(default_backend=Backend.SECONDARY, enable_tracing=False),
        )
        assert await store.get(team_unit) is Backend.SECONDARY

    async def test_set_then_get(self, store, team_unit):
        await store.set(team_unit, Backend.SECONDARY)
        assert await store.get(team_unit) is Backend.SECONDARY

    async def test_set_persists_through_repository(self, store, status_repo, team_unit):
        await store.set(team_unit, Backend.SECONDARY)
        status = await status_repo.get(team_unit)
        assert status is not None
        assert status.backend is Backend.SECONDARY
        assert (await store.get_status(team_unit)) == status

    async def test_set_is_idempotent(self, store, team_unit):
        await store.set(team_unit, Backend.SECONDARY)
        await store.set(team_unit, Backend.SECONDARY)
        assert await store.get(team_unit) is Backend.SECONDARY
        assert len(await store.list_statuses()) == 1

    async def test_units_are_independent(self, store, team_unit):
        other = MigrationUnit.function("Team")
        await store.set(team_unit, Backend.SECONDARY)
        assert await store.get(other) is Backend.PRIMARY


class TestOverrides:
    async def test_override_outranks_status(self, store, team_unit):
        await store.set(team_unit, Backend.PRIMARY)
        await store.set_override(team_unit, Backend.SECONDARY)
        assert await store.get(team_unit) is Backend.SECONDARY

    async def test_clear_override_reverts_to_status(self, store, team_unit):
        await store.set(team_unit, Backend.PRIMARY)
        await store.set_override(team_unit, Backend.SECONDARY)

        assert await store.clear_override(team_unit) is True
        assert await store.get(team_unit) is Backend.PRIMARY
        assert await store.clear_override(team_unit) is False

    async def test_override_is_not_persisted(self, store, status_repo, team_unit):
        await store.set_override(team_unit, Backend.SECONDARY)
        assert await status_repo.get(team_unit) is None

        restarted = MigrationStatusStore(status_repo)
        assert await restarted.get(team_unit) is Backend.PRIMARY

    async def test_clear_override_leaves_storage_untouched(self, store, status_repo, team_unit):
        await store.set(team_unit, Backend.SECONDARY)
        before = await status_repo.get(team_unit)
        await store.set_override(team_unit, Backend.PRIMARY)
        await store.clear_override(team_unit)
        assert await status_repo.get(team_unit) == before

    async def test_list_overrides_and_snapshot(self, store, team_unit, report_function):
        await store.set(team_unit, Backend.SECONDARY)
        await store.set(report_function, Backend.SECONDARY)
        await store.set_override(report_function, Backend.PRIMARY)

        assert [o.unit for o in store.list_overrides()] == [report_function]
        assert store.get_override(report_function).backend is Backend.PRIMARY
        assert await store.snapshot() == {
            team_unit: Backend.SECONDARY,
            report_function: Backend.PRIMARY,
        }


class TestSubscribers:
    async def test_notified_on_set(self, store, team_unit):
        callback = MagicMock(return_value=None)
        store.subscribe(callback)
        await store.set(team_unit, Backend.SECONDARY)
        callback.assert_called_once_with()

    async def test_notified_on_override_changes(self, store, team_unit):
        callback = MagicMock(return_value=None)
        store.subscribe(callback)
        await store.set_override(team_unit, Backend.SECONDARY)
        await store.clear_override(team_unit)
        await store.clear_override(team_unit)
        assert callback.call_count == 2

    async def test_subscriber_rereads_new_value(self, store, team_unit):
        seen: list[Backend] = []

        async def on_change() -> None:
            seen.append(await store.get(team_unit))

        store.subscribe(on_change)
        await store.set(team_unit, Backend.SECONDARY)
        await store.drain()
        assert seen == [Backend.SECONDARY]

    async def test_unsubscribe_is_idempotent(self, store, team_unit):
        callback = MagicMock(return_value=None)
        unsubscribe = store.subscribe(callback)
        unsubscribe()
        unsubscribe()
        await store.set(team_unit, Backend.SECONDARY)
        callback.assert_not_called()
        assert store.subscriber_count == 0

    async def test_failing_subscriber_does_not_affect_writer(self, store, team_unit, caplog):
        failing = MagicMock(side_effect=RuntimeError("subscriber bug"))
        healthy = MagicMock(return_value=None)
        store.subscribe(failing)
        store.subscribe(healthy)

        await store.set(team_unit, Backend.SECONDARY)

        healthy.assert_called_once_with()
        assert await store.get(team_unit) is Backend.SECONDARY
        assert "subscriber bug" in caplog.text

    async def test_failing_async_subscriber_is_logged(self, store, team_unit, caplog):
        async def on_change() -> None:
            raise RuntimeError("async subscriber bug")

        store.subscribe(on_change)
        await store.set(team_unit, Backend.SECONDARY)
        await store.drain()
        assert "async subscriber bug" in caplog.text

    async def test_drain_cancels_slow_subscribers(self, store, team_unit):
        started = asyncio.Event()

        cancelled = asyncio.Event()

        async def slow() -> None:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        store.subscribe(slow)
        await store.set(team_unit, Backend.SECONDARY)
        await started.wait()
        await store.drain(timeout=0.01)
        await asyncio.wait_for(cancelled.wait(), timeout=1.0)


class TestTracing:
    async def test_set_creates_span(self, team_unit):
        tracer = MockTracer()
        store = MigrationStatusStore(InMemoryMigrationStatusRepository(tracer=tracer), tracer=tracer)
        await store.set(team_unit, Backend.SECONDARY)
        assert "switchboard.status_store.set" in tracer.span_names
        assert "switchboard.status_repo.save" in tracer.span_names
