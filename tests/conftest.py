"""
Shared pytest fixtures for the switchboard library tests.

This module provides:
- Unit fixtures (team_unit, report_function)
- Adapter fixtures (primary_adapter, secondary_adapter, registry)
- Component fixtures (store, ab_tester, switcher, comparator, batch_manager)
- SQLite fixtures (sqlite_connection)
- OpenTelemetry metrics fixtures (metric_reader)

Components are built with tracing and OpenTelemetry metrics disabled;
tests that need them pass a MockTracer or use metric_reader.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Any

import aiosqlite
import pytest
import pytest_asyncio
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

import switchboard.metrics as metrics_module
from switchboard.ab_testing import ABTester
from switchboard.adapters.registry import BackendRegistry
from switchboard.batch import BatchMigrationManager
from switchboard.comparator import PerformanceComparator
from switchboard.config import SwitchboardConfig
from switchboard.metrics import SwitchboardMetrics
from switchboard.models import MigrationUnit
from switchboard.repositories.plans import InMemoryMigrationPlanRepository
from switchboard.repositories.status import InMemoryMigrationStatusRepository
from switchboard.status_store import MigrationStatusStore
from switchboard.switcher import Switcher
from tests.fixtures import ScriptedAdapter

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that use a SQLite database")


# =============================================================================
# Units
# =============================================================================


@pytest.fixture
def team_unit() -> MigrationUnit:
    return MigrationUnit.entity("Team")


@pytest.fixture
def report_function() -> MigrationUnit:
    return MigrationUnit.function("generateReport")


# =============================================================================
# Adapters
# =============================================================================


@pytest.fixture
def primary_adapter() -> ScriptedAdapter:
    """Legacy SDK stand-in, answering {"served_by": "legacy"}."""
    return ScriptedAdapter("legacy")


@pytest.fixture
def secondary_adapter() -> ScriptedAdapter:
    """REST stand-in, answering {"served_by": "rest"}."""
    return ScriptedAdapter("rest")


@pytest.fixture
def registry(
    primary_adapter: ScriptedAdapter,
    secondary_adapter: ScriptedAdapter,
) -> BackendRegistry:
    return BackendRegistry.of(primary=primary_adapter, secondary=secondary_adapter)


# =============================================================================
# Components
# =============================================================================


@pytest.fixture
def config() -> SwitchboardConfig:
    return SwitchboardConfig(
        call_timeout_seconds=1.0,
        enable_tracing=False,
        enable_metrics=False,
    )


@pytest.fixture
def metrics() -> SwitchboardMetrics:
    """Metrics with no-op instruments; get_snapshot() still counts."""
    return SwitchboardMetrics(enable_metrics=False)


@pytest.fixture
def status_repo() -> InMemoryMigrationStatusRepository:
    return InMemoryMigrationStatusRepository(enable_tracing=False)


@pytest.fixture
def plan_repo() -> InMemoryMigrationPlanRepository:
    return InMemoryMigrationPlanRepository(enable_tracing=False)


@pytest.fixture
def store(
    status_repo: InMemoryMigrationStatusRepository,
    config: SwitchboardConfig,
) -> MigrationStatusStore:
    return MigrationStatusStore(status_repo, config=config)


@pytest.fixture
def ab_tester(metrics: SwitchboardMetrics) -> ABTester:
    """A/B tester with a fixed seed so splits are reproducible."""
    return ABTester(random_seed=1234, metrics=metrics, enable_tracing=False)


@pytest.fixture
def switcher(
    registry: BackendRegistry,
    store: MigrationStatusStore,
    ab_tester: ABTester,
    config: SwitchboardConfig,
    metrics: SwitchboardMetrics,
) -> Switcher:
    return Switcher(registry, store, ab_tester=ab_tester, config=config, metrics=metrics)


@pytest.fixture
def comparator(switcher: Switcher, config: SwitchboardConfig) -> PerformanceComparator:
    return PerformanceComparator(switcher, config=config)


@pytest.fixture
def batch_manager(
    store: MigrationStatusStore,
    plan_repo: InMemoryMigrationPlanRepository,
    config: SwitchboardConfig,
    metrics: SwitchboardMetrics,
) -> BatchMigrationManager:
    return BatchMigrationManager(store, plan_repo, config=config, metrics=metrics)


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """
    Provide a raw aiosqlite connection to an in-memory database.

    The connection is closed after the test.
    """
    conn = await aiosqlite.connect(":memory:")
    yield conn
    await conn.close()


# ============================================================================
# OpenTelemetry Metrics Fixtures
# ============================================================================


@pytest.fixture
def metric_reader() -> Generator[Any, None, None]:
    """
    Provide an InMemoryMetricReader wired into switchboard.metrics.

    The module's cached meter is replaced by one from a private
    MeterProvider, so the global provider is never touched.

    Yields:
        InMemoryMetricReader: Reader for inspecting collected metrics.
    """
    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])
    metrics_module._meter = provider.get_meter("switchboard")

    yield reader

    metrics_module.reset_meter()
    provider.shutdown()
