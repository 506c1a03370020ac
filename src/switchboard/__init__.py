"""
switchboard - Dual-backend migration control plane for async Python.

This library provides:
- Migration Status Store with in-memory, SQLite and SQLAlchemy persistence
- Backend adapter contract and two-slot registry
- Switcher facade with timeouts, error normalization and single-shot fallback
- A/B experiments across both backends
- Head-to-head performance comparison and equivalence checks
- Batch migration plans with resumable progress tracking
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("backend-switchboard")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from switchboard.ab_testing import ABTester, ExperimentAssignment
from switchboard.adapters import (
    ENTITY_OPERATIONS,
    FUNCTION_OPERATION,
    BackendAdapter,
    BackendRegistry,
    InMemoryBackendAdapter,
)
from switchboard.batch import BatchMigrationManager
from switchboard.comparator import PerformanceComparator, structural_similarity
from switchboard.config import SwitchboardConfig
from switchboard.exceptions import (
    AdapterError,
    BackendError,
    ErrorClassification,
    ExperimentAlreadyActiveError,
    ExperimentError,
    ExperimentNotFoundError,
    ExperimentUnitMismatchError,
    NetworkError,
    NoSwitchHistoryError,
    NotFoundError,
    PlanAlreadyExistsError,
    PlanError,
    PlanNotFoundError,
    PlanStateError,
    SwitchboardError,
    UnknownBackendError,
    UnsupportedOperationError,
    ValidationError,
    is_fallback_eligible,
)
from switchboard.metrics import SwitchboardMetrics, SwitchboardMetricSnapshot
from switchboard.models import (
    Backend,
    BackendTimings,
    ComparisonReport,
    EquivalenceReport,
    ExecutionResult,
    Experiment,
    ExperimentOutcome,
    ExperimentResults,
    MigrationPlan,
    MigrationStatus,
    MigrationUnit,
    Override,
    PerformanceSample,
    PlanResult,
    PlanStatus,
    SwitchRecord,
    UnitKind,
    VariantMetrics,
)
from switchboard.repositories import (
    InMemoryMigrationPlanRepository,
    InMemoryMigrationStatusRepository,
    MigrationPlanRepository,
    MigrationStatusRepository,
    SQLAlchemyMigrationPlanRepository,
    SQLAlchemyMigrationStatusRepository,
    SQLiteMigrationPlanRepository,
    SQLiteMigrationStatusRepository,
)
from switchboard.status_store import MigrationStatusStore
from switchboard.switcher import EntityHandle, ExecuteOptions, FunctionHandle, Switcher

__all__ = [
    "__version__",
    # Models
    "Backend",
    "UnitKind",
    "PlanStatus",
    "MigrationUnit",
    "MigrationStatus",
    "PlanResult",
    "MigrationPlan",
    "Override",
    "PerformanceSample",
    "Experiment",
    "SwitchRecord",
    "ExecutionResult",
    "VariantMetrics",
    "ExperimentResults",
    "ExperimentOutcome",
    "BackendTimings",
    "ComparisonReport",
    "EquivalenceReport",
    # Config and metrics
    "SwitchboardConfig",
    "SwitchboardMetrics",
    "SwitchboardMetricSnapshot",
    # Exceptions
    "ErrorClassification",
    "SwitchboardError",
    "AdapterError",
    "ValidationError",
    "NotFoundError",
    "NetworkError",
    "BackendError",
    "is_fallback_eligible",
    "UnknownBackendError",
    "UnsupportedOperationError",
    "ExperimentError",
    "ExperimentNotFoundError",
    "ExperimentAlreadyActiveError",
    "ExperimentUnitMismatchError",
    "PlanError",
    "PlanNotFoundError",
    "PlanAlreadyExistsError",
    "PlanStateError",
    "NoSwitchHistoryError",
    # Adapters
    "BackendAdapter",
    "BackendRegistry",
    "InMemoryBackendAdapter",
    "ENTITY_OPERATIONS",
    "FUNCTION_OPERATION",
    # Repositories
    "MigrationStatusRepository",
    "InMemoryMigrationStatusRepository",
    "SQLiteMigrationStatusRepository",
    "SQLAlchemyMigrationStatusRepository",
    "MigrationPlanRepository",
    "InMemoryMigrationPlanRepository",
    "SQLiteMigrationPlanRepository",
    "SQLAlchemyMigrationPlanRepository",
    # Components
    "MigrationStatusStore",
    "Switcher",
    "ExecuteOptions",
    "EntityHandle",
    "FunctionHandle",
    "ABTester",
    "ExperimentAssignment",
    "PerformanceComparator",
    "structural_similarity",
    "BatchMigrationManager",
]
