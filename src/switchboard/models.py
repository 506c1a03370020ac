"""
Data models for the switchboard control plane.

Persisted records are pydantic models so repositories can store them as
JSON documents; runtime value objects are plain dataclasses.

Enums:
    - Backend: The two interchangeable backend implementations
    - UnitKind: Entity or named function
    - PlanStatus: Batch plan lifecycle

Persisted Models:
    - MigrationUnit: Addressing granularity for routing
    - MigrationStatus: Active backend for a unit
    - PlanResult: Outcome of one unit in a plan run
    - MigrationPlan: Named ordered batch cut-over

Runtime Models:
    - Override: Process-local forced backend for a unit
    - PerformanceSample: One measured call
    - Experiment: A/B split for a unit
    - SwitchRecord: Administrative switch history entry
    - ExecutionResult: Normalized result of a routed call
    - VariantMetrics / ExperimentResults / ExperimentOutcome: A/B reporting
    - BackendTimings / ComparisonReport / EquivalenceReport: head-to-head reporting
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Backend(Enum):
    """
    Backend implementations a unit can be routed to.

    Attributes:
        PRIMARY: The legacy SDK-backed implementation (default).
        SECONDARY: The new REST-backed implementation.
    """

    PRIMARY = "legacy"
    SECONDARY = "new"

    @property
    def alternate(self) -> Backend:
        """The other backend."""
        if self is Backend.PRIMARY:
            return Backend.SECONDARY
        return Backend.PRIMARY


class UnitKind(Enum):
    """Kind of routable unit."""

    ENTITY = "entity"
    FUNCTION = "function"


class PlanStatus(Enum):
    """
    Batch migration plan lifecycle.

    State machine transitions:
        PENDING -> RUNNING -> COMPLETED
        RUNNING -> FAILED

    COMPLETED and FAILED are terminal; the only way out is re-creating the
    plan under the same name.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.COMPLETED, PlanStatus.FAILED)

    def can_transition_to(self, target: PlanStatus) -> bool:
        """
        Check if transition to target status is valid.

        Args:
            target: The target status.

        Returns:
            True if the transition is valid.
        """
        valid_transitions: dict[PlanStatus, list[PlanStatus]] = {
            PlanStatus.PENDING: [PlanStatus.RUNNING],
            PlanStatus.RUNNING: [PlanStatus.COMPLETED, PlanStatus.FAILED],
            PlanStatus.COMPLETED: [],
            PlanStatus.FAILED: [],
        }
        return target in valid_transitions[self]


# =============================================================================
# Persisted models
# =============================================================================


class MigrationUnit(BaseModel):
    """
    An entity type or named function routed as one item.

    Units are immutable and hashable; identity is (name, kind).

    Example:
        >>> unit = MigrationUnit.entity("Team")
        >>> str(unit)
        'entity:Team'
        >>> MigrationUnit.parse("function:createTeam").kind
        <UnitKind.FUNCTION: 'function'>
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    kind: UnitKind = UnitKind.ENTITY

    @classmethod
    def entity(cls, name: str) -> MigrationUnit:
        return cls(name=name, kind=UnitKind.ENTITY)

    @classmethod
    def function(cls, name: str) -> MigrationUnit:
        return cls(name=name, kind=UnitKind.FUNCTION)

    @classmethod
    def parse(cls, value: str) -> MigrationUnit:
        """
        Parse the "kind:name" form produced by str().

        A bare name is treated as an entity.

        Raises:
            ValueError: If the kind prefix is not a known UnitKind.
        """
        kind, sep, name = value.partition(":")
        if not sep:
            return cls.entity(value)
        return cls(name=name, kind=UnitKind(kind))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


class MigrationStatus(BaseModel):
    """Persisted active backend for a unit."""

    model_config = ConfigDict(frozen=True)

    unit: MigrationUnit
    backend: Backend
    updated_at: datetime = Field(default_factory=_utcnow)


class PlanResult(BaseModel):
    """
    Outcome of migrating one unit within a plan run.

    Attributes:
        unit: The unit processed.
        success: Whether the unit now routes to the plan's target backend.
        error: Error description when success is False.
        skipped: True when the unit already routed to the target backend
            and no write was performed.
        previous_backend: Persisted backend before the write, used by
            rollback. None when skipped or unknown.
        timestamp: When the result was recorded.
    """

    model_config = ConfigDict(frozen=True)

    unit: MigrationUnit
    success: bool
    error: str | None = None
    skipped: bool = False
    previous_backend: Backend | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class MigrationPlan(BaseModel):
    """
    A named, ordered batch of units cut over to a target backend together.

    The plan document, including its results, is persisted as a whole
    after every unit so progress survives a restart.
    """

    name: str = Field(..., min_length=1)
    units: list[MigrationUnit] = Field(default_factory=list)
    target_backend: Backend | None = None
    status: PlanStatus = PlanStatus.PENDING
    results: list[PlanResult] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancel_requested: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def progress_percent(self) -> float:
        """Share of units with a recorded result, as a percentage."""
        if not self.units:
            return 100.0 if self.status.is_terminal else 0.0
        return 100.0 * len(self.results) / len(self.units)

    @property
    def succeeded(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def failed_units(self) -> list[MigrationUnit]:
        """Units whose last step failed and need manual attention."""
        return [result.unit for result in self.results if not result.success]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationPlan:
        """Create from a dictionary produced by to_dict()."""
        payload = {key: value for key, value in data.items() if key != "progress_percent"}
        return cls.model_validate(payload)


# =============================================================================
# Runtime models
# =============================================================================


@dataclass(frozen=True)
class Override:
    """Process-local forced backend for a unit. Never persisted."""

    unit: MigrationUnit
    backend: Backend
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class PerformanceSample:
    """
    One measured call against a backend.

    Attributes:
        unit: Unit the call targeted.
        backend: Backend that served the call.
        latency_ms: Wall-clock latency in milliseconds.
        succeeded: Whether the call returned without error.
        experiment_id: Experiment the call is attributed to, if any.
        error_type: Exception class name for failed calls.
        timestamp: When the call completed.
    """

    unit: MigrationUnit
    backend: Backend
    latency_ms: float
    succeeded: bool
    experiment_id: str | None = None
    error_type: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class Experiment:
    """
    Timed A/B comparison splitting a unit's traffic across both backends.

    Mutable: samples are appended while the experiment is active, and
    ended_at is set once by end_experiment.

    Attributes:
        id: Experiment identifier.
        unit: Unit whose traffic is split.
        split_ratio: Fraction of traffic assigned to Backend.SECONDARY.
        started_at: When the experiment started.
        ended_at: When the experiment was ended, if it was.
        expires_at: Automatic expiry time, if a duration was given.
        samples: Append-only list of attributed samples.
    """

    id: str
    unit: MigrationUnit
    split_ratio: float
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: datetime | None = None
    expires_at: datetime | None = None
    samples: list[PerformanceSample] = field(default_factory=list)

    def is_active(self, now: datetime | None = None) -> bool:
        """Check whether the experiment still routes and collects samples."""
        if self.ended_at is not None:
            return False
        if self.expires_at is None:
            return True
        return (now or _utcnow()) < self.expires_at


@dataclass(frozen=True)
class SwitchRecord:
    """Administrative switch of a unit from one backend to another."""

    unit: MigrationUnit
    from_backend: Backend
    to_backend: Backend
    reason: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ExecutionResult:
    """
    Normalized result of a call routed through the Switcher.

    Attributes:
        data: Payload returned by the adapter.
        backend: Backend that produced the data.
        latency_ms: Latency of the successful attempt in milliseconds.
        fell_back: True when the result came from the alternate backend
            after the resolved backend failed transiently.
        unit: Unit the call targeted.
        operation: Operation that was executed.
    """

    data: Any
    backend: Backend
    latency_ms: float
    fell_back: bool = False
    unit: MigrationUnit | None = None
    operation: str | None = None


@dataclass(frozen=True)
class VariantMetrics:
    """
    Aggregated metrics for one experiment arm.

    Latency figures cover successful samples; error_rate covers all
    samples. Metrics are None when there is nothing to aggregate.
    """

    requests: int = 0
    avg_latency_ms: float | None = None
    p95_latency_ms: float | None = None
    error_rate: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "avg_latency_ms": self.avg_latency_ms,
            "p95_latency_ms": self.p95_latency_ms,
            "error_rate": self.error_rate,
        }


@dataclass(frozen=True)
class ExperimentResults:
    """Per-backend metrics for an experiment, computed from its samples."""

    experiment_id: str
    unit: MigrationUnit
    split_ratio: float
    variants: dict[Backend, VariantMetrics]
    active: bool
    duration_seconds: float

    def __getitem__(self, backend: Backend) -> VariantMetrics:
        return self.variants[backend]

    def to_dict(self) -> dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "unit": str(self.unit),
            "split_ratio": self.split_ratio,
            "active": self.active,
            "duration_seconds": self.duration_seconds,
            "variants": {
                backend.value: metrics.to_dict() for backend, metrics in self.variants.items()
            },
        }


@dataclass(frozen=True)
class ExperimentOutcome:
    """
    Final verdict of an ended experiment.

    Attributes:
        results: Metrics at the time the experiment ended.
        winner: Better-scoring backend, or None without data for both arms.
        confidence: Relative score difference in [0, 1].
        recommendation: Human-readable next step.
    """

    results: ExperimentResults
    winner: Backend | None
    confidence: float
    recommendation: str


@dataclass(frozen=True)
class BackendTimings:
    """Latency statistics for one backend in a head-to-head comparison."""

    samples: int
    error_count: int
    avg_latency_ms: float | None = None
    p95_latency_ms: float | None = None
    min_latency_ms: float | None = None
    max_latency_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "samples": self.samples,
            "error_count": self.error_count,
            "avg_latency_ms": self.avg_latency_ms,
            "p95_latency_ms": self.p95_latency_ms,
            "min_latency_ms": self.min_latency_ms,
            "max_latency_ms": self.max_latency_ms,
        }


@dataclass(frozen=True)
class ComparisonReport:
    """
    Head-to-head comparison of both backends for one operation.

    Attributes:
        unit: Unit compared.
        operation: Operation issued.
        sample_size: Calls issued per backend.
        timings: Per-backend statistics.
        faster_backend: Backend with the lower average latency, or None
            when either side has no successful call.
        improvement_percent: How much faster SECONDARY is than PRIMARY
            (negative when slower), or None when not computable.
    """

    unit: MigrationUnit
    operation: str
    sample_size: int
    timings: dict[Backend, BackendTimings]
    faster_backend: Backend | None = None
    improvement_percent: float | None = None

    def __getitem__(self, backend: Backend) -> BackendTimings:
        return self.timings[backend]

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": str(self.unit),
            "operation": self.operation,
            "sample_size": self.sample_size,
            "timings": {backend.value: t.to_dict() for backend, t in self.timings.items()},
            "faster_backend": self.faster_backend.value if self.faster_backend else None,
            "improvement_percent": self.improvement_percent,
        }


@dataclass(frozen=True)
class EquivalenceReport:
    """Structural similarity between the two backends' answers."""

    unit: MigrationUnit
    operation: str
    similarity: float
    tolerance: float
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.error is None and self.similarity >= self.tolerance


__all__ = [
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
]
