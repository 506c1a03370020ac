"""
OpenTelemetry metrics for the switchboard control plane.

Metrics Exposed:
    - switchboard.calls (Counter): Routed calls by unit, backend and outcome
    - switchboard.call.duration (Histogram): Adapter call latency in ms
    - switchboard.fallbacks (Counter): Calls retried against the alternate backend
    - switchboard.experiments.active (UpDownCounter): Running A/B experiments
    - switchboard.plan.units (Counter): Plan steps by plan and outcome

With enable_metrics=False the instruments are no-ops; the internal
counters behind get_snapshot() are maintained either way.

Example:
    >>> from switchboard.metrics import SwitchboardMetrics
    >>>
    >>> metrics = SwitchboardMetrics()
    >>> metrics.record_call("entity:Team", "list", "new", 12.5, success=True)
    >>> metrics.get_snapshot().calls
    1
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics

# Module-level meter instance
_meter: Any = None


def _get_meter() -> Any:
    """Get or create the meter for the switchboard namespace."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("switchboard", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """
    Reset the global meter instance.

    Useful for testing to ensure fresh meter state between tests.
    """
    global _meter
    _meter = None


class NoOpCounter:
    """Counter stand-in used when metrics are disabled."""

    def add(
        self,
        amount: int | float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


class NoOpHistogram:
    """Histogram stand-in used when metrics are disabled."""

    def record(
        self,
        value: float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


@dataclass(frozen=True)
class SwitchboardMetricSnapshot:
    """
    Snapshot of accumulated metric values.

    Attributes:
        calls: Total routed calls (including fallback attempts)
        failed_calls: Calls that raised
        fallbacks: Calls retried against the alternate backend
        calls_by_backend: Backend value to call count
        active_experiments: Experiments currently running
        plan_units_succeeded: Successful plan steps
        plan_units_failed: Failed plan steps
    """

    calls: int = 0
    failed_calls: int = 0
    fallbacks: int = 0
    calls_by_backend: dict[str, int] = field(default_factory=dict)
    active_experiments: int = 0
    plan_units_succeeded: int = 0
    plan_units_failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "calls": self.calls,
            "failed_calls": self.failed_calls,
            "fallbacks": self.fallbacks,
            "calls_by_backend": dict(self.calls_by_backend),
            "active_experiments": self.active_experiments,
            "plan_units_succeeded": self.plan_units_succeeded,
            "plan_units_failed": self.plan_units_failed,
        }


@dataclass
class SwitchboardMetrics:
    """
    Container for switchboard metric instruments.

    One instance is normally shared by the Switcher, ABTester and
    BatchMigrationManager of an application.

    Attributes:
        enable_metrics: Whether OpenTelemetry instruments are created
    """

    enable_metrics: bool = True

    _calls_counter: Any = field(default=None, init=False, repr=False)
    _duration_histogram: Any = field(default=None, init=False, repr=False)
    _fallbacks_counter: Any = field(default=None, init=False, repr=False)
    _experiments_counter: Any = field(default=None, init=False, repr=False)
    _plan_units_counter: Any = field(default=None, init=False, repr=False)

    # Internal counters for snapshot
    _calls: int = field(default=0, init=False, repr=False)
    _failed_calls: int = field(default=0, init=False, repr=False)
    _fallbacks: int = field(default=0, init=False, repr=False)
    _calls_by_backend: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _active_experiments: int = field(default=0, init=False, repr=False)
    _plan_units_succeeded: int = field(default=0, init=False, repr=False)
    _plan_units_failed: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize metric instruments."""
        if self.enable_metrics:
            self._setup_metrics()
        else:
            self._setup_noop()

    def _setup_metrics(self) -> None:
        meter = _get_meter()

        self._calls_counter = meter.create_counter(
            name="switchboard.calls",
            unit="calls",
            description="Calls routed through the switcher",
        )
        self._duration_histogram = meter.create_histogram(
            name="switchboard.call.duration",
            unit="ms",
            description="Backend adapter call latency in milliseconds",
        )
        self._fallbacks_counter = meter.create_counter(
            name="switchboard.fallbacks",
            unit="calls",
            description="Calls retried against the alternate backend",
        )
        self._experiments_counter = meter.create_up_down_counter(
            name="switchboard.experiments.active",
            unit="experiments",
            description="Number of running A/B experiments",
        )
        self._plan_units_counter = meter.create_counter(
            name="switchboard.plan.units",
            unit="units",
            description="Batch plan steps by outcome",
        )

    def _setup_noop(self) -> None:
        self._calls_counter = NoOpCounter()
        self._duration_histogram = NoOpHistogram()
        self._fallbacks_counter = NoOpCounter()
        self._experiments_counter = NoOpCounter()
        self._plan_units_counter = NoOpCounter()

    def record_call(
        self,
        unit: str,
        operation: str,
        backend: str,
        latency_ms: float,
        *,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """
        Record one adapter call.

        Args:
            unit: Unit in "kind:name" form
            operation: Operation executed
            backend: Backend value that served the call
            latency_ms: Call latency in milliseconds
            success: Whether the call returned without error
            error_type: Exception class name for failures
        """
        attrs = {
            "unit": unit,
            "operation": operation,
            "backend": backend,
            "outcome": "success" if success else "error",
        }
        if error_type:
            attrs["error_type"] = error_type
        self._calls_counter.add(1, attrs)
        self._duration_histogram.record(latency_ms, attrs)

        self._calls += 1
        if not success:
            self._failed_calls += 1
        self._calls_by_backend[backend] = self._calls_by_backend.get(backend, 0) + 1

    def record_fallback(self, unit: str, from_backend: str, to_backend: str) -> None:
        attrs = {"unit": unit, "from_backend": from_backend, "to_backend": to_backend}
        self._fallbacks_counter.add(1, attrs)
        self._fallbacks += 1

    def record_experiment_started(self, unit: str) -> None:
        self._experiments_counter.add(1, {"unit": unit})
        self._active_experiments += 1

    def record_experiment_ended(self, unit: str) -> None:
        self._experiments_counter.add(-1, {"unit": unit})
        self._active_experiments = max(0, self._active_experiments - 1)

    def record_plan_unit(self, plan_name: str, *, success: bool, skipped: bool = False) -> None:
        """
        Record the outcome of one plan step.

        Args:
            plan_name: Plan the step belongs to
            success: Whether the unit reached the target backend
            skipped: Whether the write was skipped as already done
        """
        attrs = {
            "plan": plan_name,
            "outcome": "success" if success else "error",
            "skipped": str(skipped).lower(),
        }
        self._plan_units_counter.add(1, attrs)
        if success:
            self._plan_units_succeeded += 1
        else:
            self._plan_units_failed += 1

    def get_snapshot(self) -> SwitchboardMetricSnapshot:
        """Get a snapshot of accumulated values."""
        return SwitchboardMetricSnapshot(
            calls=self._calls,
            failed_calls=self._failed_calls,
            fallbacks=self._fallbacks,
            calls_by_backend=dict(self._calls_by_backend),
            active_experiments=self._active_experiments,
            plan_units_succeeded=self._plan_units_succeeded,
            plan_units_failed=self._plan_units_failed,
        )


__all__ = [
    "SwitchboardMetrics",
    "SwitchboardMetricSnapshot",
    "NoOpCounter",
    "NoOpHistogram",
    "reset_meter",
]
