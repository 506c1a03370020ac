"""
A/B testing across the two backends.

An experiment splits one unit's unforced traffic between PRIMARY and
SECONDARY: each call routed through the Switcher while the experiment is
active draws a backend from a seedable pseudo-random generator, and the
measured call is appended to the experiment as a PerformanceSample.
Results are always recomputed from the samples.

Example:
    >>> tester = ABTester(random_seed=7)
    >>> switcher = Switcher(registry, store, ab_tester=tester)
    >>> experiment_id = tester.start_experiment(MigrationUnit.entity("Team"), 0.2)
    >>> ...  # normal traffic flows through switcher.execute()
    >>> outcome = tester.end_experiment(experiment_id)
    >>> outcome.winner
    <Backend.SECONDARY: 'new'>
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from switchboard._stats import mean, p95
from switchboard.exceptions import (
    ExperimentAlreadyActiveError,
    ExperimentNotFoundError,
    ExperimentUnitMismatchError,
)
from switchboard.metrics import SwitchboardMetrics
from switchboard.models import (
    Backend,
    Experiment,
    ExperimentOutcome,
    ExperimentResults,
    MigrationUnit,
    PerformanceSample,
    VariantMetrics,
)
from switchboard.observability import (
    ATTR_EXPERIMENT_ID,
    ATTR_SPLIT_RATIO,
    ATTR_UNIT,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

# Guards the score division for calls measured as instantaneous
_MIN_LATENCY_MS = 1e-6


@dataclass(frozen=True)
class ExperimentAssignment:
    """Backend drawn for one call and the experiment that drew it."""

    experiment_id: str
    backend: Backend


class ABTester:
    """
    Owns experiments, routes experiment traffic and aggregates samples.

    Args:
        random_seed: Seed for the assignment generator (reproducible splits)
        rng: Generator to use instead of a seeded one
        metrics: Shared metrics container
        tracer: Optional custom Tracer
        enable_tracing: Whether to create spans when no tracer is given
    """

    def __init__(
        self,
        *,
        random_seed: int | None = None,
        rng: random.Random | None = None,
        metrics: SwitchboardMetrics | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._rng = rng or random.Random(random_seed)
        self._metrics = metrics or SwitchboardMetrics(enable_metrics=False)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._experiments: dict[str, Experiment] = {}
        self._active_by_unit: dict[MigrationUnit, str] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_experiment(
        self,
        unit: MigrationUnit,
        split_ratio: float = 0.5,
        duration: timedelta | None = None,
    ) -> str:
        """
        Start splitting a unit's traffic across both backends.

        Args:
            unit: Unit whose traffic is split
            split_ratio: Fraction of calls routed to Backend.SECONDARY
            duration: Optional lifetime after which the experiment stops
                routing and collecting samples

        Returns:
            The new experiment ID

        Raises:
            ValueError: If split_ratio is outside [0, 1] or duration is not positive
            ExperimentAlreadyActiveError: If the unit already has an active experiment
        """
        if not 0.0 <= split_ratio <= 1.0:
            raise ValueError(f"split_ratio must be within [0, 1], got {split_ratio}")
        if duration is not None and duration <= timedelta(0):
            raise ValueError(f"duration must be positive, got {duration}")

        current = self.active_experiment(unit)
        if current is not None:
            raise ExperimentAlreadyActiveError(unit, current.id)

        with self._tracer.span(
            "switchboard.ab_tester.start_experiment",
            {ATTR_UNIT: str(unit), ATTR_SPLIT_RATIO: split_ratio},
        ):
            now = datetime.now(UTC)
            experiment = Experiment(
                id=f"exp-{uuid4().hex[:12]}",
                unit=unit,
                split_ratio=split_ratio,
                started_at=now,
                expires_at=now + duration if duration is not None else None,
            )
            self._experiments[experiment.id] = experiment
            self._active_by_unit[unit] = experiment.id
            self._metrics.record_experiment_started(str(unit))

        logger.info(
            "Started experiment %s on %s with split ratio %.2f",
            experiment.id,
            unit,
            split_ratio,
        )
        return experiment.id

    def end_experiment(self, experiment_id: str) -> ExperimentOutcome:
        """
        Stop an experiment and pick a winner.

        The unit reverts to status-based routing. Ending an experiment
        that already ended returns the same verdict again.

        Raises:
            ExperimentNotFoundError: If the experiment ID is unknown
        """
        experiment = self.get_experiment(experiment_id)
        with self._tracer.span(
            "switchboard.ab_tester.end_experiment",
            {ATTR_EXPERIMENT_ID: experiment_id, ATTR_UNIT: str(experiment.unit)},
        ):
            if experiment.ended_at is None:
                self._finish(experiment, datetime.now(UTC))

            results = self.get_results(experiment_id)
            outcome = _decide(results)

        logger.info(
            "Experiment %s ended: winner=%s confidence=%.1f%%",
            experiment_id,
            outcome.winner.value if outcome.winner else None,
            outcome.confidence * 100,
        )
        return outcome

    def _finish(self, experiment: Experiment, ended_at: datetime) -> None:
        experiment.ended_at = ended_at
        if self._active_by_unit.get(experiment.unit) == experiment.id:
            del self._active_by_unit[experiment.unit]
        self._metrics.record_experiment_ended(str(experiment.unit))

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_experiment(self, experiment_id: str) -> Experiment:
        """
        Raises:
            ExperimentNotFoundError: If the experiment ID is unknown
        """
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment

    def active_experiment(self, unit: MigrationUnit) -> Experiment | None:
        """
        The unit's running experiment, if any.

        An experiment found past its expiry is finished here.
        """
        experiment_id = self._active_by_unit.get(unit)
        if experiment_id is None:
            return None
        experiment = self._experiments[experiment_id]
        if experiment.is_active():
            return experiment

        self._finish(experiment, experiment.expires_at or datetime.now(UTC))
        logger.info("Experiment %s on %s expired", experiment.id, unit)
        return None

    def list_experiments(self, active_only: bool = False) -> list[Experiment]:
        experiments = sorted(self._experiments.values(), key=lambda e: e.started_at)
        if active_only:
            return [e for e in experiments if self.active_experiment(e.unit) is e]
        return experiments

    # =========================================================================
    # Routing and recording
    # =========================================================================

    def assign(self, unit: MigrationUnit) -> ExperimentAssignment | None:
        """
        Draw a backend for one call to a unit.

        Returns:
            The assignment, or None when the unit has no active experiment
        """
        experiment = self.active_experiment(unit)
        if experiment is None:
            return None
        if self._rng.random() < experiment.split_ratio:
            backend = Backend.SECONDARY
        else:
            backend = Backend.PRIMARY
        logger.debug("Experiment %s assigned %s to %s", experiment.id, unit, backend.value)
        return ExperimentAssignment(experiment_id=experiment.id, backend=backend)

    def record(self, sample: PerformanceSample) -> bool:
        """
        Attribute a measured call to its experiment.

        Returns:
            True if the sample was appended, False if the experiment ended

        Raises:
            ValueError: If the sample carries no experiment_id
            ExperimentNotFoundError: If the experiment ID is unknown
            ExperimentUnitMismatchError: If the experiment splits another unit
        """
        if sample.experiment_id is None:
            raise ValueError("Sample is not attributed to an experiment")
        experiment = self.get_experiment(sample.experiment_id)
        if experiment.unit != sample.unit:
            raise ExperimentUnitMismatchError(sample.unit, experiment.id, experiment.unit)
        if not experiment.is_active(sample.timestamp):
            return False
        experiment.samples.append(sample)
        return True

    # =========================================================================
    # Results
    # =========================================================================

    def get_results(self, experiment_id: str) -> ExperimentResults:
        """
        Per-backend metrics computed from the experiment's samples.

        Raises:
            ExperimentNotFoundError: If the experiment ID is unknown
        """
        experiment = self.get_experiment(experiment_id)
        samples = list(experiment.samples)
        end = experiment.ended_at or datetime.now(UTC)
        return ExperimentResults(
            experiment_id=experiment.id,
            unit=experiment.unit,
            split_ratio=experiment.split_ratio,
            variants={
                backend: _variant_metrics([s for s in samples if s.backend is backend])
                for backend in Backend
            },
            active=experiment.is_active(),
            duration_seconds=(end - experiment.started_at).total_seconds(),
        )


def _variant_metrics(samples: list[PerformanceSample]) -> VariantMetrics:
    if not samples:
        return VariantMetrics()
    latencies = [s.latency_ms for s in samples if s.succeeded]
    failures = sum(1 for s in samples if not s.succeeded)
    return VariantMetrics(
        requests=len(samples),
        avg_latency_ms=mean(latencies),
        p95_latency_ms=p95(latencies),
        error_rate=failures / len(samples),
    )


def _score(metrics: VariantMetrics) -> float:
    """Success rate per millisecond of average latency."""
    if metrics.avg_latency_ms is None or metrics.error_rate is None:
        return 0.0
    return (1.0 - metrics.error_rate) / max(metrics.avg_latency_ms, _MIN_LATENCY_MS)


def _decide(results: ExperimentResults) -> ExperimentOutcome:
    primary = results[Backend.PRIMARY]
    secondary = results[Backend.SECONDARY]
    if primary.requests == 0 or secondary.requests == 0:
        return ExperimentOutcome(
            results=results,
            winner=None,
            confidence=0.0,
            recommendation="Insufficient data: both backends need samples",
        )

    primary_score = _score(primary)
    secondary_score = _score(secondary)
    best = max(primary_score, secondary_score)
    if best == 0.0 or primary_score == secondary_score:
        return ExperimentOutcome(
            results=results,
            winner=None,
            confidence=0.0,
            recommendation="No difference between backends",
        )

    confidence = abs(secondary_score - primary_score) / best
    if secondary_score > primary_score:
        return ExperimentOutcome(
            results=results,
            winner=Backend.SECONDARY,
            confidence=confidence,
            recommendation=f"Migrate {results.unit} to {Backend.SECONDARY.value}",
        )
    return ExperimentOutcome(
        results=results,
        winner=Backend.PRIMARY,
        confidence=confidence,
        recommendation=f"Keep {results.unit} on {Backend.PRIMARY.value}",
    )


__all__ = ["ABTester", "ExperimentAssignment"]
