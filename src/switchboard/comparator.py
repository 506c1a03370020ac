"""
Head-to-head comparison of the two backends.

PerformanceComparator issues matched calls for one unit and operation
against PRIMARY and then SECONDARY through the Switcher, forcing the
backend and disabling fallback so every sample measures the backend it
names. Comparator calls are never attributed to A/B experiments.

Example:
    >>> comparator = PerformanceComparator(switcher)
    >>> report = await comparator.compare_performance(
    ...     MigrationUnit.entity("Team"), "list", sample_size=50
    ... )
    >>> report[Backend.SECONDARY].avg_latency_ms
    12.4
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from switchboard._stats import mean, p95
from switchboard.config import SwitchboardConfig
from switchboard.exceptions import AdapterError
from switchboard.models import (
    Backend,
    BackendTimings,
    ComparisonReport,
    EquivalenceReport,
    MigrationUnit,
)
from switchboard.observability import (
    ATTR_OPERATION,
    ATTR_SAMPLE_SIZE,
    ATTR_UNIT,
    Tracer,
    create_tracer,
)
from switchboard.switcher import ExecuteOptions, Switcher

logger = logging.getLogger(__name__)


class PerformanceComparator:
    """
    Measures both backends for the same operation.

    Args:
        switcher: Switcher whose registry holds both backends
        config: Supplies the default sample size
        tracer: Optional custom Tracer
    """

    def __init__(
        self,
        switcher: Switcher,
        *,
        config: SwitchboardConfig | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._switcher = switcher
        self._config = config or SwitchboardConfig()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)

    async def compare_performance(
        self,
        unit: MigrationUnit,
        operation: str,
        payload: dict[str, Any] | None = None,
        sample_size: int | None = None,
        concurrency: int = 1,
    ) -> ComparisonReport:
        """
        Issue sample_size calls against each backend and report latencies.

        All PRIMARY calls complete before the first SECONDARY call is
        issued. Within a backend at most `concurrency` calls are in
        flight. Failed calls are counted in error_count and left out of
        the latency statistics.

        Raises:
            ValueError: If sample_size or concurrency is below 1
        """
        if sample_size is None:
            sample_size = self._config.comparison_sample_size
        if sample_size < 1:
            raise ValueError(f"sample_size must be >= 1, got {sample_size}")
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        with self._tracer.span(
            "switchboard.comparator.compare_performance",
            {ATTR_UNIT: str(unit), ATTR_OPERATION: operation, ATTR_SAMPLE_SIZE: sample_size},
        ):
            timings: dict[Backend, BackendTimings] = {}
            for backend in (Backend.PRIMARY, Backend.SECONDARY):
                timings[backend] = await self._measure(
                    unit, operation, payload, backend, sample_size, concurrency
                )

        primary_avg = timings[Backend.PRIMARY].avg_latency_ms
        secondary_avg = timings[Backend.SECONDARY].avg_latency_ms
        faster: Backend | None = None
        improvement: float | None = None
        if primary_avg is not None and secondary_avg is not None:
            if secondary_avg < primary_avg:
                faster = Backend.SECONDARY
            elif primary_avg < secondary_avg:
                faster = Backend.PRIMARY
            if primary_avg > 0:
                improvement = (primary_avg - secondary_avg) / primary_avg * 100.0

        report = ComparisonReport(
            unit=unit,
            operation=operation,
            sample_size=sample_size,
            timings=timings,
            faster_backend=faster,
            improvement_percent=improvement,
        )
        logger.info(
            "Compared %s %s over %d samples: faster=%s improvement=%s",
            unit,
            operation,
            sample_size,
            faster.value if faster else None,
            f"{improvement:.1f}%" if improvement is not None else None,
        )
        return report

    async def _measure(
        self,
        unit: MigrationUnit,
        operation: str,
        payload: dict[str, Any] | None,
        backend: Backend,
        sample_size: int,
        concurrency: int,
    ) -> BackendTimings:
        semaphore = asyncio.Semaphore(concurrency)
        options = ExecuteOptions(force_backend=backend, allow_fallback=False)

        async def one_call() -> float | None:
            async with semaphore:
                try:
                    result = await self._switcher.execute(
                        unit, operation, copy.deepcopy(payload), options
                    )
                except AdapterError as e:
                    logger.debug("Comparison call on %s failed: %s", backend.value, e)
                    return None
                return result.latency_ms

        outcomes = await asyncio.gather(*(one_call() for _ in range(sample_size)))
        latencies = [latency for latency in outcomes if latency is not None]
        return BackendTimings(
            samples=sample_size,
            error_count=sample_size - len(latencies),
            avg_latency_ms=mean(latencies),
            p95_latency_ms=p95(latencies),
            min_latency_ms=min(latencies) if latencies else None,
            max_latency_ms=max(latencies) if latencies else None,
        )

    async def validate_equivalence(
        self,
        unit: MigrationUnit,
        operation: str,
        payload: dict[str, Any] | None = None,
        tolerance: float = 0.95,
    ) -> EquivalenceReport:
        """
        Run the operation once on each backend and compare the answers.

        Args:
            unit: Unit to check
            operation: Operation to run; should be read-only
            payload: Operation payload
            tolerance: Minimum structural similarity to pass, in [0, 1]

        Returns:
            EquivalenceReport; a failing call yields similarity 0 and the error text
        """
        if not 0.0 <= tolerance <= 1.0:
            raise ValueError(f"tolerance must be within [0, 1], got {tolerance}")

        results: dict[Backend, Any] = {}
        for backend in (Backend.SECONDARY, Backend.PRIMARY):
            try:
                result = await self._switcher.execute(
                    unit,
                    operation,
                    copy.deepcopy(payload),
                    ExecuteOptions(force_backend=backend, allow_fallback=False),
                )
            except AdapterError as e:
                logger.warning("Equivalence check for %s %s errored: %s", unit, operation, e)
                return EquivalenceReport(
                    unit=unit,
                    operation=operation,
                    similarity=0.0,
                    tolerance=tolerance,
                    error=f"{backend.value}: {e}",
                )
            results[backend] = result.data

        similarity = structural_similarity(results[Backend.SECONDARY], results[Backend.PRIMARY])
        report = EquivalenceReport(
            unit=unit, operation=operation, similarity=similarity, tolerance=tolerance
        )
        if report.passed:
            logger.info("Equivalence check for %s %s passed (%.2f)", unit, operation, similarity)
        else:
            logger.warning("Equivalence check for %s %s failed (%.2f)", unit, operation, similarity)
        return report


def structural_similarity(left: Any, right: Any) -> float:
    """
    Recursive similarity of two decoded payloads in [0, 1].

    Equal values score 1. Mappings must have the same keys and score the
    mean similarity of their values; sequences must have the same length
    and score the mean similarity of their items. Anything else that is
    not equal scores 0.

    Example:
        >>> structural_similarity({"a": 1, "b": 2}, {"a": 1, "b": 3})
        0.5
    """
    if left == right:
        return 1.0
    if left is None or right is None:
        return 0.0

    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return 0.0
        return sum(structural_similarity(left[key], right[key]) for key in left) / len(left)

    if _is_sequence(left) and _is_sequence(right):
        if len(left) != len(right):
            return 0.0
        return sum(structural_similarity(a, b) for a, b in zip(left, right)) / len(left)

    return 0.0


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


__all__ = ["PerformanceComparator", "structural_similarity"]
