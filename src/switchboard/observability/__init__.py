"""
Observability utilities for switchboard.

Tracing is composed into components through the Tracer protocol; metric
instruments live in switchboard.metrics.

Example:
    >>> from switchboard.observability import create_tracer
    >>>
    >>> class MyComponent:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from switchboard.observability.attributes import (
    ATTR_BACKEND,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_EXPERIMENT_ID,
    ATTR_FELL_BACK,
    ATTR_LATENCY_MS,
    ATTR_OPERATION,
    ATTR_PLAN_NAME,
    ATTR_PLAN_PROGRESS_PERCENT,
    ATTR_PLAN_STATUS,
    ATTR_PLAN_UNIT_COUNT,
    ATTR_ROUTING_SOURCE,
    ATTR_SAMPLE_SIZE,
    ATTR_SPLIT_RATIO,
    ATTR_UNIT,
    ATTR_UNIT_KIND,
)
from switchboard.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    SpanLike,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "SpanLike",
    "create_tracer",
    # Attributes
    "ATTR_UNIT",
    "ATTR_UNIT_KIND",
    "ATTR_OPERATION",
    "ATTR_BACKEND",
    "ATTR_ROUTING_SOURCE",
    "ATTR_FELL_BACK",
    "ATTR_LATENCY_MS",
    "ATTR_EXPERIMENT_ID",
    "ATTR_SPLIT_RATIO",
    "ATTR_SAMPLE_SIZE",
    "ATTR_PLAN_NAME",
    "ATTR_PLAN_STATUS",
    "ATTR_PLAN_UNIT_COUNT",
    "ATTR_PLAN_PROGRESS_PERCENT",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_TYPE",
]
