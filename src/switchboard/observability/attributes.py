"""
Standard span and metric attributes for switchboard.

Attribute constants used across all switchboard components for consistent
span naming and metrics labeling. These follow OpenTelemetry semantic
conventions where applicable.

Example:
    >>> from switchboard.observability.attributes import ATTR_UNIT, ATTR_BACKEND
    >>>
    >>> with tracer.span(
    ...     "switchboard.switcher.execute",
    ...     {ATTR_UNIT: str(unit), ATTR_BACKEND: backend.value},
    ... ):
    ...     pass
"""

# =============================================================================
# Routing Attributes
# =============================================================================

ATTR_UNIT = "switchboard.unit"
"""Migration unit in "kind:name" form (e.g., 'entity:Team')."""

ATTR_UNIT_KIND = "switchboard.unit.kind"
"""Unit kind ('entity' or 'function')."""

ATTR_OPERATION = "switchboard.operation"
"""Operation executed against a backend (e.g., 'list', 'createTeam')."""

ATTR_BACKEND = "switchboard.backend"
"""Backend a call was routed to ('legacy' or 'new')."""

ATTR_ROUTING_SOURCE = "switchboard.routing.source"
"""What decided the backend ('forced', 'experiment', 'status')."""

ATTR_FELL_BACK = "switchboard.fell_back"
"""Whether the call was served by the alternate backend (boolean)."""

ATTR_LATENCY_MS = "switchboard.latency_ms"
"""Latency of the call in milliseconds (float)."""

# =============================================================================
# Experiment / Comparison Attributes
# =============================================================================

ATTR_EXPERIMENT_ID = "switchboard.experiment.id"
"""A/B experiment identifier."""

ATTR_SPLIT_RATIO = "switchboard.experiment.split_ratio"
"""Fraction of traffic routed to the new backend (float)."""

ATTR_SAMPLE_SIZE = "switchboard.comparison.sample_size"
"""Calls issued per backend in a head-to-head comparison (integer)."""

# =============================================================================
# Plan Attributes
# =============================================================================

ATTR_PLAN_NAME = "switchboard.plan.name"
"""Batch migration plan name."""

ATTR_PLAN_STATUS = "switchboard.plan.status"
"""Plan status after an operation."""

ATTR_PLAN_UNIT_COUNT = "switchboard.plan.unit_count"
"""Number of units in a plan (integer)."""

ATTR_PLAN_PROGRESS_PERCENT = "switchboard.plan.progress_percent"
"""Plan progress percentage (float)."""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite', 'postgresql')."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for failed operations."""


__all__ = [
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
