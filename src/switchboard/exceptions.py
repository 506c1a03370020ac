"""
Exceptions for the switchboard backend migration control plane.

Exception Hierarchy:
    SwitchboardError (base)
    +-- AdapterError (raised by backend adapters, classified)
    |   +-- ValidationError      deterministic, never failed over
    |   +-- NotFoundError        deterministic, never failed over
    |   +-- NetworkError         transient, eligible for fallback
    |   +-- BackendError         backend-reported, eligible for fallback
    +-- UnknownBackendError
    +-- UnsupportedOperationError
    +-- ExperimentError
    |   +-- ExperimentNotFoundError
    |   +-- ExperimentAlreadyActiveError
    |   +-- ExperimentUnitMismatchError
    +-- PlanError
    |   +-- PlanNotFoundError
    |   +-- PlanAlreadyExistsError
    |   +-- PlanStateError
    +-- NoSwitchHistoryError

Error Classification:
    Every AdapterError subclass carries an ErrorClassification describing
    whether the failure is transient. The Switcher consults
    is_fallback_eligible() and nothing else when deciding whether to retry
    a call against the alternate backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from switchboard.models import Backend, MigrationUnit, PlanStatus


@dataclass(frozen=True)
class ErrorClassification:
    """
    Classification metadata for adapter errors.

    Attributes:
        error_code: Stable code for programmatic handling and metrics.
        retryable: Whether the failure is transient and may succeed
            against the alternate backend.
        category: Error category for grouping related errors.
    """

    error_code: str
    retryable: bool
    category: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "retryable": self.retryable,
            "category": self.category,
        }


class SwitchboardError(Exception):
    """
    Base exception for all switchboard errors.

    Attributes:
        message: Human-readable error description.
        unit: The migration unit involved, if applicable.
    """

    def __init__(self, message: str, *, unit: MigrationUnit | None = None) -> None:
        self.message = message
        self.unit = unit
        super().__init__(message)

    def __str__(self) -> str:
        if self.unit is not None:
            return f"{self.message} unit={self.unit}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging and plan results."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "unit": str(self.unit) if self.unit is not None else None,
        }


# =============================================================================
# Adapter errors
# =============================================================================


class AdapterError(SwitchboardError):
    """
    Base class for errors raised by backend adapters.

    Concrete adapters must raise one of the four subclasses; anything
    else escaping an adapter is normalized to BackendError by the Switcher.
    """

    classification: ErrorClassification = ErrorClassification(
        error_code="ADAPTER_ERROR",
        retryable=False,
        category="adapter",
    )

    @property
    def retryable(self) -> bool:
        return self.classification.retryable

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["classification"] = self.classification.to_dict()
        return result


class ValidationError(AdapterError):
    """Bad payload. Deterministic and backend-independent."""

    classification = ErrorClassification(
        error_code="VALIDATION_ERROR",
        retryable=False,
        category="validation",
    )

    def __init__(
        self,
        message: str,
        *,
        unit: MigrationUnit | None = None,
        field_errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message, unit=unit)
        self.field_errors = dict(field_errors or {})


class NotFoundError(AdapterError):
    """Target record or unit absent. Deterministic and backend-independent."""

    classification = ErrorClassification(
        error_code="NOT_FOUND",
        retryable=False,
        category="lookup",
    )


class NetworkError(AdapterError):
    """Transient transport failure, including call timeouts."""

    classification = ErrorClassification(
        error_code="NETWORK_ERROR",
        retryable=True,
        category="connectivity",
    )


class BackendError(AdapterError):
    """
    Failure reported by the backend itself.

    Attributes:
        status_code: Backend status code (e.g. HTTP status), if known.
    """

    classification = ErrorClassification(
        error_code="BACKEND_ERROR",
        retryable=True,
        category="backend",
    )

    def __init__(
        self,
        message: str,
        *,
        unit: MigrationUnit | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, unit=unit)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["status_code"] = self.status_code
        return result


def is_fallback_eligible(error: BaseException) -> bool:
    """
    Check whether a failed call may be retried against the alternate backend.

    Only NetworkError and BackendError qualify.

    Args:
        error: The exception raised by the adapter call.

    Returns:
        True if the error is a transient adapter error.
    """
    return isinstance(error, AdapterError) and error.retryable


# =============================================================================
# Control-plane errors
# =============================================================================


class UnknownBackendError(SwitchboardError):
    """Raised when no adapter is registered for a backend."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend
        super().__init__(f"No adapter registered for backend '{backend.value}'")


class UnsupportedOperationError(SwitchboardError):
    """Raised when an operation does not apply to a unit's kind."""

    def __init__(self, unit: MigrationUnit, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Operation '{operation}' is not supported", unit=unit)


class ExperimentError(SwitchboardError):
    """Base class for A/B experiment errors."""


class ExperimentNotFoundError(ExperimentError):
    """Raised when an experiment ID is unknown."""

    def __init__(self, experiment_id: str) -> None:
        self.experiment_id = experiment_id
        super().__init__(f"Experiment not found: {experiment_id}")


class ExperimentAlreadyActiveError(ExperimentError):
    """Raised when starting an experiment on a unit that already has one."""

    def __init__(self, unit: MigrationUnit, experiment_id: str) -> None:
        self.experiment_id = experiment_id
        super().__init__(f"Experiment {experiment_id} is already active", unit=unit)


class ExperimentUnitMismatchError(ExperimentError):
    """Raised when a call is attributed to an experiment on another unit."""

    def __init__(
        self,
        unit: MigrationUnit,
        experiment_id: str,
        experiment_unit: MigrationUnit,
    ) -> None:
        self.experiment_id = experiment_id
        self.experiment_unit = experiment_unit
        super().__init__(
            f"Experiment {experiment_id} splits {experiment_unit}, not this unit",
            unit=unit,
        )


class PlanError(SwitchboardError):
    """Base class for batch migration plan errors."""

    def __init__(self, message: str, *, plan_name: str) -> None:
        self.plan_name = plan_name
        super().__init__(message)


class PlanNotFoundError(PlanError):
    """Raised when a plan name is unknown."""

    def __init__(self, plan_name: str) -> None:
        super().__init__(f"Migration plan not found: {plan_name}", plan_name=plan_name)


class PlanAlreadyExistsError(PlanError):
    """Raised when creating a plan whose name is taken without replace=True."""

    def __init__(self, plan_name: str) -> None:
        super().__init__(f"Migration plan already exists: {plan_name}", plan_name=plan_name)


class PlanStateError(PlanError):
    """
    Raised on an illegal plan status transition.

    Attributes:
        current: The plan's current status.
        target: The requested status.
    """

    def __init__(self, plan_name: str, current: PlanStatus, target: PlanStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot transition plan {plan_name} from {current.value} to {target.value}",
            plan_name=plan_name,
        )


class NoSwitchHistoryError(SwitchboardError):
    """Raised when rolling back a unit that was never switched."""

    def __init__(self, unit: MigrationUnit) -> None:
        super().__init__("No switch history recorded", unit=unit)


__all__ = [
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
]
