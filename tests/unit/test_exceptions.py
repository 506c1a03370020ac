"""
Unit tests for exceptions module.

Tests the error taxonomy, classification and fallback eligibility.
"""

import pytest

from switchboard.exceptions import (
    AdapterError,
    BackendError,
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
from switchboard.models import Backend, MigrationUnit, PlanStatus


class TestSwitchboardError:
    def test_message(self):
        with pytest.raises(SwitchboardError) as exc_info:
            raise SwitchboardError("Test error")
        assert str(exc_info.value) == "Test error"

    def test_unit_context_in_string(self):
        error = SwitchboardError("failed", unit=MigrationUnit.entity("Team"))
        assert str(error) == "failed unit=entity:Team"

    def test_to_dict(self):
        error = SwitchboardError("failed", unit=MigrationUnit.entity("Team"))
        assert error.to_dict() == {
            "error_type": "SwitchboardError",
            "message": "failed",
            "unit": "entity:Team",
        }


class TestAdapterErrors:
    @pytest.mark.parametrize(
        ("error_class", "retryable", "code"),
        [
            (ValidationError, False, "VALIDATION_ERROR"),
            (NotFoundError, False, "NOT_FOUND"),
            (NetworkError, True, "NETWORK_ERROR"),
            (BackendError, True, "BACKEND_ERROR"),
        ],
    )
    def test_classification(self, error_class, retryable, code):
        error = error_class("boom")
        assert isinstance(error, AdapterError)
        assert error.retryable is retryable
        assert error.classification.error_code == code
        assert is_fallback_eligible(error) is retryable

    def test_non_adapter_errors_are_not_fallback_eligible(self):
        assert not is_fallback_eligible(RuntimeError("boom"))
        assert not is_fallback_eligible(SwitchboardError("boom"))

    def test_validation_error_field_errors(self):
        error = ValidationError("bad payload", field_errors={"name": "required"})
        assert error.field_errors == {"name": "required"}

    def test_backend_error_status_code_in_dict(self):
        data = BackendError("server error", status_code=503).to_dict()
        assert data["status_code"] == 503
        assert data["classification"]["retryable"] is True


class TestControlPlaneErrors:
    def test_unknown_backend(self):
        error = UnknownBackendError(Backend.SECONDARY)
        assert error.backend is Backend.SECONDARY
        assert "'new'" in str(error)

    def test_unsupported_operation(self):
        error = UnsupportedOperationError(MigrationUnit.entity("Team"), "archive")
        assert error.operation == "archive"
        assert "archive" in str(error)

    def test_experiment_errors(self):
        assert issubclass(ExperimentNotFoundError, ExperimentError)
        error = ExperimentAlreadyActiveError(MigrationUnit.entity("Team"), "exp-1")
        assert error.experiment_id == "exp-1"

        mismatch = ExperimentUnitMismatchError(
            MigrationUnit.function("generateReport"), "exp-1", MigrationUnit.entity("Team")
        )
        assert isinstance(mismatch, ExperimentError)
        assert mismatch.experiment_unit == MigrationUnit.entity("Team")
        assert "entity:Team" in str(mismatch)

    def test_plan_errors(self):
        assert PlanNotFoundError("wave-1").plan_name == "wave-1"
        assert isinstance(PlanAlreadyExistsError("wave-1"), PlanError)
        error = PlanStateError("wave-1", PlanStatus.COMPLETED, PlanStatus.RUNNING)
        assert error.current is PlanStatus.COMPLETED
        assert error.target is PlanStatus.RUNNING
        assert "from completed to running" in str(error)

    def test_no_switch_history(self):
        error = NoSwitchHistoryError(MigrationUnit.entity("Team"))
        assert error.unit == MigrationUnit.entity("Team")
