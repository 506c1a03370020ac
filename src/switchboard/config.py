"""
Configuration for the switchboard control plane.

SwitchboardConfig is immutable (frozen) so a running Switcher or
BatchMigrationManager cannot have its limits changed underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from switchboard.models import Backend


@dataclass(frozen=True)
class SwitchboardConfig:
    """
    Configuration shared by the switchboard components.

    Attributes:
        default_backend: Backend for units with no override and no
            persisted status (default PRIMARY).
        call_timeout_seconds: Upper bound for a single adapter call
            (default 10.0). Timed-out calls are NetworkErrors.
        allow_fallback: Default for ExecuteOptions.allow_fallback.
        comparison_sample_size: Default calls per backend for
            PerformanceComparator.compare_performance (default 10).
        plan_max_in_flight: Default concurrency for plan execution
            (default 1, strictly sequential).
        switch_history_limit: Switch records kept for rollback (default 1000).
        enable_tracing: Whether components create OpenTelemetry spans.
        enable_metrics: Whether components record OpenTelemetry metrics.

    Example:
        >>> config = SwitchboardConfig(call_timeout_seconds=2.5)
        >>> config.default_backend
        <Backend.PRIMARY: 'legacy'>
    """

    default_backend: Backend = Backend.PRIMARY
    call_timeout_seconds: float = 10.0
    allow_fallback: bool = True
    comparison_sample_size: int = 10
    plan_max_in_flight: int = 1
    switch_history_limit: int = 1000
    enable_tracing: bool = True
    enable_metrics: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.call_timeout_seconds <= 0:
            raise ValueError(
                f"call_timeout_seconds must be > 0, got {self.call_timeout_seconds}"
            )

        if self.comparison_sample_size < 1:
            raise ValueError(
                f"comparison_sample_size must be >= 1, got {self.comparison_sample_size}"
            )

        if self.plan_max_in_flight < 1:
            raise ValueError(f"plan_max_in_flight must be >= 1, got {self.plan_max_in_flight}")

        if self.switch_history_limit < 1:
            raise ValueError(
                f"switch_history_limit must be >= 1, got {self.switch_history_limit}"
            )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON storage.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "default_backend": self.default_backend.value,
            "call_timeout_seconds": self.call_timeout_seconds,
            "allow_fallback": self.allow_fallback,
            "comparison_sample_size": self.comparison_sample_size,
            "plan_max_in_flight": self.plan_max_in_flight,
            "switch_history_limit": self.switch_history_limit,
            "enable_tracing": self.enable_tracing,
            "enable_metrics": self.enable_metrics,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SwitchboardConfig:
        """
        Create from dictionary.

        Args:
            data: Dictionary containing configuration values. Missing keys
                take their defaults.

        Returns:
            SwitchboardConfig instance.
        """
        return cls(
            default_backend=Backend(data.get("default_backend", Backend.PRIMARY.value)),
            call_timeout_seconds=data.get("call_timeout_seconds", 10.0),
            allow_fallback=data.get("allow_fallback", True),
            comparison_sample_size=data.get("comparison_sample_size", 10),
            plan_max_in_flight=data.get("plan_max_in_flight", 1),
            switch_history_limit=data.get("switch_history_limit", 1000),
            enable_tracing=data.get("enable_tracing", True),
            enable_metrics=data.get("enable_metrics", True),
        )
