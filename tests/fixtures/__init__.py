"""
Shared test fixtures for the switchboard library.

Usage:
    from tests.fixtures import (
        ScriptedAdapter,
        FailingStatusRepository,
        GatedStatusRepository,
        YieldingPlanRepository,
    )
"""

from tests.fixtures.adapters import ScriptedAdapter
from tests.fixtures.repositories import (
    FailingStatusRepository,
    GatedStatusRepository,
    YieldingPlanRepository,
)

__all__ = [
    "ScriptedAdapter",
    "FailingStatusRepository",
    "GatedStatusRepository",
    "YieldingPlanRepository",
]
