"""
Backend adapters for the switchboard.

The concrete legacy-SDK and REST adapters live with the application;
this package defines the contract they implement, the registry that
holds them, and an in-memory adapter for development and tests.
"""

from switchboard.adapters.in_memory import InMemoryBackendAdapter
from switchboard.adapters.interface import ENTITY_OPERATIONS, FUNCTION_OPERATION, BackendAdapter
from switchboard.adapters.registry import BackendRegistry

__all__ = [
    "BackendAdapter",
    "BackendRegistry",
    "ENTITY_OPERATIONS",
    "FUNCTION_OPERATION",
    "InMemoryBackendAdapter",
]
