"""
BackendRegistry - the two-slot registry of backend adapters.

Each Backend value maps to exactly one adapter. Call sites never branch
on the backend; they look the adapter up here.

Usage:
    >>> registry = BackendRegistry.of(primary=sdk_adapter, secondary=rest_adapter)
    >>> registry.get(Backend.SECONDARY)
    <RestAdapter ...>
"""

from __future__ import annotations

import logging

from switchboard.adapters.interface import BackendAdapter
from switchboard.exceptions import UnknownBackendError
from switchboard.models import Backend

logger = logging.getLogger(__name__)


class BackendRegistry:
    """
    Registry mapping each Backend to its adapter.

    Example:
        >>> registry = BackendRegistry()
        >>> registry.register(Backend.PRIMARY, legacy_adapter)
        >>> Backend.PRIMARY in registry
        True
    """

    def __init__(self, adapters: dict[Backend, BackendAdapter] | None = None) -> None:
        self._adapters: dict[Backend, BackendAdapter] = {}
        for backend, adapter in (adapters or {}).items():
            self.register(backend, adapter)

    @classmethod
    def of(cls, *, primary: BackendAdapter, secondary: BackendAdapter) -> BackendRegistry:
        """Build a registry with both backends registered."""
        return cls({Backend.PRIMARY: primary, Backend.SECONDARY: secondary})

    def register(self, backend: Backend, adapter: BackendAdapter) -> None:
        """
        Register the adapter for a backend, replacing any previous one.

        Raises:
            TypeError: If adapter does not implement BackendAdapter
        """
        if not isinstance(adapter, BackendAdapter):
            raise TypeError(f"Expected a BackendAdapter, got {type(adapter).__name__}")
        self._adapters[backend] = adapter
        logger.debug("Registered adapter %s for backend %s", adapter.name, backend.value)

    def unregister(self, backend: Backend) -> None:
        self._adapters.pop(backend, None)
        logger.debug("Unregistered adapter for backend %s", backend.value)

    def get(self, backend: Backend) -> BackendAdapter:
        """
        Get the adapter for a backend.

        Raises:
            UnknownBackendError: If nothing is registered for backend
        """
        try:
            return self._adapters[backend]
        except KeyError:
            raise UnknownBackendError(backend) from None

    def __contains__(self, backend: object) -> bool:
        return backend in self._adapters

    def backends(self) -> list[Backend]:
        """Registered backends in enum order."""
        return [backend for backend in Backend if backend in self._adapters]
