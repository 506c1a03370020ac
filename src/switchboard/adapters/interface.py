"""
Backend adapter interface.

Both concrete backends (the legacy SDK wrapper and the REST client
wrapper) implement BackendAdapter. The switchboard never talks to a
backend any other way.

Contract:
    - Entity operations take the entity name and a payload dict.
      get/update/delete payloads carry the record id under "id".
    - invoke() runs a named remote function with a payload.
    - Failures raise one of ValidationError, NotFoundError, NetworkError
      or BackendError from switchboard.exceptions. Anything else is
      treated as a BackendError by the Switcher.
"""

from abc import ABC, abstractmethod
from typing import Any

ENTITY_OPERATIONS: frozenset[str] = frozenset({"create", "get", "list", "update", "delete"})
"""Generic operations every adapter supports for entity units."""

FUNCTION_OPERATION = "invoke"
"""Operation name used when executing function units."""


class BackendAdapter(ABC):
    """
    Abstract base class for backend adapters.

    Implementations must be safe to call concurrently from multiple
    asyncio tasks.
    """

    name: str = "adapter"

    @abstractmethod
    async def create(self, entity: str, payload: dict[str, Any]) -> Any:
        """
        Create a record.

        Args:
            entity: Entity type name (e.g., 'Team')
            payload: Field values for the new record

        Returns:
            The created record as returned by the backend
        """
        pass

    @abstractmethod
    async def get(self, entity: str, payload: dict[str, Any]) -> Any:
        """
        Fetch a record by id.

        Raises:
            NotFoundError: If no record has payload["id"]
        """
        pass

    @abstractmethod
    async def list(self, entity: str, payload: dict[str, Any]) -> Any:
        """
        List records, filtered by the payload's field values.
        """
        pass

    @abstractmethod
    async def update(self, entity: str, payload: dict[str, Any]) -> Any:
        """
        Update the record identified by payload["id"] with the other fields.

        Raises:
            NotFoundError: If no record has payload["id"]
        """
        pass

    @abstractmethod
    async def delete(self, entity: str, payload: dict[str, Any]) -> Any:
        """
        Delete the record identified by payload["id"].

        Raises:
            NotFoundError: If no record has payload["id"]
        """
        pass

    @abstractmethod
    async def invoke(self, function_name: str, payload: dict[str, Any]) -> Any:
        """
        Invoke a named remote function.

        Raises:
            NotFoundError: If the backend has no such function
        """
        pass
