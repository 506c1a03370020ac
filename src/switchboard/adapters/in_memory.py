"""
In-memory backend adapter.

Useful for testing and development. All records are lost when the
process terminates.
"""

import asyncio
import copy
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from switchboard.adapters.interface import BackendAdapter
from switchboard.exceptions import NotFoundError, ValidationError

RemoteFunction = Callable[[dict[str, Any]], Awaitable[Any]]


class InMemoryBackendAdapter(BackendAdapter):
    """
    In-memory implementation of the backend adapter contract.

    Records are kept per entity in dictionaries keyed by id; named
    functions are plain coroutine functions registered up front.

    Example:
        >>> adapter = InMemoryBackendAdapter("legacy")
        >>> team = await adapter.create("Team", {"name": "Blue"})
        >>> await adapter.get("Team", {"id": team["id"]})
        {'name': 'Blue', 'id': '...'}
    """

    def __init__(
        self,
        name: str = "in-memory",
        functions: dict[str, RemoteFunction] | None = None,
    ) -> None:
        self.name = name
        self._records: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._functions: dict[str, RemoteFunction] = dict(functions or {})
        self._lock = asyncio.Lock()

    def register_function(self, function_name: str, function: RemoteFunction) -> None:
        self._functions[function_name] = function

    async def create(self, entity: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._require_mapping(payload)
        record_id = str(data.get("id") or uuid4())
        record = {**copy.deepcopy(data), "id": record_id}
        async with self._lock:
            if record_id in self._records[entity]:
                raise ValidationError(f"{entity} {record_id} already exists")
            self._records[entity][record_id] = record
        return copy.deepcopy(record)

    async def get(self, entity: str, payload: dict[str, Any]) -> dict[str, Any]:
        record_id = self._require_id(payload)
        async with self._lock:
            record = self._records[entity].get(record_id)
            if record is None:
                raise NotFoundError(f"{entity} {record_id} not found")
            return copy.deepcopy(record)

    async def list(self, entity: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        filters = self._require_mapping(payload or {})
        async with self._lock:
            records = list(self._records[entity].values())
        return [
            copy.deepcopy(record)
            for record in records
            if all(record.get(key) == value for key, value in filters.items())
        ]

    async def update(self, entity: str, payload: dict[str, Any]) -> dict[str, Any]:
        record_id = self._require_id(payload)
        changes = {key: value for key, value in payload.items() if key != "id"}
        async with self._lock:
            record = self._records[entity].get(record_id)
            if record is None:
                raise NotFoundError(f"{entity} {record_id} not found")
            record.update(copy.deepcopy(changes))
            return copy.deepcopy(record)

    async def delete(self, entity: str, payload: dict[str, Any]) -> dict[str, Any]:
        record_id = self._require_id(payload)
        async with self._lock:
            if self._records[entity].pop(record_id, None) is None:
                raise NotFoundError(f"{entity} {record_id} not found")
        return {"id": record_id, "deleted": True}

    async def invoke(self, function_name: str, payload: dict[str, Any]) -> Any:
        function = self._functions.get(function_name)
        if function is None:
            raise NotFoundError(f"Function {function_name} is not available on {self.name}")
        return await function(payload)

    async def clear(self) -> None:
        """Remove all records. Useful for test setup/teardown."""
        async with self._lock:
            self._records.clear()

    @staticmethod
    def _require_mapping(payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError(f"Payload must be a mapping, got {type(payload).__name__}")
        return payload

    def _require_id(self, payload: Any) -> str:
        data = self._require_mapping(payload)
        record_id = data.get("id")
        if not record_id:
            raise ValidationError("Payload is missing 'id'", field_errors={"id": "required"})
        return str(record_id)
