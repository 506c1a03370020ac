"""
Scripted backend adapters for tests.

ScriptedAdapter answers every operation with a configurable response,
error or delay and records each call, so tests can assert exactly which
backend was hit and how often.
"""

from __future__ import annotations

import asyncio
from typing import Any

from switchboard.adapters.interface import BackendAdapter


class ScriptedAdapter(BackendAdapter):
    """
    Adapter with scripted behaviour.

    Attributes:
        response: Returned by every successful call. Defaults to a dict
            naming the adapter so tests can tell backends apart.
        error: Raised by every call when set.
        delay: Seconds each call sleeps before answering.
        calls: (operation, target, payload) for every call, in order.
        journal: Optional list shared between adapters; each call appends
            the adapter name, giving a cross-backend call order.
    """

    def __init__(
        self,
        name: str,
        *,
        response: Any = None,
        error: BaseException | None = None,
        delay: float = 0.0,
        journal: list[str] | None = None,
    ) -> None:
        self.name = name
        self.response = response if response is not None else {"served_by": name}
        self.error = error
        self.delay = delay
        self.journal = journal
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _handle(self, operation: str, target: str, payload: dict[str, Any]) -> Any:
        self.calls.append((operation, target, payload))
        if self.journal is not None:
            self.journal.append(self.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if self.error is not None:
                raise self.error
            return self.response
        finally:
            self.in_flight -= 1

    async def create(self, entity: str, payload: dict[str, Any]) -> Any:
        return await self._handle("create", entity, payload)

    async def get(self, entity: str, payload: dict[str, Any]) -> Any:
        return await self._handle("get", entity, payload)

    async def list(self, entity: str, payload: dict[str, Any]) -> Any:
        return await self._handle("list", entity, payload)

    async def update(self, entity: str, payload: dict[str, Any]) -> Any:
        return await self._handle("update", entity, payload)

    async def delete(self, entity: str, payload: dict[str, Any]) -> Any:
        return await self._handle("delete", entity, payload)

    async def invoke(self, function_name: str, payload: dict[str, Any]) -> Any:
        return await self._handle("invoke", function_name, payload)
