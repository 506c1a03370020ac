"""
Tracer protocol and implementations.

Every switchboard component takes an optional Tracer and opens spans
through it, never through the OpenTelemetry API directly:

    self._tracer = tracer or create_tracer(__name__, config.enable_tracing)

    with self._tracer.span("switchboard.switcher.execute", {ATTR_UNIT: str(unit)}) as span:
        ...
        if span:
            span.set_attribute(ATTR_FELL_BACK, fell_back)

A span that exits with an exception gets an ``error.type`` attribute
naming the exception class, whichever implementation is in use.

Implementations:
    - NullTracer: tracing disabled, spans are None
    - OpenTelemetryTracer: spans from the globally installed TracerProvider
    - MockTracer: keeps RecordedSpan objects for assertions in tests
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace

from switchboard.observability.attributes import ATTR_ERROR_TYPE


class SpanLike(Protocol):
    """The part of a span components are allowed to touch."""

    def set_attribute(self, key: str, value: Any) -> None: ...


@runtime_checkable
class Tracer(Protocol):
    """Protocol for span factories used by switchboard components."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanLike | None]:
        """
        Open a span around a block.

        Args:
            name: Span name, "switchboard.<component>.<operation>"
            attributes: Attributes known when the span starts

        Returns:
            Context manager yielding the span, or None when tracing is off
        """
        ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Tracer used when tracing is disabled."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by ``opentelemetry.trace.get_tracer``.

    Without an installed TracerProvider the API hands out non-recording
    spans, so this is safe to use unconditionally.

    Args:
        tracer_name: Instrumentation scope name (typically __name__)
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[SpanLike]:
        # start_as_current_span records the exception and sets ERROR status
        with self._tracer.start_as_current_span(name, attributes=attributes or {}) as span:
            try:
                yield span
            except Exception as e:
                span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                raise

    @property
    def enabled(self) -> bool:
        return True


@dataclass
class RecordedSpan:
    """
    Span captured by MockTracer.

    Attributes:
        name: Span name
        attributes: Start attributes merged with everything set later
        error: Exception the span exited with, if any
    """

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value


class MockTracer:
    """
    Tracer that records spans in memory for tests.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("switchboard.test", {"switchboard.unit": "entity:Team"}) as span:
        ...     span.set_attribute("switchboard.fell_back", False)
        >>> tracer.spans[0].attributes
        {'switchboard.unit': 'entity:Team', 'switchboard.fell_back': False}
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[RecordedSpan]:
        recorded = RecordedSpan(name=name, attributes=dict(attributes or {}))
        self.spans.append(recorded)
        try:
            yield recorded
        except Exception as e:
            recorded.error = e
            recorded.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
            raise

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [span.name for span in self.spans]

    def find(self, name: str) -> RecordedSpan | None:
        """Most recent span with this name."""
        for span in reversed(self.spans):
            if span.name == name:
                return span
        return None

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetryTracer when enabled, NullTracer otherwise."""
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "SpanLike",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "MockTracer",
    "create_tracer",
]
