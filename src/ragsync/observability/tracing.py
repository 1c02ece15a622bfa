"""
OpenTelemetry availability and tracing helpers for ragsync.

OpenTelemetry is an optional dependency (``pip install ragsync[telemetry]``).
Everything in this package degrades to no-ops when it is not installed.

Example:
    >>> from ragsync.observability import traced, create_tracer
    >>>
    >>> class MyAdapter:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...         self._enable_tracing = self._tracer.enabled
    ...
    ...     @traced("ragsync.my_adapter.initialize")
    ...     async def initialize(self) -> None:
    ...         ...
"""

from __future__ import annotations

import inspect
import functools
from collections.abc import Callable
from typing import Any, ParamSpec, TypeVar

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


def should_trace(enable_tracing: bool) -> bool:
    """Combine a component's enable_tracing flag with OTEL availability."""
    return enable_tracing and OTEL_AVAILABLE


P = ParamSpec("P")
R = TypeVar("R")


def traced(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator that wraps a method in a span from ``self._tracer``.

    The decorated method's class must have a ``_tracer`` attribute holding a
    :class:`~ragsync.observability.tracer.Tracer`. When the tracer is missing
    or disabled the method is called directly.

    Args:
        name: Span name (e.g., "ragsync.sqlite.initialize")
        attributes: Static attributes to include in the span

    Returns:
        Decorated function with tracing support
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(func)
        async def async_wrapper(self: Any, *args: P.args, **kwargs: P.kwargs) -> R:
            tracer = getattr(self, "_tracer", None)
            if tracer is None or not tracer.enabled:
                return await func(self, *args, **kwargs)  # type: ignore[misc, no-any-return]

            with tracer.span(name, attributes):
                return await func(self, *args, **kwargs)  # type: ignore[misc, no-any-return]

        @functools.wraps(func)
        def sync_wrapper(self: Any, *args: P.args, **kwargs: P.kwargs) -> R:
            tracer = getattr(self, "_tracer", None)
            if tracer is None or not tracer.enabled:
                return func(self, *args, **kwargs)

            with tracer.span(name, attributes):
                return func(self, *args, **kwargs)

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper  # type: ignore[return-value]

    return decorator


__all__ = [
    "OTEL_AVAILABLE",
    "should_trace",
    "traced",
]
