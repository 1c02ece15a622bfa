"""
Observability utilities for ragsync.

Tracing is composition based: components take a ``tracer`` argument (or build
one with :func:`create_tracer`) and open spans with ``tracer.span(...)``.
OpenTelemetry is optional; without it every tracer is a :class:`NullTracer`.
"""

from ragsync.observability.attributes import (
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_HEALTH_STATUS,
    ATTR_MIGRATION_COUNT,
    ATTR_MIGRATION_VERSION,
    ATTR_OPERATION_COUNT,
    ATTR_OPERATION_NAME,
    ATTR_POOL_ATTEMPT,
    ATTR_POOL_NAME,
    ATTR_RECORDS_TRANSFERRED,
    ATTR_SOURCE_BACKEND,
    ATTR_TARGET_BACKEND,
    ATTR_TARGET_VERSION,
)
from ragsync.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from ragsync.observability.tracing import OTEL_AVAILABLE, should_trace, traced

__all__ = [
    "OTEL_AVAILABLE",
    "should_trace",
    "traced",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_MIGRATION_VERSION",
    "ATTR_MIGRATION_COUNT",
    "ATTR_TARGET_VERSION",
    "ATTR_OPERATION_NAME",
    "ATTR_OPERATION_COUNT",
    "ATTR_RECORDS_TRANSFERRED",
    "ATTR_SOURCE_BACKEND",
    "ATTR_TARGET_BACKEND",
    "ATTR_POOL_NAME",
    "ATTR_POOL_ATTEMPT",
    "ATTR_HEALTH_STATUS",
]
