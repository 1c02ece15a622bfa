"""
Tests for the tracer implementations and the traced decorator.
"""

from unittest.mock import patch

import pytest

from ragsync.observability import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
    traced,
)


class Probe:
    def __init__(self, tracer):
        self._tracer = tracer

    @traced("probe.work", {"probe.kind": "async"})
    async def work(self, value: int) -> int:
        return value * 2

    @traced("probe.sync")
    def sync_work(self) -> str:
        return "done"


class TestCreateTracer:
    def test_disabled_returns_null_tracer(self):
        tracer = create_tracer(__name__, enable_tracing=False)
        assert isinstance(tracer, NullTracer)
        assert not tracer.enabled

    def test_without_opentelemetry(self):
        with patch("ragsync.observability.tracer.OTEL_AVAILABLE", False):
            assert isinstance(create_tracer(__name__), NullTracer)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="opentelemetry not installed")
    def test_enabled_with_opentelemetry(self):
        tracer = create_tracer(__name__)
        assert isinstance(tracer, OpenTelemetryTracer)
        with tracer.span("ragsync.test", {"k": "v"}):
            pass

    def test_implementations_satisfy_protocol(self):
        assert isinstance(NullTracer(), Tracer)
        assert isinstance(MockTracer(), Tracer)


class TestTraced:
    @pytest.mark.asyncio
    async def test_records_span_for_async_method(self):
        tracer = MockTracer()
        assert await Probe(tracer).work(21) == 42
        assert tracer.spans == [("probe.work", {"probe.kind": "async"})]

    def test_records_span_for_sync_method(self):
        tracer = MockTracer()
        assert Probe(tracer).sync_work() == "done"
        assert tracer.span_names == ["probe.sync"]

    @pytest.mark.asyncio
    async def test_disabled_tracer_skips_spans(self):
        assert await Probe(NullTracer()).work(1) == 2
        assert await Probe(None).work(2) == 4

    def test_mock_tracer_clear(self):
        tracer = MockTracer()
        with tracer.span("a"):
            pass
        tracer.clear()
        assert tracer.spans == []
