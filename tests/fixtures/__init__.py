"""
Shared test fixtures for the ragsync tests.

Usage:
    from tests.fixtures import SampleGraph, FakeEmbedder, FakeEngine, load_graph
"""

from tests.fixtures.engines import EngineFactory, FakeConnection, FakeEngine
from tests.fixtures.graph import (
    VECTOR_DIMENSIONS,
    FakeEmbedder,
    SampleGraph,
    fake_vector,
    load_graph,
)

__all__ = [
    "VECTOR_DIMENSIONS",
    "SampleGraph",
    "FakeEmbedder",
    "fake_vector",
    "load_graph",
    "FakeEngine",
    "FakeConnection",
    "EngineFactory",
]
