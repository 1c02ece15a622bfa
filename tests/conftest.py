"""
Shared pytest fixtures for the ragsync tests.

This module provides:
- SQLite fixtures (sqlite_config, sqlite_adapter, migrated_sqlite_adapter)
- In-memory adapter fixtures (memory_source, memory_target)
- Sample data (sample_graph) and a deterministic embedder (embedder)
- Tracing fixture (mock_tracer)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from ragsync.config import SQLiteConfig
from ragsync.migrations import MigrationExecutor
from ragsync.observability import MockTracer
from ragsync.storage import (
    InMemoryStorageAdapter,
    SQLiteStorageAdapter,
    VectorEncoding,
    VectorKind,
)
from tests.fixtures import VECTOR_DIMENSIONS, FakeEmbedder, SampleGraph

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


# ============================================================================
# Sample data
# ============================================================================


@pytest.fixture
def sample_graph() -> SampleGraph:
    return SampleGraph()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(VECTOR_DIMENSIONS)


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


# ============================================================================
# SQLite fixtures
# ============================================================================


@pytest.fixture
def sqlite_config(tmp_path: Path) -> SQLiteConfig:
    """SQLite configuration backed by a temporary file."""
    return SQLiteConfig(file_path=str(tmp_path / "memory.db"), vector_dimensions=VECTOR_DIMENSIONS)


@pytest_asyncio.fixture
async def sqlite_adapter(
    sqlite_config: SQLiteConfig, embedder: FakeEmbedder
) -> AsyncGenerator[SQLiteStorageAdapter, None]:
    """
    Connected SQLite adapter without any schema.

    Use this for migration tests; use migrated_sqlite_adapter for data tests.
    """
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    adapter = SQLiteStorageAdapter(sqlite_config, embedder=embedder, enable_tracing=False)
    await adapter.initialize()
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def migrated_sqlite_adapter(
    sqlite_adapter: SQLiteStorageAdapter,
) -> SQLiteStorageAdapter:
    """SQLite adapter with the standard migrations applied."""
    await MigrationExecutor(sqlite_adapter, enable_tracing=False).apply()
    return sqlite_adapter


# ============================================================================
# In-memory fixtures
# ============================================================================


@pytest_asyncio.fixture
async def memory_source() -> AsyncGenerator[InMemoryStorageAdapter, None]:
    adapter = InMemoryStorageAdapter(
        vector_encoding=VectorEncoding(VectorKind.FLOAT32, VECTOR_DIMENSIONS),
        enable_tracing=False,
    )
    await adapter.initialize()
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def memory_target(embedder: FakeEmbedder) -> AsyncGenerator[InMemoryStorageAdapter, None]:
    adapter = InMemoryStorageAdapter(
        vector_encoding=VectorEncoding(VectorKind.FLOAT32, VECTOR_DIMENSIONS),
        embedder=embedder,
        enable_tracing=False,
    )
    await adapter.initialize()
    yield adapter
    await adapter.close()


__all__ = ["AIOSQLITE_AVAILABLE", "skip_if_no_aiosqlite"]
