"""
Shared pytest fixtures for PostgreSQL integration tests.

A pgvector-enabled PostgreSQL container is started once per session with
testcontainers. If testcontainers or Docker is not available, tests are
skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio

from ragsync.config import PoolConfig, PostgreSQLConfig
from ragsync.migrations import MigrationExecutor
from ragsync.pool import ConnectionPoolManager
from ragsync.storage import PostgreSQLStorageAdapter
from tests.fixtures import VECTOR_DIMENSIONS, FakeEmbedder

# ============================================================================
# Testcontainers Detection
# ============================================================================

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.postgres import PostgresContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    import subprocess

    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


DOCKER_AVAILABLE = is_docker_available()

PGVECTOR_IMAGE = "pgvector/pgvector:pg16"


# ============================================================================
# Container and configuration
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """Session-wide PostgreSQL container with the pgvector extension available."""
    if not TESTCONTAINERS_AVAILABLE or not DOCKER_AVAILABLE:
        pytest.skip("PostgreSQL testcontainer not available")

    container = PostgresContainer(
        PGVECTOR_IMAGE, username="rag", password="rag", dbname="rag_memory"
    )
    container.start()

    yield container

    container.stop()


@pytest.fixture
def pg_config(postgres_container: Any) -> PostgreSQLConfig:
    return PostgreSQLConfig(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="rag_memory",
        username="rag",
        password="rag",
        pool=PoolConfig(min_size=1, max_size=5),
        vector_dimensions=VECTOR_DIMENSIONS,
    )


@pytest_asyncio.fixture
async def pool_manager() -> AsyncGenerator[ConnectionPoolManager, None]:
    async with ConnectionPoolManager(enable_tracing=False) as manager:
        yield manager


@pytest_asyncio.fixture
async def pg_adapter(
    pg_config: PostgreSQLConfig, pool_manager: ConnectionPoolManager
) -> AsyncGenerator[PostgreSQLStorageAdapter, None]:
    """
    Connected PostgreSQL adapter without any schema.

    Everything the test applied is rolled back afterwards so each test starts
    from an empty database.
    """
    adapter = PostgreSQLStorageAdapter(
        pg_config,
        pool_manager=pool_manager,
        pool_name="integration",
        embedder=FakeEmbedder(VECTOR_DIMENSIONS),
        enable_tracing=False,
    )
    await adapter.initialize()
    yield adapter
    await MigrationExecutor(adapter, enable_tracing=False).rollback(0)
    await adapter.close()


@pytest_asyncio.fixture
async def migrated_pg_adapter(pg_adapter: PostgreSQLStorageAdapter) -> PostgreSQLStorageAdapter:
    await MigrationExecutor(pg_adapter, enable_tracing=False).apply()
    return pg_adapter
