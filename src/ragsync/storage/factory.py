"""Build storage adapters from backend configuration."""

from __future__ import annotations

from typing import assert_never

from ragsync.config import BackendConfig, PostgreSQLConfig, SQLiteConfig
from ragsync.observability import Tracer
from ragsync.pool import ConnectionPoolManager
from ragsync.storage.interface import Embedder, TransactionalAdapter
from ragsync.storage.postgresql import PostgreSQLStorageAdapter
from ragsync.storage.sqlite import SQLiteStorageAdapter


def create_adapter(
    config: BackendConfig,
    *,
    pool_manager: ConnectionPoolManager | None = None,
    pool_name: str | None = None,
    embedder: Embedder | None = None,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> TransactionalAdapter:
    """
    Create the adapter matching a configuration.

    The adapter is not connected; call ``initialize()`` before use.

    Args:
        config: SQLite or PostgreSQL configuration
        pool_manager: Shared pool manager for PostgreSQL adapters
        pool_name: Pool name for PostgreSQL adapters (defaults to the database name)
        embedder: Embedding function handed to the adapter
        tracer: Optional tracer shared with the adapter
        enable_tracing: Whether to enable OpenTelemetry tracing (default True)

    Returns:
        An unconnected adapter
    """
    match config:
        case SQLiteConfig():
            return SQLiteStorageAdapter(
                config, embedder=embedder, tracer=tracer, enable_tracing=enable_tracing
            )
        case PostgreSQLConfig():
            return PostgreSQLStorageAdapter(
                config,
                pool_manager=pool_manager,
                pool_name=pool_name or config.database,
                embedder=embedder,
                tracer=tracer,
                enable_tracing=enable_tracing,
            )
        case _:
            assert_never(config)


__all__ = ["create_adapter"]
