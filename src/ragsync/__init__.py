"""
ragsync - keep SQLite and PostgreSQL/pgvector knowledge-graph stores in sync.

This library provides:
- Versioned, per-backend schema migrations with a version ledger and rollback
- Data transfer of entities, relationships, documents and embeddings
- Consistency validation between two backends
- PostgreSQL connection pooling with health checks and automatic recovery
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ragsync")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Configuration
from ragsync.config import (
    BackendConfig,
    BackendKind,
    PoolConfig,
    PostgreSQLConfig,
    SQLiteConfig,
    TLSConfig,
    load_config_from_env,
)

# Exceptions
from ragsync.exceptions import (
    AdapterNotConnectedError,
    ConfigurationError,
    ConnectionRetryError,
    EmbedderUnavailableError,
    MigrationError,
    MigrationFailedError,
    NonReversibleMigrationError,
    PoolCreationError,
    PoolError,
    PoolNotFoundError,
    RagSyncError,
    RollbackFailedError,
    UnknownMigrationError,
)

# Migrations
from ragsync.migrations import (
    BackendProcedure,
    Migration,
    MigrationContext,
    MigrationExecutor,
    MigrationRegistry,
    MigrationResult,
    MigrationStatus,
    RollbackResult,
    default_registry,
)

# Connection pooling
from ragsync.pool import (
    ConnectionPoolManager,
    HealthStatus,
    PoolHealth,
    PoolHealthMonitor,
    RetryConfig,
)

# Storage
from ragsync.storage import (
    Entity,
    InMemoryStorageAdapter,
    KnowledgeGraphStats,
    PostgreSQLStorageAdapter,
    Relation,
    SQLiteStorageAdapter,
    StorageAdapter,
    TransactionalAdapter,
    create_adapter,
)

# Transfer
from ragsync.transfer import (
    ConsistencyReport,
    TransferOrchestrator,
    TransferResult,
    ValidationResult,
    standard_catalog,
)

__all__ = [
    "__version__",
    # Configuration
    "BackendConfig",
    "BackendKind",
    "PoolConfig",
    "PostgreSQLConfig",
    "SQLiteConfig",
    "TLSConfig",
    "load_config_from_env",
    # Exceptions
    "RagSyncError",
    "ConfigurationError",
    "AdapterNotConnectedError",
    "EmbedderUnavailableError",
    "MigrationError",
    "MigrationFailedError",
    "RollbackFailedError",
    "NonReversibleMigrationError",
    "UnknownMigrationError",
    "PoolError",
    "PoolNotFoundError",
    "PoolCreationError",
    "ConnectionRetryError",
    # Migrations
    "BackendProcedure",
    "Migration",
    "MigrationContext",
    "MigrationExecutor",
    "MigrationRegistry",
    "MigrationResult",
    "MigrationStatus",
    "RollbackResult",
    "default_registry",
    # Connection pooling
    "ConnectionPoolManager",
    "HealthStatus",
    "PoolHealth",
    "PoolHealthMonitor",
    "RetryConfig",
    # Storage
    "Entity",
    "Relation",
    "KnowledgeGraphStats",
    "StorageAdapter",
    "TransactionalAdapter",
    "InMemoryStorageAdapter",
    "SQLiteStorageAdapter",
    "PostgreSQLStorageAdapter",
    "create_adapter",
    # Transfer
    "TransferOrchestrator",
    "TransferResult",
    "ValidationResult",
    "ConsistencyReport",
    "standard_catalog",
]
