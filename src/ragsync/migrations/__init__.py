"""
Versioned, backend-specific schema migrations.

Example:
    >>> from ragsync.migrations import MigrationExecutor, default_registry
    >>>
    >>> executor = MigrationExecutor(adapter, default_registry())
    >>> await executor.apply()
    >>> await executor.rollback(2)
"""

from ragsync.migrations.executor import (
    MigrationExecutor,
    MigrationResult,
    MigrationStatus,
    RollbackResult,
)
from ragsync.migrations.ledger import LEDGER_TABLE, LedgerEntry, VersionLedger
from ragsync.migrations.registry import (
    BackendProcedure,
    Migration,
    MigrationContext,
    MigrationRegistry,
    ProcedureFn,
    skip_procedure,
    sql_procedure,
)
from ragsync.migrations.versions import STANDARD_MIGRATIONS, default_registry

__all__ = [
    "MigrationExecutor",
    "MigrationResult",
    "MigrationStatus",
    "RollbackResult",
    "LEDGER_TABLE",
    "LedgerEntry",
    "VersionLedger",
    "BackendProcedure",
    "Migration",
    "MigrationContext",
    "MigrationRegistry",
    "ProcedureFn",
    "skip_procedure",
    "sql_procedure",
    "STANDARD_MIGRATIONS",
    "default_registry",
]
