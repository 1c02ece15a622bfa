"""
Standard span attributes for ragsync.

Attribute names follow OpenTelemetry semantic conventions where one exists
(``db.system``, ``db.name``) and use the ``ragsync.`` prefix otherwise.
"""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier ('sqlite' or 'postgresql')."""

ATTR_DB_NAME = "db.name"
"""Database name or file path."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_VERSION = "ragsync.migration.version"
"""Version of the migration being applied or reverted (integer)."""

ATTR_MIGRATION_COUNT = "ragsync.migration.count"
"""Number of migrations applied or rolled back in one call (integer)."""

ATTR_TARGET_VERSION = "ragsync.migration.target_version"
"""Version a rollback is heading to (integer)."""

# =============================================================================
# Transfer Attributes
# =============================================================================

ATTR_OPERATION_NAME = "ragsync.transfer.operation"
"""Name of the transfer operation (string)."""

ATTR_OPERATION_COUNT = "ragsync.transfer.operation_count"
"""Number of operations in a catalog run (integer)."""

ATTR_RECORDS_TRANSFERRED = "ragsync.transfer.records"
"""Records transferred by an operation (integer)."""

ATTR_SOURCE_BACKEND = "ragsync.transfer.source"
"""Backend kind of the transfer source (string)."""

ATTR_TARGET_BACKEND = "ragsync.transfer.target"
"""Backend kind of the transfer target (string)."""

# =============================================================================
# Pool Attributes
# =============================================================================

ATTR_POOL_NAME = "ragsync.pool.name"
"""Name the pool is registered under (string)."""

ATTR_POOL_ATTEMPT = "ragsync.pool.attempt"
"""Acquisition attempt number, starting at 1 (integer)."""

ATTR_HEALTH_STATUS = "ragsync.pool.health"
"""Health status reported by a probe (string)."""


__all__ = [
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
