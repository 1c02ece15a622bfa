"""Library exceptions for the ragsync package."""

from __future__ import annotations


class RagSyncError(Exception):
    """Base exception for ragsync library."""

    pass


class ConfigurationError(RagSyncError):
    """Raised when backend configuration is missing or invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class AdapterNotConnectedError(RagSyncError):
    """Raised when an operation needs a storage adapter that is not connected."""

    def __init__(self, backend: str) -> None:
        self.backend = backend
        super().__init__(f"Storage adapter for {backend} is not connected")


class EmbedderUnavailableError(RagSyncError):
    """Raised when embeddings must be generated but no embedder was supplied."""

    def __init__(self, backend: str) -> None:
        self.backend = backend
        super().__init__(f"No embedder configured for {backend} adapter")


# =============================================================================
# Schema migration errors
# =============================================================================


class MigrationError(RagSyncError):
    """Base class for schema migration errors."""

    pass


class MigrationFailedError(MigrationError):
    """
    Raised when applying a migration fails.

    The migration's transaction has been rolled back, so the version ledger
    still reflects the last fully committed migration.

    Attributes:
        version: Version of the migration that failed
        backend: Backend the migration was applied against
        reason: Message of the underlying error
    """

    def __init__(self, version: int, backend: str, reason: str) -> None:
        self.version = version
        self.backend = backend
        self.reason = reason
        super().__init__(f"Migration {version} failed on {backend}: {reason}")


class RollbackFailedError(MigrationError):
    """Raised when reverting an applied migration fails."""

    def __init__(self, version: int, backend: str, reason: str) -> None:
        self.version = version
        self.backend = backend
        self.reason = reason
        super().__init__(f"Rollback of migration {version} failed on {backend}: {reason}")


class NonReversibleMigrationError(MigrationError):
    """
    Raised when a rollback would cross a migration without a revert procedure.

    Detected before any rollback transaction begins, so the ledger is never
    partially rolled back because of it.
    """

    def __init__(self, version: int, backend: str) -> None:
        self.version = version
        self.backend = backend
        super().__init__(f"Migration {version} is non-reversible on {backend}: no revert procedure")


class UnknownMigrationError(MigrationError):
    """Raised when the ledger contains a version the registry does not know."""

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Ledger references unknown migration version {version}")


class MissingProcedureError(MigrationError):
    """Raised when a migration has no procedure for the requested backend."""

    def __init__(self, version: int, backend: str) -> None:
        self.version = version
        self.backend = backend
        super().__init__(f"Migration {version} has no procedure for {backend}")


class DuplicateMigrationError(MigrationError):
    """Raised when two migrations are registered with the same version."""

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Migration version {version} is already registered")


# =============================================================================
# Connection pool errors
# =============================================================================


class PoolError(RagSyncError):
    """Base class for connection pool errors."""

    pass


class PoolNotFoundError(PoolError):
    """Raised when a pool name is not registered with the manager."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Pool '{name}' not found")


class PoolAlreadyExistsError(PoolError):
    """Raised when creating a pool under a name that is already registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Pool '{name}' already exists")


class PoolCreationError(PoolError):
    """
    Raised when a new pool fails its connectivity or vector-extension probe.

    No pool is registered when this is raised.
    """

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Failed to create pool '{name}': {reason}")


class ConnectionRetryError(PoolError):
    """
    Raised when acquiring a connection fails after every retry attempt.

    Attributes:
        name: Pool name
        attempts: Number of attempts made
        last_error: The last exception raised while acquiring
    """

    def __init__(self, name: str, attempts: int, last_error: BaseException) -> None:
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed to get client from pool '{name}' after {attempts} attempts: {last_error}"
        )


__all__ = [
    "RagSyncError",
    "ConfigurationError",
    "AdapterNotConnectedError",
    "EmbedderUnavailableError",
    "MigrationError",
    "MigrationFailedError",
    "RollbackFailedError",
    "NonReversibleMigrationError",
    "UnknownMigrationError",
    "MissingProcedureError",
    "DuplicateMigrationError",
    "PoolError",
    "PoolNotFoundError",
    "PoolAlreadyExistsError",
    "PoolCreationError",
    "ConnectionRetryError",
]
