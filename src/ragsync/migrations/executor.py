"""
Migration executor: applies and rolls back migrations against one adapter.

Each migration runs in its own transaction together with its ledger write,
so the ledger always names exactly the migrations whose schema changes are
committed. Migrations run strictly one after another.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ragsync.exceptions import (
    AdapterNotConnectedError,
    MigrationFailedError,
    NonReversibleMigrationError,
    RollbackFailedError,
    UnknownMigrationError,
)
from ragsync.migrations.ledger import LedgerEntry, VersionLedger
from ragsync.migrations.registry import (
    BackendProcedure,
    Migration,
    MigrationContext,
    MigrationRegistry,
)
from ragsync.migrations.versions import default_registry
from ragsync.observability import (
    ATTR_DB_SYSTEM,
    ATTR_MIGRATION_COUNT,
    ATTR_MIGRATION_VERSION,
    ATTR_TARGET_VERSION,
    Tracer,
    create_tracer,
)
from ragsync.storage.interface import TransactionalAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationStatus:
    """A registered (or ledger-only) migration and whether it is applied."""

    version: int
    description: str
    applied: bool
    applied_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "description": self.description,
            "applied": self.applied,
            "appliedAt": self.applied_at.isoformat() if self.applied_at else None,
        }


@dataclass(frozen=True)
class MigrationResult:
    applied: int
    current_version: int
    applied_migrations: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "currentVersion": self.current_version,
            "appliedMigrations": list(self.applied_migrations),
        }


@dataclass(frozen=True)
class RollbackResult:
    rolled_back: int
    current_version: int
    rolled_back_migrations: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "rolledBack": self.rolled_back,
            "currentVersion": self.current_version,
            "rolledBackMigrations": list(self.rolled_back_migrations),
        }


class MigrationExecutor:
    """
    Applies and rolls back registered migrations on one backend.

    Example:
        >>> adapter = SQLiteStorageAdapter(SQLiteConfig(file_path="./memory.db"))
        >>> await adapter.initialize()
        >>> executor = MigrationExecutor(adapter)
        >>> result = await executor.apply()
        >>> result.current_version
        4
    """

    def __init__(
        self,
        adapter: TransactionalAdapter,
        registry: MigrationRegistry | None = None,
        ledger: VersionLedger | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the executor.

        Args:
            adapter: Connected adapter for the backend to migrate
            registry: Migrations to apply (defaults to the standard catalog)
            ledger: Ledger accessor (defaults to schema_migrations)
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._adapter = adapter
        self._registry = registry if registry is not None else default_registry()
        self._ledger = ledger or VersionLedger()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def registry(self) -> MigrationRegistry:
        return self._registry

    @property
    def _backend_name(self) -> str:
        return self._adapter.backend.value

    def _context(self) -> MigrationContext:
        return MigrationContext(
            backend=self._adapter.backend,
            vector_encoding=self._adapter.vector_encoding,
        )

    async def _prepare(self) -> None:
        if not self._adapter.is_connected:
            raise AdapterNotConnectedError(self._adapter.describe())
        async with self._adapter.transaction() as tx:
            await self._ledger.ensure_table(tx)

    async def _entries(self) -> list[LedgerEntry]:
        async with self._adapter.transaction() as tx:
            return await self._ledger.entries(tx)

    async def current_version(self) -> int:
        await self._prepare()
        async with self._adapter.transaction() as tx:
            return await self._ledger.current_version(tx)

    async def pending(self) -> list[Migration]:
        """Registered migrations above the current version, ascending."""
        current = await self.current_version()
        return [m for m in self._registry.migrations() if m.version > current]

    async def status(self) -> list[MigrationStatus]:
        await self._prepare()
        applied = {entry.version: entry for entry in await self._entries()}
        statuses = [
            MigrationStatus(
                version=migration.version,
                description=migration.description,
                applied=migration.version in applied,
                applied_at=applied[migration.version].applied_at
                if migration.version in applied
                else None,
            )
            for migration in self._registry.migrations()
        ]
        for version, entry in applied.items():
            if version not in self._registry:
                statuses.append(
                    MigrationStatus(
                        version=version,
                        description=entry.description,
                        applied=True,
                        applied_at=entry.applied_at,
                    )
                )
        return sorted(statuses, key=lambda status: status.version)

    async def apply(self) -> MigrationResult:
        """
        Apply every pending migration in ascending order.

        Returns:
            MigrationResult with the versions applied by this call

        Raises:
            AdapterNotConnectedError: If the adapter is not connected
            MissingProcedureError: If a pending migration cannot run on this backend
            MigrationFailedError: If a migration fails; earlier ones stay applied
        """
        backend = self._adapter.backend
        pending = await self.pending()
        if not pending:
            current = await self.current_version()
            logger.info("No pending migrations on %s (version %d)", self._backend_name, current)
            return MigrationResult(applied=0, current_version=current)

        # resolve everything up front so a missing procedure fails before any work
        plan: list[tuple[Migration, BackendProcedure]] = [
            (migration, migration.procedure_for(backend)) for migration in pending
        ]
        context = self._context()
        applied: list[int] = []

        with self._tracer.span(
            "ragsync.migrations.apply",
            {ATTR_DB_SYSTEM: self._backend_name, ATTR_MIGRATION_COUNT: len(plan)},
        ):
            for migration, procedure in plan:
                with self._tracer.span(
                    "ragsync.migrations.apply_one",
                    {ATTR_DB_SYSTEM: self._backend_name, ATTR_MIGRATION_VERSION: migration.version},
                ):
                    logger.info(
                        "Applying migration %d on %s: %s",
                        migration.version,
                        self._backend_name,
                        migration.description,
                    )
                    try:
                        async with self._adapter.transaction() as tx:
                            await procedure.apply(tx, context)
                            await self._ledger.record(tx, migration.version, migration.description)
                    except Exception as e:
                        logger.error(
                            "Migration %d failed on %s: %s",
                            migration.version,
                            self._backend_name,
                            e,
                        )
                        raise MigrationFailedError(
                            migration.version, self._backend_name, str(e)
                        ) from e
                applied.append(migration.version)

        logger.info(
            "Applied %d migration(s) on %s, now at version %d",
            len(applied),
            self._backend_name,
            applied[-1],
        )
        return MigrationResult(
            applied=len(applied),
            current_version=applied[-1],
            applied_migrations=tuple(applied),
        )

    async def rollback(self, target_version: int) -> RollbackResult:
        """
        Revert applied migrations above ``target_version``, newest first.

        Every migration to be reverted is checked for a revert procedure
        before the first transaction begins, so a non-reversible migration
        leaves the ledger untouched.

        Args:
            target_version: Version to end at (0 reverts everything)

        Returns:
            RollbackResult with the versions reverted by this call

        Raises:
            ValueError: If target_version is negative
            AdapterNotConnectedError: If the adapter is not connected
            UnknownMigrationError: If the ledger holds a version the registry lacks
            NonReversibleMigrationError: If a migration has no revert procedure
            RollbackFailedError: If a revert fails; later ones stay applied
        """
        if target_version < 0:
            raise ValueError(f"target_version must be >= 0, got {target_version}")

        await self._prepare()
        backend = self._adapter.backend
        entries = await self._entries()
        current = max((entry.version for entry in entries), default=0)
        if target_version >= current:
            logger.info(
                "Nothing to roll back on %s (version %d, target %d)",
                self._backend_name,
                current,
                target_version,
            )
            return RollbackResult(rolled_back=0, current_version=current)

        to_revert = sorted(
            (entry for entry in entries if entry.version > target_version),
            key=lambda entry: entry.version,
            reverse=True,
        )
        plan: list[tuple[Migration, BackendProcedure]] = []
        for entry in to_revert:
            migration = self._registry.get(entry.version)
            if migration is None:
                raise UnknownMigrationError(entry.version)
            procedure = migration.procedure_for(backend)
            if procedure.revert is None:
                raise NonReversibleMigrationError(migration.version, self._backend_name)
            plan.append((migration, procedure))

        context = self._context()
        reverted: list[int] = []
        with self._tracer.span(
            "ragsync.migrations.rollback",
            {ATTR_DB_SYSTEM: self._backend_name, ATTR_TARGET_VERSION: target_version},
        ):
            for migration, procedure in plan:
                assert procedure.revert is not None
                logger.info(
                    "Reverting migration %d on %s: %s",
                    migration.version,
                    self._backend_name,
                    migration.description,
                )
                try:
                    async with self._adapter.transaction() as tx:
                        await procedure.revert(tx, context)
                        await self._ledger.remove(tx, migration.version)
                except Exception as e:
                    logger.error(
                        "Rollback of migration %d failed on %s: %s",
                        migration.version,
                        self._backend_name,
                        e,
                    )
                    raise RollbackFailedError(migration.version, self._backend_name, str(e)) from e
                reverted.append(migration.version)

        async with self._adapter.transaction() as tx:
            current = await self._ledger.current_version(tx)
        logger.info(
            "Rolled back %d migration(s) on %s, now at version %d",
            len(reverted),
            self._backend_name,
            current,
        )
        return RollbackResult(
            rolled_back=len(reverted),
            current_version=current,
            rolled_back_migrations=tuple(reverted),
        )


__all__ = [
    "MigrationExecutor",
    "MigrationStatus",
    "MigrationResult",
    "RollbackResult",
]
