"""
Migration definitions and the registry that orders them.

A :class:`Migration` carries one :class:`BackendProcedure` per backend, or a
``common`` procedure used for every backend without a specific one. A
procedure is an async callable taking the open transaction and a
:class:`MigrationContext`; ``revert`` is optional, and a migration without
it cannot be rolled back on that backend.

Example:
    >>> registry = MigrationRegistry()
    >>> registry.register(
    ...     Migration(
    ...         version=1,
    ...         description="create notes table",
    ...         common=BackendProcedure(
    ...             apply=sql_procedure("CREATE TABLE notes (id TEXT PRIMARY KEY)"),
    ...             revert=sql_procedure("DROP TABLE notes"),
    ...         ),
    ...     )
    ... )
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from string import Template
from types import MappingProxyType

from ragsync.config import BackendKind
from ragsync.exceptions import DuplicateMigrationError, MissingProcedureError
from ragsync.storage._vectors import VectorEncoding
from ragsync.storage.interface import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationContext:
    """What a procedure may know about the backend it runs against."""

    backend: BackendKind
    vector_encoding: VectorEncoding


ProcedureFn = Callable[[Transaction, MigrationContext], Awaitable[None]]


@dataclass(frozen=True)
class BackendProcedure:
    apply: ProcedureFn
    revert: ProcedureFn | None = None

    @property
    def reversible(self) -> bool:
        return self.revert is not None


def sql_procedure(*statements: str) -> ProcedureFn:
    """
    Build a procedure that executes statements in order.

    Statements may reference ``$vector_type`` and ``$dimensions``, which are
    filled in from the backend's vector encoding.
    """
    templates = [Template(statement) for statement in statements]

    async def run(tx: Transaction, context: MigrationContext) -> None:
        for template in templates:
            await tx.execute(
                template.substitute(
                    vector_type=context.vector_encoding.kind.value,
                    dimensions=context.vector_encoding.dimensions,
                )
            )

    return run


def skip_procedure(reason: str) -> ProcedureFn:
    """Build a procedure that intentionally does nothing but log ``reason``."""

    async def skip(tx: Transaction, context: MigrationContext) -> None:
        logger.info("Skipping migration step on %s: %s", context.backend.value, reason)

    return skip


@dataclass(frozen=True)
class Migration:
    """
    A versioned schema change.

    Attributes:
        version: Positive, unique version number
        description: Human-readable summary stored in the ledger
        procedures: Backend-specific procedures
        common: Procedure for backends without a specific one
    """

    version: int
    description: str
    procedures: Mapping[BackendKind, BackendProcedure] = field(default_factory=dict)
    common: BackendProcedure | None = None

    def __post_init__(self) -> None:
        if self.version < 1:
            raise ValueError(f"Migration version must be >= 1, got {self.version}")
        if not self.description:
            raise ValueError(f"Migration {self.version} needs a description")
        if not self.procedures and self.common is None:
            raise ValueError(f"Migration {self.version} has no procedures")
        object.__setattr__(self, "procedures", MappingProxyType(dict(self.procedures)))

    def has_procedure_for(self, backend: BackendKind) -> bool:
        return backend in self.procedures or self.common is not None

    def procedure_for(self, backend: BackendKind) -> BackendProcedure:
        """
        Resolve the procedure to run on ``backend``.

        Raises:
            MissingProcedureError: If neither a specific nor a common procedure exists
        """
        procedure = self.procedures.get(backend, self.common)
        if procedure is None:
            raise MissingProcedureError(self.version, backend.value)
        return procedure

    def is_reversible_on(self, backend: BackendKind) -> bool:
        return self.has_procedure_for(backend) and self.procedure_for(backend).reversible


class MigrationRegistry:
    """
    Ordered collection of migrations, unique by version.

    Registries are plain objects; build one per executor (or share one
    explicitly) rather than relying on module state.
    """

    def __init__(self, migrations: Iterable[Migration] = ()) -> None:
        self._migrations: dict[int, Migration] = {}
        for migration in migrations:
            self.register(migration)

    def register(self, migration: Migration) -> Migration:
        if migration.version in self._migrations:
            raise DuplicateMigrationError(migration.version)
        self._migrations[migration.version] = migration
        return migration

    def get(self, version: int) -> Migration | None:
        return self._migrations.get(version)

    def migrations(self) -> list[Migration]:
        """All migrations in ascending version order."""
        return [self._migrations[v] for v in sorted(self._migrations)]

    @property
    def latest_version(self) -> int:
        return max(self._migrations, default=0)

    def __iter__(self) -> Iterator[Migration]:
        return iter(self.migrations())

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, version: object) -> bool:
        return version in self._migrations

    def validate_for(self, backend: BackendKind, require_reversible: bool = False) -> list[str]:
        """
        Check that every migration can run on ``backend``.

        Args:
            backend: Backend to check
            require_reversible: Also report migrations without a revert procedure

        Returns:
            Problem descriptions; empty when the registry is usable
        """
        problems: list[str] = []
        for migration in self.migrations():
            if not migration.has_procedure_for(backend):
                problems.append(
                    f"Migration {migration.version} has no procedure for {backend.value}"
                )
            elif require_reversible and not migration.is_reversible_on(backend):
                problems.append(
                    f"Migration {migration.version} is not reversible on {backend.value}"
                )
        return problems


__all__ = [
    "MigrationContext",
    "ProcedureFn",
    "BackendProcedure",
    "Migration",
    "MigrationRegistry",
    "sql_procedure",
    "skip_procedure",
]
