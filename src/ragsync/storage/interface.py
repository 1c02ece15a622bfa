"""
Storage adapter protocols.

This module defines the capabilities the migration and transfer layers need
from a storage backend:

- Transaction: raw statement execution inside one database transaction
- StorageAdapter: lifecycle, typed knowledge-graph CRUD, statistics and
  embedding import/export
- TransactionalAdapter: a StorageAdapter that can also run raw SQL, which
  is what the migration executor requires

Writes are upserts throughout, so running a transfer twice does not duplicate
records in the target.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol, runtime_checkable

from ragsync.config import BackendKind
from ragsync.storage._vectors import VectorEncoding
from ragsync.storage.models import (
    DocumentInfo,
    Entity,
    EntityEmbedding,
    KnowledgeGraph,
    KnowledgeGraphStats,
    Relation,
)

Embedder = Callable[[Sequence[str]], Awaitable[Sequence[Sequence[float]]]]
"""Batch embedding function: texts in, one vector per text out."""


def entity_embedding_text(entity: Entity) -> str:
    """Text an entity is embedded from: name, type and observations."""
    parts = [f"{entity.name} ({entity.entity_type})"]
    parts.extend(entity.observations)
    return ". ".join(parts)


@runtime_checkable
class Transaction(Protocol):
    """
    A single open database transaction.

    Statements use ``:name`` placeholders, which both SQLAlchemy ``text()``
    and sqlite3 understand.
    """

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None:
        """Execute a statement, discarding any result rows."""
        ...

    async def fetch_all(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute a query and return every row as a column-name mapping."""
        ...


@runtime_checkable
class StorageAdapter(Protocol):
    """
    Protocol for knowledge-graph storage backends.

    Implementations:
    - SQLiteStorageAdapter: aiosqlite, embeddings as float32 BLOBs
    - PostgreSQLStorageAdapter: SQLAlchemy async engine over asyncpg, pgvector
    - InMemoryStorageAdapter: dictionaries, for tests and dry runs
    """

    @property
    def backend(self) -> BackendKind: ...

    @property
    def is_connected(self) -> bool: ...

    @property
    def vector_encoding(self) -> VectorEncoding: ...

    def describe(self) -> str:
        """Human-readable location of the backend (never includes passwords)."""
        ...

    async def initialize(self) -> None:
        """Open connections. Safe to call more than once."""
        ...

    async def close(self) -> None: ...

    async def read_graph(self) -> KnowledgeGraph:
        """Return every entity and relation."""
        ...

    async def create_entities(self, entities: Sequence[Entity]) -> int:
        """
        Upsert entities keyed by name.

        Observations of an existing entity are merged (existing first, new
        ones appended, duplicates dropped).

        Returns:
            Number of entities written
        """
        ...

    async def create_relations(self, relations: Sequence[Relation]) -> int:
        """
        Upsert relations keyed by (source, target, relation_type).

        Relations whose endpoints do not exist are skipped.

        Returns:
            Number of relations written
        """
        ...

    async def list_documents(self) -> list[DocumentInfo]: ...

    async def get_document_content(self, document_id: str) -> str | None: ...

    async def store_document(
        self, document_id: str, content: str, metadata: Mapping[str, Any] | None = None
    ) -> None:
        """Upsert a document keyed by id."""
        ...

    async def get_knowledge_graph_stats(self) -> KnowledgeGraphStats: ...

    async def export_entity_embeddings(self) -> list[EntityEmbedding]: ...

    async def import_entity_embeddings(self, embeddings: Sequence[EntityEmbedding]) -> int:
        """
        Upsert embeddings keyed by entity name, skipping unknown entities.

        Returns:
            Number of embeddings written
        """
        ...

    async def embed_all_entities(self) -> int:
        """
        (Re)generate embeddings for every entity with the adapter's embedder.

        Returns:
            Number of entities embedded

        Raises:
            EmbedderUnavailableError: If the adapter has no embedder
        """
        ...


@runtime_checkable
class TransactionalAdapter(StorageAdapter, Protocol):
    """A storage adapter that can run raw SQL inside a transaction."""

    def transaction(self) -> AbstractAsyncContextManager[Transaction]:
        """
        Open a transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises.

        Example:
            >>> async with adapter.transaction() as tx:
            ...     await tx.execute("DELETE FROM documents WHERE id = :id", {"id": "d1"})
        """
        ...


__all__ = [
    "Embedder",
    "Transaction",
    "StorageAdapter",
    "TransactionalAdapter",
    "entity_embedding_text",
]
