"""
Storage adapters for the knowledge-graph backends.

The migration executor needs a :class:`TransactionalAdapter`; transfer
operations only need the :class:`StorageAdapter` capabilities.
"""

from ragsync.storage._vectors import VectorEncoding, VectorKind, is_compatible
from ragsync.storage.factory import create_adapter
from ragsync.storage.in_memory import InMemoryStorageAdapter
from ragsync.storage.interface import (
    Embedder,
    StorageAdapter,
    Transaction,
    TransactionalAdapter,
    entity_embedding_text,
)
from ragsync.storage.models import (
    ChunkCounts,
    DocumentCounts,
    DocumentInfo,
    Entity,
    EntityEmbedding,
    KnowledgeGraph,
    KnowledgeGraphStats,
    Relation,
    TypeBreakdown,
)
from ragsync.storage.postgresql import PostgreSQLStorageAdapter
from ragsync.storage.sqlite import SQLiteStorageAdapter

__all__ = [
    "StorageAdapter",
    "TransactionalAdapter",
    "Transaction",
    "Embedder",
    "entity_embedding_text",
    "create_adapter",
    "InMemoryStorageAdapter",
    "SQLiteStorageAdapter",
    "PostgreSQLStorageAdapter",
    "VectorEncoding",
    "VectorKind",
    "is_compatible",
    "Entity",
    "Relation",
    "KnowledgeGraph",
    "DocumentInfo",
    "EntityEmbedding",
    "TypeBreakdown",
    "DocumentCounts",
    "ChunkCounts",
    "KnowledgeGraphStats",
]
