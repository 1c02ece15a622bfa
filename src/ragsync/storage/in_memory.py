"""In-memory storage adapter for tests and dry runs."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from ragsync.config import BackendKind
from ragsync.exceptions import AdapterNotConnectedError, EmbedderUnavailableError
from ragsync.observability import ATTR_DB_SYSTEM, Tracer, create_tracer
from ragsync.storage._vectors import VectorEncoding, VectorKind
from ragsync.storage.interface import Embedder, entity_embedding_text
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
    merge_observations,
)


class InMemoryStorageAdapter:
    """
    Storage adapter that keeps everything in dictionaries.

    It implements the full StorageAdapter protocol except raw SQL, so it can
    stand in for either side of a transfer but cannot be migrated. All data is
    lost when the adapter is garbage collected.

    Example:
        >>> source = InMemoryStorageAdapter()
        >>> await source.initialize()
        >>> await source.create_entities([Entity(name="Ada", entity_type="PERSON")])
        1
    """

    def __init__(
        self,
        backend: BackendKind = BackendKind.SQLITE,
        vector_encoding: VectorEncoding | None = None,
        embedder: Embedder | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._backend = backend
        self._vector_encoding = vector_encoding or VectorEncoding(VectorKind.FLOAT32, 384)
        self._embedder = embedder
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connected = False
        self._lock = asyncio.Lock()

        self._entities: dict[str, Entity] = {}
        self._relations: dict[tuple[str, str, str], Relation] = {}
        self._documents: dict[str, tuple[str, dict[str, Any], datetime]] = {}
        self._embeddings: dict[str, EntityEmbedding] = {}
        self.chunk_count = 0

    @property
    def backend(self) -> BackendKind:
        return self._backend

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def vector_encoding(self) -> VectorEncoding:
        return self._vector_encoding

    def describe(self) -> str:
        return f"memory:{self._backend.value}"

    async def initialize(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise AdapterNotConnectedError(self.describe())

    async def read_graph(self) -> KnowledgeGraph:
        self._ensure_connected()
        async with self._lock:
            return KnowledgeGraph(
                entities=list(self._entities.values()),
                relations=list(self._relations.values()),
            )

    async def create_entities(self, entities: Sequence[Entity]) -> int:
        self._ensure_connected()
        with self._tracer.span(
            "ragsync.memory.create_entities",
            {ATTR_DB_SYSTEM: "memory", "ragsync.entity.count": len(entities)},
        ):
            async with self._lock:
                for entity in entities:
                    existing = self._entities.get(entity.name)
                    if existing is not None:
                        entity = entity.model_copy(
                            update={
                                "observations": merge_observations(
                                    existing.observations, entity.observations
                                )
                            }
                        )
                    self._entities[entity.name] = entity
                return len(entities)

    async def create_relations(self, relations: Sequence[Relation]) -> int:
        self._ensure_connected()
        async with self._lock:
            written = 0
            for relation in relations:
                if relation.source in self._entities and relation.target in self._entities:
                    self._relations[relation.key] = relation
                    written += 1
            return written

    async def list_documents(self) -> list[DocumentInfo]:
        self._ensure_connected()
        async with self._lock:
            return [
                DocumentInfo(id=doc_id, metadata=dict(metadata), created_at=created_at)
                for doc_id, (_, metadata, created_at) in sorted(self._documents.items())
            ]

    async def get_document_content(self, document_id: str) -> str | None:
        self._ensure_connected()
        async with self._lock:
            stored = self._documents.get(document_id)
            return stored[0] if stored else None

    async def store_document(
        self, document_id: str, content: str, metadata: Mapping[str, Any] | None = None
    ) -> None:
        self._ensure_connected()
        async with self._lock:
            previous = self._documents.get(document_id)
            created_at = previous[2] if previous else datetime.now(UTC)
            self._documents[document_id] = (content, dict(metadata or {}), created_at)

    async def get_knowledge_graph_stats(self) -> KnowledgeGraphStats:
        self._ensure_connected()
        async with self._lock:
            entity_types: dict[str, int] = {}
            for entity in self._entities.values():
                entity_types[entity.entity_type] = entity_types.get(entity.entity_type, 0) + 1
            relation_types: dict[str, int] = {}
            for relation in self._relations.values():
                relation_types[relation.relation_type] = (
                    relation_types.get(relation.relation_type, 0) + 1
                )
            return KnowledgeGraphStats(
                entities=TypeBreakdown(total=len(self._entities), by_type=entity_types),
                relationships=TypeBreakdown(total=len(self._relations), by_type=relation_types),
                documents=DocumentCounts(total=len(self._documents)),
                chunks=ChunkCounts(total=self.chunk_count, embedded=0),
            )

    async def export_entity_embeddings(self) -> list[EntityEmbedding]:
        self._ensure_connected()
        async with self._lock:
            return list(self._embeddings.values())

    async def import_entity_embeddings(self, embeddings: Sequence[EntityEmbedding]) -> int:
        self._ensure_connected()
        async with self._lock:
            written = 0
            for embedding in embeddings:
                if embedding.entity_name in self._entities:
                    self._embeddings[embedding.entity_name] = embedding
                    written += 1
            return written

    async def embed_all_entities(self) -> int:
        self._ensure_connected()
        async with self._lock:
            entities = list(self._entities.values())
        if not entities:
            return 0
        if self._embedder is None:
            raise EmbedderUnavailableError(self.describe())
        texts = [entity_embedding_text(entity) for entity in entities]
        vectors = await self._embedder(texts)
        embeddings = [
            EntityEmbedding(entity_name=entity.name, vector=list(vector), text=text)
            for entity, vector, text in zip(entities, vectors, texts, strict=True)
        ]
        return await self.import_entity_embeddings(embeddings)


__all__ = ["InMemoryStorageAdapter"]
