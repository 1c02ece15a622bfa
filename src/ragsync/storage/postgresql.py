"""
PostgreSQL storage adapter.

Connections come from a :class:`~ragsync.pool.ConnectionPoolManager`, so
every transaction is opened with retry and broken connections trigger pool
recovery. Statements are SQLAlchemy ``text()`` clauses with ``:name``
parameters.

JSON columns are JSONB and are written as serialized strings cast with
``CAST(:param AS jsonb)``. Vectors travel as pgvector text literals cast
through ``text``, so no driver-level vector codec is needed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from ragsync.config import BackendKind, PostgreSQLConfig
from ragsync.exceptions import AdapterNotConnectedError, EmbedderUnavailableError
from ragsync.observability import ATTR_DB_NAME, ATTR_DB_SYSTEM, Tracer, create_tracer, traced
from ragsync.pool import ConnectionPoolManager
from ragsync.storage._vectors import (
    VectorEncoding,
    VectorKind,
    parse_pgvector_literal,
    to_pgvector_literal,
)
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

logger = logging.getLogger(__name__)


def _load_json(value: Any, default: Any) -> Any:
    # untyped text() columns come back as the raw JSON string
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


class SQLAlchemyTransaction:
    """Transaction bound to an AsyncConnection inside ``begin()``."""

    def __init__(self, connection: AsyncConnection) -> None:
        self._connection = connection

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None:
        await self._connection.execute(text(sql), dict(params or {}))

    async def fetch_all(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        result = await self._connection.execute(text(sql), dict(params or {}))
        return [dict(row) for row in result.mappings().all()]


class PostgreSQLStorageAdapter:
    """
    Storage adapter for PostgreSQL with the pgvector extension.

    If no pool manager is passed, the adapter creates and owns one and
    disposes it on close. A shared manager is left running.

    Example:
        >>> manager = ConnectionPoolManager()
        >>> adapter = PostgreSQLStorageAdapter(pg_config, pool_manager=manager)
        >>> await adapter.initialize()
        >>> graph = await adapter.read_graph()
    """

    def __init__(
        self,
        config: PostgreSQLConfig,
        pool_manager: ConnectionPoolManager | None = None,
        pool_name: str = "default",
        embedder: Embedder | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: PostgreSQL configuration
            pool_manager: Shared pool manager (one is created if omitted)
            pool_name: Name of the pool this adapter borrows from
            embedder: Optional embedding function used by embed_all_entities
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._config = config
        self._pool_name = pool_name
        self._embedder = embedder
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._owns_manager = pool_manager is None
        self._pools = pool_manager or ConnectionPoolManager(
            tracer=self._tracer, enable_tracing=enable_tracing
        )
        self._connected = False

    async def __aenter__(self) -> PostgreSQLStorageAdapter:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    @property
    def backend(self) -> BackendKind:
        return BackendKind.POSTGRESQL

    @property
    def config(self) -> PostgreSQLConfig:
        return self._config

    @property
    def pool_manager(self) -> ConnectionPoolManager:
        return self._pools

    @property
    def pool_name(self) -> str:
        return self._pool_name

    @property
    def is_connected(self) -> bool:
        return self._connected and self._pools.has_pool(self._pool_name)

    @property
    def vector_encoding(self) -> VectorEncoding:
        return VectorEncoding(VectorKind(self._config.vector_type), self._config.vector_dimensions)

    def describe(self) -> str:
        return self._config.describe()

    @traced("ragsync.postgresql.initialize", {ATTR_DB_SYSTEM: "postgresql"})
    async def initialize(self) -> None:
        """Create (or reuse) the named pool. Raises PoolCreationError if unreachable."""
        if not self._pools.has_pool(self._pool_name):
            await self._pools.create_pool(self._pool_name, self._config)
        self._connected = True
        logger.debug("PostgreSQL adapter ready: %s", self.describe())

    async def close(self) -> None:
        if self._owns_manager and self._pools.has_pool(self._pool_name):
            await self._pools.close_pool(self._pool_name)
        self._connected = False

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            raise AdapterNotConnectedError(self.describe())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLAlchemyTransaction]:
        """Borrow a connection with retry and run one transaction on it."""
        self._ensure_connected()
        connection = await self._pools.get_client_with_retry(self._pool_name)
        try:
            async with connection.begin():
                yield SQLAlchemyTransaction(connection)
        finally:
            await connection.close()

    # =========================================================================
    # Knowledge graph
    # =========================================================================

    async def read_graph(self) -> KnowledgeGraph:
        with self._tracer.span(
            "ragsync.postgresql.read_graph",
            {ATTR_DB_SYSTEM: "postgresql", ATTR_DB_NAME: self._config.database},
        ):
            async with self.transaction() as tx:
                entity_rows = await tx.fetch_all(
                    "SELECT name, entity_type, observations FROM entities ORDER BY name"
                )
                relation_rows = await tx.fetch_all(
                    """
                    SELECT source_entity, target_entity, relation_type
                    FROM relationships
                    ORDER BY source_entity, target_entity, relation_type
                    """
                )
            return KnowledgeGraph(
                entities=[
                    Entity(
                        name=row["name"],
                        entity_type=row["entity_type"] or "CONCEPT",
                        observations=_load_json(row["observations"], []),
                    )
                    for row in entity_rows
                ],
                relations=[
                    Relation(
                        source=row["source_entity"],
                        target=row["target_entity"],
                        relation_type=row["relation_type"],
                    )
                    for row in relation_rows
                ],
            )

    async def create_entities(self, entities: Sequence[Entity]) -> int:
        with self._tracer.span(
            "ragsync.postgresql.create_entities",
            {ATTR_DB_SYSTEM: "postgresql", "ragsync.entity.count": len(entities)},
        ):
            async with self.transaction() as tx:
                for entity in entities:
                    rows = await tx.fetch_all(
                        "SELECT observations FROM entities WHERE name = :name FOR UPDATE",
                        {"name": entity.name},
                    )
                    observations = entity.observations
                    if rows:
                        observations = merge_observations(
                            _load_json(rows[0]["observations"], []), observations
                        )
                    await tx.execute(
                        """
                        INSERT INTO entities (id, name, entity_type, observations)
                        VALUES (:id, :name, :entity_type, CAST(:observations AS jsonb))
                        ON CONFLICT (name) DO UPDATE
                        SET entity_type = EXCLUDED.entity_type,
                            observations = EXCLUDED.observations
                        """,
                        {
                            "id": entity.name,
                            "name": entity.name,
                            "entity_type": entity.entity_type,
                            "observations": json.dumps(observations),
                        },
                    )
            logger.debug("Upserted %d entities into %s", len(entities), self.describe())
            return len(entities)

    async def create_relations(self, relations: Sequence[Relation]) -> int:
        with self._tracer.span(
            "ragsync.postgresql.create_relations",
            {ATTR_DB_SYSTEM: "postgresql", "ragsync.relation.count": len(relations)},
        ):
            written = 0
            async with self.transaction() as tx:
                known = {row["name"] for row in await tx.fetch_all("SELECT name FROM entities")}
                for relation in relations:
                    if relation.source not in known or relation.target not in known:
                        logger.debug(
                            "Skipping relation %s: endpoint entity missing", relation.row_id
                        )
                        continue
                    await tx.execute(
                        """
                        INSERT INTO relationships (id, source_entity, target_entity, relation_type)
                        VALUES (:id, :source, :target, :relation_type)
                        ON CONFLICT (id) DO NOTHING
                        """,
                        {
                            "id": relation.row_id,
                            "source": relation.source,
                            "target": relation.target,
                            "relation_type": relation.relation_type,
                        },
                    )
                    written += 1
            return written

    # =========================================================================
    # Documents
    # =========================================================================

    async def list_documents(self) -> list[DocumentInfo]:
        async with self.transaction() as tx:
            rows = await tx.fetch_all("SELECT id, metadata, created_at FROM documents ORDER BY id")
        return [
            DocumentInfo(
                id=row["id"],
                metadata=_load_json(row["metadata"], {}),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def get_document_content(self, document_id: str) -> str | None:
        async with self.transaction() as tx:
            rows = await tx.fetch_all(
                "SELECT content FROM documents WHERE id = :id", {"id": document_id}
            )
        return rows[0]["content"] if rows else None

    async def store_document(
        self, document_id: str, content: str, metadata: Mapping[str, Any] | None = None
    ) -> None:
        with self._tracer.span(
            "ragsync.postgresql.store_document",
            {ATTR_DB_SYSTEM: "postgresql", "ragsync.document.id": document_id},
        ):
            async with self.transaction() as tx:
                await tx.execute(
                    """
                    INSERT INTO documents (id, content, metadata)
                    VALUES (:id, :content, CAST(:metadata AS jsonb))
                    ON CONFLICT (id) DO UPDATE
                    SET content = EXCLUDED.content,
                        metadata = EXCLUDED.metadata
                    """,
                    {
                        "id": document_id,
                        "content": content,
                        "metadata": json.dumps(dict(metadata or {})),
                    },
                )

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_knowledge_graph_stats(self) -> KnowledgeGraphStats:
        with self._tracer.span(
            "ragsync.postgresql.get_knowledge_graph_stats",
            {ATTR_DB_SYSTEM: "postgresql", ATTR_DB_NAME: self._config.database},
        ):
            async with self.transaction() as tx:
                entity_rows = await tx.fetch_all(
                    "SELECT entity_type, COUNT(*) AS n FROM entities GROUP BY entity_type"
                )
                relation_rows = await tx.fetch_all(
                    "SELECT relation_type, COUNT(*) AS n FROM relationships GROUP BY relation_type"
                )
                document_rows = await tx.fetch_all("SELECT COUNT(*) AS n FROM documents")
                chunk_rows = await tx.fetch_all(
                    "SELECT COUNT(*) AS total, COUNT(embedding) AS embedded FROM chunk_metadata"
                )
            entity_types = {row["entity_type"] or "CONCEPT": row["n"] for row in entity_rows}
            relation_types = {row["relation_type"]: row["n"] for row in relation_rows}
            return KnowledgeGraphStats(
                entities=TypeBreakdown(total=sum(entity_types.values()), by_type=entity_types),
                relationships=TypeBreakdown(
                    total=sum(relation_types.values()), by_type=relation_types
                ),
                documents=DocumentCounts(total=document_rows[0]["n"]),
                chunks=ChunkCounts(
                    total=chunk_rows[0]["total"], embedded=chunk_rows[0]["embedded"]
                ),
            )

    # =========================================================================
    # Embeddings
    # =========================================================================

    async def export_entity_embeddings(self) -> list[EntityEmbedding]:
        async with self.transaction() as tx:
            rows = await tx.fetch_all(
                """
                SELECT e.name, ee.embedding_text, CAST(ee.embedding AS text) AS embedding
                FROM entity_embeddings ee
                JOIN entities e ON e.id = ee.entity_id
                WHERE ee.embedding IS NOT NULL
                ORDER BY e.name
                """
            )
        return [
            EntityEmbedding(
                entity_name=row["name"],
                vector=parse_pgvector_literal(row["embedding"]),
                text=row["embedding_text"] or "",
            )
            for row in rows
        ]

    async def import_entity_embeddings(self, embeddings: Sequence[EntityEmbedding]) -> int:
        encoding = self.vector_encoding
        column_type = f"{encoding.kind.value}({encoding.dimensions})"
        with self._tracer.span(
            "ragsync.postgresql.import_entity_embeddings",
            {ATTR_DB_SYSTEM: "postgresql", "ragsync.embedding.count": len(embeddings)},
        ):
            written = 0
            async with self.transaction() as tx:
                known = {row["name"] for row in await tx.fetch_all("SELECT name FROM entities")}
                for embedding in embeddings:
                    if embedding.entity_name not in known:
                        continue
                    await tx.execute(
                        f"""
                        INSERT INTO entity_embeddings (entity_id, embedding_text, embedding)
                        VALUES (:entity_id, :text, CAST(CAST(:embedding AS text) AS {column_type}))
                        ON CONFLICT (entity_id) DO UPDATE
                        SET embedding_text = EXCLUDED.embedding_text,
                            embedding = EXCLUDED.embedding
                        """,  # nosec B608 - column type comes from validated config
                        {
                            "entity_id": embedding.entity_name,
                            "text": embedding.text,
                            "embedding": to_pgvector_literal(embedding.vector),
                        },
                    )
                    written += 1
            return written

    async def embed_all_entities(self) -> int:
        graph = await self.read_graph()
        if not graph.entities:
            return 0
        if self._embedder is None:
            raise EmbedderUnavailableError(self.describe())
        texts = [entity_embedding_text(entity) for entity in graph.entities]
        vectors = await self._embedder(texts)
        written = await self.import_entity_embeddings(
            [
                EntityEmbedding(entity_name=entity.name, vector=list(vector), text=text)
                for entity, vector, text in zip(graph.entities, vectors, texts, strict=True)
            ]
        )
        logger.info("Embedded %d entities in %s", written, self.describe())
        return written


__all__ = ["PostgreSQLStorageAdapter", "SQLAlchemyTransaction"]
