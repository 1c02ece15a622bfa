"""
SQLite storage adapter.

Uses aiosqlite with a single connection opened in autocommit mode so that
transactions (including DDL run by migrations) are delimited by explicit
``BEGIN``/``COMMIT``. An asyncio lock serializes transactions on the shared
connection.

Embeddings are stored as packed little-endian float32 BLOBs in ordinary
tables; no SQLite vector extension is required.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from ragsync.config import BackendKind, SQLiteConfig
from ragsync.exceptions import AdapterNotConnectedError, EmbedderUnavailableError
from ragsync.observability import ATTR_DB_NAME, ATTR_DB_SYSTEM, Tracer, create_tracer, traced
from ragsync.storage._vectors import VectorEncoding, VectorKind, pack_float32, unpack_float32
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


class SQLiteTransaction:
    """Transaction bound to an aiosqlite connection inside ``BEGIN``."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._connection = connection

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None:
        await self._connection.execute(sql, dict(params or {}))

    async def fetch_all(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        async with self._connection.execute(sql, dict(params or {})) as cursor:
            rows = await cursor.fetchall()
        return [{key: row[key] for key in row.keys()} for row in rows]


class SQLiteStorageAdapter:
    """
    Storage adapter for the embedded SQLite backend.

    The schema is created by the migration catalog, not by the adapter;
    ``initialize()`` only opens the connection and applies pragmas.

    Example:
        >>> adapter = SQLiteStorageAdapter(SQLiteConfig(file_path="./memory.db"))
        >>> async with adapter:
        ...     stats = await adapter.get_knowledge_graph_stats()
    """

    def __init__(
        self,
        config: SQLiteConfig,
        embedder: Embedder | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: SQLite configuration
            embedder: Optional embedding function used by embed_all_entities
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._config = config
        self._embedder = embedder
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> SQLiteStorageAdapter:
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
        return BackendKind.SQLITE

    @property
    def config(self) -> SQLiteConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def vector_encoding(self) -> VectorEncoding:
        return VectorEncoding(VectorKind.FLOAT32, self._config.vector_dimensions)

    def describe(self) -> str:
        return self._config.describe()

    @traced("ragsync.sqlite.initialize", {ATTR_DB_SYSTEM: "sqlite"})
    async def initialize(self) -> None:
        """
        Open the database connection and apply pragmas.

        Safe to call more than once; later calls are no-ops.
        """
        if self._connection is not None:
            return

        connection = await aiosqlite.connect(self._config.file_path, isolation_level=None)
        try:
            await connection.execute(f"PRAGMA busy_timeout = {int(self._config.busy_timeout)}")
            if self._config.enable_wal and self._config.file_path != ":memory:":
                await connection.execute("PRAGMA journal_mode = WAL")
            for name, value in self._config.pragmas.items():
                await connection.execute(f"PRAGMA {name} = {value}")
        except aiosqlite.Error:
            await connection.close()
            raise

        connection.row_factory = aiosqlite.Row
        self._connection = connection
        logger.debug(
            "Connected to SQLite database: %s (wal=%s, busy_timeout=%d)",
            self._config.file_path,
            self._config.enable_wal,
            self._config.busy_timeout,
        )

    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._config.file_path)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise AdapterNotConnectedError(self.describe())
        return self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteTransaction]:
        """Run statements in one ``BEGIN``/``COMMIT`` block; roll back on error."""
        connection = self._ensure_connected()
        async with self._lock:
            await connection.execute("BEGIN")
            try:
                yield SQLiteTransaction(connection)
            except BaseException:
                if connection.in_transaction:
                    await connection.execute("ROLLBACK")
                raise
            else:
                await connection.execute("COMMIT")

    # =========================================================================
    # Knowledge graph
    # =========================================================================

    async def read_graph(self) -> KnowledgeGraph:
        with self._tracer.span(
            "ragsync.sqlite.read_graph",
            {ATTR_DB_SYSTEM: "sqlite", ATTR_DB_NAME: self._config.file_path},
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
                        observations=json.loads(row["observations"] or "[]"),
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
            "ragsync.sqlite.create_entities",
            {ATTR_DB_SYSTEM: "sqlite", "ragsync.entity.count": len(entities)},
        ):
            async with self.transaction() as tx:
                for entity in entities:
                    rows = await tx.fetch_all(
                        "SELECT observations FROM entities WHERE name = :name",
                        {"name": entity.name},
                    )
                    observations = entity.observations
                    if rows:
                        observations = merge_observations(
                            json.loads(rows[0]["observations"] or "[]"), observations
                        )
                    await tx.execute(
                        """
                        INSERT INTO entities (id, name, entity_type, observations)
                        VALUES (:id, :name, :entity_type, :observations)
                        ON CONFLICT (name) DO UPDATE
                        SET entity_type = excluded.entity_type,
                            observations = excluded.observations
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
            "ragsync.sqlite.create_relations",
            {ATTR_DB_SYSTEM: "sqlite", "ragsync.relation.count": len(relations)},
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
                metadata=json.loads(row["metadata"] or "{}"),
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
            "ragsync.sqlite.store_document",
            {ATTR_DB_SYSTEM: "sqlite", "ragsync.document.id": document_id},
        ):
            async with self.transaction() as tx:
                await tx.execute(
                    """
                    INSERT INTO documents (id, content, metadata)
                    VALUES (:id, :content, :metadata)
                    ON CONFLICT (id) DO UPDATE
                    SET content = excluded.content,
                        metadata = excluded.metadata
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
            "ragsync.sqlite.get_knowledge_graph_stats",
            {ATTR_DB_SYSTEM: "sqlite", ATTR_DB_NAME: self._config.file_path},
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
                    """
                    SELECT COUNT(*) AS total,
                           COALESCE(SUM(CASE WHEN embedding IS NOT NULL THEN 1 ELSE 0 END), 0)
                               AS embedded
                    FROM chunk_metadata
                    """
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
                SELECT e.name, ee.embedding_text, ee.embedding
                FROM entity_embeddings ee
                JOIN entities e ON e.id = ee.entity_id
                WHERE ee.embedding IS NOT NULL
                ORDER BY e.name
                """
            )
        return [
            EntityEmbedding(
                entity_name=row["name"],
                vector=unpack_float32(row["embedding"]),
                text=row["embedding_text"] or "",
            )
            for row in rows
        ]

    async def import_entity_embeddings(self, embeddings: Sequence[EntityEmbedding]) -> int:
        with self._tracer.span(
            "ragsync.sqlite.import_entity_embeddings",
            {ATTR_DB_SYSTEM: "sqlite", "ragsync.embedding.count": len(embeddings)},
        ):
            written = 0
            async with self.transaction() as tx:
                known = {row["name"] for row in await tx.fetch_all("SELECT name FROM entities")}
                for embedding in embeddings:
                    if embedding.entity_name not in known:
                        continue
                    await tx.execute(
                        """
                        INSERT INTO entity_embeddings (entity_id, embedding_text, embedding)
                        VALUES (:entity_id, :text, :embedding)
                        ON CONFLICT (entity_id) DO UPDATE
                        SET embedding_text = excluded.embedding_text,
                            embedding = excluded.embedding
                        """,
                        {
                            "entity_id": embedding.entity_name,
                            "text": embedding.text,
                            "embedding": pack_float32(embedding.vector),
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


__all__ = ["SQLiteStorageAdapter", "SQLiteTransaction"]
