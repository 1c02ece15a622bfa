"""
The standard migration catalog for the knowledge-graph schema.

- v1: entities, relationships, documents, chunks and embedding tables
- v2: the schema_migrations ledger table
- v3: full-text search (FTS5 on SQLite, GIN/trigram indexes on PostgreSQL)
- v4: composite, temporal and partial indexes

SQLite stores embeddings as float32 BLOB columns; PostgreSQL uses pgvector
columns whose type and width come from the adapter's vector encoding.
"""

from __future__ import annotations

from ragsync.config import BackendKind
from ragsync.migrations.ledger import CREATE_LEDGER_SQL
from ragsync.migrations.registry import (
    BackendProcedure,
    Migration,
    MigrationRegistry,
    skip_procedure,
    sql_procedure,
)

# =============================================================================
# v1: core schema
# =============================================================================

_SQLITE_V1_UP = (
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        entity_type TEXT DEFAULT 'CONCEPT',
        observations TEXT DEFAULT '[]',
        mentions INTEGER DEFAULT 0,
        metadata TEXT DEFAULT '{}',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        source_entity TEXT NOT NULL,
        target_entity TEXT NOT NULL,
        relation_type TEXT NOT NULL,
        confidence REAL DEFAULT 1.0,
        metadata TEXT DEFAULT '{}',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (source_entity) REFERENCES entities(id) ON DELETE CASCADE,
        FOREIGN KEY (target_entity) REFERENCES entities(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        metadata TEXT DEFAULT '{}',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunk_metadata (
        rowid INTEGER PRIMARY KEY,
        chunk_id TEXT UNIQUE,
        document_id TEXT,
        chunk_index INTEGER,
        text TEXT,
        start_pos INTEGER,
        end_pos INTEGER,
        chunk_type TEXT DEFAULT 'document',
        entity_id TEXT,
        relationship_id TEXT,
        embedding BLOB,
        metadata TEXT DEFAULT '{}',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_embeddings (
        entity_id TEXT PRIMARY KEY,
        embedding_text TEXT,
        embedding BLOB,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (entity_id) REFERENCES entities(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunk_entities (
        chunk_rowid INTEGER NOT NULL,
        entity_id TEXT NOT NULL,
        PRIMARY KEY (chunk_rowid, entity_id),
        FOREIGN KEY (entity_id) REFERENCES entities(id) ON DELETE CASCADE,
        FOREIGN KEY (chunk_rowid) REFERENCES chunk_metadata(rowid) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_entities_name ON entities(name)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_source ON relationships(source_entity)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_target ON relationships(target_entity)",
    "CREATE INDEX IF NOT EXISTS idx_chunk_entities_entity ON chunk_entities(entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunk_metadata_document ON chunk_metadata(document_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunk_metadata_type ON chunk_metadata(chunk_type)",
)

_SQLITE_V1_DOWN = (
    "DROP TABLE IF EXISTS chunk_entities",
    "DROP TABLE IF EXISTS entity_embeddings",
    "DROP TABLE IF EXISTS chunk_metadata",
    "DROP TABLE IF EXISTS documents",
    "DROP TABLE IF EXISTS relationships",
    "DROP TABLE IF EXISTS entities",
)

_POSTGRESQL_V1_UP = (
    "CREATE EXTENSION IF NOT EXISTS vector",
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        entity_type TEXT DEFAULT 'CONCEPT',
        observations JSONB DEFAULT '[]',
        mentions INTEGER DEFAULT 0,
        metadata JSONB DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        source_entity TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        target_entity TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        relation_type TEXT NOT NULL,
        confidence REAL DEFAULT 1.0,
        metadata JSONB DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        metadata JSONB DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunk_metadata (
        id SERIAL PRIMARY KEY,
        chunk_id TEXT UNIQUE,
        document_id TEXT REFERENCES documents(id) ON DELETE CASCADE,
        chunk_index INTEGER,
        text TEXT,
        start_pos INTEGER,
        end_pos INTEGER,
        chunk_type TEXT DEFAULT 'document',
        entity_id TEXT,
        relationship_id TEXT,
        embedding $vector_type($dimensions),
        metadata JSONB DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_embeddings (
        id SERIAL PRIMARY KEY,
        entity_id TEXT UNIQUE REFERENCES entities(id) ON DELETE CASCADE,
        embedding_text TEXT,
        embedding $vector_type($dimensions),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunk_entities (
        chunk_id INTEGER NOT NULL REFERENCES chunk_metadata(id) ON DELETE CASCADE,
        entity_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        PRIMARY KEY (chunk_id, entity_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_entities_name ON entities(name)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_source ON relationships(source_entity)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_target ON relationships(target_entity)",
    "CREATE INDEX IF NOT EXISTS idx_chunk_entities_entity ON chunk_entities(entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunk_metadata_document ON chunk_metadata(document_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunk_metadata_type ON chunk_metadata(chunk_type)",
    """
    CREATE INDEX IF NOT EXISTS idx_chunk_embeddings_hnsw
    ON chunk_metadata USING hnsw (embedding ${vector_type}_cosine_ops)
    WITH (m = 24, ef_construction = 40)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_entity_embeddings_hnsw
    ON entity_embeddings USING hnsw (embedding ${vector_type}_cosine_ops)
    WITH (m = 24, ef_construction = 40)
    """,
)

_POSTGRESQL_V1_DOWN = (
    "DROP TABLE IF EXISTS chunk_entities CASCADE",
    "DROP TABLE IF EXISTS entity_embeddings CASCADE",
    "DROP TABLE IF EXISTS chunk_metadata CASCADE",
    "DROP TABLE IF EXISTS documents CASCADE",
    "DROP TABLE IF EXISTS relationships CASCADE",
    "DROP TABLE IF EXISTS entities CASCADE",
)

# =============================================================================
# v3: search
# =============================================================================

_SQLITE_V3_UP = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS entities_fts USING fts5(
        name, observations, content='entities', content_rowid='rowid'
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
        content, metadata, content='documents', content_rowid='rowid'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS entities_fts_insert AFTER INSERT ON entities BEGIN
        INSERT INTO entities_fts(rowid, name, observations)
        VALUES (new.rowid, new.name, new.observations);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS entities_fts_delete AFTER DELETE ON entities BEGIN
        INSERT INTO entities_fts(entities_fts, rowid, name, observations)
        VALUES ('delete', old.rowid, old.name, old.observations);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS entities_fts_update AFTER UPDATE ON entities BEGIN
        INSERT INTO entities_fts(entities_fts, rowid, name, observations)
        VALUES ('delete', old.rowid, old.name, old.observations);
        INSERT INTO entities_fts(rowid, name, observations)
        VALUES (new.rowid, new.name, new.observations);
    END
    """,
    "INSERT INTO entities_fts(entities_fts) VALUES ('rebuild')",
    "INSERT INTO documents_fts(documents_fts) VALUES ('rebuild')",
)

_SQLITE_V3_DOWN = (
    "DROP TRIGGER IF EXISTS entities_fts_update",
    "DROP TRIGGER IF EXISTS entities_fts_delete",
    "DROP TRIGGER IF EXISTS entities_fts_insert",
    "DROP TABLE IF EXISTS documents_fts",
    "DROP TABLE IF EXISTS entities_fts",
)

_POSTGRESQL_V3_UP = (
    "CREATE EXTENSION IF NOT EXISTS pg_trgm",
    """
    CREATE INDEX IF NOT EXISTS idx_entities_observations_gin
    ON entities USING gin(observations jsonb_ops)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_documents_metadata_gin
    ON documents USING gin(metadata jsonb_ops)
    """,
    "CREATE INDEX IF NOT EXISTS idx_entities_name_trgm ON entities USING gin(name gin_trgm_ops)",
    """
    CREATE INDEX IF NOT EXISTS idx_documents_content_trgm
    ON documents USING gin(content gin_trgm_ops)
    """,
)

_POSTGRESQL_V3_DOWN = (
    "DROP INDEX IF EXISTS idx_documents_content_trgm",
    "DROP INDEX IF EXISTS idx_entities_name_trgm",
    "DROP INDEX IF EXISTS idx_documents_metadata_gin",
    "DROP INDEX IF EXISTS idx_entities_observations_gin",
)

# =============================================================================
# v4: performance indexes
# =============================================================================

_COMMON_V4_UP = (
    """
    CREATE INDEX IF NOT EXISTS idx_relationships_composite
    ON relationships(source_entity, relation_type)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chunk_metadata_composite
    ON chunk_metadata(document_id, chunk_type)
    """,
    "CREATE INDEX IF NOT EXISTS idx_entities_created_at ON entities(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_documents_created_at ON documents(created_at)",
)

_COMMON_V4_DOWN = (
    "DROP INDEX IF EXISTS idx_documents_created_at",
    "DROP INDEX IF EXISTS idx_entities_created_at",
    "DROP INDEX IF EXISTS idx_chunk_metadata_composite",
    "DROP INDEX IF EXISTS idx_relationships_composite",
)

_POSTGRESQL_V4_PARTIAL_UP = (
    """
    CREATE INDEX IF NOT EXISTS idx_chunk_metadata_document_chunks
    ON chunk_metadata(document_id) WHERE chunk_type = 'document'
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chunk_metadata_entity_chunks
    ON chunk_metadata(entity_id) WHERE chunk_type = 'entity'
    """,
)

_POSTGRESQL_V4_PARTIAL_DOWN = (
    "DROP INDEX IF EXISTS idx_chunk_metadata_entity_chunks",
    "DROP INDEX IF EXISTS idx_chunk_metadata_document_chunks",
)


SCHEMA_V1 = Migration(
    version=1,
    description="Knowledge graph schema: entities, relationships, documents, chunks, embeddings",
    procedures={
        BackendKind.SQLITE: BackendProcedure(
            apply=sql_procedure(*_SQLITE_V1_UP),
            revert=sql_procedure(*_SQLITE_V1_DOWN),
        ),
        BackendKind.POSTGRESQL: BackendProcedure(
            apply=sql_procedure(*_POSTGRESQL_V1_UP),
            revert=sql_procedure(*_POSTGRESQL_V1_DOWN),
        ),
    },
)

LEDGER_V2 = Migration(
    version=2,
    description="Create schema migrations tracking table",
    common=BackendProcedure(
        apply=sql_procedure(CREATE_LEDGER_SQL),
        # the ledger must outlive its own rollback row
        revert=skip_procedure("schema_migrations is kept; the version ledger owns it"),
    ),
)

SEARCH_V3 = Migration(
    version=3,
    description="Enhanced search features and performance optimizations",
    procedures={
        BackendKind.SQLITE: BackendProcedure(
            apply=sql_procedure(*_SQLITE_V3_UP),
            revert=sql_procedure(*_SQLITE_V3_DOWN),
        ),
        BackendKind.POSTGRESQL: BackendProcedure(
            apply=sql_procedure(*_POSTGRESQL_V3_UP),
            revert=sql_procedure(*_POSTGRESQL_V3_DOWN),
        ),
    },
)

INDEXES_V4 = Migration(
    version=4,
    description="Performance optimizations and additional indexes",
    procedures={
        BackendKind.SQLITE: BackendProcedure(
            apply=sql_procedure(*_COMMON_V4_UP),
            revert=sql_procedure(*_COMMON_V4_DOWN),
        ),
        BackendKind.POSTGRESQL: BackendProcedure(
            apply=sql_procedure(*_COMMON_V4_UP, *_POSTGRESQL_V4_PARTIAL_UP),
            revert=sql_procedure(*_POSTGRESQL_V4_PARTIAL_DOWN, *_COMMON_V4_DOWN),
        ),
    },
)

STANDARD_MIGRATIONS: tuple[Migration, ...] = (SCHEMA_V1, LEDGER_V2, SEARCH_V3, INDEXES_V4)


def default_registry() -> MigrationRegistry:
    """A fresh registry holding the standard catalog."""
    return MigrationRegistry(STANDARD_MIGRATIONS)


__all__ = [
    "SCHEMA_V1",
    "LEDGER_V2",
    "SEARCH_V3",
    "INDEXES_V4",
    "STANDARD_MIGRATIONS",
    "default_registry",
]
