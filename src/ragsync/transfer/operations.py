"""
Transfer operation catalog.

Each operation moves one record family from a source adapter to a target
adapter. Operations are plain dataclasses tagged with a ``TransferKind``;
they share the free function ``validate_adapters_connected`` instead of a
base class. All writes are upserts, so running the catalog again against the
same target does not duplicate records.

Standard order matters: edges reference nodes by name and are skipped by the
target when an endpoint is missing, so nodes always run first.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from ragsync.storage._vectors import is_compatible
from ragsync.storage.interface import StorageAdapter
from ragsync.storage.models import KnowledgeGraphStats
from ragsync.transfer.models import TransferResult, ValidationResult

logger = logging.getLogger(__name__)


class TransferKind(str, Enum):
    NODES = "nodes"
    EDGES = "edges"
    DOCUMENTS = "documents"
    VECTORS = "vectors"


def validate_adapters_connected(source: StorageAdapter, target: StorageAdapter) -> list[str]:
    """Return an error for each side that is not connected."""
    errors = []
    if not source.is_connected:
        errors.append(f"Source database is not connected ({source.describe()})")
    if not target.is_connected:
        errors.append(f"Target database is not connected ({target.describe()})")
    return errors


async def _read_stats(
    adapter: StorageAdapter, side: str, errors: list[str]
) -> KnowledgeGraphStats | None:
    try:
        return await adapter.get_knowledge_graph_stats()
    except Exception as e:
        errors.append(f"Failed to read {side} statistics: {e}")
        return None


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


@dataclass(frozen=True, eq=False)
class NodeTransfer:
    """Copy every entity, merging observations into existing target entities."""

    source: StorageAdapter
    target: StorageAdapter

    kind: ClassVar[TransferKind] = TransferKind.NODES
    name: ClassVar[str] = "entities"
    description: ClassVar[str] = "Transfer knowledge-graph entities"

    async def validate(self) -> ValidationResult:
        errors = validate_adapters_connected(self.source, self.target)
        if errors:
            return ValidationResult(valid=False, errors=tuple(errors))

        warnings: list[str] = []
        details: dict[str, int] = {}
        source_stats = await _read_stats(self.source, "source", errors)
        target_stats = await _read_stats(self.target, "target", errors)
        if source_stats is not None:
            details["source_entity_count"] = source_stats.entities.total
        if target_stats is not None:
            details["target_entity_count"] = target_stats.entities.total
            if target_stats.entities.total > 0:
                warnings.append(
                    f"Target database already contains {target_stats.entities.total} entities"
                )
        return ValidationResult(
            valid=not errors, errors=tuple(errors), warnings=tuple(warnings), details=details
        )

    async def execute(self) -> TransferResult:
        started = time.perf_counter()
        graph = await self.source.read_graph()
        if not graph.entities:
            return TransferResult(
                operation_name=self.name,
                success=True,
                duration_ms=_elapsed_ms(started),
                details={"total_entities": 0, "by_type": {}},
            )

        written = await self.target.create_entities(graph.entities)
        by_type = Counter(entity.entity_type for entity in graph.entities)
        logger.info("Transferred %d entities", written)
        return TransferResult(
            operation_name=self.name,
            success=True,
            records_transferred=written,
            duration_ms=_elapsed_ms(started),
            details={"total_entities": len(graph.entities), "by_type": dict(by_type)},
        )


@dataclass(frozen=True, eq=False)
class EdgeTransfer:
    """Copy every relation whose endpoints exist in the target."""

    source: StorageAdapter
    target: StorageAdapter

    kind: ClassVar[TransferKind] = TransferKind.EDGES
    name: ClassVar[str] = "relationships"
    description: ClassVar[str] = "Transfer knowledge-graph relationships"

    async def validate(self) -> ValidationResult:
        errors = validate_adapters_connected(self.source, self.target)
        if errors:
            return ValidationResult(valid=False, errors=tuple(errors))

        warnings: list[str] = []
        details: dict[str, int] = {}
        source_stats = await _read_stats(self.source, "source", errors)
        target_stats = await _read_stats(self.target, "target", errors)
        if source_stats is None or target_stats is None:
            return ValidationResult(valid=False, errors=tuple(errors), details=details)

        details["source_relationship_count"] = source_stats.relationships.total
        details["target_relationship_count"] = target_stats.relationships.total
        if source_stats.relationships.total == 0:
            return ValidationResult(valid=True, details=details)

        if target_stats.relationships.total > 0:
            warnings.append(
                f"Target database already contains "
                f"{target_stats.relationships.total} relationships"
            )
        if target_stats.entities.total == 0:
            errors.append("Target database contains no entities; transfer entities first")
        return ValidationResult(
            valid=not errors, errors=tuple(errors), warnings=tuple(warnings), details=details
        )

    async def execute(self) -> TransferResult:
        started = time.perf_counter()
        graph = await self.source.read_graph()
        if not graph.relations:
            return TransferResult(
                operation_name=self.name,
                success=True,
                duration_ms=_elapsed_ms(started),
                details={"total_relationships": 0, "by_type": {}, "skipped": 0},
            )

        written = await self.target.create_relations(graph.relations)
        skipped = len(graph.relations) - written
        if skipped:
            logger.warning("Skipped %d relationships with missing endpoints in target", skipped)
        by_type = Counter(relation.relation_type for relation in graph.relations)
        return TransferResult(
            operation_name=self.name,
            success=True,
            records_transferred=written,
            duration_ms=_elapsed_ms(started),
            details={
                "total_relationships": len(graph.relations),
                "by_type": dict(by_type),
                "skipped": skipped,
            },
        )


@dataclass(frozen=True, eq=False)
class DocumentTransfer:
    """
    Copy documents one at a time.

    A failure on one document is recorded and the rest still transfer; the
    result is successful only when every document was copied.
    """

    source: StorageAdapter
    target: StorageAdapter

    kind: ClassVar[TransferKind] = TransferKind.DOCUMENTS
    name: ClassVar[str] = "documents"
    description: ClassVar[str] = "Transfer stored documents"

    async def validate(self) -> ValidationResult:
        errors = validate_adapters_connected(self.source, self.target)
        if errors:
            return ValidationResult(valid=False, errors=tuple(errors))

        warnings: list[str] = []
        details: dict[str, int] = {}
        source_stats = await _read_stats(self.source, "source", errors)
        target_stats = await _read_stats(self.target, "target", errors)
        if source_stats is not None:
            details["source_document_count"] = source_stats.documents.total
        if target_stats is not None:
            details["target_document_count"] = target_stats.documents.total
            if target_stats.documents.total > 0:
                warnings.append(
                    f"Target database already contains {target_stats.documents.total} documents"
                )
        return ValidationResult(
            valid=not errors, errors=tuple(errors), warnings=tuple(warnings), details=details
        )

    async def execute(self) -> TransferResult:
        started = time.perf_counter()
        documents = await self.source.list_documents()
        errors: list[str] = []
        transferred = 0

        for info in documents:
            try:
                content = await self.source.get_document_content(info.id)
                if content is None:
                    errors.append(f"Document {info.id} has no content in source")
                    continue
                await self.target.store_document(info.id, content, info.metadata)
                transferred += 1
            except Exception as e:
                logger.warning("Failed to transfer document %s: %s", info.id, e)
                errors.append(f"Failed to transfer document {info.id}: {e}")

        return TransferResult(
            operation_name=self.name,
            success=not errors,
            records_transferred=transferred,
            errors=tuple(errors),
            duration_ms=_elapsed_ms(started),
            details={
                "total_documents": len(documents),
                "successful_transfers": transferred,
                "failed_transfers": len(documents) - transferred,
            },
        )


@dataclass(frozen=True, eq=False)
class VectorTransfer:
    """
    Move entity embeddings.

    When the source and target encodings are compatible and the source has
    embeddings, the raw vectors are copied. Otherwise the target regenerates
    embeddings for its entities with its own embedder.
    """

    source: StorageAdapter
    target: StorageAdapter

    kind: ClassVar[TransferKind] = TransferKind.VECTORS
    name: ClassVar[str] = "vectors"
    description: ClassVar[str] = "Transfer or regenerate entity embeddings"

    async def validate(self) -> ValidationResult:
        errors = validate_adapters_connected(self.source, self.target)
        if errors:
            return ValidationResult(valid=False, errors=tuple(errors))

        warnings: list[str] = []
        details: dict[str, object] = {
            "source_encoding": str(self.source.vector_encoding),
            "target_encoding": str(self.target.vector_encoding),
        }
        target_stats = await _read_stats(self.target, "target", errors)
        if target_stats is not None:
            details["target_entity_count"] = target_stats.entities.total
            if target_stats.entities.total == 0:
                warnings.append("Target database contains no entities to embed")
            if target_stats.chunks.embedded > 0:
                warnings.append(
                    f"Target database already contains {target_stats.chunks.embedded} "
                    f"embedded chunks"
                )
        if not is_compatible(self.source.vector_encoding, self.target.vector_encoding):
            warnings.append(
                f"Vector encodings differ ({self.source.vector_encoding} -> "
                f"{self.target.vector_encoding}); embeddings will be regenerated"
            )
        return ValidationResult(
            valid=not errors, errors=tuple(errors), warnings=tuple(warnings), details=details
        )

    async def execute(self) -> TransferResult:
        started = time.perf_counter()
        source_encoding = self.source.vector_encoding
        target_encoding = self.target.vector_encoding
        details: dict[str, object] = {
            "source_encoding": str(source_encoding),
            "target_encoding": str(target_encoding),
        }

        if is_compatible(source_encoding, target_encoding):
            embeddings = await self.source.export_entity_embeddings()
            if embeddings:
                written = await self.target.import_entity_embeddings(embeddings)
                details.update(
                    mode="copy", exported=len(embeddings), skipped=len(embeddings) - written
                )
                logger.info("Copied %d entity embeddings", written)
                return TransferResult(
                    operation_name=self.name,
                    success=True,
                    records_transferred=written,
                    duration_ms=_elapsed_ms(started),
                    details=details,
                )

        written = await self.target.embed_all_entities()
        details["mode"] = "regenerate"
        logger.info("Regenerated %d entity embeddings in target", written)
        return TransferResult(
            operation_name=self.name,
            success=True,
            records_transferred=written,
            duration_ms=_elapsed_ms(started),
            details=details,
        )


TransferOperation = NodeTransfer | EdgeTransfer | DocumentTransfer | VectorTransfer


def standard_catalog(source: StorageAdapter, target: StorageAdapter) -> list[TransferOperation]:
    """Nodes, edges, documents, vectors, in dependency order."""
    return [
        NodeTransfer(source, target),
        EdgeTransfer(source, target),
        DocumentTransfer(source, target),
        VectorTransfer(source, target),
    ]


__all__ = [
    "TransferKind",
    "TransferOperation",
    "NodeTransfer",
    "EdgeTransfer",
    "DocumentTransfer",
    "VectorTransfer",
    "validate_adapters_connected",
    "standard_catalog",
]
