"""
Record models moved between storage backends.

These are frozen pydantic models so that records read from one adapter can be
handed to another without defensive copying. Statistics serialize with
camelCase keys (``byType``) to match the report shapes consumed by tooling.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Entity(BaseModel):
    """
    A knowledge-graph node.

    Entities are keyed by ``name``; writing an entity whose name already exists
    replaces its type and merges its observations.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    entity_type: str = "CONCEPT"
    observations: list[str] = Field(default_factory=list)


class Relation(BaseModel):
    """A directed, typed edge between two entities referenced by name."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    relation_type: str = Field(min_length=1)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source, self.target, self.relation_type)

    @property
    def row_id(self) -> str:
        """Deterministic primary key so repeated writes hit the same row."""
        return f"{self.source}|{self.relation_type}|{self.target}"


class KnowledgeGraph(BaseModel):
    model_config = ConfigDict(frozen=True)

    entities: list[Entity] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)


class DocumentInfo(BaseModel):
    """Listing entry for a stored document (content is fetched separately)."""

    model_config = ConfigDict(frozen=True)

    id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class EntityEmbedding(BaseModel):
    """
    Vector embedding of an entity.

    Attributes:
        entity_name: Name of the embedded entity
        vector: Embedding components
        text: Text the embedding was computed from
    """

    model_config = ConfigDict(frozen=True)

    entity_name: str
    vector: list[float]
    text: str = ""


class _StatsModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class TypeBreakdown(_StatsModel):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)


class DocumentCounts(_StatsModel):
    total: int = 0


class ChunkCounts(_StatsModel):
    total: int = 0
    embedded: int = 0


class KnowledgeGraphStats(_StatsModel):
    """
    Aggregate counts for a backend.

    Example:
        >>> stats = KnowledgeGraphStats(entities=TypeBreakdown(total=3, by_type={"PERSON": 3}))
        >>> stats.to_dict()["entities"]
        {'total': 3, 'byType': {'PERSON': 3}}
    """

    entities: TypeBreakdown = Field(default_factory=TypeBreakdown)
    relationships: TypeBreakdown = Field(default_factory=TypeBreakdown)
    documents: DocumentCounts = Field(default_factory=DocumentCounts)
    chunks: ChunkCounts = Field(default_factory=ChunkCounts)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def merge_observations(existing: Sequence[str], incoming: Sequence[str]) -> list[str]:
    """Existing observations first, then new ones not already present."""
    merged = list(existing)
    seen = set(merged)
    for observation in incoming:
        if observation not in seen:
            merged.append(observation)
            seen.add(observation)
    return merged


__all__ = [
    "Entity",
    "Relation",
    "KnowledgeGraph",
    "DocumentInfo",
    "EntityEmbedding",
    "TypeBreakdown",
    "DocumentCounts",
    "ChunkCounts",
    "KnowledgeGraphStats",
    "merge_observations",
]
