"""Vector encodings and conversion between backends."""

from __future__ import annotations

import struct
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum


class VectorKind(str, Enum):
    """Physical representation of stored embeddings."""

    FLOAT32 = "float32"  # packed little-endian float32 BLOB (SQLite)
    VECTOR = "vector"  # pgvector vector(n)
    HALFVEC = "halfvec"  # pgvector halfvec(n), 16-bit components


@dataclass(frozen=True)
class VectorEncoding:
    kind: VectorKind
    dimensions: int

    def __str__(self) -> str:
        return f"{self.kind.value}({self.dimensions})"


# Pairs that can be copied without re-embedding. Narrowing to halfvec loses
# precision, so those pairs are regenerated in the target instead.
_COMPATIBLE_KINDS: frozenset[tuple[VectorKind, VectorKind]] = frozenset(
    {
        (VectorKind.FLOAT32, VectorKind.FLOAT32),
        (VectorKind.FLOAT32, VectorKind.VECTOR),
        (VectorKind.VECTOR, VectorKind.FLOAT32),
        (VectorKind.VECTOR, VectorKind.VECTOR),
        (VectorKind.HALFVEC, VectorKind.HALFVEC),
        (VectorKind.HALFVEC, VectorKind.VECTOR),
        (VectorKind.HALFVEC, VectorKind.FLOAT32),
    }
)


def is_compatible(source: VectorEncoding, target: VectorEncoding) -> bool:
    """True when vectors stored as ``source`` can be copied verbatim into ``target``."""
    return (
        source.dimensions == target.dimensions
        and (source.kind, target.kind) in _COMPATIBLE_KINDS
    )


def pack_float32(vector: Sequence[float]) -> bytes:
    return struct.pack(f"<{len(vector)}f", *vector)


def unpack_float32(blob: bytes) -> list[float]:
    count = len(blob) // 4
    return list(struct.unpack(f"<{count}f", blob[: count * 4]))


def to_pgvector_literal(vector: Sequence[float]) -> str:
    """Text form accepted by ``'...'::vector`` and ``'...'::halfvec`` casts."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def parse_pgvector_literal(text: str) -> list[float]:
    body = text.strip().lstrip("[").rstrip("]")
    if not body:
        return []
    return [float(part) for part in body.split(",")]


__all__ = [
    "VectorKind",
    "VectorEncoding",
    "is_compatible",
    "pack_float32",
    "unpack_float32",
    "to_pgvector_literal",
    "parse_pgvector_literal",
]
