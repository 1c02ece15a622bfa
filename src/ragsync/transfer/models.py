"""
Result and report types for transfer operations.

Expected partial failures are carried as values on these types rather than
raised, so an orchestrated run always produces one result per operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ragsync.storage.models import KnowledgeGraphStats


@dataclass(frozen=True)
class TransferResult:
    """
    Outcome of one transfer operation.

    Attributes:
        operation_name: Name of the operation that produced this result
        success: True when every record was transferred
        records_transferred: Number of records written to the target
        errors: Human-readable error messages
        duration_ms: Wall time spent validating and executing
        details: Operation-specific counters (per-type breakdowns, mode, ...)
    """

    operation_name: str
    success: bool
    records_transferred: int = 0
    errors: tuple[str, ...] = ()
    duration_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(
        cls,
        operation_name: str,
        errors: tuple[str, ...] | list[str],
        duration_ms: float = 0.0,
        details: dict[str, Any] | None = None,
    ) -> TransferResult:
        return cls(
            operation_name=operation_name,
            success=False,
            records_transferred=0,
            errors=tuple(errors),
            duration_ms=duration_ms,
            details=details or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "operationName": self.operation_name,
            "success": self.success,
            "recordsTransferred": self.records_transferred,
            "errors": list(self.errors),
            "durationMs": round(self.duration_ms, 3),
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class ValidationResult:
    """Pre-flight check of a transfer operation. Warnings never block."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class ConsistencyReport:
    """
    Comparison of source and target statistics after a transfer.

    Count mismatches are warnings; a report is invalid only when a structural
    problem was found or a side's statistics could not be read.
    """

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    source_stats: KnowledgeGraphStats | None = None
    target_stats: KnowledgeGraphStats | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "sourceStats": self.source_stats.to_dict() if self.source_stats else None,
            "targetStats": self.target_stats.to_dict() if self.target_stats else None,
        }


__all__ = ["TransferResult", "ValidationResult", "ConsistencyReport"]
