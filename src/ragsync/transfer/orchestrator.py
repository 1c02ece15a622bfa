"""
Transfer orchestrator.

Runs a catalog of transfer operations in order and compares backend
statistics afterwards. A run never stops early: validation failures and
exceptions from one operation become failed results and the next operation
still runs.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable, Sequence

from ragsync.observability import (
    ATTR_OPERATION_COUNT,
    ATTR_OPERATION_NAME,
    ATTR_RECORDS_TRANSFERRED,
    ATTR_SOURCE_BACKEND,
    ATTR_TARGET_BACKEND,
    Tracer,
    create_tracer,
)
from ragsync.storage.interface import StorageAdapter
from ragsync.storage.models import KnowledgeGraphStats
from ragsync.transfer.models import ConsistencyReport, TransferResult, ValidationResult
from ragsync.transfer.operations import (
    TransferOperation,
    standard_catalog,
    validate_adapters_connected,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, TransferResult], None]
"""Called as ``callback(completed, total, result)`` after each operation."""


class TransferOrchestrator:
    """
    Runs transfer catalogs and validates consistency between backends.

    Example:
        >>> orchestrator = TransferOrchestrator()
        >>> results = await orchestrator.transfer(sqlite_adapter, pg_adapter)
        >>> [r.records_transferred for r in results]
        [3, 2, 1, 3]
        >>> report = await orchestrator.validate_consistency(sqlite_adapter, pg_adapter)
        >>> report.valid
        True
    """

    def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def run(
        self,
        catalog: Sequence[TransferOperation],
        progress_callback: ProgressCallback | None = None,
    ) -> list[TransferResult]:
        """
        Validate and execute each operation in catalog order.

        Args:
            catalog: Operations to run
            progress_callback: Optional callback invoked after each operation

        Returns:
            One result per operation, in catalog order
        """
        results: list[TransferResult] = []
        total = len(catalog)

        with self._tracer.span(
            "ragsync.transfer.run",
            {ATTR_OPERATION_COUNT: total},
        ):
            for index, operation in enumerate(catalog, start=1):
                result = await self._run_one(operation)
                results.append(result)
                if progress_callback is not None:
                    try:
                        progress_callback(index, total, result)
                    except Exception as e:
                        logger.warning("Progress callback failed: %s", e)

        failed = [r.operation_name for r in results if not r.success]
        if failed:
            logger.warning("Transfer finished with failed operations: %s", ", ".join(failed))
        else:
            logger.info(
                "Transfer finished: %d records across %d operations",
                sum(r.records_transferred for r in results),
                total,
            )
        return results

    async def _run_one(self, operation: TransferOperation) -> TransferResult:
        started = time.perf_counter()
        with self._tracer.span(
            "ragsync.transfer.operation",
            {
                ATTR_OPERATION_NAME: operation.name,
                ATTR_SOURCE_BACKEND: operation.source.describe(),
                ATTR_TARGET_BACKEND: operation.target.describe(),
            },
        ) as span:
            try:
                validation = await operation.validate()
            except Exception as e:
                validation = ValidationResult(valid=False, errors=(f"Validation error: {e}",))

            for warning in validation.warnings:
                logger.warning("%s: %s", operation.name, warning)

            if not validation.valid:
                logger.error(
                    "Validation failed for %s: %s", operation.name, "; ".join(validation.errors)
                )
                return TransferResult.failed(
                    operation.name,
                    validation.errors,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    details={"validation": validation.to_dict()},
                )

            logger.info("Running transfer operation %s: %s", operation.name, operation.description)
            try:
                result = await operation.execute()
            except Exception as e:
                logger.error("Transfer operation %s failed: %s", operation.name, e, exc_info=True)
                return TransferResult.failed(
                    operation.name,
                    (f"{type(e).__name__}: {e}",),
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    details={"exception": str(e)},
                )

            if span is not None:
                span.set_attribute(ATTR_RECORDS_TRANSFERRED, result.records_transferred)
            return dataclasses.replace(
                result, duration_ms=(time.perf_counter() - started) * 1000.0
            )

    async def transfer(
        self,
        source: StorageAdapter,
        target: StorageAdapter,
        progress_callback: ProgressCallback | None = None,
    ) -> list[TransferResult]:
        """Run the standard catalog (nodes, edges, documents, vectors)."""
        logger.info("Transferring %s -> %s", source.describe(), target.describe())
        return await self.run(standard_catalog(source, target), progress_callback)

    async def validate_consistency(
        self, source: StorageAdapter, target: StorageAdapter
    ) -> ConsistencyReport:
        """
        Compare record counts between source and target.

        Count mismatches are reported as warnings. The report is invalid when
        either side is unreachable or the target has no entities while the
        source has relationships.
        """
        errors = validate_adapters_connected(source, target)
        if errors:
            return ConsistencyReport(valid=False, errors=tuple(errors))

        source_stats: KnowledgeGraphStats | None = None
        target_stats: KnowledgeGraphStats | None = None
        try:
            source_stats = await source.get_knowledge_graph_stats()
        except Exception as e:
            errors.append(f"Failed to read source statistics: {e}")
        try:
            target_stats = await target.get_knowledge_graph_stats()
        except Exception as e:
            errors.append(f"Failed to read target statistics: {e}")

        warnings: list[str] = []
        if source_stats is not None and target_stats is not None:
            comparisons = (
                ("Entity", source_stats.entities.total, target_stats.entities.total),
                (
                    "Relationship",
                    source_stats.relationships.total,
                    target_stats.relationships.total,
                ),
                ("Document", source_stats.documents.total, target_stats.documents.total),
                ("Chunk", source_stats.chunks.total, target_stats.chunks.total),
            )
            for label, source_count, target_count in comparisons:
                if source_count != target_count:
                    warnings.append(
                        f"{label} count mismatch: source={source_count}, target={target_count}"
                    )

            if target_stats.entities.total == 0 and source_stats.relationships.total > 0:
                errors.append(
                    f"Target has no entities but source has "
                    f"{source_stats.relationships.total} relationships"
                )

        for warning in warnings:
            logger.warning("Consistency: %s", warning)
        return ConsistencyReport(
            valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            source_stats=source_stats,
            target_stats=target_stats,
        )


__all__ = ["TransferOrchestrator", "ProgressCallback"]
