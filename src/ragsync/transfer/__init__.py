"""
Data transfer between storage backends.

Example:
    >>> from ragsync.transfer import TransferOrchestrator
    >>> results = await TransferOrchestrator().transfer(source, target)
"""

from ragsync.transfer.models import ConsistencyReport, TransferResult, ValidationResult
from ragsync.transfer.operations import (
    DocumentTransfer,
    EdgeTransfer,
    NodeTransfer,
    TransferKind,
    TransferOperation,
    VectorTransfer,
    standard_catalog,
    validate_adapters_connected,
)
from ragsync.transfer.orchestrator import ProgressCallback, TransferOrchestrator

__all__ = [
    "TransferResult",
    "ValidationResult",
    "ConsistencyReport",
    "TransferKind",
    "TransferOperation",
    "NodeTransfer",
    "EdgeTransfer",
    "DocumentTransfer",
    "VectorTransfer",
    "standard_catalog",
    "validate_adapters_connected",
    "TransferOrchestrator",
    "ProgressCallback",
]
