"""
Reconciliation of single volumes and batches of volumes.
"""

from afsplacement.reconcile.batch import (
    BatchItem,
    BatchReconciler,
    BatchSummary,
    parse_batch,
)
from afsplacement.reconcile.service import (
    ReconcileOptions,
    ReconcileResult,
    Reconciler,
)

__all__ = [
    # Single volume
    "Reconciler",
    "ReconcileOptions",
    "ReconcileResult",
    # Batch
    "BatchReconciler",
    "BatchItem",
    "BatchSummary",
    "parse_batch",
]
