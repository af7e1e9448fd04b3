"""
Backfill module - repair missing summary embeddings and chunk sets.
"""

from semantic_retrieval.backfill.reconciler import (
    BackfillReconciler,
    RetryPolicy,
    clamp_batch_size,
)

__all__ = [
    "BackfillReconciler",
    "RetryPolicy",
    "clamp_batch_size",
]
