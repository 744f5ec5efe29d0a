"""
Embedding index maintenance.

Provides:
- AutoEmbeddingService: generate on save, retry queue, background worker
- RetryQueue with the fixed backoff table
- One-shot backfill for existing journals
"""

from .auto_embedding import AutoEmbeddingConfig, AutoEmbeddingService, EmbeddingMetrics
from .backfill import BackfillResult, backfill_embeddings, is_backfill_needed
from .queue import MAX_RETRY_COUNT, RETRY_DELAYS, QueuedRetry, RetryQueue

__all__ = [
    "AutoEmbeddingConfig",
    "AutoEmbeddingService",
    "EmbeddingMetrics",
    "BackfillResult",
    "backfill_embeddings",
    "is_backfill_needed",
    "MAX_RETRY_COUNT",
    "RETRY_DELAYS",
    "QueuedRetry",
    "RetryQueue",
]
