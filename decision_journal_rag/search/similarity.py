"""
Vector similarity and ranking adjustments.

Recency boost formula:
    score = similarity × (1 + boost_factor × exp(-days_since / 90))

With the default boost factor of 0.3:
    - Recent entries (< 30 days): ~20-30% boost
    - Medium age (30-90 days): ~10-20% boost
    - Old entries (> 180 days): minimal boost
"""

from __future__ import annotations

import math
from datetime import datetime

import numpy as np
from numpy.typing import NDArray

from ..exceptions import DimensionMismatchError

RECENCY_DECAY_DAYS = 90.0
DEFAULT_RECENCY_BOOST = 0.3


def cosine_similarity(a: NDArray, b: NDArray, entry_id: str | None = None) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        a: First vector (usually the query)
        b: Second vector
        entry_id: Entry the second vector belongs to, for error context

    Returns:
        Similarity score where 1 is identical direction

    Raises:
        DimensionMismatchError: If the vectors differ in length

    Note:
        Returns 0.0 for zero vectors to avoid division by zero
    """
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(int(a.shape[0]), int(b.shape[0]), entry_id)

    a64 = a.astype(np.float64, copy=False)
    b64 = b.astype(np.float64, copy=False)

    norm_a = np.linalg.norm(a64)
    norm_b = np.linalg.norm(b64)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a64, b64) / (norm_a * norm_b))


def days_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 86400


def apply_recency_boost(
    similarity: float,
    created_at: datetime,
    now: datetime,
    boost_factor: float = DEFAULT_RECENCY_BOOST,
) -> float:
    """Scale a similarity by an exponentially decaying recency bonus."""
    days_since = days_between(created_at, now)
    boost = 1.0 + boost_factor * math.exp(-days_since / RECENCY_DECAY_DAYS)
    return similarity * boost
