"""
Search result and option types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..backends.base import SearchFilters


class MatchType(str, Enum):
    """Which retrieval path produced a result."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


@dataclass
class SearchResult:
    """A ranked hit. Holds the entry id only; callers fetch the entry."""

    entry_id: str
    similarity: float  # Raw cosine similarity, 0 for keyword-only hits
    score: float  # Combined ranking score
    rank: int  # 1-based position
    match_type: MatchType


@dataclass
class HybridSearchOptions:
    """
    Options for hybrid search.

    Weights are normalized to sum to 1 before use. The similarity threshold
    applies to raw cosine similarity, before the recency boost.
    """

    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    recency_boost_factor: float = 0.3
    similarity_threshold: float = 0.65
    filters: SearchFilters | None = None

    def __post_init__(self) -> None:
        if self.semantic_weight < 0 or self.keyword_weight < 0:
            raise ValueError("Search weights must be non-negative")
        if self.semantic_weight + self.keyword_weight <= 0:
            raise ValueError("Search weights must not both be zero")

    @property
    def normalized_weights(self) -> tuple[float, float]:
        """(semantic, keyword) weights scaled to sum to 1."""
        total = self.semantic_weight + self.keyword_weight
        return self.semantic_weight / total, self.keyword_weight / total
