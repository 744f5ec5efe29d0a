"""
Search capabilities for the decision journal.

Provides:
- Cosine similarity and recency boost
- Hybrid search (semantic + keyword with weighted combination)
"""

from .hybrid import HybridSearchEngine
from .similarity import apply_recency_boost, cosine_similarity
from .types import HybridSearchOptions, MatchType, SearchResult

__all__ = [
    "HybridSearchEngine",
    "HybridSearchOptions",
    "MatchType",
    "SearchResult",
    "apply_recency_boost",
    "cosine_similarity",
]
