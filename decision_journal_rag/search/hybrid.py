"""
Hybrid semantic + keyword search over journal entries.

Pipeline:
    1. Load entries and vectors, apply structured filters
    2. Embed the query
    3. Semantic pass: cosine similarity, recency boost, raw-similarity threshold
    4. Keyword pass: full-text index membership
    5. Weighted combination, re-rank, truncate to top_k

Vector search is a brute-force scan over every stored vector, which is fine
at personal-journal scale.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from ..backends.base import (
    EmbeddingStore,
    EmbeddingVector,
    JournalEntry,
    KeywordIndex,
    RecordStore,
)
from ..embeddings.base import EmbeddingProvider
from ..exceptions import SearchError
from .similarity import apply_recency_boost, cosine_similarity
from .types import HybridSearchOptions, MatchType, SearchResult

logger = logging.getLogger(__name__)

# Keyword-only hits score at half the keyword weight
KEYWORD_ONLY_SCORE_FACTOR = 0.5


def _assign_ranks(results: list[SearchResult]) -> list[SearchResult]:
    """Sort by score descending and number ranks from 1."""
    results.sort(key=lambda r: r.score, reverse=True)
    for index, result in enumerate(results, start=1):
        result.rank = index
    return results


class HybridSearchEngine:
    """
    Ranks journal entries for a free-text query.

    Example:
        >>> engine = HybridSearchEngine(backend, backend, backend, OllamaEmbeddings())
        >>> results = await engine.search("should I switch teams", top_k=5)
        >>> [r.entry_id for r in results]
    """

    def __init__(
        self,
        record_store: RecordStore,
        embedding_store: EmbeddingStore,
        keyword_index: KeywordIndex,
        provider: EmbeddingProvider,
        clock: Callable[[], datetime] | None = None,
    ):
        self.record_store = record_store
        self.embedding_store = embedding_store
        self.keyword_index = keyword_index
        self.provider = provider
        self._clock = clock or (lambda: datetime.now(UTC))

    async def search(
        self,
        query: str,
        top_k: int = 5,
        options: HybridSearchOptions | None = None,
    ) -> list[SearchResult]:
        """
        Search for entries similar to the query.

        Args:
            query: Free-text query (usually the user's chat message)
            top_k: Maximum number of results
            options: Weights, threshold, recency boost and filters

        Returns:
            Up to top_k results ranked by combined score

        Raises:
            SearchError: If the query cannot be embedded
            DimensionMismatchError: If stored vectors came from another model
        """
        options = options or HybridSearchOptions()
        start = time.perf_counter()

        entries = await self.record_store.get_entries()
        embeddings = await self.embedding_store.get_all_embeddings()

        if not embeddings:
            logger.warning("No embeddings available for search")
            return []

        if options.filters is not None:
            entries = [entry for entry in entries if options.filters.matches(entry)]
        entry_map = {entry.id: entry for entry in entries}

        candidates = [emb for emb in embeddings if emb.entry_id in entry_map]
        if not candidates:
            logger.warning("No entries match the filters")
            return []

        try:
            query_vector = await self.provider.embed_text(query)
        except Exception as e:
            raise SearchError(query, e) from e

        semantic = self._semantic_pass(query_vector, candidates, entry_map, options, top_k * 2)
        keyword_ids = await self._keyword_pass(query, top_k * 2, entry_map)

        combined = self._combine(semantic, keyword_ids, options)
        results = combined[:top_k]

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Hybrid search completed in {elapsed_ms:.0f}ms ({len(results)} results)")
        return results

    def _semantic_pass(
        self,
        query_vector,
        candidates: list[EmbeddingVector],
        entry_map: dict[str, JournalEntry],
        options: HybridSearchOptions,
        limit: int,
    ) -> list[SearchResult]:
        now = self._clock()
        results: list[SearchResult] = []

        for emb in candidates:
            similarity = cosine_similarity(query_vector, emb.vector, entry_id=emb.entry_id)
            if similarity < options.similarity_threshold:
                continue

            score = apply_recency_boost(
                similarity,
                entry_map[emb.entry_id].created_at,
                now,
                options.recency_boost_factor,
            )
            results.append(
                SearchResult(
                    entry_id=emb.entry_id,
                    similarity=similarity,
                    score=score,
                    rank=0,
                    match_type=MatchType.SEMANTIC,
                )
            )

        return _assign_ranks(results)[:limit]

    async def _keyword_pass(
        self, query: str, limit: int, entry_map: dict[str, JournalEntry]
    ) -> list[str]:
        """Keyword index hits restricted to the filtered entries, in index order."""
        try:
            ids = await self.keyword_index.search_keyword(query, limit=limit)
        except Exception as e:
            logger.warning(f"Keyword search failed, falling back to semantic only: {e}")
            return []

        return list(dict.fromkeys(entry_id for entry_id in ids[:limit] if entry_id in entry_map))

    @staticmethod
    def _combine(
        semantic: list[SearchResult],
        keyword_ids: list[str],
        options: HybridSearchOptions,
    ) -> list[SearchResult]:
        semantic_weight, keyword_weight = options.normalized_weights
        keyword_set = set(keyword_ids)
        combined: dict[str, SearchResult] = {}

        for result in semantic:
            has_keyword = result.entry_id in keyword_set
            combined[result.entry_id] = SearchResult(
                entry_id=result.entry_id,
                similarity=result.similarity,
                score=result.score * semantic_weight + (keyword_weight if has_keyword else 0.0),
                rank=0,
                match_type=MatchType.HYBRID if has_keyword else MatchType.SEMANTIC,
            )

        # Index order survives the stable sort among equal keyword-only scores
        for entry_id in keyword_ids:
            if entry_id not in combined:
                combined[entry_id] = SearchResult(
                    entry_id=entry_id,
                    similarity=0.0,
                    score=keyword_weight * KEYWORD_ONLY_SCORE_FACTOR,
                    rank=0,
                    match_type=MatchType.KEYWORD,
                )

        return _assign_ranks(list(combined.values()))
