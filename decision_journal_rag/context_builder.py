"""
Prompt context from retrieved journal entries.

Turns search results into the text block injected into a chat system prompt,
so the assistant can refer to similar past decisions.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .backends.base import JournalEntry, RecordStore, SearchFilters
from .projection import truncate_text
from .search.hybrid import HybridSearchEngine
from .search.types import HybridSearchOptions

logger = logging.getLogger(__name__)

BANNER = "=" * 60
OUTCOME_PREVIEW_CHARS = 150
LESSON_PREVIEW_CHARS = 100
SUMMARY_OUTCOME_CHARS = 100
MAX_TAGS_SHOWN = 3

# Chat retrieval is slightly more permissive than the search default
CHAT_SIMILARITY_THRESHOLD = 0.6


@dataclass
class SimilarEntry:
    """An entry selected for context, with its similarity (0 for fallback picks)."""

    entry: JournalEntry
    similarity: float
    snippet: str = ""


@dataclass
class RAGContext:
    """Retrieved context for one chat turn."""

    query: str
    similar_entries: list[SimilarEntry] = field(default_factory=list)
    total_retrieved: int = 0
    retrieval_time_ms: float = 0.0

    def to_prompt(self, now: datetime | None = None) -> str:
        return build_rag_context(self.similar_entries, now=now)


def format_relative_date(created_at: datetime, now: datetime | None = None) -> str:
    """Human-friendly age: today, yesterday, N days/weeks/months/years ago."""
    now = now or datetime.now(UTC)
    days = max(0, int((now - created_at).total_seconds() // 86400))

    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return f"{days // 7} weeks ago"
    if days < 365:
        return f"{days // 30} months ago"
    return f"{days // 365} years ago"


def build_entry_summary(entry: JournalEntry) -> str:
    """One-line summary of an entry: problem plus outcome or confidence."""
    parts: list[str] = []

    if entry.problem_statement:
        parts.append(f"Problem: {entry.problem_statement}")

    if entry.actual_outcome:
        parts.append(f"Outcome: {truncate_text(entry.actual_outcome, SUMMARY_OUTCOME_CHARS)}")
        if entry.outcome_rating is not None:
            parts.append(f"(rated {entry.outcome_rating}/10)")
    elif entry.confidence_level is not None:
        parts.append(f"(Confidence: {entry.confidence_level}/10)")

    return " ".join(parts)


def build_rag_context(similar_entries: list[SimilarEntry], now: datetime | None = None) -> str:
    """
    Render retrieved entries as a system-prompt block.

    Similarity is shown only for real semantic matches (> 0). Reviewed
    entries show their outcome and rating, others their confidence.

    Returns:
        The block, or "" when there is nothing to show
    """
    if not similar_entries:
        return ""

    parts = [
        BANNER,
        "RELEVANT PAST DECISIONS",
        BANNER,
        f"\nI found {len(similar_entries)} similar decisions from your history:\n",
    ]

    for index, item in enumerate(similar_entries, start=1):
        entry = item.entry
        relative_date = format_relative_date(entry.created_at, now)

        parts.append(f"\n{index}. {entry.problem_statement or 'Untitled'}")

        if item.similarity > 0:
            parts.append(f"   ({round(item.similarity * 100)}% similar, {relative_date})")
        else:
            parts.append(f"   ({relative_date})")

        if entry.actual_outcome:
            parts.append(
                f"   Outcome: {truncate_text(entry.actual_outcome, OUTCOME_PREVIEW_CHARS)}"
            )
            if entry.outcome_rating is not None:
                parts.append(f"   Rating: {entry.outcome_rating}/10")
        elif entry.confidence_level is not None:
            parts.append(f"   Confidence: {entry.confidence_level}/10")

        if entry.lessons_learned:
            parts.append(
                f"   Lesson: {truncate_text(entry.lessons_learned, LESSON_PREVIEW_CHARS)}"
            )

        if entry.tags:
            parts.append(f"   Tags: {', '.join(entry.tags[:MAX_TAGS_SHOWN])}")

    parts.append("\n" + BANNER)
    parts.append("Use these past decisions as context when relevant to the current conversation.")
    parts.append(BANNER)

    return "\n".join(parts)


def create_rag_context(
    query: str,
    similar_entries: list[SimilarEntry],
    retrieval_time_ms: float,
) -> RAGContext:
    """Package retrieved entries, filling in summary snippets."""
    return RAGContext(
        query=query,
        similar_entries=[
            SimilarEntry(
                entry=item.entry,
                similarity=item.similarity,
                snippet=item.snippet or build_entry_summary(item.entry),
            )
            for item in similar_entries
        ],
        total_retrieved=len(similar_entries),
        retrieval_time_ms=retrieval_time_ms,
    )


async def retrieve_context(
    engine: HybridSearchEngine,
    record_store: RecordStore,
    query: str,
    top_k: int = 5,
    similarity_threshold: float = CHAT_SIMILARITY_THRESHOLD,
) -> RAGContext:
    """
    Retrieve context for a chat message.

    Searches non-archived entries. When nothing matches, falls back to the
    most recent non-archived entries with similarity 0.

    Raises:
        SearchError: If the query cannot be embedded
    """
    start = time.perf_counter()
    active = SearchFilters(is_archived=False)

    results = await engine.search(
        query,
        top_k=top_k,
        options=HybridSearchOptions(similarity_threshold=similarity_threshold, filters=active),
    )

    similar: list[SimilarEntry] = []
    if results:
        for result in results:
            entry = await record_store.get_entry(result.entry_id)
            if entry is not None:
                similar.append(SimilarEntry(entry=entry, similarity=result.similarity))
    else:
        logger.info("No semantic matches found, using recency fallback")
        recent = await record_store.get_entries(active)
        recent.sort(key=lambda e: e.created_at, reverse=True)
        similar = [SimilarEntry(entry=entry, similarity=0.0) for entry in recent[:top_k]]

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"Retrieved {len(similar)} entries for context in {elapsed_ms:.0f}ms")
    return create_rag_context(query, similar, elapsed_ms)
