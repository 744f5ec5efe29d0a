"""
Abstract base classes for journal storage collaborators.

The retrieval subsystem never owns journal entries. It talks to three
collaborators through these contracts:

- RecordStore: the primary store of journal entries
- EmbeddingStore: one vector per entry, keyed by entry id
- KeywordIndex: full-text lookup returning entry ids

SQLiteBackend implements all three; tests and embedders may supply their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import numpy as np
from numpy.typing import NDArray


@dataclass
class JournalEntry:
    """A single decision recorded in the journal."""

    id: str
    problem_statement: str
    situation: str | None = None
    actual_outcome: str | None = None  # Resolution text, set on review
    lessons_learned: str | None = None
    tags: list[str] = field(default_factory=list)
    confidence_level: int | None = None  # 1-10
    outcome_rating: int | None = None  # 1-10
    is_archived: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def has_outcome(self) -> bool:
        """Whether the decision has been reviewed with an outcome."""
        return bool(self.actual_outcome)


@dataclass
class EmbeddingVector:
    """Stored embedding for one journal entry."""

    entry_id: str
    embedding_text: str  # The text that was embedded
    vector: NDArray[np.float32]
    model_name: str  # e.g. "nomic-embed-text"
    version: int  # Projection template version, for staleness detection
    created_at: datetime
    updated_at: datetime

    @property
    def dimensions(self) -> int:
        return int(self.vector.shape[0])


@dataclass
class EmbeddingStats:
    """Statistics about the embedding index."""

    total_embeddings: int
    oldest_embedding: datetime | None
    newest_embedding: datetime | None
    model_versions: dict[str, int]  # model name -> count
    average_embedding_age_days: float


@dataclass
class SearchFilters:
    """Structured filters applied to entries before scoring.

    Unset fields do not filter. Ranges are inclusive.
    """

    tags: list[str] = field(default_factory=list)  # Match any
    is_archived: bool | None = None
    has_outcome: bool | None = None
    min_confidence: int | None = None
    max_confidence: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    def __post_init__(self) -> None:
        # Naive bounds are read as UTC so they compare with entry timestamps
        if self.start_date is not None and self.start_date.tzinfo is None:
            self.start_date = self.start_date.replace(tzinfo=UTC)
        if self.end_date is not None and self.end_date.tzinfo is None:
            self.end_date = self.end_date.replace(tzinfo=UTC)

    def matches(self, entry: JournalEntry) -> bool:
        """Check whether an entry survives every set filter."""
        if self.tags and not any(tag in self.tags for tag in entry.tags):
            return False

        if self.is_archived is not None and entry.is_archived != self.is_archived:
            return False

        if self.has_outcome is not None and entry.has_outcome != self.has_outcome:
            return False

        # Entries without a confidence level fail any confidence bound
        if self.min_confidence is not None:
            if entry.confidence_level is None or entry.confidence_level < self.min_confidence:
                return False
        if self.max_confidence is not None:
            if entry.confidence_level is None or entry.confidence_level > self.max_confidence:
                return False

        if self.start_date is not None and entry.created_at < self.start_date:
            return False
        if self.end_date is not None and entry.created_at > self.end_date:
            return False

        return True


class RecordStore(ABC):
    """Read access to journal entries."""

    @abstractmethod
    async def get_entry(self, entry_id: str) -> JournalEntry | None:
        """Get a journal entry by ID, or None if it does not exist."""
        pass

    @abstractmethod
    async def get_entries(self, filters: SearchFilters | None = None) -> list[JournalEntry]:
        """
        List journal entries.

        Args:
            filters: Optional structured filters

        Returns:
            Entries matching the filters, newest first
        """
        pass


class EmbeddingStore(ABC):
    """Keyed persistence of one embedding vector per entry."""

    @abstractmethod
    async def save_embedding(self, embedding: EmbeddingVector) -> None:
        """Save an embedding, overwriting any existing vector for the entry."""
        pass

    @abstractmethod
    async def get_embedding(self, entry_id: str) -> EmbeddingVector | None:
        """Get the embedding for an entry, or None."""
        pass

    @abstractmethod
    async def get_all_embeddings(self) -> list[EmbeddingVector]:
        """Get every stored embedding."""
        pass

    @abstractmethod
    async def delete_embedding(self, entry_id: str) -> None:
        """Delete the embedding for an entry (no-op if absent)."""
        pass

    async def find_stale(self, model_name: str, version: int) -> list[str]:
        """
        Find entries whose vector came from another model or template version.

        Args:
            model_name: Current embedding model
            version: Current projection template version

        Returns:
            Entry IDs with stale vectors
        """
        return [
            emb.entry_id
            for emb in await self.get_all_embeddings()
            if emb.model_name != model_name or emb.version != version
        ]

    async def get_embedding_stats(self, now: datetime | None = None) -> EmbeddingStats:
        """Summarize the embedding index."""
        embeddings = await self.get_all_embeddings()
        if not embeddings:
            return EmbeddingStats(
                total_embeddings=0,
                oldest_embedding=None,
                newest_embedding=None,
                model_versions={},
                average_embedding_age_days=0.0,
            )

        now = now or datetime.now(UTC)
        created = [emb.created_at for emb in embeddings]
        ages = [(now - ts).total_seconds() / 86400 for ts in created]

        return EmbeddingStats(
            total_embeddings=len(embeddings),
            oldest_embedding=min(created),
            newest_embedding=max(created),
            model_versions=dict(Counter(emb.model_name for emb in embeddings)),
            average_embedding_age_days=sum(ages) / len(ages),
        )


class KeywordIndex(ABC):
    """Full-text lookup over journal entries."""

    @abstractmethod
    async def search_keyword(self, query: str, limit: int = 20) -> list[str]:
        """
        Find entries matching the query text.

        Args:
            query: Free-text query
            limit: Maximum number of IDs

        Returns:
            Entry IDs in the index's own relevance order
        """
        pass


class JournalBackend(RecordStore, EmbeddingStore, KeywordIndex):
    """
    A single store implementing every collaborator contract.

    Adds the entry mutations the subsystem needs to be exercised end to end.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the backend (connections, schema, indexes)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass

    async def __aenter__(self) -> JournalBackend:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @abstractmethod
    async def upsert_entry(self, entry: JournalEntry) -> None:
        """Insert or update a journal entry."""
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry and its embedding. Returns True if it existed."""
        pass
