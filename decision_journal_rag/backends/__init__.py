"""
Storage collaborator abstraction layer.

Provides the record store, embedding store and keyword index contracts the
retrieval subsystem depends on, the shared data types, and a SQLite backend
implementing every contract.
"""

from .base import (
    EmbeddingStats,
    EmbeddingStore,
    EmbeddingVector,
    JournalBackend,
    JournalEntry,
    KeywordIndex,
    RecordStore,
    SearchFilters,
)
from .sqlite import SQLiteBackend, SQLiteConfig

__all__ = [
    # Data types
    "JournalEntry",
    "EmbeddingVector",
    "EmbeddingStats",
    "SearchFilters",
    # Contracts
    "RecordStore",
    "EmbeddingStore",
    "KeywordIndex",
    "JournalBackend",
    # Implementations
    "SQLiteBackend",
    "SQLiteConfig",
]
