"""
Decision Journal RAG

Retrieval-augmented context for a local-first decision journal.

Provides:
- Embedding generation against a local Ollama server
- Automatic background embedding with a retry queue
- Hybrid search (semantic + keyword + recency)
- Prompt context building for AI-assisted chat
- SQLite storage with FTS5 keyword index

Usage:

    >>> from decision_journal_rag import SQLiteBackend, OllamaEmbeddings
    >>> from decision_journal_rag import AutoEmbeddingService, HybridSearchEngine
    >>> embeddings = OllamaEmbeddings.from_env()
    >>> async with await SQLiteBackend.create() as backend:
    ...     service = AutoEmbeddingService(backend, backend, embeddings)
    ...     await service.scan_for_missing()
    ...     await service.start_background_worker()
    ...
    ...     await backend.upsert_entry(entry)
    ...     await service.generate_for_entry(entry.id)
    ...
    ...     engine = HybridSearchEngine(backend, backend, backend, embeddings)
    ...     context = await retrieve_context(engine, backend, "should I take the offer?")
    ...     system_prompt += context.to_prompt()

Configuration:

    # Environment variables read by the from_env() constructors
    JOURNAL_RAG_OLLAMA_URL, JOURNAL_RAG_EMBEDDING_MODEL
    JOURNAL_RAG_SQLITE_PATH
    JOURNAL_RAG_WORKER_INTERVAL, JOURNAL_RAG_RATE_LIMIT_DELAY
"""

# Storage
from .backends import (
    EmbeddingStats,
    EmbeddingStore,
    EmbeddingVector,
    JournalBackend,
    JournalEntry,
    KeywordIndex,
    RecordStore,
    SearchFilters,
    SQLiteBackend,
    SQLiteConfig,
)

# Prompt context
from .context_builder import (
    RAGContext,
    SimilarEntry,
    build_rag_context,
    create_rag_context,
    format_relative_date,
    retrieve_context,
)

# Embedding providers
from .embeddings import EmbeddingProvider, OllamaConfig, OllamaEmbeddings, RetryConfig

# Exceptions
from .exceptions import (
    DimensionMismatchError,
    EmbeddingError,
    EmbeddingServiceError,
    JournalRagError,
    MalformedResponseError,
    SearchError,
    StorageConnectionError,
    StorageIOError,
)

# Index maintenance
from .indexing import (
    AutoEmbeddingConfig,
    AutoEmbeddingService,
    BackfillResult,
    backfill_embeddings,
    is_backfill_needed,
)

# Text projection
from .projection import EMBEDDING_TEXT_VERSION, project_entry

# Search
from .search import (
    HybridSearchEngine,
    HybridSearchOptions,
    MatchType,
    SearchResult,
    cosine_similarity,
)

__all__ = [
    # Storage
    "JournalEntry",
    "EmbeddingVector",
    "EmbeddingStats",
    "SearchFilters",
    "RecordStore",
    "EmbeddingStore",
    "KeywordIndex",
    "JournalBackend",
    "SQLiteBackend",
    "SQLiteConfig",
    # Embeddings
    "EmbeddingProvider",
    "OllamaConfig",
    "OllamaEmbeddings",
    "RetryConfig",
    # Projection
    "EMBEDDING_TEXT_VERSION",
    "project_entry",
    # Indexing
    "AutoEmbeddingConfig",
    "AutoEmbeddingService",
    "BackfillResult",
    "backfill_embeddings",
    "is_backfill_needed",
    # Search
    "HybridSearchEngine",
    "HybridSearchOptions",
    "MatchType",
    "SearchResult",
    "cosine_similarity",
    # Context
    "RAGContext",
    "SimilarEntry",
    "build_rag_context",
    "create_rag_context",
    "format_relative_date",
    "retrieve_context",
    # Exceptions
    "JournalRagError",
    "EmbeddingServiceError",
    "MalformedResponseError",
    "EmbeddingError",
    "DimensionMismatchError",
    "SearchError",
    "StorageIOError",
    "StorageConnectionError",
]

__version__ = "0.1.0"
