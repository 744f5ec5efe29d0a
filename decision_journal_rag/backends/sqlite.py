"""
SQLite journal backend with embedding storage and full-text search.

Keeps entries, their embedding vectors and an FTS5 keyword index in one
database file. Vectors are stored as float32 BLOBs and searched by brute-force
scan in the search engine; there is no on-disk ANN index.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite
import numpy as np

from ..exceptions import StorageConnectionError, StorageIOError
from .base import EmbeddingVector, JournalBackend, JournalEntry, SearchFilters

logger = logging.getLogger(__name__)


# =============================================================================
# Column Definitions - Centralized for consistency and maintainability
# =============================================================================

ENTRY_READ_COLUMNS = (
    "id",
    "problem_statement",
    "situation",
    "actual_outcome",
    "lessons_learned",
    "tags",
    "confidence_level",
    "outcome_rating",
    "is_archived",
    "created_at",
    "updated_at",
)

EMBEDDING_READ_COLUMNS = (
    "entry_id",
    "embedding_text",
    "embedding_vector",
    "model_name",
    "embedding_version",
    "created_at",
    "updated_at",
)

# Columns mirrored into the keyword index
FTS_COLUMNS = ("problem_statement", "situation", "actual_outcome", "lessons_learned", "tags")

_VECTOR_DTYPE = "<f4"
_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path = ":memory:"

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        return cls(db_path=os.environ.get("JOURNAL_RAG_SQLITE_PATH", ":memory:"))


def _to_iso(value: datetime) -> str:
    """Normalize to UTC ISO-8601 so stored timestamps compare as strings."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _tokenize_query(query: str) -> list[str]:
    """Split free text into lowercase word tokens, dropping punctuation."""
    return [token.lower() for token in _TOKEN_RE.findall(query)]


class SQLiteBackend(JournalBackend):
    """
    SQLite journal backend.

    Features:
    - Single file database (or in-memory for tests)
    - Entry, embedding and keyword-index contracts in one place
    - FTS5 keyword search with LIKE fallback when FTS5 is not compiled in
    """

    def __init__(self, config: SQLiteConfig):
        """
        Initialize SQLite backend.

        Args:
            config: SQLite configuration
        """
        self.config = config
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False
        self._fts_available = False

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteBackend:
        """Create and initialize SQLite backend."""
        if config is None:
            config = SQLiteConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    @property
    def fts_available(self) -> bool:
        return self._fts_available

    async def initialize(self) -> None:
        """Initialize SQLite connection and schema."""
        if self._initialized:
            return

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            await self.conn.execute("PRAGMA foreign_keys = ON")

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    id TEXT PRIMARY KEY,
                    problem_statement TEXT NOT NULL,
                    situation TEXT,
                    actual_outcome TEXT,
                    lessons_learned TEXT,
                    tags TEXT,
                    confidence_level INTEGER,
                    outcome_rating INTEGER,
                    is_archived INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS entry_embeddings (
                    entry_id TEXT PRIMARY KEY,
                    embedding_text TEXT NOT NULL,
                    embedding_vector BLOB NOT NULL,
                    model_name TEXT NOT NULL,
                    embedding_version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
                )
            """)

            # Try to create the FTS5 keyword index
            try:
                await self.conn.execute(f"""
                    CREATE VIRTUAL TABLE IF NOT EXISTS entries_fts USING fts5(
                        entry_id UNINDEXED,
                        {", ".join(FTS_COLUMNS)},
                        tokenize='porter unicode61'
                    )
                """)
                self._fts_available = True
            except sqlite3.OperationalError as e:
                logger.warning(f"FTS5 not available, keyword search falls back to LIKE: {e}")
                self._fts_available = False

            await self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_entries_created ON entries(created_at DESC)"
            )
            await self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_embeddings_version "
                "ON entry_embeddings(embedding_version)"
            )
            await self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_embeddings_updated "
                "ON entry_embeddings(updated_at DESC)"
            )

            await self.conn.commit()
            self._initialized = True
            logger.info(f"SQLite journal backend initialized: {self.config.db_path}")

        except Exception as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None

        self._initialized = False

    def _require_conn(self, operation: str) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError(operation, cause=RuntimeError("Not initialized"))
        return self.conn

    # =========================================================================
    # Record Store
    # =========================================================================

    async def upsert_entry(self, entry: JournalEntry) -> None:
        """Insert or update a journal entry and its keyword index row."""
        conn = self._require_conn("upsert_entry")

        tags_json = json.dumps(entry.tags)
        try:
            await conn.execute(
                """
                INSERT INTO entries (
                    id, problem_statement, situation, actual_outcome, lessons_learned,
                    tags, confidence_level, outcome_rating, is_archived,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    problem_statement = excluded.problem_statement,
                    situation = excluded.situation,
                    actual_outcome = excluded.actual_outcome,
                    lessons_learned = excluded.lessons_learned,
                    tags = excluded.tags,
                    confidence_level = excluded.confidence_level,
                    outcome_rating = excluded.outcome_rating,
                    is_archived = excluded.is_archived,
                    updated_at = excluded.updated_at
                """,
                (
                    entry.id,
                    entry.problem_statement,
                    entry.situation,
                    entry.actual_outcome,
                    entry.lessons_learned,
                    tags_json,
                    entry.confidence_level,
                    entry.outcome_rating,
                    int(entry.is_archived),
                    _to_iso(entry.created_at),
                    _to_iso(entry.updated_at),
                ),
            )

            if self._fts_available:
                await conn.execute("DELETE FROM entries_fts WHERE entry_id = ?", (entry.id,))
                await conn.execute(
                    f"""
                    INSERT INTO entries_fts (entry_id, {", ".join(FTS_COLUMNS)})
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.id,
                        entry.problem_statement,
                        entry.situation,
                        entry.actual_outcome,
                        entry.lessons_learned,
                        ", ".join(entry.tags),
                    ),
                )

            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    async def get_entry(self, entry_id: str) -> JournalEntry | None:
        """Get a journal entry by ID."""
        conn = self._require_conn("get_entry")

        async with conn.execute(
            f"SELECT {', '.join(ENTRY_READ_COLUMNS)} FROM entries WHERE id = ?",
            (entry_id,),
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_entry(row)

    async def get_entries(self, filters: SearchFilters | None = None) -> list[JournalEntry]:
        """List entries, newest first, with optional filters."""
        conn = self._require_conn("get_entries")

        where_parts: list[str] = []
        params: list[Any] = []

        if filters:
            if filters.is_archived is not None:
                where_parts.append("is_archived = ?")
                params.append(int(filters.is_archived))

            if filters.min_confidence is not None:
                where_parts.append("confidence_level >= ?")
                params.append(filters.min_confidence)

            if filters.max_confidence is not None:
                where_parts.append("confidence_level <= ?")
                params.append(filters.max_confidence)

            if filters.start_date is not None:
                where_parts.append("created_at >= ?")
                params.append(_to_iso(filters.start_date))

            if filters.end_date is not None:
                where_parts.append("created_at <= ?")
                params.append(_to_iso(filters.end_date))

        where_clause = f"WHERE {' AND '.join(where_parts)}" if where_parts else ""

        query = f"""
            SELECT {', '.join(ENTRY_READ_COLUMNS)}
            FROM entries
            {where_clause}
            ORDER BY created_at DESC
        """

        async with conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        entries = [self._row_to_entry(row) for row in rows]

        # Tag and outcome filters are evaluated in Python
        if filters:
            entries = [entry for entry in entries if filters.matches(entry)]

        return entries

    async def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry, its embedding and its keyword index row."""
        conn = self._require_conn("delete_entry")

        try:
            await conn.execute("DELETE FROM entry_embeddings WHERE entry_id = ?", (entry_id,))

            if self._fts_available:
                await conn.execute("DELETE FROM entries_fts WHERE entry_id = ?", (entry_id,))

            cursor = await conn.execute(
                "DELETE FROM entries WHERE id = ? RETURNING id",
                (entry_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()

            await conn.commit()
            return row is not None

        except Exception:
            await conn.rollback()
            raise

    @staticmethod
    def _row_to_entry(row: Any) -> JournalEntry:
        return JournalEntry(
            id=row[0],
            problem_statement=row[1],
            situation=row[2],
            actual_outcome=row[3],
            lessons_learned=row[4],
            tags=json.loads(row[5]) if row[5] else [],
            confidence_level=row[6],
            outcome_rating=row[7],
            is_archived=bool(row[8]),
            created_at=_from_iso(row[9]),
            updated_at=_from_iso(row[10]),
        )

    # =========================================================================
    # Embedding Store
    # =========================================================================

    async def save_embedding(self, embedding: EmbeddingVector) -> None:
        """
        Save an embedding vector.

        Overwrites any vector already stored for the entry. The first
        created_at is preserved; updated_at always reflects the latest write.
        """
        conn = self._require_conn("save_embedding")

        vector_blob = np.asarray(embedding.vector, dtype=_VECTOR_DTYPE).tobytes()

        try:
            await conn.execute(
                """
                INSERT INTO entry_embeddings (
                    entry_id, embedding_text, embedding_vector, model_name,
                    embedding_version, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (entry_id) DO UPDATE SET
                    embedding_text = excluded.embedding_text,
                    embedding_vector = excluded.embedding_vector,
                    model_name = excluded.model_name,
                    embedding_version = excluded.embedding_version,
                    updated_at = excluded.updated_at
                """,
                (
                    embedding.entry_id,
                    embedding.embedding_text,
                    vector_blob,
                    embedding.model_name,
                    embedding.version,
                    _to_iso(embedding.created_at),
                    _to_iso(embedding.updated_at),
                ),
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    async def get_embedding(self, entry_id: str) -> EmbeddingVector | None:
        """Get the embedding for an entry."""
        conn = self._require_conn("get_embedding")

        async with conn.execute(
            f"SELECT {', '.join(EMBEDDING_READ_COLUMNS)} FROM entry_embeddings WHERE entry_id = ?",
            (entry_id,),
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_embedding(row)

    async def get_all_embeddings(self) -> list[EmbeddingVector]:
        """Get all stored embeddings."""
        conn = self._require_conn("get_all_embeddings")

        async with conn.execute(
            f"SELECT {', '.join(EMBEDDING_READ_COLUMNS)} FROM entry_embeddings"
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_embedding(row) for row in rows]

    async def delete_embedding(self, entry_id: str) -> None:
        """Delete an embedding."""
        conn = self._require_conn("delete_embedding")

        await conn.execute("DELETE FROM entry_embeddings WHERE entry_id = ?", (entry_id,))
        await conn.commit()

    @staticmethod
    def _row_to_embedding(row: Any) -> EmbeddingVector:
        return EmbeddingVector(
            entry_id=row[0],
            embedding_text=row[1],
            vector=np.frombuffer(row[2], dtype=_VECTOR_DTYPE).astype(np.float32),
            model_name=row[3],
            version=row[4],
            created_at=_from_iso(row[5]),
            updated_at=_from_iso(row[6]),
        )

    # =========================================================================
    # Keyword Index
    # =========================================================================

    async def search_keyword(self, query: str, limit: int = 20) -> list[str]:
        """
        Full-text search across entry text.

        The query is tokenized into words and every word must match somewhere
        in the entry. Words are quoted, so punctuation in chat messages never
        produces an FTS syntax error.
        """
        conn = self._require_conn("search_keyword")

        tokens = _tokenize_query(query)
        if not tokens:
            return []

        try:
            if self._fts_available:
                match_expr = " ".join(f'"{token}"' for token in tokens)
                sql = """
                    SELECT entry_id FROM entries_fts
                    WHERE entries_fts MATCH ?
                    ORDER BY rank
                    LIMIT ?
                """
                params: list[Any] = [match_expr, limit]
            else:
                token_clauses: list[str] = []
                params = []
                for token in tokens:
                    column_parts = [f"LOWER({column}) LIKE ?" for column in FTS_COLUMNS]
                    token_clauses.append(f"({' OR '.join(column_parts)})")
                    params.extend([f"%{token}%"] * len(FTS_COLUMNS))
                sql = f"""
                    SELECT id FROM entries
                    WHERE {' AND '.join(token_clauses)}
                    ORDER BY created_at DESC
                    LIMIT ?
                """
                params.append(limit)

            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
                return [row[0] for row in rows]

        except sqlite3.Error as e:
            raise StorageIOError("search_keyword", cause=e) from e
