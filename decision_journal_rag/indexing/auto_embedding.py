"""
Automatic background embedding for journal entries.

Embeddings are generated right after an entry is saved. When the embedding
service is down or a call fails, the entry is queued and retried silently by a
periodic background worker, following the backoff table in ``queue.py``.
Entries that exhaust their retries are abandoned until the next startup scan.

The service never owns entries. It reads them from a RecordStore, writes
vectors to an EmbeddingStore and asks an EmbeddingProvider for vectors.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..backends.base import EmbeddingStore, JournalEntry, RecordStore
from ..embeddings.base import EmbeddingProvider
from ..logging_utils import entry_logger
from .queue import MAX_RETRY_COUNT, RetryQueue

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class AutoEmbeddingConfig:
    """Configuration for the auto-embedding service."""

    worker_interval: float = 30.0  # seconds between queue drains
    rate_limit_delay: float = 0.5  # seconds after each successful generation

    @classmethod
    def from_env(cls) -> AutoEmbeddingConfig:
        """
        Create config from environment variables.

        Optional env vars:
            JOURNAL_RAG_WORKER_INTERVAL: Seconds between queue drains (default: 30)
            JOURNAL_RAG_RATE_LIMIT_DELAY: Seconds between generations (default: 0.5)
        """
        return cls(
            worker_interval=float(os.environ.get("JOURNAL_RAG_WORKER_INTERVAL", "30")),
            rate_limit_delay=float(os.environ.get("JOURNAL_RAG_RATE_LIMIT_DELAY", "0.5")),
        )


@dataclass
class EmbeddingMetrics:
    """Counters for debugging background embedding."""

    total_generated: int = 0
    total_failed: int = 0
    total_abandoned: int = 0
    last_successful_embedding: datetime | None = None


class AutoEmbeddingService:
    """
    Keeps the embedding index eventually consistent with the record store.

    Example:
        >>> service = AutoEmbeddingService(backend, backend, OllamaEmbeddings())
        >>> await service.scan_for_missing()
        >>> await service.start_background_worker()
        >>> await service.generate_for_entry("entry-1")  # after each save
        >>> await service.stop_background_worker()
    """

    def __init__(
        self,
        record_store: RecordStore,
        embedding_store: EmbeddingStore,
        provider: EmbeddingProvider,
        config: AutoEmbeddingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        on_abandoned: Callable[[str, int], Any] | None = None,
    ):
        """
        Initialize the service.

        Args:
            record_store: Source of journal entries
            embedding_store: Destination for vectors
            provider: Embedding generator
            config: Worker timing (defaults if None)
            clock: Returns the current UTC time (injectable for tests)
            on_abandoned: Called with (entry_id, retry_count) when an entry
                exhausts its retries
        """
        self.record_store = record_store
        self.embedding_store = embedding_store
        self.provider = provider
        self.config = config or AutoEmbeddingConfig()
        self.on_abandoned = on_abandoned

        self._clock = clock or _utcnow
        self._queue = RetryQueue()
        self._metrics = EmbeddingMetrics()
        self._is_processing = False
        self._worker_task: asyncio.Task[None] | None = None

    @property
    def queue(self) -> RetryQueue:
        return self._queue

    @property
    def is_worker_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    # =========================================================================
    # Generation
    # =========================================================================

    async def _embed_and_save(self, entry: JournalEntry) -> None:
        embedding = await self.provider.generate_entry_embedding(entry, now=self._clock())
        await self.embedding_store.save_embedding(embedding)

        self._metrics.total_generated += 1
        self._metrics.last_successful_embedding = self._clock()

    async def generate_for_entry(self, entry_id: str) -> bool:
        """
        Generate and store the embedding for one entry.

        Called right after an entry is created or its content changes. Never
        raises; failures land in the retry queue.

        Returns:
            True if a vector was stored
        """
        try:
            entry = await self.record_store.get_entry(entry_id)
            if entry is None:
                logger.warning(f"Entry {entry_id} not found, skipping embedding")
                return False

            if not await self.provider.is_model_available():
                logger.warning(
                    f"Embedding model {self.provider.model_name} not available, "
                    f"queueing {entry_id} for retry"
                )
                self.enqueue(entry_id, 0)
                return False

            await self._embed_and_save(entry)
            logger.info(f"Generated embedding for entry {entry_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to generate embedding for {entry_id}: {e}")
            self.enqueue(entry_id, 0)
            self._metrics.total_failed += 1
            return False

    # =========================================================================
    # Retry queue
    # =========================================================================

    def enqueue(self, entry_id: str, retry_count: int) -> bool:
        """
        Queue an entry for a later retry, replacing any pending retry.

        Returns:
            False if the entry was abandoned instead
        """
        item = self._queue.enqueue(entry_id, retry_count, self._clock())
        log = entry_logger(logger, entry_id, retry_count=retry_count)

        if item is None:
            self._metrics.total_abandoned += 1
            log.warning(f"Max retries reached for {entry_id}, giving up")
            if self.on_abandoned is not None:
                try:
                    self.on_abandoned(entry_id, retry_count)
                except Exception as e:
                    log.error(f"Abandonment callback failed for {entry_id}: {e}")
            return False

        delay = (item.next_retry_at - self._clock()).total_seconds()
        log.info(f"Queued {entry_id} for retry {retry_count + 1}/{MAX_RETRY_COUNT} in {delay:.0f}s")
        return True

    async def process_queue(self) -> int:
        """
        Retry every queued entry whose time has come.

        Items are handled one at a time in next_retry_at order. If a drain is
        already running this call returns immediately.

        Returns:
            Number of embeddings stored during this drain
        """
        if self._is_processing or len(self._queue) == 0:
            return 0

        self._is_processing = True
        generated = 0

        try:
            for item in self._queue.due(self._clock()):
                entry_id = item.entry_id
                try:
                    self._queue.remove(entry_id)

                    entry = await self.record_store.get_entry(entry_id)
                    if entry is None:
                        logger.warning(f"Entry {entry_id} no longer exists, dropping retry")
                        continue

                    if await self.embedding_store.get_embedding(entry_id) is not None:
                        logger.info(f"Embedding already exists for {entry_id}, skipping")
                        continue

                    if not await self.provider.is_service_available():
                        logger.warning(f"Embedding service not available, re-queueing {entry_id}")
                        self.enqueue(entry_id, item.retry_count)
                        continue

                    if not await self.provider.is_model_available():
                        logger.warning(f"Embedding model not available, re-queueing {entry_id}")
                        self.enqueue(entry_id, item.retry_count)
                        continue

                    await self._embed_and_save(entry)
                    generated += 1
                    logger.info(f"Retry successful for {entry_id}")

                    await asyncio.sleep(self.config.rate_limit_delay)

                except Exception as e:
                    logger.error(f"Retry failed for {entry_id}: {e}")
                    self.enqueue(entry_id, item.retry_count + 1)
                    self._metrics.total_failed += 1
        finally:
            self._is_processing = False

        return generated

    # =========================================================================
    # Background worker
    # =========================================================================

    async def start_background_worker(self) -> None:
        """Start the periodic queue drain. A second start is a no-op."""
        if self._worker_task is not None:
            logger.warning("Background worker already running")
            return

        async def worker_loop() -> None:
            while True:
                try:
                    await asyncio.sleep(self.config.worker_interval)
                    await self.process_queue()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"Background worker error: {e}")

        self._worker_task = asyncio.create_task(worker_loop())
        logger.info(f"Background worker started (interval={self.config.worker_interval}s)")

    async def stop_background_worker(self) -> None:
        """Stop the periodic queue drain."""
        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None
            logger.info("Background worker stopped")

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def scan_for_missing(self) -> int:
        """
        Find entries without a vector and embed or queue them.

        Intended to run once at startup. When the service or model is down
        every missing entry is queued instead.

        Returns:
            Number of entries found without an embedding
        """
        logger.info("Scanning for missing embeddings...")

        entries = await self.record_store.get_entries()
        embedded_ids = {emb.entry_id for emb in await self.embedding_store.get_all_embeddings()}
        missing = [entry for entry in entries if entry.id not in embedded_ids]

        if not missing:
            logger.info("All entries are already embedded")
            return 0

        logger.info(f"Found {len(missing)} entries without embeddings")

        service_up = await self.provider.is_service_available()
        model_up = await self.provider.is_model_available()

        if not service_up or not model_up:
            logger.warning("Embedding service or model not available, queueing all for retry")
            for entry in missing:
                self.enqueue(entry.id, 0)
            return len(missing)

        for entry in missing:
            try:
                await self._embed_and_save(entry)
                logger.info(f"Generated embedding for {entry.id}")
                await asyncio.sleep(self.config.rate_limit_delay)
            except Exception as e:
                logger.error(f"Failed to generate embedding for {entry.id}: {e}")
                self.enqueue(entry.id, 0)
                self._metrics.total_failed += 1

        logger.info(
            f"Scan complete. Generated: {self._metrics.total_generated}, "
            f"Failed: {self._metrics.total_failed}"
        )
        return len(missing)

    # =========================================================================
    # Mutation hooks
    # =========================================================================

    @staticmethod
    def needs_reembedding(old: JournalEntry, new: JournalEntry) -> bool:
        """Whether an edit touched any field that feeds the embedding text."""
        return (
            old.problem_statement != new.problem_statement
            or old.situation != new.situation
            or old.actual_outcome != new.actual_outcome
            or list(old.tags) != list(new.tags)
        )

    async def handle_entry_update(self, old: JournalEntry, new: JournalEntry) -> bool:
        """
        Regenerate the embedding when embedded content changed.

        Returns:
            True if a new vector was stored
        """
        if not self.needs_reembedding(old, new):
            return False

        logger.info(f"Entry {new.id} content changed, regenerating embedding")
        return await self.generate_for_entry(new.id)

    async def handle_entry_deleted(self, entry_id: str) -> None:
        """Drop any pending retry and the stored vector for a deleted entry."""
        self._queue.remove(entry_id)
        await self.embedding_store.delete_embedding(entry_id)

    def get_metrics(self) -> dict[str, Any]:
        """Current counters plus queue size."""
        return {
            "total_generated": self._metrics.total_generated,
            "total_failed": self._metrics.total_failed,
            "total_abandoned": self._metrics.total_abandoned,
            "last_successful_embedding": self._metrics.last_successful_embedding,
            "queue_size": len(self._queue),
        }
