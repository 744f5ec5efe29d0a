"""
One-shot embedding backfill.

Embeds every entry that has no vector yet. Used when indexing an existing
journal for the first time; failures are counted, not queued.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..backends.base import EmbeddingStore, RecordStore
from ..embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    """Counts from a backfill run."""

    total: int = 0  # entries in the journal
    generated: int = 0
    failed: int = 0
    skipped: int = 0  # entries that already had a vector


async def backfill_embeddings(
    record_store: RecordStore,
    embedding_store: EmbeddingStore,
    provider: EmbeddingProvider,
    rate_limit_delay: float = 0.5,
) -> BackfillResult:
    """
    Generate embeddings for all entries without one.

    Entries are processed sequentially with ``rate_limit_delay`` seconds
    between requests.

    Returns:
        BackfillResult with total/generated/failed/skipped counts
    """
    logger.info("Starting embedding backfill...")

    entries = await record_store.get_entries()
    if not entries:
        logger.info("No entries to process")
        return BackfillResult()

    embedded_ids = {emb.entry_id for emb in await embedding_store.get_all_embeddings()}
    pending = [entry for entry in entries if entry.id not in embedded_ids]
    result = BackfillResult(total=len(entries), skipped=len(entries) - len(pending))

    logger.info(f"{len(pending)} entries need embeddings, {result.skipped} already indexed")

    for index, entry in enumerate(pending, start=1):
        try:
            embedding = await provider.generate_entry_embedding(entry)
            await embedding_store.save_embedding(embedding)
            result.generated += 1
            logger.info(f"({index}/{len(pending)}) Generated embedding for {entry.id}")
        except Exception as e:
            result.failed += 1
            logger.error(f"({index}/{len(pending)}) Failed for entry {entry.id}: {e}")

        await asyncio.sleep(rate_limit_delay)

    logger.info(
        f"Backfill complete: generated={result.generated} failed={result.failed} "
        f"skipped={result.skipped} total={result.total}"
    )
    return result


async def is_backfill_needed(record_store: RecordStore, embedding_store: EmbeddingStore) -> bool:
    """Check whether any entry lacks an embedding."""
    entries = await record_store.get_entries()
    embedded_ids = {emb.entry_id for emb in await embedding_store.get_all_embeddings()}
    return any(entry.id not in embedded_ids for entry in entries)
