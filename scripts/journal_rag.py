"""Operate the retrieval index of a SQLite decision journal.

Subcommands:
    backfill  Embed every entry that has no vector yet
    search    Run a hybrid search and print ranked results
    stats     Show embedding index statistics
    scan      Startup reconciliation: embed or queue entries missing vectors

Usage:
    python scripts/journal_rag.py --db ./journal.sqlite stats
    python scripts/journal_rag.py --db ./journal.sqlite search "switch teams?" --top-k 3
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from decision_journal_rag.backends import SearchFilters, SQLiteBackend, SQLiteConfig
from decision_journal_rag.context_builder import retrieve_context
from decision_journal_rag.embeddings import OllamaConfig, OllamaEmbeddings
from decision_journal_rag.exceptions import JournalRagError
from decision_journal_rag.indexing import AutoEmbeddingService, backfill_embeddings
from decision_journal_rag.logging_utils import configure_structured_logging
from decision_journal_rag.projection import EMBEDDING_TEXT_VERSION
from decision_journal_rag.search import HybridSearchEngine, HybridSearchOptions

logger = logging.getLogger(__name__)


async def run_backfill(backend: SQLiteBackend, embeddings: OllamaEmbeddings, args) -> int:
    if not await embeddings.is_model_available():
        print(f"Embedding model {embeddings.model_name} is not available at {embeddings.base_url}")
        return 1

    result = await backfill_embeddings(
        backend, backend, embeddings, rate_limit_delay=args.rate_limit_delay
    )

    print("\n" + "=" * 60)
    print("BACKFILL COMPLETE")
    print("=" * 60)
    print(f"Generated: {result.generated}")
    print(f"Failed: {result.failed}")
    print(f"Skipped: {result.skipped}")
    print(f"Total: {result.total}")
    return 0 if result.failed == 0 else 1


async def run_search(backend: SQLiteBackend, embeddings: OllamaEmbeddings, args) -> int:
    if args.context:
        engine = HybridSearchEngine(backend, backend, backend, embeddings)
        context = await retrieve_context(engine, backend, args.query, top_k=args.top_k)
        print(context.to_prompt() or "(no entries)")
        return 0

    filters = SearchFilters(
        tags=args.tag or [],
        is_archived=None if args.include_archived else False,
    )
    options = HybridSearchOptions(similarity_threshold=args.threshold, filters=filters)
    engine = HybridSearchEngine(backend, backend, backend, embeddings)
    results = await engine.search(args.query, top_k=args.top_k, options=options)

    if not results:
        print("No matching entries")
        return 0

    for result in results:
        entry = await backend.get_entry(result.entry_id)
        title = entry.problem_statement if entry else "(deleted)"
        print(
            f"{result.rank:>2}. [{result.match_type.value:<8}] "
            f"score={result.score:.3f} similarity={result.similarity:.3f}  {title}"
        )
    return 0


async def run_stats(backend: SQLiteBackend, embeddings: OllamaEmbeddings, args) -> int:
    entries = await backend.get_entries()
    stats = await backend.get_embedding_stats()
    stale = await backend.find_stale(embeddings.model_name, EMBEDDING_TEXT_VERSION)

    print(f"Entries: {len(entries)}")
    print(f"Embeddings: {stats.total_embeddings}")
    print(f"Missing: {len(entries) - stats.total_embeddings}")
    print(f"Stale (model or template changed): {len(stale)}")
    print(f"Oldest embedding: {stats.oldest_embedding}")
    print(f"Newest embedding: {stats.newest_embedding}")
    print(f"Average age (days): {stats.average_embedding_age_days:.1f}")
    for model, count in sorted(stats.model_versions.items()):
        print(f"  {model}: {count}")
    print(f"Keyword index: {'fts5' if backend.fts_available else 'like'}")
    return 0


async def run_scan(backend: SQLiteBackend, embeddings: OllamaEmbeddings, args) -> int:
    service = AutoEmbeddingService(backend, backend, embeddings)
    missing = await service.scan_for_missing()
    metrics = service.get_metrics()

    print(f"Missing: {missing}")
    print(f"Generated: {metrics['total_generated']}")
    print(f"Failed: {metrics['total_failed']}")
    print(f"Queued for retry: {metrics['queue_size']}")
    return 0


COMMANDS = {
    "backfill": run_backfill,
    "search": run_search,
    "stats": run_stats,
    "scan": run_scan,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Operate the retrieval index of a SQLite decision journal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Index an existing journal
    python scripts/journal_rag.py --db ./journal.sqlite backfill

    # Prompt context for a chat message
    python scripts/journal_rag.py --db ./journal.sqlite search "take the job?" --context

Environment:
    JOURNAL_RAG_OLLAMA_URL, JOURNAL_RAG_EMBEDDING_MODEL, JOURNAL_RAG_SQLITE_PATH
        """,
    )
    parser.add_argument(
        "--db", type=Path, help="Journal database (default: $JOURNAL_RAG_SQLITE_PATH)"
    )
    parser.add_argument("--ollama-url", help="Ollama base URL")
    parser.add_argument("--model", help="Embedding model name")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    backfill = sub.add_parser("backfill", help="Embed entries that have no vector")
    backfill.add_argument("--rate-limit-delay", type=float, default=0.5)

    search = sub.add_parser("search", help="Hybrid search")
    search.add_argument("query")
    search.add_argument("--top-k", type=int, default=5)
    search.add_argument("--threshold", type=float, default=0.65)
    search.add_argument("--tag", action="append", help="Filter by tag (repeatable)")
    search.add_argument("--include-archived", action="store_true")
    search.add_argument("--context", action="store_true", help="Print chat prompt context")

    sub.add_parser("stats", help="Embedding index statistics")
    sub.add_parser("scan", help="Embed or queue entries missing vectors")

    return parser


async def main() -> int:
    args = build_parser().parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    if args.json_logs:
        configure_structured_logging(level=level)
    else:
        logging.basicConfig(level=level, format="%(levelname)s  %(message)s")
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    db_config = SQLiteConfig(db_path=args.db) if args.db else SQLiteConfig.from_env()

    ollama_config = OllamaConfig.from_env()
    if args.ollama_url:
        ollama_config.base_url = args.ollama_url
    if args.model:
        ollama_config.model = args.model

    backend = await SQLiteBackend.create(db_config)
    try:
        async with OllamaEmbeddings(config=ollama_config) as embeddings:
            return await COMMANDS[args.command](backend, embeddings, args)
    except JournalRagError as e:
        logger.error(f"{args.command} failed: {e.message} {e.details}")
        return 1
    finally:
        await backend.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
