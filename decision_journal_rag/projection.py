"""
Text projection for embedding generation.

Maps a journal entry to the bounded-length text that gets embedded. The
template decides what context lands in the vector index:

- Problem statement: always included, never truncated
- Situation: hard-truncated to keep embeddings topically focused
- Outcome: included once the decision has been reviewed
- Tags: comma-joined for categorical matching

Truncation bounds are a tuning choice, not an API limit of the embedding model.
Bump EMBEDDING_TEXT_VERSION whenever the template changes so stored vectors
produced by an older template can be detected as stale.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .backends.base import JournalEntry

EMBEDDING_TEXT_VERSION = 1

SITUATION_MAX_CHARS = 800
OUTCOME_MAX_CHARS = 400
SEGMENT_SEPARATOR = " | "
TRUNCATION_MARKER = "..."


def truncate_text(text: str, max_chars: int) -> str:
    """Hard-truncate text to max_chars, appending the truncation marker when cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def project_entry(entry: JournalEntry) -> str:
    """
    Build the embedding text for a journal entry.

    Segments are emitted in fixed order and omitted entirely (never emitted
    empty) when the corresponding field is absent.

    Args:
        entry: Journal entry to project

    Returns:
        Labeled segments joined with SEGMENT_SEPARATOR
    """
    parts: list[str] = []

    if entry.problem_statement:
        parts.append(f"Problem: {entry.problem_statement}")

    if entry.situation:
        parts.append(f"Situation: {truncate_text(entry.situation, SITUATION_MAX_CHARS)}")

    if entry.actual_outcome:
        parts.append(f"Outcome: {truncate_text(entry.actual_outcome, OUTCOME_MAX_CHARS)}")

    if entry.tags:
        parts.append(f"Tags: {', '.join(entry.tags)}")

    return SEGMENT_SEPARATOR.join(parts)
