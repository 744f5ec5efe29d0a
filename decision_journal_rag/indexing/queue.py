"""
Keyed retry queue for failed embedding generations.

Holds at most one pending retry per entry. Each failure pushes the entry's
next attempt further out along a fixed backoff table; past the last slot the
entry is abandoned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

MAX_RETRY_COUNT = 5

# Wait before retry N, indexed by the retry count at enqueue time
RETRY_DELAYS: tuple[timedelta, ...] = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=15),
    timedelta(hours=1),
    timedelta(hours=1),
)


@dataclass
class QueuedRetry:
    """A pending embedding retry for one entry."""

    entry_id: str
    retry_count: int
    next_retry_at: datetime

    def is_due(self, now: datetime) -> bool:
        return self.next_retry_at <= now


class RetryQueue:
    """
    Single-flight retry queue keyed by entry id.

    Not thread-safe; callers serialize access through the orchestrator's
    processing guard.
    """

    def __init__(self) -> None:
        self._items: dict[str, QueuedRetry] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._items

    def enqueue(self, entry_id: str, retry_count: int, now: datetime) -> QueuedRetry | None:
        """
        Schedule a retry, replacing any pending one for the same entry.

        Args:
            entry_id: Entry to retry
            retry_count: Failures so far for this entry
            now: Current time

        Returns:
            The queued record, or None when the retry budget is exhausted
            (any pending record for the entry is dropped as well)
        """
        if retry_count >= MAX_RETRY_COUNT:
            self._items.pop(entry_id, None)
            return None

        item = QueuedRetry(
            entry_id=entry_id,
            retry_count=retry_count,
            next_retry_at=now + RETRY_DELAYS[retry_count],
        )
        self._items[entry_id] = item
        return item

    def get(self, entry_id: str) -> QueuedRetry | None:
        return self._items.get(entry_id)

    def remove(self, entry_id: str) -> QueuedRetry | None:
        """Remove and return the pending retry for an entry, if any."""
        return self._items.pop(entry_id, None)

    def due(self, now: datetime) -> list[QueuedRetry]:
        """Items whose retry time has passed, earliest first."""
        ready = [item for item in self._items.values() if item.is_due(now)]
        return sorted(ready, key=lambda item: item.next_retry_at)

    def items(self) -> list[QueuedRetry]:
        return list(self._items.values())
