"""
Tests for the keyed retry queue.
"""

from datetime import UTC, datetime, timedelta

from decision_journal_rag.indexing.queue import MAX_RETRY_COUNT, RETRY_DELAYS, RetryQueue

NOW = datetime(2024, 6, 1, tzinfo=UTC)


class TestRetryQueue:
    def test_backoff_table(self):
        assert MAX_RETRY_COUNT == 5
        assert [d.total_seconds() for d in RETRY_DELAYS] == [60, 300, 900, 3600, 3600]

    def test_enqueue_schedules_by_retry_count(self):
        queue = RetryQueue()
        for count, delay in enumerate(RETRY_DELAYS):
            item = queue.enqueue(f"e{count}", count, NOW)
            assert item is not None
            assert item.next_retry_at == NOW + delay

    def test_single_flight_per_entry(self):
        """Re-enqueueing replaces the pending record instead of adding one."""
        queue = RetryQueue()
        queue.enqueue("e1", 0, NOW)
        queue.enqueue("e1", 2, NOW)

        assert len(queue) == 1
        item = queue.get("e1")
        assert item.retry_count == 2
        assert item.next_retry_at == NOW + timedelta(minutes=15)

    def test_dropped_at_max_retry_count(self):
        queue = RetryQueue()
        queue.enqueue("e1", 3, NOW)

        assert queue.enqueue("e1", MAX_RETRY_COUNT, NOW) is None
        assert "e1" not in queue
        assert len(queue) == 0

    def test_due_ordering(self):
        queue = RetryQueue()
        queue.enqueue("late", 1, NOW)  # +5 min
        queue.enqueue("early", 0, NOW)  # +1 min
        queue.enqueue("far", 3, NOW)  # +1 h

        assert queue.due(NOW) == []
        due = queue.due(NOW + timedelta(minutes=10))
        assert [item.entry_id for item in due] == ["early", "late"]

    def test_due_is_inclusive(self):
        queue = RetryQueue()
        queue.enqueue("e1", 0, NOW)
        assert len(queue.due(NOW + timedelta(minutes=1))) == 1

    def test_remove(self):
        queue = RetryQueue()
        queue.enqueue("e1", 0, NOW)

        assert queue.remove("e1").entry_id == "e1"
        assert queue.remove("e1") is None
        assert len(queue) == 0
