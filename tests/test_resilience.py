"""
Tests for bounded retry with linear backoff.
"""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from decision_journal_rag.embeddings.resilience import RetryConfig, retry_with_linear_backoff
from decision_journal_rag.exceptions import EmbeddingServiceError, MalformedResponseError


@pytest.fixture
def no_sleep():
    with patch(
        "decision_journal_rag.embeddings.resilience.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        yield sleep


class TestRetryWithLinearBackoff:
    @pytest.mark.asyncio
    async def test_success_first_try(self, no_sleep):
        fn = AsyncMock(return_value="ok")

        assert await retry_with_linear_backoff(fn, "a", key="b") == "ok"
        fn.assert_awaited_once_with("a", key="b")
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, no_sleep):
        fn = AsyncMock(side_effect=[aiohttp.ClientError("boom"), TimeoutError(), "ok"])

        assert await retry_with_linear_backoff(fn) == "ok"
        assert fn.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausts_after_max_retries(self, no_sleep):
        """Default policy: one call plus three retries, waits of 1, 2, 3 seconds."""
        fn = AsyncMock(side_effect=ConnectionRefusedError("down"))

        with pytest.raises(ConnectionRefusedError):
            await retry_with_linear_backoff(fn)

        assert fn.await_count == 4
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_service_and_payload_errors_are_retryable(self, no_sleep):
        fn = AsyncMock(
            side_effect=[
                EmbeddingServiceError("http://x/api/embeddings", 500),
                MalformedResponseError("m", "missing 'embedding' field"),
                [0.1],
            ]
        )

        assert await retry_with_linear_backoff(fn) == [0.1]
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, no_sleep):
        fn = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await retry_with_linear_backoff(fn)

        assert fn.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_config(self, no_sleep):
        fn = AsyncMock(side_effect=OSError("nope"))
        config = RetryConfig(max_retries=1, retry_delay=0.5)

        with pytest.raises(OSError):
            await retry_with_linear_backoff(fn, config=config)

        assert fn.await_count == 2
        assert config.max_attempts == 2
        no_sleep.assert_awaited_once_with(0.5)
