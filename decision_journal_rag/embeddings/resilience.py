"""Resilience utilities for embedding API calls.

Provides a bounded synchronous retry with linear backoff. Longer-horizon
retries (minutes to hours) live in the indexing queue, not here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

import aiohttp

from ..exceptions import EmbeddingServiceError, MalformedResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry with linear backoff.

    ``max_retries`` counts retries after the first attempt, so the call is
    made at most ``max_retries + 1`` times. The wait before retry ``n``
    (1-based) is ``retry_delay * n`` seconds.
    """

    max_retries: int = 3
    retry_delay: float = 1.0  # seconds
    retryable_exceptions: tuple[type[Exception], ...] = (
        aiohttp.ClientError,
        TimeoutError,
        OSError,
        EmbeddingServiceError,
        MalformedResponseError,
    )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


async def retry_with_linear_backoff(
    fn: Callable[..., Coroutine[Any, Any, T]],
    *args: Any,
    config: RetryConfig | None = None,
    context_msg: str = "",
    **kwargs: Any,
) -> T:
    """Execute an async function with bounded retry and linear backoff.

    Args:
        fn: Async callable to execute
        *args: Positional args for fn
        config: Retry configuration (uses defaults if None)
        context_msg: Extra context for log messages (e.g. entry id)
        **kwargs: Keyword args for fn

    Returns:
        Result of fn

    Raises:
        Exception: Last exception after all retries are exhausted, or the
            first non-retryable exception
    """
    cfg = config or RetryConfig()
    ctx = f" [{context_msg}]" if context_msg else ""

    for attempt in range(cfg.max_attempts):
        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            is_retryable = isinstance(exc, cfg.retryable_exceptions)

            if not is_retryable or attempt >= cfg.max_retries:
                logger.error(
                    "RETRY_EXHAUSTED: attempt=%d/%d retryable=%s%s: %s",
                    attempt + 1,
                    cfg.max_attempts,
                    is_retryable,
                    ctx,
                    exc,
                )
                raise

            delay = cfg.retry_delay * (attempt + 1)
            logger.warning(
                "RETRYING: attempt=%d/%d delay=%.1fs%s: %s",
                attempt + 1,
                cfg.max_attempts,
                delay,
                ctx,
                exc,
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 0:
                logger.info(
                    "RETRY_RECOVERED: succeeded on attempt %d/%d%s",
                    attempt + 1,
                    cfg.max_attempts,
                    ctx,
                )
            return result

    # Unreachable, but satisfies type checker
    raise RuntimeError("retry_with_linear_backoff exhausted without raising")  # pragma: no cover
