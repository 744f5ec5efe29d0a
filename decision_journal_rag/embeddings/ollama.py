"""
Ollama embedding provider implementation.

Talks to a local Ollama server over HTTP with aiohttp. Embedding calls are
retried a bounded number of times with linear backoff; availability probes
never raise so callers can use them to decide between generating now and
queueing for later.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import aiohttp
import numpy as np
from numpy.typing import NDArray

from ..exceptions import EmbeddingError, EmbeddingServiceError, MalformedResponseError
from .base import EmbeddingProvider
from .resilience import RetryConfig, retry_with_linear_backoff

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


@dataclass
class OllamaConfig:
    """Configuration for the Ollama embedding service."""

    base_url: str = DEFAULT_OLLAMA_URL
    model: str = DEFAULT_EMBEDDING_MODEL
    timeout: float = 30.0  # seconds, per embedding request
    probe_timeout: float = 5.0  # seconds, per availability probe

    @classmethod
    def from_env(cls) -> OllamaConfig:
        """
        Create config from environment variables.

        Optional env vars:
            JOURNAL_RAG_OLLAMA_URL: Server base URL (default: http://localhost:11434)
            JOURNAL_RAG_EMBEDDING_MODEL: Model name (default: nomic-embed-text)
            JOURNAL_RAG_EMBEDDING_TIMEOUT: Embedding request timeout in seconds (default: 30)
            JOURNAL_RAG_PROBE_TIMEOUT: Probe timeout in seconds (default: 5)
        """
        return cls(
            base_url=os.environ.get("JOURNAL_RAG_OLLAMA_URL", DEFAULT_OLLAMA_URL),
            model=os.environ.get("JOURNAL_RAG_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            timeout=float(os.environ.get("JOURNAL_RAG_EMBEDDING_TIMEOUT", "30")),
            probe_timeout=float(os.environ.get("JOURNAL_RAG_PROBE_TIMEOUT", "5")),
        )


class OllamaEmbeddings(EmbeddingProvider):
    """
    Ollama embedding provider.

    Supports models:
    - nomic-embed-text (768 dimensions)
    - mxbai-embed-large (1024 dimensions)
    - all-minilm (384 dimensions)
    """

    # Model dimension mappings
    MODEL_DIMENSIONS = {
        "nomic-embed-text": 768,
        "mxbai-embed-large": 1024,
        "all-minilm": 384,
    }

    def __init__(
        self,
        config: OllamaConfig | None = None,
        dimensions: int | None = None,
        retry_config: RetryConfig | None = None,
    ):
        """
        Initialize Ollama embedding provider.

        Args:
            config: Service configuration (defaults to local server)
            dimensions: Vector dimensions (auto-detected if None)
            retry_config: Synchronous retry policy for embedding calls
        """
        self.config = config or OllamaConfig()
        self.model = self.config.model
        self.base_url = self.config.base_url.rstrip("/")
        self.retry_config = retry_config or RetryConfig()

        # Auto-detect dimensions if not provided
        if dimensions is None:
            if self.model in self.MODEL_DIMENSIONS:
                self._dimensions = self.MODEL_DIMENSIONS[self.model]
            else:
                logger.warning(
                    f"Unknown model '{self.model}', defaulting to 768 dimensions. "
                    f"Pass explicit dimensions parameter if different."
                )
                self._dimensions = 768
        else:
            self._dimensions = dimensions

        self._session: aiohttp.ClientSession | None = None

        logger.info(
            f"Ollama embeddings initialized: url={self.base_url}, model={self.model}, "
            f"dimensions={self._dimensions}"
        )

    @classmethod
    def from_env(cls) -> OllamaEmbeddings:
        """Create provider from environment variables (see OllamaConfig.from_env)."""
        return cls(config=OllamaConfig.from_env())

    @property
    def dimensions(self) -> int:
        """Number of dimensions in embedding vectors."""
        return self._dimensions

    @property
    def model_name(self) -> str:
        """Model identifier."""
        return self.model

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Lazy initialize the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
        return self._session

    # =========================================================================
    # HTTP calls
    # =========================================================================

    async def _post_embedding(self, text: str, model: str) -> Any:
        """POST /api/embeddings and return the decoded JSON body."""
        session = await self._ensure_session()
        url = f"{self.base_url}/api/embeddings"

        async with session.post(url, json={"model": model, "prompt": text}) as response:
            if not response.ok:
                raise EmbeddingServiceError(url, response.status, response.reason)
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise MalformedResponseError(model, "response body is not JSON") from e

    async def _ping(self) -> bool:
        """GET /api/tags and report whether the server answered 2xx."""
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.config.probe_timeout)

        async with session.get(f"{self.base_url}/api/tags", timeout=timeout) as response:
            return response.ok

    async def _fetch_tags(self) -> list[str]:
        """GET /api/tags and return the installed model names."""
        session = await self._ensure_session()
        url = f"{self.base_url}/api/tags"
        timeout = aiohttp.ClientTimeout(total=self.config.probe_timeout)

        async with session.get(url, timeout=timeout) as response:
            if not response.ok:
                raise EmbeddingServiceError(url, response.status, response.reason)
            data = await response.json(content_type=None)

        if not isinstance(data, dict):
            return []
        models = data.get("models") or []
        return [
            m["name"] for m in models if isinstance(m, dict) and isinstance(m.get("name"), str)
        ]

    @staticmethod
    def _parse_embedding(payload: Any, model: str) -> NDArray[np.float32]:
        """Validate an /api/embeddings body and convert it to a float32 array."""
        if not isinstance(payload, dict) or "embedding" not in payload:
            raise MalformedResponseError(model, "missing 'embedding' field")

        values = payload["embedding"]
        if not isinstance(values, list):
            raise MalformedResponseError(model, "'embedding' is not a list")
        if not values:
            raise MalformedResponseError(model, "'embedding' is empty")
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
            raise MalformedResponseError(model, "'embedding' contains non-numeric values")

        return np.asarray(values, dtype=np.float32)

    # =========================================================================
    # Provider API
    # =========================================================================

    async def embed_text(self, text: str, model: str | None = None) -> NDArray[np.float32]:
        """
        Generate embedding for a single text.

        Malformed payloads and non-2xx statuses are retried exactly like
        network failures.

        Args:
            text: Text to embed
            model: Model override (defaults to the configured model)

        Returns:
            Embedding vector as a float32 array

        Raises:
            EmbeddingError: After the final attempt fails, chained to the cause
        """
        model = model or self.model
        attempts = 0

        async def attempt() -> NDArray[np.float32]:
            nonlocal attempts
            attempts += 1
            payload = await self._post_embedding(text, model)
            return self._parse_embedding(payload, model)

        try:
            return await retry_with_linear_backoff(
                attempt,
                config=self.retry_config,
                context_msg=f"model={model}",
            )
        except Exception as e:
            raise EmbeddingError(model, e, attempts=attempts) from e

    async def is_service_available(self) -> bool:
        """Check whether the Ollama server answers. Never raises."""
        try:
            return await self._ping()
        except Exception as e:
            logger.debug(f"Ollama service probe failed: {e}")
            return False

    async def is_model_available(self, model: str | None = None) -> bool:
        """
        Check whether a model is installed. Never raises.

        Matches the exact name or any tag of it ("nomic-embed-text" matches
        "nomic-embed-text:latest").
        """
        model = model or self.model
        try:
            names = await self._fetch_tags()
            return any(name == model or name.startswith(f"{model}:") for name in names)
        except Exception as e:
            logger.debug(f"Ollama model probe failed for {model}: {e}")
            return False

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None
