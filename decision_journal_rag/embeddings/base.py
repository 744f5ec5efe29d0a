"""
Abstract base class for embedding providers.

Allows pluggable embedding generation from different sources:
- Ollama (local inference service)
- Deterministic fakes for tests
- Custom implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime

import numpy as np
from numpy.typing import NDArray

from ..backends.base import EmbeddingVector, JournalEntry
from ..projection import EMBEDDING_TEXT_VERSION, project_entry


class EmbeddingProvider(ABC):
    """Abstract base for embedding generation."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Number of dimensions in the embedding vector."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name/identifier of the embedding model."""
        pass

    @abstractmethod
    async def embed_text(self, text: str) -> NDArray[np.float32]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as a float32 array

        Raises:
            EmbeddingError: If embedding generation fails after retries
        """
        pass

    @abstractmethod
    async def is_service_available(self) -> bool:
        """Check whether the embedding service answers. Never raises."""
        pass

    @abstractmethod
    async def is_model_available(self, model: str | None = None) -> bool:
        """Check whether a model is installed on the service. Never raises."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Cleanup resources (close connections, release memory)."""
        pass

    async def __aenter__(self) -> EmbeddingProvider:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Async context manager exit."""
        await self.close()

    async def generate_entry_embedding(
        self, entry: JournalEntry, now: datetime | None = None
    ) -> EmbeddingVector:
        """
        Project an entry and embed it into a storable vector record.

        Args:
            entry: Journal entry to embed
            now: Timestamp for created_at/updated_at (default: current UTC time)

        Returns:
            Vector stamped with this provider's model and the projection version

        Raises:
            EmbeddingError: If embedding fails after retries
        """
        text = project_entry(entry)
        vector = await self.embed_text(text)
        timestamp = now or datetime.now(UTC)

        return EmbeddingVector(
            entry_id=entry.id,
            embedding_text=text,
            vector=vector,
            model_name=self.model_name,
            version=EMBEDDING_TEXT_VERSION,
            created_at=timestamp,
            updated_at=timestamp,
        )
