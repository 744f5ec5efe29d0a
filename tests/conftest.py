"""
Shared test configuration and fixtures.

Provides a deterministic mock embedding provider, an in-memory SQLite
backend, and a journal entry factory. No test talks to a real Ollama server.
"""

import logging
from datetime import UTC, datetime, timedelta

import numpy as np
import pytest

from decision_journal_rag.backends import JournalEntry, SQLiteBackend, SQLiteConfig
from decision_journal_rag.embeddings import EmbeddingProvider
from decision_journal_rag.exceptions import EmbeddingError

logger = logging.getLogger(__name__)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class MockEmbeddingProvider(EmbeddingProvider):
    """
    Mock embedding provider for testing without a running service.

    Texts map to vectors through substring rules: the first registered
    substring found in the text picks the vector, otherwise the default
    vector is returned. Availability flags and failure injection simulate
    an unreliable service.
    """

    def __init__(self, dimensions: int = 3, model_name: str = "mock-embed"):
        self._dimensions = dimensions
        self._model_name = model_name
        self.rules: list[tuple[str, np.ndarray]] = []
        self.default_vector = np.eye(dimensions, dtype=np.float32)[0]
        self.service_available = True
        self.model_available = True
        self.fail_next = 0  # number of upcoming embed calls that fail
        self.fail_always = False
        self.calls: list[str] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def set_vector(self, substring: str, vector: list[float]) -> None:
        self.rules.append((substring, np.asarray(vector, dtype=np.float32)))

    async def embed_text(self, text: str) -> np.ndarray:
        self.calls.append(text)

        if self.fail_always or self.fail_next > 0:
            if self.fail_next > 0:
                self.fail_next -= 1
            raise EmbeddingError(self._model_name, ConnectionError("service down"), attempts=4)

        for substring, vector in self.rules:
            if substring in text:
                return vector.copy()
        return self.default_vector.copy()

    async def is_service_available(self) -> bool:
        return self.service_available

    async def is_model_available(self, model: str | None = None) -> bool:
        return self.service_available and self.model_available

    async def close(self) -> None:
        """No cleanup needed for mock."""
        pass


def make_entry(entry_id: str, problem: str = "Should I switch teams?", **kwargs) -> JournalEntry:
    """Build a journal entry with fixed timestamps unless overridden."""
    kwargs.setdefault("created_at", FIXED_NOW - timedelta(days=1))
    kwargs.setdefault("updated_at", kwargs["created_at"])
    return JournalEntry(id=entry_id, problem_statement=problem, **kwargs)


class FakeClock:
    """Settable clock for time-dependent components."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def provider():
    """Fixture providing a 3-dimension mock provider."""
    provider = MockEmbeddingProvider(dimensions=3)
    yield provider
    await provider.close()


@pytest.fixture
async def backend():
    """Fixture providing an initialized in-memory SQLite backend."""
    storage = await SQLiteBackend.create(SQLiteConfig(db_path=":memory:"))
    yield storage
    await storage.close()


@pytest.fixture
def clock():
    return FakeClock()
