"""
Embedding provider abstraction and implementations.

Provides:
- Abstract EmbeddingProvider interface
- Ollama implementation over HTTP
- Resilience utilities (bounded retry with linear backoff)
"""

from .base import EmbeddingProvider
from .ollama import OllamaConfig, OllamaEmbeddings
from .resilience import RetryConfig, retry_with_linear_backoff

__all__ = [
    "EmbeddingProvider",
    "OllamaConfig",
    "OllamaEmbeddings",
    "RetryConfig",
    "retry_with_linear_backoff",
]
