"""
Custom exceptions for the journal retrieval subsystem.

Embedding, storage and search components raise these exceptions
for consistent error handling across collaborators.
"""


class JournalRagError(Exception):
    """Base exception for all journal retrieval errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EmbeddingServiceError(JournalRagError):
    """Raised when the embedding endpoint answers with a non-success status."""

    def __init__(self, endpoint: str, status: int, reason: str | None = None):
        details: dict = {"endpoint": endpoint, "status": status}
        if reason:
            details["reason"] = reason
        message = f"Embedding API error: {status}"
        if reason:
            message += f" {reason}"
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status = status
        self.reason = reason


class MalformedResponseError(JournalRagError):
    """Raised when the embedding endpoint returns an unexpected payload shape.

    Treated exactly like a network failure by the retry loop.
    """

    def __init__(self, model: str, reason: str):
        super().__init__(
            f"Invalid embedding response for model {model}: {reason}",
            {"model": model, "reason": reason},
        )
        self.model = model
        self.reason = reason


class EmbeddingError(JournalRagError):
    """Raised when embedding generation fails after all retries."""

    def __init__(self, model: str, cause: Exception | None = None, attempts: int = 0):
        details: dict = {"model": model, "attempts": attempts}
        if cause:
            details["cause"] = str(cause)
        reason = str(cause) if cause else "Unknown error"
        super().__init__(f"Failed to generate embedding: {reason}", details)
        self.model = model
        self.cause = cause
        self.attempts = attempts


class DimensionMismatchError(JournalRagError):
    """Raised when two vectors of different length are compared.

    Signals an embedding model change, never a transient condition.
    """

    def __init__(self, expected: int, actual: int, entry_id: str | None = None):
        details: dict = {"expected": expected, "actual": actual}
        if entry_id:
            details["entry_id"] = entry_id
        message = f"Vector dimension mismatch: expected {expected}, got {actual}"
        if entry_id:
            message += f" (entry {entry_id})"
        super().__init__(message, details)
        self.expected = expected
        self.actual = actual
        self.entry_id = entry_id


class SearchError(JournalRagError):
    """Raised when a search cannot be completed (e.g. the query cannot be embedded)."""

    def __init__(self, query: str, cause: Exception | None = None):
        details: dict = {"query": query[:200]}
        if cause:
            details["cause"] = str(cause)
        reason = str(cause) if cause else "Unknown error"
        super().__init__(f"Failed to search journal entries: {reason}", details)
        self.query = query
        self.cause = cause


class StorageIOError(JournalRagError):
    """Raised when a storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(JournalRagError):
    """Raised when the journal database cannot be opened or initialized.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause
