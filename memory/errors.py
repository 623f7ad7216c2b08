"""Exception types raised by the memory engine."""

from __future__ import annotations


class MemoryEngineError(Exception):
    """Base class for memory engine failures."""


class EmbeddingError(MemoryEngineError):
    """Raised when the embedding provider fails after all retries."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts
