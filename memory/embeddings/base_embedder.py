"""Base embedding provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseEmbedder(ABC):
    """Blocking text-to-vector provider.

    `load` may be slow (model download); `embed` returns a unit-normalized
    vector of fixed length. Callers run both off the event loop.
    """

    name: str = "base"

    def load(self) -> None:
        """Prepare the underlying model. Default is a no-op."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the embedding of `text`."""
