"""Embedding generation and linear-scan similarity search."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable, Sequence

from memory.embeddings.base_embedder import BaseEmbedder
from memory.errors import EmbeddingError
from memory.types.memory import Memory, MemorySearchResult

logger = logging.getLogger("mem.vector")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between `a` and `b`; 0 for mismatched or zero vectors."""
    if len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    denominator = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denominator == 0:
        return 0.0
    return dot / denominator


def search_by_embedding(
    query_embedding: Sequence[float],
    memories: Iterable[Memory],
    limit: int = 10,
    min_similarity: float = 0.3,
) -> list[MemorySearchResult]:
    """Rank embedded memories by similarity weighted with confidence."""
    results: list[MemorySearchResult] = []
    for memory in memories:
        if not memory.embedding:
            continue
        similarity = cosine_similarity(query_embedding, memory.embedding)
        if similarity >= min_similarity:
            results.append(
                MemorySearchResult(
                    memory=memory,
                    similarity=similarity,
                    relevance=similarity * memory.confidence.current,
                )
            )
    results.sort(key=lambda r: r.relevance, reverse=True)
    return results[:limit]


class VectorEngine:
    """Lazily initialized embedding provider with bounded retries."""

    def __init__(
        self,
        embedder: BaseEmbedder,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
    ) -> None:
        self.embedder = embedder
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._loaded = False
        self._loading: asyncio.Task[None] | None = None

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def _load(self) -> None:
        logger.info("Loading embedding provider '%s'", self.embedder.name)
        await asyncio.to_thread(self.embedder.load)
        self._loaded = True
        logger.info("Embedding provider '%s' ready", self.embedder.name)

    async def preload(self) -> None:
        """Initialize the provider once; concurrent callers share one attempt."""
        if self._loaded:
            return
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
        loading = self._loading
        try:
            await asyncio.shield(loading)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._loading is loading:
                self._loading = None
            logger.error("Failed to load embedding provider: %s", exc)
            raise EmbeddingError(f"Embedding provider failed to load: {exc}") from exc

    async def embed(self, text: str) -> list[float]:
        """Embed text, retrying with linear backoff before giving up."""
        await self.preload()
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.to_thread(self.embedder.embed, text)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Embedding failed (attempt %d/%d): %s", attempt, self.max_retries, exc
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_seconds * attempt)
        logger.error("All %d embedding attempts failed: %s", self.max_retries, last_error)
        raise EmbeddingError(
            f"Embedding failed after {self.max_retries} attempts: {last_error}",
            attempts=self.max_retries,
        ) from last_error

    async def semantic_search(
        self,
        query: str,
        memories: Iterable[Memory],
        limit: int = 10,
        min_similarity: float = 0.3,
    ) -> list[MemorySearchResult]:
        query_embedding = await self.embed(query)
        return search_by_embedding(query_embedding, memories, limit=limit, min_similarity=min_similarity)
