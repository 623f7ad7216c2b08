"""Sentence-Transformers embedding provider."""

from __future__ import annotations

import logging
from typing import Any

from memory.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger("mem.embeddings.st")


class SentenceTransformerEmbedder(BaseEmbedder):
    """Mean-pooled, normalized sentence embeddings (384d for MiniLM)."""

    name = "sentence-transformers"

    def __init__(self, model: str = "all-MiniLM-L6-v2") -> None:
        self.model_name = model
        self._model: Any | None = None

    def load(self) -> None:
        if self._model is not None:
            return
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model %s", self.model_name)
        self._model = SentenceTransformer(self.model_name)
        logger.info("Embedding model %s loaded", self.model_name)

    def embed(self, text: str) -> list[float]:
        if self._model is None:
            self.load()
        assert self._model is not None
        vector = self._model.encode(text, normalize_embeddings=True)
        return [float(v) for v in vector]
