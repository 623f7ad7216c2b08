"""Embedding provider factory."""

from __future__ import annotations

from core.config import EmbeddingConfig
from memory.embeddings.base_embedder import BaseEmbedder
from memory.embeddings.hashing_embedder import HashingEmbedder
from memory.embeddings.sentence_transformer_embedder import SentenceTransformerEmbedder


def build_embedder(config: EmbeddingConfig) -> BaseEmbedder:
    """Build an embedder from configuration, defaulting safely to hashing."""
    if config.provider in ("sentence-transformers", "sentence_transformers"):
        return SentenceTransformerEmbedder(model=config.model)
    return HashingEmbedder(dimensions=config.dimensions)
