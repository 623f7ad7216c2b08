"""Deterministic local embedder for offline usage."""

from __future__ import annotations

import hashlib
import math
import re

from memory.embeddings.base_embedder import BaseEmbedder


class HashingEmbedder(BaseEmbedder):
    """Bag-of-tokens feature hashing into a fixed number of buckets.

    Texts sharing vocabulary land close together, which is enough for
    deduplication and clustering when no neural model is available.
    """

    name = "hashing"

    def __init__(self, dimensions: int = 384) -> None:
        self.dimensions = dimensions

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        return [token for token in re.split(r"[^a-zA-Z0-9]+", text.lower()) if token]

    def _bucket(self, token: str) -> tuple[int, float]:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % self.dimensions
        sign = 1.0 if digest[4] % 2 == 0 else -1.0
        return index, sign

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for token in self._tokenize(text):
            index, sign = self._bucket(token)
            vector[index] += sign
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]
