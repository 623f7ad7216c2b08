"""Cluster similar episodic memories into generalized semantic memories."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Sequence
from dataclasses import dataclass

from core.config import AbstractionConfig
from memory.errors import EmbeddingError
from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph
from memory.stores.vector_store import VectorEngine, cosine_similarity
from memory.types.learning import MemoryPattern
from memory.types.memory import Memory

logger = logging.getLogger("mem.abstractor")

ABSTRACTED_TAG = "abstracted"
CODE_LANGUAGES = ("typescript", "javascript", "python")
MIN_PATTERN_FREQUENCY = 3


@dataclass
class AbstractionResult:
    abstract_memory: Memory
    source_memories: list[str]
    pattern_type: str
    confidence: float


def find_similar_memories(
    memories: Sequence[Memory], threshold: float = 0.75, min_cluster_size: int = 3
) -> list[list[Memory]]:
    """Greedy single-pass clustering around the first unassigned memory."""
    embedded = [m for m in memories if m.embedding]
    assigned: set[str] = set()
    clusters: list[list[Memory]] = []
    for memory in embedded:
        if memory.id in assigned:
            continue
        cluster = [memory]
        assigned.add(memory.id)
        for other in embedded:
            if other.id in assigned:
                continue
            if cosine_similarity(memory.embedding or [], other.embedding or []) >= threshold:
                cluster.append(other)
                assigned.add(other.id)
        if len(cluster) >= min_cluster_size:
            clusters.append(cluster)
    return clusters


def find_common_tags(memories: Sequence[Memory]) -> list[str]:
    """Tags carried by at least half of the memories, sorted."""
    if not memories:
        return []
    counts: dict[str, int] = {}
    for memory in memories:
        for tag in memory.metadata.tags:
            counts[tag] = counts.get(tag, 0) + 1
    threshold = math.ceil(len(memories) * 0.5)
    return sorted(tag for tag, count in counts.items() if count >= threshold)


def extract_common_phrase(memories: Sequence[Memory]) -> str:
    counts: dict[str, int] = {}
    for memory in memories:
        for word in memory.content.lower().split():
            if len(word) > 3:
                counts[word] = counts.get(word, 0) + 1
    threshold = math.ceil(len(memories) * 0.6)
    common = [word for word, count in counts.items() if count >= threshold]
    return " ".join(common[:10]) or memories[0].content[:50]


def generate_abstract_content(memories: Sequence[Memory], tags: Sequence[str]) -> str:
    if "preference" in tags:
        return f"User preference pattern: {extract_common_phrase(memories)}"
    if "code" in tags:
        language = next((t for t in tags if t in CODE_LANGUAGES), "code")
        return f"Recurring {language} pattern across {len(memories)} instances"
    if "knowledge" in tags:
        return f"Project knowledge: {extract_common_phrase(memories)}"
    return f"Pattern from {len(memories)} similar memories: {memories[0].content[:100]}"


def detect_patterns(memories: Sequence[Memory]) -> list[MemoryPattern]:
    """Tags shared by at least three memories, most frequent first."""
    groups: dict[str, list[Memory]] = {}
    for memory in memories:
        for tag in memory.metadata.tags:
            groups.setdefault(tag, []).append(memory)
    stamp = int(time.time() * 1000)
    patterns = [
        MemoryPattern(
            id=f"pattern_{tag}_{stamp}",
            pattern=tag,
            frequency=len(group),
            memories=[m.id for m in group],
            confidence=sum(m.confidence.current for m in group) / len(group),
        )
        for tag, group in groups.items()
        if len(group) >= MIN_PATTERN_FREQUENCY
    ]
    patterns.sort(key=lambda p: p.frequency, reverse=True)
    return patterns


class Abstractor:
    """Creates abstract memories linked to their sources by `supersedes` edges."""

    def __init__(
        self,
        store: MemoryStore,
        graph: MemoryGraph,
        vector: VectorEngine | None = None,
        config: AbstractionConfig | None = None,
    ) -> None:
        self.store = store
        self.graph = graph
        self.vector = vector
        self.config = config or AbstractionConfig()

    async def abstract_cluster(self, cluster: Sequence[Memory]) -> AbstractionResult | None:
        if len(cluster) < self.config.min_cluster_size:
            return None
        common_tags = find_common_tags(cluster)
        avg_confidence = sum(m.confidence.current for m in cluster) / len(cluster)
        content = generate_abstract_content(cluster, common_tags)

        embedding: list[float] | None = None
        if self.vector is not None:
            try:
                embedding = await self.vector.embed(content)
            except EmbeddingError as exc:
                logger.warning("Failed to embed abstract memory: %s", exc)

        abstract = await self.store.add(
            content,
            "semantic",
            "inferred",
            embedding=embedding,
            tags=[ABSTRACTED_TAG, *common_tags],
            initial_confidence=avg_confidence * 0.9,
        )
        for memory in cluster:
            await self.graph.add_edge(abstract.id, memory.id, "supersedes", 0.9)

        logger.info("Created abstract memory %s from %d sources", abstract.id, len(cluster))
        return AbstractionResult(
            abstract_memory=abstract,
            source_memories=[m.id for m in cluster],
            pattern_type=common_tags[0] if common_tags else "general",
            confidence=avg_confidence,
        )

    async def run_abstraction(self) -> list[AbstractionResult]:
        memories = await self.store.get_all()
        candidates = [
            m
            for m in memories
            if m.kind == "episodic"
            and m.confidence.current > 0.4
            and ABSTRACTED_TAG not in m.metadata.tags
        ]
        if len(candidates) < self.config.min_cluster_size:
            logger.debug("Not enough memories for abstraction (%d)", len(candidates))
            return []
        clusters = find_similar_memories(
            candidates, self.config.similarity_threshold, self.config.min_cluster_size
        )
        results: list[AbstractionResult] = []
        for cluster in clusters:
            try:
                result = await self.abstract_cluster(cluster)
            except Exception as exc:
                logger.error("Abstraction of a %d-memory cluster failed: %s", len(cluster), exc)
                continue
            if result is not None:
                results.append(result)
        logger.info(
            "Abstraction run complete: %d candidates, %d clusters, %d abstractions",
            len(candidates),
            len(clusters),
            len(results),
        )
        return results
