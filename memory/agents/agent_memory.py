"""Per-agent views over the memory store."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph
from memory.types.kinds import AgentType, MemoryKind
from memory.types.memory import Memory, MemorySearchResult, utc_now

logger = logging.getLogger("mem.agents")


@dataclass
class AgentMemorySpace:
    """Cached memories of one agent type plus tag frequencies."""

    agent_type: AgentType
    memories: list[Memory] = field(default_factory=list)
    patterns: dict[str, int] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=utc_now)

    def count_tags(self, tags: Iterable[str]) -> None:
        for tag in tags:
            self.patterns[tag] = self.patterns.get(tag, 0) + 1

    def append(self, memory: Memory) -> None:
        self.memories.append(memory)
        self.count_tags(memory.metadata.tags)
        self.last_updated = utc_now()

    def remove(self, memory_id: str) -> Memory | None:
        for index, memory in enumerate(self.memories):
            if memory.id != memory_id:
                continue
            del self.memories[index]
            for tag in memory.metadata.tags:
                remaining = self.patterns.get(tag, 0) - 1
                if remaining > 0:
                    self.patterns[tag] = remaining
                else:
                    self.patterns.pop(tag, None)
            self.last_updated = utc_now()
            return memory
        return None


def word_match_ratio(query: str, content: str) -> float:
    """Share of query words longer than two characters found in `content`."""
    query_words = [w for w in query.split() if len(w) > 2]
    if not query_words:
        return 0.0
    content_words = set(content.split())
    matches = sum(1 for w in query_words if w in content_words)
    return matches / len(query_words)


class AgentMemory:
    """Lazily built per-agent memory spaces, invalidated explicitly."""

    def __init__(self, store: MemoryStore, graph: MemoryGraph) -> None:
        self.store = store
        self.graph = graph
        self.spaces: dict[str, AgentMemorySpace] = {}

    async def get_space(self, agent_type: AgentType) -> AgentMemorySpace:
        space = self.spaces.get(agent_type)
        if space is not None:
            return space
        space = AgentMemorySpace(agent_type=agent_type)
        for memory in await self.store.get_all():
            if memory.metadata.agent_type == agent_type:
                space.memories.append(memory)
                space.count_tags(memory.metadata.tags)
        self.spaces[agent_type] = space
        return space

    async def add_agent_memory(
        self,
        agent_type: AgentType,
        content: str,
        kind: MemoryKind,
        *,
        session_id: str | None = None,
        tags: Iterable[str] | None = None,
        embedding: list[float] | None = None,
        initial_confidence: float = 0.5,
    ) -> Memory:
        space = await self.get_space(agent_type)
        memory = await self.store.add(
            content,
            kind,
            "interaction",
            embedding=embedding,
            tags=tags,
            session_id=session_id,
            agent_type=agent_type,
            initial_confidence=initial_confidence,
        )
        space.append(memory)
        logger.info("Added %s memory %s", agent_type, memory.id)
        return memory

    async def search_agent_memories(
        self,
        agent_type: AgentType,
        query: str,
        limit: int = 5,
        min_confidence: float | None = None,
    ) -> list[MemorySearchResult]:
        space = await self.get_space(agent_type)
        query_lower = query.lower()
        results: list[MemorySearchResult] = []
        for memory in space.memories:
            if min_confidence and memory.confidence.current < min_confidence:
                continue
            content_lower = memory.content.lower()
            if query_lower not in content_lower:
                continue
            similarity = word_match_ratio(query_lower, content_lower)
            results.append(
                MemorySearchResult(
                    memory=memory,
                    similarity=similarity,
                    relevance=similarity * memory.confidence.current,
                )
            )
        results.sort(key=lambda r: r.relevance, reverse=True)
        return results[:limit]

    async def get_agent_patterns(self, agent_type: AgentType) -> list[tuple[str, int]]:
        """Tag frequencies of an agent, most common first."""
        space = await self.get_space(agent_type)
        return sorted(space.patterns.items(), key=lambda item: item[1], reverse=True)

    async def transfer_memory(
        self, memory_id: str, from_agent: AgentType, to_agent: AgentType
    ) -> Memory | None:
        """Reassign a memory to another agent and mark the move in the graph."""
        updated = await self.store.update(memory_id, {"metadata": {"agent_type": to_agent}})
        if updated is None:
            return None
        source_space = self.spaces.get(from_agent)
        if source_space is not None:
            source_space.remove(memory_id)
        target_space = await self.get_space(to_agent)
        if not any(m.id == memory_id for m in target_space.memories):
            target_space.append(updated)
        # Self-referencing edge records that a transfer happened.
        await self.graph.add_edge(memory_id, memory_id, "related", 0.5)
        logger.info("Transferred memory %s from %s to %s", memory_id, from_agent, to_agent)
        return updated

    async def get_agent_insights(self, agent_type: AgentType) -> dict[str, Any]:
        space = await self.get_space(agent_type)
        total = len(space.memories)
        avg_confidence = (
            sum(m.confidence.current for m in space.memories) / total if total else 0.0
        )
        recent = sorted(space.memories, key=lambda m: m.metadata.updated_at, reverse=True)
        return {
            "total_memories": total,
            "avg_confidence": avg_confidence,
            "top_patterns": await self.get_agent_patterns(agent_type),
            "recent_activity": recent[:5],
        }

    def clear_cache(self, agent_type: AgentType | None = None) -> None:
        if agent_type:
            self.spaces.pop(agent_type, None)
        else:
            self.spaces.clear()
        logger.info("Cleared agent memory cache (%s)", agent_type or "all")
