"""Knowledge pool shared between agent types."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from memory.agents.agent_memory import AgentMemory
from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph
from memory.types.kinds import AgentType
from memory.types.learning import MemoryPattern
from memory.types.memory import Memory, utc_now

logger = logging.getLogger("mem.shared")

PATTERN_AGENT_TYPES: tuple[AgentType, ...] = (
    "Explore",
    "Plan",
    "general-purpose",
    "code-quality",
    "builder",
    "reviewer",
)
SIMILARITY_CUTOFF = 0.7
SYNC_CONFIDENCE_FACTOR = 0.8


class SharedKnowledge(BaseModel):
    """A fact promoted out of one agent's space for every agent to use."""

    id: str
    content: str
    source_agents: list[AgentType] = Field(default_factory=list)
    confidence: float
    usage_count: int = 1
    created_at: datetime = Field(default_factory=utc_now)


def jaccard_similarity(a: str, b: str) -> float:
    set_a = set(a.split())
    set_b = set(b.split())
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


class SharedKnowledgePool:
    """In-memory pool of promoted knowledge plus cross-agent operations."""

    def __init__(self, store: MemoryStore, graph: MemoryGraph, agents: AgentMemory) -> None:
        self.store = store
        self.graph = graph
        self.agents = agents
        self.entries: dict[str, SharedKnowledge] = {}

    def _find_similar(self, content: str) -> SharedKnowledge | None:
        content_lower = content.lower()
        for knowledge in self.entries.values():
            if jaccard_similarity(content_lower, knowledge.content.lower()) > SIMILARITY_CUTOFF:
                return knowledge
        return None

    async def promote_to_shared(self, memory_id: str) -> SharedKnowledge | None:
        memory = await self.store.get(memory_id)
        if memory is None:
            return None
        agent = memory.metadata.agent_type
        existing = self._find_similar(memory.content)
        if existing is not None:
            existing.usage_count += 1
            if agent and agent not in existing.source_agents:
                existing.source_agents.append(agent)
            return existing
        knowledge = SharedKnowledge(
            id=f"shared_{uuid.uuid4().hex[:12]}",
            content=memory.content,
            source_agents=[agent] if agent else [],
            confidence=memory.confidence.current,
        )
        self.entries[knowledge.id] = knowledge
        logger.info("Promoted %s to shared knowledge %s", memory_id, knowledge.id)
        return knowledge

    def search_shared(
        self, query: str, limit: int = 5, min_confidence: float | None = None
    ) -> list[SharedKnowledge]:
        query_lower = query.lower()
        scored: list[tuple[float, SharedKnowledge]] = []
        for knowledge in self.entries.values():
            if min_confidence and knowledge.confidence < min_confidence:
                continue
            content_lower = knowledge.content.lower()
            if query_lower in content_lower:
                score = jaccard_similarity(query_lower, content_lower) * knowledge.confidence
                scored.append((score, knowledge))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [knowledge for _, knowledge in scored[:limit]]

    async def detect_cross_agent_patterns(self) -> list[MemoryPattern]:
        """Tags that occur in the spaces of at least two agent types."""
        counts: dict[str, int] = {}
        agents_by_tag: dict[str, set[str]] = {}
        for agent_type in PATTERN_AGENT_TYPES:
            for tag, count in await self.agents.get_agent_patterns(agent_type):
                counts[tag] = counts.get(tag, 0) + count
                agents_by_tag.setdefault(tag, set()).add(agent_type)
        patterns = [
            MemoryPattern(
                id=f"pattern_{uuid.uuid4().hex[:12]}",
                pattern=tag,
                frequency=counts[tag],
                confidence=min(1.0, counts[tag] / 10),
            )
            for tag, agents in agents_by_tag.items()
            if len(agents) >= 2
        ]
        patterns.sort(key=lambda p: p.frequency, reverse=True)
        logger.info("Detected %d cross-agent patterns", len(patterns))
        return patterns

    async def sync_agent_knowledge(
        self,
        source_agent: AgentType,
        target_agent: AgentType,
        min_confidence: float = 0.6,
        limit: int = 10,
    ) -> list[Memory]:
        """Copy the most confident memories of one agent into another's space."""
        source_space = await self.agents.get_space(source_agent)
        relevant = sorted(
            (m for m in source_space.memories if m.confidence.current >= min_confidence),
            key=lambda m: m.confidence.current,
            reverse=True,
        )[:limit]
        target_space = self.agents.spaces.get(target_agent)
        synced: list[Memory] = []
        for memory in relevant:
            copy = await self.store.add(
                memory.content,
                memory.kind,
                "inferred",
                agent_type=target_agent,
                tags=[*memory.metadata.tags, f"synced_from_{source_agent}"],
                initial_confidence=memory.confidence.current * SYNC_CONFIDENCE_FACTOR,
            )
            await self.graph.add_edge(memory.id, copy.id, "derived_from", 0.8)
            if target_space is not None:
                target_space.append(copy)
            synced.append(copy)
        logger.info("Synced %d memories from %s to %s", len(synced), source_agent, target_agent)
        return synced

    def all_entries(self) -> list[SharedKnowledge]:
        return list(self.entries.values())

    def stats(self) -> dict[str, Any]:
        agent_counts: dict[str, int] = {}
        total_confidence = 0.0
        for knowledge in self.entries.values():
            total_confidence += knowledge.confidence
            for agent in knowledge.source_agents:
                agent_counts[agent] = agent_counts.get(agent, 0) + 1
        top_agents = sorted(agent_counts.items(), key=lambda item: item[1], reverse=True)
        return {
            "total": len(self.entries),
            "avg_confidence": total_confidence / len(self.entries) if self.entries else 0.0,
            "top_agents": top_agents,
        }
