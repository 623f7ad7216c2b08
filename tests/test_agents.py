"""Agent memory spaces and shared knowledge tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from memory.agents.agent_memory import AgentMemory, word_match_ratio
from memory.agents.shared_knowledge import SharedKnowledgePool, jaccard_similarity
from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph
from memory.stores.sql_store import SQLStore


def build_pool(tmp_path: Path) -> SharedKnowledgePool:
    sql_store = SQLStore(db_path=tmp_path / "mem.db")
    store = MemoryStore(sql_store)
    graph = MemoryGraph(sql_store)
    return SharedKnowledgePool(store, graph, AgentMemory(store, graph))


def test_similarity_helpers() -> None:
    assert word_match_ratio("use ripgrep", "we use ripgrep") == 1.0
    assert word_match_ratio("use ripgrep", "we use grep") == 0.5
    assert word_match_ratio("a b", "a b") == 0.0
    assert jaccard_similarity("a b c", "a b d") == 0.5
    assert jaccard_similarity("", "") == 0.0


async def test_agent_spaces_are_scoped_and_rebuilt(tmp_path: Path) -> None:
    pool = build_pool(tmp_path)
    agents = pool.agents
    explore = await agents.add_agent_memory(
        "Explore", "use ripgrep for search", "procedural", tags=["search", "tools"]
    )
    await agents.add_agent_memory("Plan", "plan in small steps", "semantic", tags=["planning"])

    assert explore.metadata.agent_type == "Explore"
    assert explore.metadata.source == "interaction"
    space = await agents.get_space("Explore")
    assert [m.id for m in space.memories] == [explore.id]
    assert space.patterns == {"search": 1, "tools": 1}

    rebuilt = AgentMemory(agents.store, agents.graph)
    assert [m.id for m in (await rebuilt.get_space("Explore")).memories] == [explore.id]

    [hit] = await agents.search_agent_memories("Explore", "ripgrep for")
    assert hit.memory.id == explore.id
    assert hit.similarity == 1.0
    assert await agents.search_agent_memories("Plan", "ripgrep") == []

    insights = await agents.get_agent_insights("Explore")
    assert insights["total_memories"] == 1
    assert insights["avg_confidence"] == 0.5
    assert dict(insights["top_patterns"]) == {"search": 1, "tools": 1}

    agents.clear_cache("Explore")
    assert "Explore" not in agents.spaces
    assert "Plan" in agents.spaces


async def test_transfer_moves_memory_and_records_edge(tmp_path: Path) -> None:
    pool = build_pool(tmp_path)
    agents = pool.agents
    memory = await agents.add_agent_memory("Explore", "index lives in .cache", "semantic")
    await agents.get_space("Plan")

    moved = await agents.transfer_memory(memory.id, "Explore", "Plan")
    assert moved is not None
    assert moved.metadata.agent_type == "Plan"
    assert (await agents.get_space("Explore")).memories == []
    assert [m.id for m in (await agents.get_space("Plan")).memories] == [memory.id]

    [edge] = agents.graph.edges.values()
    assert (edge.source_id, edge.target_id, edge.relation, edge.weight) == (
        memory.id,
        memory.id,
        "related",
        0.5,
    )
    assert await agents.transfer_memory("mem_missing", "Explore", "Plan") is None


async def test_promote_merges_similar_knowledge(tmp_path: Path) -> None:
    pool = build_pool(tmp_path)
    first = await pool.agents.add_agent_memory(
        "Explore", "always run the linter before pushing", "semantic", initial_confidence=0.8
    )
    second = await pool.agents.add_agent_memory(
        "Plan", "always run the linter before pushing code", "semantic"
    )
    other = await pool.agents.add_agent_memory("builder", "cache docker layers", "semantic")

    shared = await pool.promote_to_shared(first.id)
    assert shared is not None
    merged = await pool.promote_to_shared(second.id)
    assert merged is shared
    assert shared.usage_count == 2
    assert shared.source_agents == ["Explore", "Plan"]
    assert shared.confidence == 0.8

    await pool.promote_to_shared(other.id)
    assert len(pool.all_entries()) == 2
    assert await pool.promote_to_shared("mem_missing") is None

    assert [k.id for k in pool.search_shared("linter")] == [shared.id]
    assert pool.search_shared("docker", min_confidence=0.6) == []

    stats = pool.stats()
    assert stats["total"] == 2
    assert stats["avg_confidence"] == pytest.approx(0.65)
    assert stats["top_agents"][0] == ("Explore", 1)


async def test_cross_agent_patterns(tmp_path: Path) -> None:
    pool = build_pool(tmp_path)
    await pool.agents.add_agent_memory("Explore", "a", "semantic", tags=["testing"])
    await pool.agents.add_agent_memory("Plan", "b", "semantic", tags=["testing", "docs"])
    await pool.agents.add_agent_memory("Plan", "c", "semantic", tags=["testing"])
    await pool.agents.add_agent_memory("refactor-agent", "d", "semantic", tags=["docs"])

    [pattern] = await pool.detect_cross_agent_patterns()
    assert pattern.pattern == "testing"
    assert pattern.frequency == 3
    assert pattern.confidence == pytest.approx(0.3)


async def test_sync_copies_confident_memories(tmp_path: Path) -> None:
    pool = build_pool(tmp_path)
    strong = await pool.agents.add_agent_memory(
        "Explore", "tests live in tests/", "semantic", tags=["layout"], initial_confidence=0.9
    )
    await pool.agents.add_agent_memory("Explore", "maybe flaky", "semantic", initial_confidence=0.5)
    target_space = await pool.agents.get_space("reviewer")

    [copy] = await pool.sync_agent_knowledge("Explore", "reviewer")
    assert copy.content == strong.content
    assert copy.metadata.agent_type == "reviewer"
    assert copy.metadata.source == "inferred"
    assert copy.metadata.tags == ["layout", "synced_from_Explore"]
    assert copy.confidence.current == pytest.approx(0.72)
    assert target_space.memories == [copy]

    [edge] = pool.graph.edges.values()
    assert (edge.source_id, edge.target_id, edge.relation, edge.weight) == (
        strong.id,
        copy.id,
        "derived_from",
        0.8,
    )


async def test_transfer_moves_tag_counts_between_spaces(tmp_path: Path) -> None:
    pool = build_pool(tmp_path)
    agents = pool.agents
    moved = await agents.add_agent_memory("Explore", "ci runs on github", "semantic", tags=["ci", "github"])
    await agents.add_agent_memory("Explore", "ci caches pip", "semantic", tags=["ci"])
    await agents.add_agent_memory("Plan", "ship on fridays", "semantic", tags=["release"])

    await agents.transfer_memory(moved.id, "Explore", "Plan")
    assert (await agents.get_space("Explore")).patterns == {"ci": 1}
    assert (await agents.get_space("Plan")).patterns == {"release": 1, "ci": 1, "github": 1}
