"""Abstraction and maintenance tests."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from core.config import AbstractionConfig, MaintenanceConfig
from memory.consolidation.abstractor import (
    Abstractor,
    detect_patterns,
    find_common_tags,
    find_similar_memories,
    generate_abstract_content,
)
from memory.consolidation.consolidator import Consolidator
from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph
from memory.stores.sql_store import SQLStore
from memory.types.memory import ConfidenceMetrics, Memory, MemoryMetadata, utc_now


def build_consolidator(tmp_path: Path) -> Consolidator:
    sql_store = SQLStore(db_path=tmp_path / "mem.db")
    store = MemoryStore(sql_store)
    graph = MemoryGraph(sql_store)
    abstractor = Abstractor(store, graph, config=AbstractionConfig())
    return Consolidator(store, graph, abstractor, MaintenanceConfig())


def make_memory(
    memory_id: str,
    content: str,
    tags: list[str],
    embedding: list[float] | None = None,
    confidence: float = 0.6,
) -> Memory:
    return Memory(
        id=memory_id,
        kind="episodic",
        content=content,
        embedding=embedding,
        confidence=ConfidenceMetrics(initial=confidence, current=confidence),
        metadata=MemoryMetadata(source="inferred", tags=tags),
    )


def test_find_similar_memories_drops_small_clusters() -> None:
    memories = [
        make_memory("mem_a", "a", [], [1.0, 0.0]),
        make_memory("mem_b", "b", [], [0.95, 0.05]),
        make_memory("mem_c", "c", [], [0.9, 0.1]),
        make_memory("mem_d", "d", [], [0.0, 1.0]),
        make_memory("mem_e", "e", [], [0.05, 0.95]),
        make_memory("mem_f", "f", [], None),
    ]
    clusters = find_similar_memories(memories, threshold=0.75, min_cluster_size=3)
    assert [[m.id for m in c] for c in clusters] == [["mem_a", "mem_b", "mem_c"]]
    assert len(find_similar_memories(memories, min_cluster_size=2)) == 2


def test_abstract_content_templates() -> None:
    prefs = [
        make_memory(f"mem_{i}", f"user prefers dark theme {where}", ["preference"])
        for i, where in enumerate(["editor", "terminal", "browser"])
    ]
    assert generate_abstract_content(prefs, ["preference"]) == (
        "User preference pattern: user prefers dark theme"
    )
    assert generate_abstract_content(prefs, ["code", "python"]) == (
        "Recurring python pattern across 3 instances"
    )
    assert generate_abstract_content(prefs, ["code"]) == "Recurring code pattern across 3 instances"
    assert generate_abstract_content(prefs, ["knowledge"]).startswith("Project knowledge: ")
    assert generate_abstract_content(prefs, []) == (
        "Pattern from 3 similar memories: user prefers dark theme editor"
    )


def test_common_tags_and_patterns() -> None:
    memories = [
        make_memory("mem_a", "a", ["code", "python"]),
        make_memory("mem_b", "b", ["code", "python"]),
        make_memory("mem_c", "c", ["code", "rust"]),
        make_memory("mem_d", "d", ["docs"]),
    ]
    assert find_common_tags(memories) == ["code", "python"]
    [pattern] = detect_patterns(memories)
    assert pattern.pattern == "code"
    assert pattern.frequency == 3
    assert pattern.memories == ["mem_a", "mem_b", "mem_c"]
    assert pattern.confidence == pytest.approx(0.6)


async def test_abstraction_links_sources_without_deleting_them(tmp_path: Path) -> None:
    consolidator = build_consolidator(tmp_path)
    store = consolidator.store
    sources = []
    for where, vector in (("editor", [1.0, 0.0]), ("terminal", [0.95, 0.05]), ("browser", [0.9, 0.1])):
        sources.append(
            await store.add(
                f"user prefers dark theme {where}",
                "episodic",
                "inferred",
                embedding=vector,
                tags=["preference", "ui"],
                initial_confidence=0.6,
            )
        )
    for content, vector in (("ran migrations", [0.0, 1.0]), ("ran seeds", [0.05, 0.95])):
        await store.add(content, "episodic", "inferred", embedding=vector, initial_confidence=0.6)
    await store.add("unrelated semantic fact", "semantic", "explicit", embedding=[1.0, 0.0])

    [result] = await consolidator.abstractor.run_abstraction()
    abstract = result.abstract_memory
    assert abstract.content == "User preference pattern: user prefers dark theme"
    assert abstract.kind == "semantic"
    assert abstract.metadata.tags == ["abstracted", "preference", "ui"]
    assert abstract.confidence.current == pytest.approx(0.54)
    assert result.pattern_type == "preference"
    assert result.source_memories == [m.id for m in sources]

    related = await consolidator.graph.get_related(abstract.id)
    assert sorted(r.memory_id for r in related) == sorted(m.id for m in sources)
    assert {(r.relation, r.weight) for r in related} == {("supersedes", 0.9)}
    for source in sources:
        assert await store.get(source.id) is not None


async def test_too_few_candidates_skip_abstraction(tmp_path: Path) -> None:
    consolidator = build_consolidator(tmp_path)
    for i in range(3):
        await consolidator.store.add(
            f"weak episode {i}", "episodic", "inferred", embedding=[1.0, 0.0], initial_confidence=0.3
        )
    assert await consolidator.abstractor.run_abstraction() == []


async def test_maintenance_prunes_graph_of_deleted_memories(tmp_path: Path) -> None:
    consolidator = build_consolidator(tmp_path)
    store = consolidator.store
    stale = await store.add("old fact", "semantic", "inferred")
    fresh = await store.add("new fact", "semantic", "inferred")
    aged = stale.confidence.model_copy(update={"last_accessed": utc_now() - timedelta(days=120)})
    await store.update(stale.id, {"confidence": aged})
    await consolidator.graph.add_edge(fresh.id, stale.id, "related")

    results = await consolidator.run()
    assert results["errors"] == []
    assert results["deleted_ids"] == [stale.id]
    assert results["graph_nodes_removed"] == 1
    assert results["abstractions_created"] == 0
    assert not consolidator.graph.has_node(stale.id)
    assert consolidator.graph.nodes[fresh.id].out_degree == 0
    assert store.all_ids() == [fresh.id]


class FlakyGraph(MemoryGraph):
    def __init__(self, sql_store: SQLStore, failing_targets: set[str]) -> None:
        super().__init__(sql_store)
        self.failing_targets = failing_targets

    async def add_edge(self, source_id, target_id, relation, weight=1.0):
        if target_id in self.failing_targets:
            raise RuntimeError("graph write failed")
        return await super().add_edge(source_id, target_id, relation, weight)


async def test_failing_cluster_does_not_stop_the_others(tmp_path: Path) -> None:
    sql_store = SQLStore(db_path=tmp_path / "mem.db")
    store = MemoryStore(sql_store)
    graph = FlakyGraph(sql_store, set())
    abstractor = Abstractor(store, graph, config=AbstractionConfig())

    broken = []
    for where, vector in (("editor", [1.0, 0.0]), ("terminal", [0.95, 0.05]), ("browser", [0.9, 0.1])):
        memory = await store.add(
            f"user prefers dark theme {where}",
            "episodic",
            "inferred",
            embedding=vector,
            tags=["preference"],
            initial_confidence=0.6,
        )
        broken.append(memory.id)
    healthy = []
    for step, vector in (("lint", [0.0, 1.0]), ("test", [0.05, 0.95]), ("build", [0.1, 0.9])):
        memory = await store.add(
            f"ran {step} before push",
            "episodic",
            "inferred",
            embedding=vector,
            tags=["code", "python"],
            initial_confidence=0.6,
        )
        healthy.append(memory.id)
    graph.failing_targets.update(broken)

    [result] = await abstractor.run_abstraction()
    assert result.source_memories == healthy
    assert result.abstract_memory.content == "Recurring python pattern across 3 instances"
    related = await graph.get_related(result.abstract_memory.id)
    assert sorted(r.memory_id for r in related) == sorted(healthy)
