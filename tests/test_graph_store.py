"""Memory relation graph tests."""

from __future__ import annotations

from pathlib import Path

from memory.stores.graph_store import MemoryGraph
from memory.stores.sql_store import SQLStore


def build_graph(tmp_path: Path) -> MemoryGraph:
    return MemoryGraph(SQLStore(db_path=tmp_path / "mem.db"))


def assert_degrees_consistent(graph: MemoryGraph) -> None:
    for node_id, node in graph.nodes.items():
        incident = [graph.edges[e] for e in node.edges]
        assert node.out_degree == sum(1 for e in incident if e.source_id == node_id)
        assert node.in_degree == sum(1 for e in incident if e.target_id == node_id)


async def test_single_edge_creates_two_nodes(tmp_path: Path) -> None:
    graph = build_graph(tmp_path)
    edge = await graph.add_edge("mem_a", "mem_b", "reinforces", 0.7)
    stats = graph.stats()
    assert stats["nodes"] == 2
    assert stats["edges"] == 1
    assert stats["avg_degree"] == 1.0
    assert edge.id.startswith("edge_")
    assert graph.nodes["mem_a"].out_degree == 1
    assert graph.nodes["mem_b"].in_degree == 1
    assert graph.get_edge(edge.id) == edge


async def test_related_ignores_direction_and_sorts_by_weight(tmp_path: Path) -> None:
    graph = build_graph(tmp_path)
    await graph.add_edge("mem_a", "mem_b", "related", 0.2)
    await graph.add_edge("mem_c", "mem_a", "contradicts", 0.9)
    await graph.add_edge("mem_a", "mem_d", "reinforces", 0.5)

    related = await graph.get_related("mem_a")
    assert [r.memory_id for r in related] == ["mem_c", "mem_d", "mem_b"]
    assert await graph.find_contradictions("mem_a") == ["mem_c"]
    assert await graph.find_contradictions("mem_c") == ["mem_a"]
    assert await graph.find_reinforcements("mem_a") == ["mem_d"]
    assert await graph.get_related("mem_unknown") == []


async def test_remove_node_keeps_degrees_consistent(tmp_path: Path) -> None:
    graph = build_graph(tmp_path)
    await graph.add_edge("mem_a", "mem_b", "supersedes")
    await graph.add_edge("mem_c", "mem_a", "related")
    await graph.add_edge("mem_b", "mem_c", "extends")

    assert await graph.remove_node("mem_a")
    assert not graph.has_node("mem_a")
    assert len(graph.edges) == 1
    assert graph.nodes["mem_b"].in_degree == 0
    assert graph.nodes["mem_b"].out_degree == 1
    assert graph.nodes["mem_c"].out_degree == 0
    assert graph.nodes["mem_c"].in_degree == 1
    assert_degrees_consistent(graph)
    assert not await graph.remove_node("mem_a")


async def test_self_edge_removal(tmp_path: Path) -> None:
    graph = build_graph(tmp_path)
    await graph.add_edge("mem_a", "mem_a", "related", 0.5)
    await graph.add_edge("mem_a", "mem_b", "related")
    assert graph.nodes["mem_a"].in_degree == 1
    assert graph.nodes["mem_a"].out_degree == 2

    await graph.remove_node("mem_a")
    assert graph.edges == {}
    assert graph.nodes["mem_b"].in_degree == 0
    assert_degrees_consistent(graph)


async def test_find_clusters_respects_min_size(tmp_path: Path) -> None:
    graph = build_graph(tmp_path)
    await graph.add_edge("mem_a", "mem_b", "related")
    await graph.add_edge("mem_b", "mem_c", "related")
    await graph.add_edge("mem_d", "mem_e", "related")
    await graph.add_node("mem_f")

    clusters = await graph.find_clusters()
    assert sorted(map(sorted, clusters)) == [["mem_a", "mem_b", "mem_c"], ["mem_d", "mem_e"]]
    for k in (1, 2, 3, 4):
        assert all(len(c) >= k for c in await graph.find_clusters(k))
    assert len(await graph.find_clusters(1)) == 3
    assert await graph.find_clusters(4) == []


async def test_graph_is_persisted(tmp_path: Path) -> None:
    graph = build_graph(tmp_path)
    await graph.add_edge("mem_a", "mem_b", "derived_from", 0.8)

    reloaded = build_graph(tmp_path)
    related = await reloaded.get_related("mem_b")
    assert len(related) == 1
    assert related[0].memory_id == "mem_a"
    assert related[0].relation == "derived_from"
    assert related[0].weight == 0.8
