"""Graph store for relationships between memories."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from memory.schemas import GRAPH_VERSION
from memory.stores.sql_store import SQLStore
from memory.types.graph import MemoryEdge, MemoryNode, RelatedMemory
from memory.types.kinds import RelationType

logger = logging.getLogger("mem.graph")


def generate_edge_id() -> str:
    return f"edge_{uuid.uuid4().hex}"


class MemoryGraph:
    """Directed typed edges between memory ids, traversed without direction.

    The whole graph is persisted as one document and rewritten after every
    mutation.
    """

    def __init__(self, sql_store: SQLStore) -> None:
        self.sql_store = sql_store
        self.nodes: dict[str, MemoryNode] = {}
        self.edges: dict[str, MemoryEdge] = {}
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._save_lock = asyncio.Lock()

    async def init(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await asyncio.to_thread(self.sql_store.create_all)
            try:
                payload = await asyncio.to_thread(self.sql_store.read_graph)
                if payload:
                    self.nodes = {
                        key: MemoryNode.model_validate(value)
                        for key, value in payload.get("nodes", {}).items()
                    }
                    self.edges = {
                        key: MemoryEdge.model_validate(value)
                        for key, value in payload.get("edges", {}).items()
                    }
            except (SQLAlchemyError, ValidationError) as exc:
                logger.error("Failed to load graph: %s", exc)
            self._initialized = True
            logger.info("Memory graph initialized: %d nodes, %d edges", len(self.nodes), len(self.edges))

    def _snapshot(self) -> dict[str, Any]:
        return {
            "version": GRAPH_VERSION,
            "nodes": {key: node.model_dump(mode="json") for key, node in self.nodes.items()},
            "edges": {key: edge.model_dump(mode="json") for key, edge in self.edges.items()},
        }

    async def _save(self) -> None:
        async with self._save_lock:
            await asyncio.to_thread(self.sql_store.write_graph, self._snapshot())

    def has_node(self, memory_id: str) -> bool:
        return memory_id in self.nodes

    def get_edge(self, edge_id: str) -> MemoryEdge | None:
        return self.edges.get(edge_id)

    def _ensure_node(self, memory_id: str) -> tuple[MemoryNode, bool]:
        node = self.nodes.get(memory_id)
        if node is not None:
            return node, False
        node = MemoryNode(memory_id=memory_id)
        self.nodes[memory_id] = node
        return node, True

    async def add_node(self, memory_id: str) -> MemoryNode:
        await self.init()
        node, created = self._ensure_node(memory_id)
        if created:
            await self._save()
        return node

    async def add_edge(
        self,
        source_id: str,
        target_id: str,
        relation: RelationType,
        weight: float = 1.0,
    ) -> MemoryEdge:
        await self.init()
        source, _ = self._ensure_node(source_id)
        target, _ = self._ensure_node(target_id)
        edge = MemoryEdge(
            id=generate_edge_id(),
            source_id=source_id,
            target_id=target_id,
            relation=relation,
            weight=weight,
        )
        self.edges[edge.id] = edge
        source.edges.append(edge.id)
        source.out_degree += 1
        target.edges.append(edge.id)
        target.in_degree += 1
        await self._save()
        logger.debug("Added %s edge %s -> %s", relation, source_id, target_id)
        return edge

    async def get_related(
        self, memory_id: str, relations: Iterable[RelationType] | None = None
    ) -> list[RelatedMemory]:
        """Neighbors over incident edges in either direction, heaviest first."""
        await self.init()
        node = self.nodes.get(memory_id)
        if node is None:
            return []
        wanted = set(relations) if relations is not None else None
        related: list[RelatedMemory] = []
        # A self-edge is listed twice on its node.
        for edge_id in dict.fromkeys(node.edges):
            edge = self.edges.get(edge_id)
            if edge is None:
                continue
            if wanted is not None and edge.relation not in wanted:
                continue
            related.append(
                RelatedMemory(
                    memory_id=edge.other_end(memory_id),
                    relation=edge.relation,
                    weight=edge.weight,
                )
            )
        related.sort(key=lambda r: r.weight, reverse=True)
        return related

    async def find_contradictions(self, memory_id: str) -> list[str]:
        return [r.memory_id for r in await self.get_related(memory_id, ["contradicts"])]

    async def find_reinforcements(self, memory_id: str) -> list[str]:
        return [r.memory_id for r in await self.get_related(memory_id, ["reinforces"])]

    async def remove_node(self, memory_id: str) -> bool:
        """Drop a node and its incident edges, keeping neighbor degrees exact."""
        await self.init()
        node = self.nodes.get(memory_id)
        if node is None:
            return False
        for edge_id in list(node.edges):
            edge = self.edges.pop(edge_id, None)
            if edge is None:
                continue
            other_id = edge.other_end(memory_id)
            other = self.nodes.get(other_id)
            if other is None or other_id == memory_id:
                continue
            other.edges = [e for e in other.edges if e != edge_id]
            if edge.source_id == memory_id:
                other.in_degree -= 1
            else:
                other.out_degree -= 1
        del self.nodes[memory_id]
        await self._save()
        logger.debug("Removed node %s", memory_id)
        return True

    async def find_clusters(self, min_size: int = 2) -> list[set[str]]:
        """Connected components (ignoring direction) with at least `min_size` nodes."""
        await self.init()
        visited: set[str] = set()
        clusters: list[set[str]] = []
        for start in list(self.nodes):
            if start in visited:
                continue
            cluster: set[str] = set()
            queue = deque([start])
            while queue:
                current = queue.popleft()
                if current in visited:
                    continue
                visited.add(current)
                cluster.add(current)
                node = self.nodes.get(current)
                if node is None:
                    continue
                for edge_id in node.edges:
                    edge = self.edges.get(edge_id)
                    if edge is None:
                        continue
                    neighbor = edge.other_end(current)
                    if neighbor not in visited:
                        queue.append(neighbor)
            if len(cluster) >= min_size:
                clusters.append(cluster)
        return clusters

    def stats(self) -> dict[str, Any]:
        total_degree = sum(node.in_degree + node.out_degree for node in self.nodes.values())
        return {
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "avg_degree": total_degree / len(self.nodes) if self.nodes else 0.0,
        }
