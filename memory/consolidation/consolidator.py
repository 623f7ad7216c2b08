"""Memory maintenance orchestrator."""

from __future__ import annotations

import logging
from typing import Any

from core.config import MaintenanceConfig
from memory.consolidation.abstractor import Abstractor
from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph

logger = logging.getLogger("mem.maintenance")


class Consolidator:
    """Runs the maintenance cycle: stale cleanup, graph pruning, abstraction."""

    def __init__(
        self,
        store: MemoryStore,
        graph: MemoryGraph,
        abstractor: Abstractor,
        config: MaintenanceConfig | None = None,
    ) -> None:
        self.store = store
        self.graph = graph
        self.abstractor = abstractor
        self.config = config or MaintenanceConfig()

    async def run(
        self,
        max_age_days: float | None = None,
        min_confidence: float | None = None,
    ) -> dict[str, Any]:
        """Run every step; a failing step is logged and reported, not raised."""
        max_age_days = max_age_days if max_age_days is not None else self.config.max_age_days
        min_confidence = min_confidence if min_confidence is not None else self.config.min_confidence
        results: dict[str, Any] = {"errors": []}

        deleted: list[str] = []
        try:
            deleted = await self.store.cleanup_stale_memories(max_age_days, min_confidence)
        except Exception as exc:
            logger.error("Stale cleanup failed: %s", exc)
            results["errors"].append(f"cleanup: {exc}")
        results["deleted_ids"] = deleted

        pruned = 0
        try:
            for memory_id in deleted:
                if await self.graph.remove_node(memory_id):
                    pruned += 1
        except Exception as exc:
            logger.error("Graph pruning failed: %s", exc)
            results["errors"].append(f"graph: {exc}")
        results["graph_nodes_removed"] = pruned

        abstractions = 0
        try:
            abstractions = len(await self.abstractor.run_abstraction())
        except Exception as exc:
            logger.error("Abstraction failed: %s", exc)
            results["errors"].append(f"abstraction: {exc}")
        results["abstractions_created"] = abstractions

        logger.info(
            "Maintenance complete: %d deleted, %d graph nodes removed, %d abstractions",
            len(deleted),
            pruned,
            abstractions,
        )
        return results
