"""High-level memory manager wiring every memory component together."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from core.background import BackgroundTasks
from core.config import MemoryConfig, ensure_runtime_dirs, load_effective_config
from core.event_bus import EventBus
from core.logging_setup import configure_logging
from memory.agents.agent_memory import AgentMemory
from memory.agents.shared_knowledge import SharedKnowledge, SharedKnowledgePool
from memory.consolidation.abstractor import Abstractor
from memory.consolidation.consolidator import Consolidator
from memory.embeddings.embedder_factory import build_embedder
from memory.errors import EmbeddingError
from memory.extraction.catcher import MemoryCatcher
from memory.extraction.extractor import MemoryExtractor
from memory.extraction.transcripts import InMemoryTranscriptSource, TranscriptSource
from memory.learning.active_learning import ActiveLearning
from memory.memory_store import MemoryStore
from memory.retrieval import InjectionResult, InjectionService
from memory.stores.graph_store import MemoryGraph
from memory.stores.sql_store import SQLStore
from memory.stores.vector_store import VectorEngine
from memory.types.context import ConversationTurn
from memory.types.kinds import AgentType, MemoryKind
from memory.types.learning import ActiveLearningTrigger, FeedbackEvent, MemoryPattern
from memory.types.memory import Memory, MemorySearchResult

logger = logging.getLogger("mem.manager")


class MemoryManager:
    """Owns the store, graph, vector engine and all per-process memory state."""

    def __init__(
        self,
        sql_store: SQLStore,
        config: MemoryConfig | None = None,
        vector: VectorEngine | None = None,
        transcripts: TranscriptSource | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or MemoryConfig()
        self.sql_store = sql_store
        self.event_bus = event_bus or EventBus()
        self.background = BackgroundTasks()
        self.vector = vector or VectorEngine(
            build_embedder(self.config.embeddings),
            max_retries=self.config.embeddings.max_retries,
            backoff_seconds=self.config.embeddings.backoff_seconds,
        )
        embedding_engine = self.vector if self.config.enable_embeddings else None

        self.store = MemoryStore(sql_store, cache_size=self.config.store.cache_size)
        self.graph = MemoryGraph(sql_store)
        self.extractor = MemoryExtractor(self.store, embedding_engine)
        self.injection = InjectionService(
            self.store, self.vector, self.background, self.config.injection
        )
        self.active_learning = ActiveLearning(self.store, self.graph, self.config.active_learning)
        self.abstractor = Abstractor(
            self.store, self.graph, embedding_engine, self.config.abstraction
        )
        self.consolidator = Consolidator(
            self.store, self.graph, self.abstractor, self.config.maintenance
        )
        self.agents = AgentMemory(self.store, self.graph)
        self.shared = SharedKnowledgePool(self.store, self.graph, self.agents)
        self.transcripts = transcripts or InMemoryTranscriptSource(self.event_bus)
        self.catcher = MemoryCatcher(
            self.store, self.transcripts, embedding_engine, self.config.catcher
        )

    @classmethod
    def from_config(cls, root: Path | None = None) -> MemoryManager:
        """Build a manager from `config/memory.yaml` under `root`."""
        default_root = Path(__file__).resolve().parents[1]
        root = (root or default_root).resolve()
        raw = load_effective_config(root)
        configure_logging(raw)
        paths = ensure_runtime_dirs(root, raw)
        return cls(sql_store=SQLStore(paths["db_path"]), config=MemoryConfig.from_dict(raw))

    async def init(self) -> None:
        await self.store.init()
        await self.graph.init()
        if self.config.preload_embedding_model and self.config.enable_embeddings:
            await self.injection.warm_up()
        logger.info("Memory manager ready")

    # Capture

    async def capture_explicit(
        self,
        instruction: str,
        session_id: str | None = None,
        agent_type: AgentType | None = None,
    ) -> Memory:
        return await self.extractor.extract_explicit_memory(instruction, session_id, agent_type)

    async def capture_conversation(
        self,
        turns: Sequence[ConversationTurn],
        session_id: str | None = None,
        agent_type: AgentType | None = None,
    ) -> list[Memory]:
        if not self.config.enable_auto_extraction:
            logger.debug("Auto extraction disabled; skipping %d turns", len(turns))
            return []
        return await self.extractor.extract_from_conversation(
            turns,
            session_id=session_id,
            agent_type=agent_type,
            generate_embeddings=self.config.enable_embeddings,
        )

    def start_catcher(self, watch: bool = True) -> None:
        """Start periodic transcript catching, optionally also on pushed updates."""
        self.catcher.start()
        if watch:
            self.catcher.start_watching(self.event_bus)

    # Retrieval

    async def search(
        self,
        query: str,
        limit: int = 10,
        agent_type: AgentType | None = None,
        kind: MemoryKind | None = None,
        min_similarity: float = 0.3,
    ) -> list[MemorySearchResult]:
        """Semantic search with text-search fallback, optionally per agent."""
        all_memories = await self.store.get_all()
        memories = all_memories
        if agent_type:
            memories = [m for m in memories if m.metadata.agent_type == agent_type]
        if kind:
            memories = [m for m in memories if m.kind == kind]
        embedded = [m for m in memories if m.has_embedding]
        if embedded and self.config.enable_embeddings:
            try:
                return await self.vector.semantic_search(
                    query, embedded, limit=limit, min_similarity=min_similarity
                )
            except EmbeddingError as exc:
                logger.warning("Semantic search failed, falling back to text: %s", exc)
        # Fetch every text match so the agent filter cannot starve the result.
        results = await self.store.search(query, kind=kind, limit=max(limit, len(all_memories)))
        if agent_type:
            results = [r for r in results if r.memory.metadata.agent_type == agent_type]
        return results[:limit]

    async def inject_memories(
        self, prompt: str, session_id: str | None = None, **options: Any
    ) -> InjectionResult:
        return await self.injection.inject_memories(prompt, session_id, **options)

    def record_feedback(
        self, memory_id: str, session_id: str, query_context: str, positive: bool
    ) -> int:
        return self.injection.record_feedback(memory_id, session_id, query_context, positive)

    # Active learning

    async def check_for_triggers(self, session_id: str, context: str) -> list[ActiveLearningTrigger]:
        return await self.active_learning.check_for_triggers(session_id, context)

    async def handle_trigger_response(
        self, trigger: ActiveLearningTrigger, response_index: int, session_id: str
    ) -> None:
        await self.active_learning.handle_response(trigger, response_index, session_id)

    async def process_feedback(self, feedback: FeedbackEvent) -> Memory | None:
        return await self.active_learning.process_feedback(feedback)

    # Agents and shared knowledge

    async def add_agent_memory(
        self, agent_type: AgentType, content: str, kind: MemoryKind, **options: Any
    ) -> Memory:
        return await self.agents.add_agent_memory(agent_type, content, kind, **options)

    async def search_agent_memories(
        self, agent_type: AgentType, query: str, limit: int = 5
    ) -> list[MemorySearchResult]:
        return await self.agents.search_agent_memories(agent_type, query, limit=limit)

    async def transfer_memory(
        self, memory_id: str, from_agent: AgentType, to_agent: AgentType
    ) -> Memory | None:
        return await self.agents.transfer_memory(memory_id, from_agent, to_agent)

    async def get_agent_insights(self, agent_type: AgentType) -> dict[str, Any]:
        return await self.agents.get_agent_insights(agent_type)

    async def promote_to_shared(self, memory_id: str) -> SharedKnowledge | None:
        return await self.shared.promote_to_shared(memory_id)

    def search_shared(self, query: str, limit: int = 5) -> list[SharedKnowledge]:
        return self.shared.search_shared(query, limit=limit)

    async def detect_cross_agent_patterns(self) -> list[MemoryPattern]:
        return await self.shared.detect_cross_agent_patterns()

    async def sync_agent_knowledge(
        self, source_agent: AgentType, target_agent: AgentType, **options: Any
    ) -> list[Memory]:
        return await self.shared.sync_agent_knowledge(source_agent, target_agent, **options)

    # Maintenance

    async def run_maintenance(
        self, max_age_days: float | None = None, min_confidence: float | None = None
    ) -> dict[str, Any]:
        summary = await self.consolidator.run(max_age_days, min_confidence)
        if summary["deleted_ids"]:
            self.agents.clear_cache()
        return summary

    def stats(self) -> dict[str, Any]:
        return {
            "store": self.store.stats(),
            "graph": self.graph.stats(),
            "shared": self.shared.stats(),
            "catcher": self.catcher.get_stats(),
            "embedding_model_loaded": self.vector.is_loaded,
            "pending_background_tasks": self.background.pending,
        }

    async def close(self) -> None:
        """Stop the catcher, finish pending side effects and release the engine."""
        await self.catcher.stop()
        await self.background.drain()
        self.sql_store.dispose()
        logger.info("Memory manager closed")
