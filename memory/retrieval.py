"""Relevant-memory retrieval and context formatting for prompt injection."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime

from core.background import BackgroundTasks
from core.config import InjectionConfig
from memory.errors import EmbeddingError
from memory.memory_store import MemoryStore
from memory.scoring import RankedMemory, adaptive_similarity_floor, rank_memories
from memory.stores.vector_store import VectorEngine
from memory.types.memory import Memory, MemorySearchResult, utc_now

logger = logging.getLogger("mem.injection")

CONTEXT_OPEN = "<relevant-memories>"
CONTEXT_CLOSE = "</relevant-memories>"
MAX_ENTRY_CHARS = 500
TOKEN_HEADROOM = 30
MIN_PROMPT_CHARS = 3


@dataclass
class InjectionMetadata:
    query_time_ms: float = 0.0
    memories_considered: int = 0
    memories_injected: int = 0
    model_loaded: bool = False


@dataclass
class InjectionResult:
    memories: list[RankedMemory] = field(default_factory=list)
    context: str = ""
    metadata: InjectionMetadata = field(default_factory=InjectionMetadata)


@dataclass
class FeedbackEntry:
    memory_id: str
    session_id: str
    query_context: str
    positive: bool
    timestamp: datetime = field(default_factory=utc_now)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def _percent(value: float) -> int:
    return math.floor(value * 100 + 0.5)


def format_memory(memory: Memory, similarity: float) -> str:
    """Render one memory as a labeled context entry."""
    label = (memory.lane or memory.kind).upper()
    header = (
        f"[{label}] ({_percent(similarity)}% match, "
        f"{_percent(memory.confidence.current)}% confidence)"
    )
    if memory.title:
        header += f"\n{memory.title}"
    content = memory.content
    if len(content) > MAX_ENTRY_CHARS:
        content = content[:MAX_ENTRY_CHARS] + "..."
    return f"{header}\n{content}"


def build_context(memories: list[RankedMemory], max_tokens: int) -> str:
    """Wrap formatted entries in context tags while the token estimate allows."""
    if not memories:
        return ""
    lines = [CONTEXT_OPEN]
    total = estimate_tokens(CONTEXT_OPEN)
    for ranked in memories:
        formatted = format_memory(ranked.memory, ranked.similarity)
        tokens = estimate_tokens(formatted)
        if total + tokens > max_tokens - TOKEN_HEADROOM:
            break
        lines.append("")
        lines.append(formatted)
        total += tokens + 2
    lines.append("")
    lines.append(CONTEXT_CLOSE)
    return "\n".join(lines)


class InjectionService:
    """Finds, ranks and formats the memories most relevant to a prompt."""

    def __init__(
        self,
        store: MemoryStore,
        vector: VectorEngine,
        background: BackgroundTasks,
        config: InjectionConfig | None = None,
    ) -> None:
        self.store = store
        self.vector = vector
        self.background = background
        self.config = config or InjectionConfig()
        self.feedback_history: dict[str, int] = {}
        self.feedback_log: list[FeedbackEntry] = []

    def record_feedback(
        self, memory_id: str, session_id: str, query_context: str, positive: bool
    ) -> int:
        """Adjust the net feedback counter of a memory and return the new value."""
        net = self.feedback_history.get(memory_id, 0) + (1 if positive else -1)
        self.feedback_history[memory_id] = net
        self.feedback_log.append(
            FeedbackEntry(
                memory_id=memory_id,
                session_id=session_id,
                query_context=query_context,
                positive=positive,
            )
        )
        logger.debug("Recorded feedback for %s (net %d)", memory_id, net)
        return net

    async def _find_candidates(
        self,
        prompt: str,
        max_memories: int,
        min_similarity: float,
        has_recent_context: bool,
        high_priority: bool,
    ) -> tuple[list[MemorySearchResult], int]:
        memories = await self.store.get_all()
        if not memories:
            return [], 0
        embedded = [m for m in memories if m.has_embedding]
        if not embedded:
            results = await self.store.search(prompt, limit=max_memories * 2, min_confidence=0.3)
            return results, len(memories)
        floor = adaptive_similarity_floor(has_recent_context, high_priority)
        try:
            results = await self.vector.semantic_search(
                prompt,
                embedded,
                limit=max_memories * 3,
                min_similarity=min(min_similarity, floor),
            )
        except EmbeddingError as exc:
            logger.warning("Semantic search unavailable, using text search: %s", exc)
            results = await self.store.search(prompt, limit=max_memories * 2, min_confidence=0.3)
            return results, len(memories)
        return results, len(embedded)

    async def inject_memories(
        self,
        prompt: str,
        session_id: str | None = None,
        *,
        max_memories: int | None = None,
        min_similarity: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
        has_recent_context: bool = False,
        high_priority: bool = False,
    ) -> InjectionResult:
        """Build the context block for `prompt`; never raises."""
        max_memories = max_memories if max_memories is not None else self.config.max_memories
        min_similarity = min_similarity if min_similarity is not None else self.config.min_similarity
        max_tokens = max_tokens if max_tokens is not None else self.config.max_tokens
        timeout = timeout_seconds if timeout_seconds is not None else self.config.timeout_seconds
        started = time.perf_counter()
        result = InjectionResult(metadata=InjectionMetadata(model_loaded=self.vector.is_loaded))

        def elapsed_ms() -> float:
            return (time.perf_counter() - started) * 1000

        try:
            if not prompt or len(prompt.strip()) < MIN_PROMPT_CHARS:
                return result
            try:
                candidates, considered = await asyncio.wait_for(
                    self._find_candidates(
                        prompt, max_memories, min_similarity, has_recent_context, high_priority
                    ),
                    timeout=timeout,
                )
            except TimeoutError:
                logger.warning("Memory injection timed out after %.1fs: %s", timeout, prompt[:50])
                result.metadata.query_time_ms = elapsed_ms()
                return result

            result.metadata.memories_considered = considered
            if not candidates:
                result.metadata.query_time_ms = elapsed_ms()
                return result

            top = rank_memories(candidates, self.feedback_history)[:max_memories]
            result.memories = top
            result.context = build_context(top, max_tokens)
            for ranked in top:
                self.background.submit(
                    self.store.observe(ranked.memory.id), name=f"observe:{ranked.memory.id}"
                )

            result.metadata.memories_injected = len(top)
            result.metadata.model_loaded = self.vector.is_loaded
            result.metadata.query_time_ms = elapsed_ms()
            logger.info(
                "Injected %d of %d memories in %.0fms (session %s)",
                len(top),
                considered,
                result.metadata.query_time_ms,
                session_id,
            )
            return result
        except Exception as exc:
            logger.error("Memory injection failed for '%s': %s", prompt[:50], exc)
            return InjectionResult(
                metadata=InjectionMetadata(
                    query_time_ms=elapsed_ms(), model_loaded=self.vector.is_loaded
                )
            )

    async def warm_up(self) -> None:
        """Load the embedding provider and the store ahead of the first prompt."""
        logger.info("Warming up memory injection service")
        try:
            await self.vector.preload()
            await self.store.get_all()
        except Exception as exc:
            logger.error("Failed to warm up memory injection service: %s", exc)
            return
        logger.info("Memory injection service warmed up")
