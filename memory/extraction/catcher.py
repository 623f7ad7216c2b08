"""Periodic and push-driven memory capture from conversation transcripts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from core.config import CatcherConfig
from core.event_bus import EventBus
from memory.errors import EmbeddingError
from memory.extraction.extractor import ExtractionResult, extract_candidates, iter_turn_pairs
from memory.extraction.transcripts import TRANSCRIPT_UPDATED, TranscriptSource, parse_session
from memory.memory_store import MemoryStore
from memory.stores.vector_store import VectorEngine, cosine_similarity
from memory.types.context import ParsedSession
from memory.types.memory import utc_now

logger = logging.getLogger("mem.catcher")


@dataclass
class CatcherStats:
    sessions_processed: int = 0
    memories_extracted: int = 0
    memories_deduplicated: int = 0
    last_run: datetime | None = None
    errors: int = 0


class MemoryCatcher:
    """Extracts, filters, deduplicates and stores memories from sessions."""

    def __init__(
        self,
        store: MemoryStore,
        source: TranscriptSource,
        vector: VectorEngine | None = None,
        config: CatcherConfig | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.vector = vector
        self.config = config or CatcherConfig()
        self.stats = CatcherStats()
        self._last_processed: datetime | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_watching(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        """Run a catch immediately and then every `interval_seconds`."""
        if self.is_running:
            logger.warning("Memory catcher already running")
            return
        logger.info("Starting memory catcher (interval %.0fs)", self.config.interval_seconds)
        self._loop_task = asyncio.get_running_loop().create_task(
            self._run_forever(), name="memory-catcher"
        )

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.catch_memories()
            except Exception as exc:
                logger.error("Memory catch failed: %s", exc)
            await asyncio.sleep(self.config.interval_seconds)

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
            logger.info("Memory catcher stopped")
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def start_watching(self, bus: EventBus) -> None:
        """Process sessions pushed through the `transcript.updated` event."""
        if self._unsubscribe is not None:
            logger.warning("Transcript watcher already running")
            return
        logger.info("Starting transcript watcher")
        self._unsubscribe = bus.subscribe(TRANSCRIPT_UPDATED, self._on_transcript_updated)

    async def _on_transcript_updated(self, payload: dict[str, Any]) -> None:
        try:
            await self.process_session(parse_session(payload))
        except Exception as exc:
            logger.error("Failed to process watched session: %s", exc)
            self.stats.errors += 1

    async def catch_memories(self) -> int:
        """Process every session updated since the previous run."""
        started = utc_now()
        logger.info("Starting memory catch since %s", self._last_processed)
        try:
            sessions = await self.source.latest_sessions(self._last_processed)
            for session in sessions:
                await self.process_session(session)
        except Exception:
            self.stats.errors += 1
            raise
        self._last_processed = started
        self.stats.last_run = started
        logger.info(
            "Memory catch complete: %d sessions, %d extracted, %d deduplicated",
            len(sessions),
            self.stats.memories_extracted,
            self.stats.memories_deduplicated,
        )
        return len(sessions)

    def _collect(self, session: ParsedSession) -> list[ExtractionResult]:
        entries = session.entries[-self.config.max_entries_per_session :]
        results: list[ExtractionResult] = []
        for turn, previous in iter_turn_pairs(entries):
            results.extend(extract_candidates(turn, previous))
        return results

    async def process_session(self, session: ParsedSession) -> int:
        if not session.entries:
            return 0
        extracted = self._collect(session)
        if not extracted:
            return 0
        kept = [r for r in extracted if r.confidence >= self.config.min_confidence]
        logger.debug(
            "Session %s: %d candidates, %d above confidence floor",
            session.session_id,
            len(extracted),
            len(kept),
        )
        stored = 0
        for result in kept:
            embedding = await self._embed(result.content)
            if await self._is_duplicate(result.content, embedding):
                self.stats.memories_deduplicated += 1
                continue
            await self.store.add(
                result.content,
                result.kind,
                "inferred",
                embedding=embedding if self.config.generate_embeddings else None,
                tags=[*result.tags, "auto-extracted", f"session:{session.session_id}"],
                session_id=session.session_id,
                initial_confidence=result.confidence,
                lane=result.lane,
                title=result.title,
                source_excerpt=result.source_excerpt,
                reasoning=result.reason,
            )
            stored += 1
            self.stats.memories_extracted += 1
        self.stats.sessions_processed += 1
        return stored

    async def _embed(self, content: str) -> list[float] | None:
        if self.vector is None:
            return None
        try:
            return await self.vector.embed(content)
        except EmbeddingError as exc:
            logger.warning("Failed to generate embedding: %s", exc)
            return None

    async def _is_duplicate(self, content: str, embedding: list[float] | None) -> bool:
        memories = await self.store.get_all()
        if not memories:
            return False
        if embedding is None:
            normalized = content.lower().strip()
            return any(m.content.lower().strip() == normalized for m in memories)
        for memory in memories:
            if not memory.embedding:
                continue
            similarity = cosine_similarity(embedding, memory.embedding)
            if similarity >= self.config.deduplication_threshold:
                logger.debug("Duplicate of %s (similarity %.2f)", memory.id, similarity)
                return True
        return False

    def get_stats(self) -> dict[str, Any]:
        return asdict(self.stats)

    def reset_stats(self) -> None:
        self.stats = CatcherStats()
