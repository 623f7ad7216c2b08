"""Durable memory records fronted by an LRU cache."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from memory.confidence import create_confidence_metrics, days_since
from memory.stores.cache import LRUCache
from memory.stores.sql_store import SQLStore
from memory.types.kinds import AgentType, MemoryKind, MemoryLane, MemorySource
from memory.types.memory import Memory, MemoryMetadata, MemorySearchResult, utc_now

logger = logging.getLogger("mem.store")

STALE_DECAY_BASE = 0.99


@dataclass
class _IdLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def generate_memory_id() -> str:
    return f"mem_{uuid.uuid4().hex}"


def text_similarity(query: str, content: str) -> float:
    """Share of whitespace-separated query words that occur in `content`."""
    query_words = set(query.split())
    content_words = set(content.split())
    shared = query_words & content_words
    return len(shared) / max(len(query_words), 1)


class MemoryStore:
    """CRUD, text search and stale cleanup over persisted memories.

    The manifest keeps every known id in insertion order; the cache holds at
    most `cache_size` decoded memories. Confidence read-modify-write paths on
    the same id are serialized with a per-id lock.
    """

    def __init__(self, sql_store: SQLStore, cache_size: int = 1000) -> None:
        self.sql_store = sql_store
        self.cache: LRUCache[Memory] = LRUCache(cache_size)
        self._index: dict[str, None] = {}
        self._initialized = False
        self._init_task: asyncio.Task[None] | None = None
        self._manifest_lock = asyncio.Lock()
        self._locks: dict[str, _IdLock] = {}

    async def _load_index(self) -> None:
        await asyncio.to_thread(self.sql_store.create_all)
        ids = await asyncio.to_thread(self.sql_store.read_manifest)
        if ids is None:
            ids = []
            await asyncio.to_thread(self.sql_store.write_manifest, ids)
            logger.info("Created empty memory manifest")
        self._index = dict.fromkeys(ids)
        self._initialized = True
        logger.info("Memory store initialized with %d memories", len(self._index))

    async def init(self) -> None:
        """Load the manifest once; concurrent callers await the same load."""
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load_index())
        task = self._init_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _save_manifest(self) -> None:
        async with self._manifest_lock:
            await asyncio.to_thread(self.sql_store.write_manifest, list(self._index))

    async def _write(self, memory: Memory) -> None:
        await asyncio.to_thread(
            self.sql_store.write_memory, memory.id, memory.kind, memory.to_record()
        )

    @asynccontextmanager
    async def _locked(self, memory_id: str) -> AsyncIterator[None]:
        """Hold the lock of one id; it is dropped once nobody holds or awaits it."""
        entry = self._locks.setdefault(memory_id, _IdLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[memory_id]

    async def add(
        self,
        content: str,
        kind: MemoryKind,
        source: MemorySource,
        *,
        embedding: list[float] | None = None,
        tags: Iterable[str] | None = None,
        session_id: str | None = None,
        agent_type: AgentType | None = None,
        initial_confidence: float = 0.5,
        lane: MemoryLane | None = None,
        title: str | None = None,
        source_excerpt: str | None = None,
        reasoning: str | None = None,
    ) -> Memory:
        await self.init()
        now = utc_now()
        memory = Memory(
            id=generate_memory_id(),
            kind=kind,
            content=content,
            embedding=embedding,
            confidence=create_confidence_metrics(initial_confidence, now=now),
            metadata=MemoryMetadata(
                source=source,
                session_id=session_id,
                agent_type=agent_type,
                tags=list(tags or []),
                created_at=now,
                updated_at=now,
            ),
            lane=lane,
            title=title,
            source_excerpt=source_excerpt,
            reasoning=reasoning,
        )
        self.cache.set(memory.id, memory)
        self._index[memory.id] = None
        await self._write(memory)
        await self._save_manifest()
        logger.debug("Added memory %s (%s)", memory.id, kind)
        return memory

    async def _fetch(self, memory_id: str) -> Memory | None:
        """Resolve a memory, raising on storage or decode failures."""
        await self.init()
        cached = self.cache.get(memory_id)
        if cached is not None:
            return cached
        if memory_id not in self._index:
            return None
        payload = await asyncio.to_thread(self.sql_store.read_memory, memory_id)
        if payload is None:
            return None
        if memory_id not in self._index:
            # Deleted while the row was being read.
            return None
        memory = Memory.model_validate(payload)
        self.cache.set(memory_id, memory)
        return memory

    async def get(self, memory_id: str) -> Memory | None:
        try:
            return await self._fetch(memory_id)
        except (SQLAlchemyError, ValidationError) as exc:
            logger.error("Failed to load memory %s: %s", memory_id, exc)
            return None

    async def _apply_update(self, memory: Memory, patch: dict[str, Any]) -> Memory:
        data = memory.model_dump()
        for key, value in patch.items():
            if key == "id":
                continue
            if isinstance(value, BaseModel):
                value = value.model_dump()
            if key == "metadata" and isinstance(value, dict):
                data["metadata"] = {**data["metadata"], **value}
            else:
                data[key] = value
        data["metadata"]["updated_at"] = utc_now()
        updated = Memory.model_validate(data)
        self.cache.set(updated.id, updated)
        await self._write(updated)
        logger.debug("Updated memory %s", updated.id)
        return updated

    async def update(self, memory_id: str, patch: dict[str, Any]) -> Memory | None:
        """Merge a partial patch into a memory; nested metadata is merged too."""
        async with self._locked(memory_id):
            memory = await self.get(memory_id)
            if memory is None:
                return None
            return await self._apply_update(memory, patch)

    async def delete(self, memory_id: str) -> bool:
        await self.init()
        async with self._locked(memory_id):
            if memory_id not in self._index:
                return False
            del self._index[memory_id]
            self.cache.delete(memory_id)
            await self._save_manifest()
            try:
                await asyncio.to_thread(self.sql_store.delete_memory, memory_id)
            except SQLAlchemyError as exc:
                logger.error("Failed to delete record for %s: %s", memory_id, exc)
        logger.info("Deleted memory %s", memory_id)
        return True

    def all_ids(self) -> list[str]:
        return list(self._index)

    async def get_all(self) -> list[Memory]:
        await self.init()
        results = await asyncio.gather(*(self.get(memory_id) for memory_id in list(self._index)))
        return [memory for memory in results if memory is not None]

    async def search(
        self,
        query: str,
        kind: MemoryKind | None = None,
        min_confidence: float | None = None,
        tags: Iterable[str] | None = None,
        limit: int = 10,
    ) -> list[MemorySearchResult]:
        """Substring match plus filters, scored by word overlap times confidence."""
        query_lower = query.lower()
        wanted_tags = list(tags or [])
        results: list[MemorySearchResult] = []
        for memory in await self.get_all():
            if kind and memory.kind != kind:
                continue
            if min_confidence and memory.confidence.current < min_confidence:
                continue
            if wanted_tags and not any(tag in memory.metadata.tags for tag in wanted_tags):
                continue
            content_lower = memory.content.lower()
            if query_lower not in content_lower:
                continue
            similarity = text_similarity(query_lower, content_lower)
            results.append(
                MemorySearchResult(
                    memory=memory,
                    similarity=similarity,
                    relevance=similarity * memory.confidence.current,
                )
            )
        results.sort(key=lambda r: r.relevance, reverse=True)
        return results[:limit]

    async def reinforce(self, memory_id: str) -> Memory | None:
        """Multiplicative +10% boost, capped at 1.0."""
        async with self._locked(memory_id):
            memory = await self.get(memory_id)
            if memory is None:
                return None
            metrics = memory.confidence
            confidence = metrics.model_copy(
                update={
                    "current": min(1.0, metrics.current * 1.1),
                    "reinforcements": metrics.reinforcements + 1,
                    "last_accessed": utc_now(),
                }
            )
            return await self._apply_update(memory, {"confidence": confidence})

    async def contradict(self, memory_id: str) -> Memory | None:
        """Multiplicative -30% penalty, floored at 0.1."""
        async with self._locked(memory_id):
            memory = await self.get(memory_id)
            if memory is None:
                return None
            metrics = memory.confidence
            confidence = metrics.model_copy(
                update={
                    "current": max(0.1, metrics.current * 0.7),
                    "contradictions": metrics.contradictions + 1,
                    "last_accessed": utc_now(),
                }
            )
            return await self._apply_update(memory, {"confidence": confidence})

    async def observe(self, memory_id: str) -> Memory | None:
        """Count one more injection of a memory."""
        async with self._locked(memory_id):
            memory = await self.get(memory_id)
            if memory is None:
                return None
            return await self._apply_update(
                memory,
                {"observation_count": memory.observation_count + 1, "last_observed": utc_now()},
            )

    async def cleanup_stale_memories(
        self,
        max_age_days: float = 90.0,
        min_confidence: float = 0.1,
        now: datetime | None = None,
    ) -> list[str]:
        """Delete memories that are missing, unused too long or decayed too far."""
        await self.init()
        now = now or utc_now()
        deleted: list[str] = []
        for memory_id in list(self._index):
            try:
                memory = await self._fetch(memory_id)
            except (SQLAlchemyError, ValidationError) as exc:
                logger.error("Skipping %s during cleanup: %s", memory_id, exc)
                continue
            if memory is None:
                await self.delete(memory_id)
                deleted.append(memory_id)
                continue
            days = days_since(memory.confidence.last_accessed, now)
            decayed = memory.confidence.current * STALE_DECAY_BASE ** (
                days / memory.confidence.half_life_days
            )
            if days > max_age_days or decayed < min_confidence:
                await self.delete(memory_id)
                deleted.append(memory_id)
        if deleted:
            logger.info("Cleaned up %d stale memories", len(deleted))
        return deleted

    def stats(self) -> dict[str, Any]:
        """Totals from the manifest; breakdowns over cached memories only."""
        by_kind: dict[str, int] = {}
        total_confidence = 0.0
        cached = self.cache.values()
        for memory in cached:
            by_kind[memory.kind] = by_kind.get(memory.kind, 0) + 1
            total_confidence += memory.confidence.current
        return {
            "total": len(self._index),
            "cached": len(cached),
            "by_kind": by_kind,
            "avg_confidence": total_confidence / len(cached) if cached else 0.0,
        }

    def clear_cache(self) -> None:
        self.cache.clear()
