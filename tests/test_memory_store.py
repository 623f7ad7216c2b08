"""Memory store CRUD, cache, search and cleanup tests."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

from memory.memory_store import MemoryStore, text_similarity
from memory.stores.cache import LRUCache
from memory.stores.sql_store import SQLStore
from memory.types.memory import utc_now


def build_store(tmp_path: Path, cache_size: int = 1000) -> MemoryStore:
    sql_store = SQLStore(db_path=tmp_path / "mem.db")
    return MemoryStore(sql_store, cache_size=cache_size)


def test_lru_cache_evicts_least_recently_used() -> None:
    cache: LRUCache[int] = LRUCache(capacity=2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1
    cache.set("c", 3)
    assert cache.has("a")
    assert not cache.has("b")
    assert cache.keys() == ["a", "c"]


def test_text_similarity_counts_query_words() -> None:
    assert text_similarity("use pytest", "we use pytest daily") == 1.0
    assert text_similarity("use pytest", "use unittest") == 0.5
    assert text_similarity("", "anything") == 0.0


async def test_add_get_update_delete(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    memory = await store.add(
        "User prefers dark mode",
        "semantic",
        "explicit",
        tags=["preference"],
        session_id="s1",
        initial_confidence=0.8,
    )
    assert memory.id.startswith("mem_")
    assert memory.confidence.current == 0.8
    assert (await store.get(memory.id)) == memory
    assert await store.get("mem_missing") is None

    updated = await store.update(memory.id, {"title": "Theme", "metadata": {"agent_type": "Plan"}})
    assert updated is not None
    assert updated.title == "Theme"
    assert updated.metadata.agent_type == "Plan"
    assert updated.metadata.tags == ["preference"]
    assert updated.metadata.session_id == "s1"
    assert updated.metadata.updated_at >= memory.metadata.updated_at

    assert await store.delete(memory.id)
    assert not await store.delete(memory.id)
    assert await store.get(memory.id) is None
    assert store.all_ids() == []


async def test_records_survive_restart(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    memory = await store.add("Project uses Postgres", "semantic", "inferred", embedding=[0.1, 0.2])

    reopened = build_store(tmp_path)
    loaded = await reopened.get(memory.id)
    assert loaded is not None
    assert loaded.content == "Project uses Postgres"
    assert loaded.embedding == [0.1, 0.2]
    assert reopened.all_ids() == [memory.id]


async def test_evicted_memories_reload_from_disk(tmp_path: Path) -> None:
    store = build_store(tmp_path, cache_size=2)
    ids = [(await store.add(f"fact {i}", "semantic", "explicit")).id for i in range(3)]
    assert len(store.cache) == 2
    assert not store.cache.has(ids[0])

    reloaded = await store.get(ids[0])
    assert reloaded is not None
    assert reloaded.content == "fact 0"
    assert store.cache.has(ids[0])
    assert not store.cache.has(ids[1])
    assert len(await store.get_all()) == 3


async def test_search_filters_and_scores(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    strong = await store.add("use pytest for tests", "semantic", "explicit", tags=["testing"], initial_confidence=0.9)
    weak = await store.add("always use pytest", "semantic", "explicit", tags=["testing"], initial_confidence=0.3)
    await store.add("use pytest fixtures", "procedural", "explicit", tags=["code"])
    await store.add("unrelated content", "semantic", "explicit")

    results = await store.search("use pytest", kind="semantic")
    assert [r.memory.id for r in results] == [strong.id, weak.id]
    assert results[0].relevance == results[0].similarity * 0.9

    tagged = await store.search("PYTEST", tags=["testing"])
    assert {r.memory.id for r in tagged} == {strong.id, weak.id}

    confident = await store.search("pytest", min_confidence=0.5, tags=["testing"])
    assert [r.memory.id for r in confident] == [strong.id]


async def test_reinforce_and_contradict_are_multiplicative(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    memory = await store.add("fact", "semantic", "explicit", initial_confidence=0.5)

    reinforced = await store.reinforce(memory.id)
    assert reinforced is not None
    assert round(reinforced.confidence.current, 6) == 0.55
    assert reinforced.confidence.reinforcements == 1

    contradicted = await store.contradict(memory.id)
    assert contradicted is not None
    assert round(contradicted.confidence.current, 6) == round(0.55 * 0.7, 6)
    assert contradicted.confidence.contradictions == 1

    for _ in range(20):
        await store.contradict(memory.id)
    floored = await store.get(memory.id)
    assert floored is not None
    assert floored.confidence.current == 0.1
    assert await store.reinforce("mem_missing") is None


async def test_concurrent_reinforcements_are_not_lost(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    memory = await store.add("fact", "semantic", "explicit", initial_confidence=0.2)
    await asyncio.gather(*(store.reinforce(memory.id) for _ in range(5)))
    final = await store.get(memory.id)
    assert final is not None
    assert final.confidence.reinforcements == 5
    assert round(final.confidence.current, 6) == round(0.2 * 1.1**5, 6)
    assert store._locks == {}


async def test_concurrent_observations_are_not_lost(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    memory = await store.add("fact", "semantic", "explicit")
    await asyncio.gather(*(store.observe(memory.id) for _ in range(4)))
    observed = await store.get(memory.id)
    assert observed is not None
    assert observed.observation_count == 4
    assert observed.last_observed is not None
    assert await store.observe("mem_missing") is None


async def test_read_during_delete_does_not_resurrect(tmp_path: Path) -> None:
    store = build_store(tmp_path, cache_size=1)
    first = await store.add("first fact", "semantic", "explicit")
    await store.add("second fact", "semantic", "explicit")
    assert not store.cache.has(first.id)

    loaded, deleted = await asyncio.gather(store.get(first.id), store.delete(first.id))
    assert deleted is True
    assert loaded is None
    assert not store.cache.has(first.id)
    assert await store.get(first.id) is None


async def test_write_during_delete_does_not_resurrect(tmp_path: Path) -> None:
    store = build_store(tmp_path, cache_size=1)
    first = await store.add("first fact", "semantic", "explicit")
    await store.add("second fact", "semantic", "explicit")

    await asyncio.gather(store.reinforce(first.id), store.delete(first.id))
    assert await store.get(first.id) is None
    assert store.sql_store.read_memory(first.id) is None
    assert first.id not in store.all_ids()


async def test_cleanup_removes_stale_memories(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    stale_at = utc_now() - timedelta(days=90, hours=1)
    stale_ids = []
    for content in ("dark mode preferred", "dark theme preferred"):
        memory = await store.add(content, "semantic", "inferred", embedding=[1.0, 0.05])
        aged = memory.confidence.model_copy(update={"last_accessed": stale_at})
        await store.update(memory.id, {"confidence": aged})
        stale_ids.append(memory.id)
    fresh = await store.add("fresh fact", "semantic", "explicit")

    deleted = await store.cleanup_stale_memories(max_age_days=90, min_confidence=0.15)
    assert sorted(deleted) == sorted(stale_ids)
    assert store.all_ids() == [fresh.id]


async def test_cleanup_uses_its_own_decay_formula(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    memory = await store.add("weak fact", "semantic", "inferred", initial_confidence=0.2)
    aged = memory.confidence.model_copy(update={"last_accessed": utc_now() - timedelta(days=60)})
    await store.update(memory.id, {"confidence": aged})

    # 0.2 * 0.99 ** 2 is about 0.196: kept at 0.15, removed at 0.199.
    assert await store.cleanup_stale_memories(max_age_days=90, min_confidence=0.15) == []
    assert await store.cleanup_stale_memories(max_age_days=90, min_confidence=0.199) == [memory.id]


async def test_stats_cover_cache(tmp_path: Path) -> None:
    store = build_store(tmp_path)
    await store.add("a", "semantic", "explicit", initial_confidence=0.4)
    await store.add("b", "episodic", "explicit", initial_confidence=0.8)
    stats = store.stats()
    assert stats["total"] == 2
    assert stats["cached"] == 2
    assert stats["by_kind"] == {"semantic": 1, "episodic": 1}
    assert round(stats["avg_confidence"], 6) == 0.6

    store.clear_cache()
    assert store.stats()["cached"] == 0
    assert store.stats()["total"] == 2
