"""Scoring helpers for memory retrieval."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from memory.confidence import days_since
from memory.types.memory import Memory, MemorySearchResult, utc_now

LANE_WEIGHTS: dict[str, float] = {
    "correction": 1.3,
    "decision": 1.2,
    "commitment": 1.2,
    "insight": 1.1,
    "learning": 1.1,
    "confidence": 1.0,
    "pattern_seed": 0.9,
    "cross_agent": 0.9,
    "workflow_note": 0.8,
    "gap": 0.8,
}


@dataclass
class RankedMemory:
    """Search candidate with its blended retrieval score."""

    memory: Memory
    similarity: float
    relevance: float
    feedback_score: float
    final_score: float


def adaptive_similarity_floor(has_recent_context: bool, is_high_priority: bool) -> float:
    """Relax the 0.3 similarity floor by 0.05 per flag, never below 0.15."""
    floor = 0.3
    if has_recent_context:
        floor -= 0.05
    if is_high_priority:
        floor -= 0.05
    return max(0.15, floor)


def feedback_score(net_feedback: int) -> float:
    return math.tanh(net_feedback * 0.1)


def lane_weight(memory: Memory) -> float:
    if memory.lane is None:
        return 1.0
    return LANE_WEIGHTS.get(memory.lane, 1.0)


def confidence_weight(memory: Memory) -> float:
    return 0.5 + memory.confidence.current * 0.5


def recency_weight(memory: Memory, now: datetime | None = None) -> float:
    """Step function over days since last access."""
    days = days_since(memory.confidence.last_accessed, now)
    if days < 1:
        return 1.0
    if days < 7:
        return 0.9
    if days < 30:
        return 0.8
    return 0.7


def final_score(
    similarity: float,
    relevance: float,
    feedback: float,
    lane: float,
    confidence: float,
    recency: float,
) -> float:
    """Weighted retrieval score."""
    return (
        0.4 * similarity
        + 0.2 * relevance
        + 0.1 * feedback
        + 0.15 * (lane - 1)
        + 0.1 * confidence
        + 0.05 * recency
    )


def rank_memories(
    candidates: Iterable[MemorySearchResult],
    feedback_history: Mapping[str, int] | None = None,
    now: datetime | None = None,
) -> list[RankedMemory]:
    """Score candidates and sort by descending score, then memory id."""
    history = feedback_history or {}
    now = now or utc_now()
    ranked: list[RankedMemory] = []
    for candidate in candidates:
        memory = candidate.memory
        feedback = feedback_score(history.get(memory.id, 0))
        score = final_score(
            candidate.similarity,
            candidate.relevance,
            feedback,
            lane_weight(memory),
            confidence_weight(memory),
            recency_weight(memory, now),
        )
        ranked.append(
            RankedMemory(
                memory=memory,
                similarity=candidate.similarity,
                relevance=candidate.relevance,
                feedback_score=feedback,
                final_score=score,
            )
        )
    ranked.sort(key=lambda r: (-r.final_score, r.memory.id))
    return ranked
