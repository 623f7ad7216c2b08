"""Time-based lifecycle helpers built on the confidence model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from memory.confidence import calculate_decay, days_since
from memory.types.memory import Memory, utc_now

LifecycleStage = Literal["new", "active", "stable", "fading", "expired"]


@dataclass(frozen=True)
class TemporalPolicy:
    """Bounds for half-life tuning and cleanup."""

    default_half_life: float = 30.0
    min_half_life: float = 7.0
    max_half_life: float = 365.0
    cleanup_threshold: float = 0.15


DEFAULT_POLICY = TemporalPolicy()


def apply_temporal_decay(memory: Memory, now: datetime | None = None) -> Memory:
    """Copy of `memory` with its decayed confidence materialized."""
    decayed = calculate_decay(memory.confidence, now)
    return memory.model_copy(
        update={"confidence": memory.confidence.model_copy(update={"current": decayed})}
    )


def should_cleanup(
    memory: Memory, policy: TemporalPolicy = DEFAULT_POLICY, now: datetime | None = None
) -> bool:
    """Unreinforced memories whose decayed confidence fell under the threshold."""
    decayed = calculate_decay(memory.confidence, now)
    return decayed < policy.cleanup_threshold and memory.confidence.reinforcements == 0


def calculate_optimal_half_life(memory: Memory, policy: TemporalPolicy = DEFAULT_POLICY) -> float:
    reinforcements = memory.confidence.reinforcements
    contradictions = memory.confidence.contradictions
    if reinforcements > 5 and contradictions == 0:
        return 180.0
    if reinforcements > contradictions * 2:
        return 90.0
    if contradictions > reinforcements:
        return 14.0
    return policy.default_half_life


def adjust_half_life(memory: Memory, policy: TemporalPolicy = DEFAULT_POLICY) -> Memory:
    """Stretch or shrink the half-life according to the feedback history."""
    optimal = calculate_optimal_half_life(memory, policy)
    clamped = max(policy.min_half_life, min(policy.max_half_life, optimal))
    return memory.model_copy(
        update={"confidence": memory.confidence.model_copy(update={"half_life_days": clamped})}
    )


def memory_age_days(memory: Memory, now: datetime | None = None) -> float:
    return days_since(memory.metadata.created_at, now)


def days_since_access(memory: Memory, now: datetime | None = None) -> float:
    return days_since(memory.confidence.last_accessed, now)


def is_stale(memory: Memory, stale_days: float = 90.0, now: datetime | None = None) -> bool:
    return days_since_access(memory, now) > stale_days


def sort_by_recency(memories: list[Memory]) -> list[Memory]:
    return sorted(memories, key=lambda m: m.confidence.last_accessed, reverse=True)


def filter_by_time_range(
    memories: list[Memory], start: datetime, end: datetime | None = None
) -> list[Memory]:
    end = end or utc_now()
    return [m for m in memories if start <= m.metadata.created_at <= end]


def lifecycle_stage(memory: Memory, now: datetime | None = None) -> LifecycleStage:
    confidence = memory.confidence.current
    if memory_age_days(memory, now) < 1:
        return "new"
    if confidence >= 0.7 and days_since_access(memory, now) < 7:
        return "active"
    if confidence >= 0.5 and memory.confidence.reinforcements > 2:
        return "stable"
    if confidence < 0.3:
        return "expired"
    return "fading"
