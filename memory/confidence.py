"""Confidence decay, reinforcement and contradiction model.

All functions are pure: they return new `ConfidenceMetrics` rather than
mutating their argument. Decay is never persisted; it is evaluated at read
time from `current` and `last_accessed`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from memory.types.memory import (
    DEFAULT_HALF_LIFE_DAYS,
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    ConfidenceMetrics,
    clamp_confidence,
    utc_now,
)

ConfidenceLevel = Literal["high", "medium", "low"]

SECONDS_PER_DAY = 86400.0


def days_since(timestamp: datetime, now: datetime | None = None) -> float:
    """Elapsed days between `timestamp` and `now`, never negative."""
    now = now or utc_now()
    return max(0.0, (now - timestamp).total_seconds() / SECONDS_PER_DAY)


def create_confidence_metrics(
    initial_confidence: float = 0.5,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: datetime | None = None,
) -> ConfidenceMetrics:
    """Fresh metrics with both values clamped to the valid range."""
    value = clamp_confidence(initial_confidence)
    return ConfidenceMetrics(
        initial=value,
        current=value,
        half_life_days=half_life_days,
        last_accessed=now or utc_now(),
    )


def calculate_decay(metrics: ConfidenceMetrics, now: datetime | None = None) -> float:
    """Half-life decay of `current` since last access, floored at 0.1."""
    elapsed = days_since(metrics.last_accessed, now)
    if elapsed == 0:
        return metrics.current
    factor = 0.5 ** (elapsed / metrics.half_life_days)
    return max(MIN_CONFIDENCE, metrics.current * factor)


def apply_reinforcement(metrics: ConfidenceMetrics, now: datetime | None = None) -> ConfidenceMetrics:
    """Add a boost that shrinks by 10% with every prior reinforcement."""
    boost = 0.1 * (0.9 ** metrics.reinforcements)
    return metrics.model_copy(
        update={
            "current": min(MAX_CONFIDENCE, metrics.current + boost),
            "reinforcements": metrics.reinforcements + 1,
            "last_accessed": now or utc_now(),
        }
    )


def apply_contradiction(metrics: ConfidenceMetrics, now: datetime | None = None) -> ConfidenceMetrics:
    """Subtract a penalty that grows by 0.05 with every prior contradiction."""
    penalty = 0.2 + 0.05 * metrics.contradictions
    return metrics.model_copy(
        update={
            "current": max(MIN_CONFIDENCE, metrics.current - penalty),
            "contradictions": metrics.contradictions + 1,
            "last_accessed": now or utc_now(),
        }
    )


def calculate_reliability_score(metrics: ConfidenceMetrics) -> float:
    """Blend raw confidence with the observed reinforcement ratio."""
    total = metrics.reinforcements + metrics.contradictions
    if total == 0:
        return metrics.current
    ratio = metrics.reinforcements / total
    weight = min(1.0, total / 10)
    return metrics.current * (1 - weight) + ratio * weight


def should_trigger_validation(
    metrics: ConfidenceMetrics, now: datetime | None = None, threshold: float = 0.4
) -> bool:
    decayed = calculate_decay(metrics, now)
    return decayed < threshold or (metrics.contradictions > 0 and decayed < 0.6)


def get_confidence_level(confidence: float) -> ConfidenceLevel:
    if confidence >= 0.7:
        return "high"
    if confidence >= 0.4:
        return "medium"
    return "low"


def merge_confidence(
    a: ConfidenceMetrics, b: ConfidenceMetrics, now: datetime | None = None
) -> ConfidenceMetrics:
    """Combine the metrics of two memories describing the same fact."""
    return ConfidenceMetrics(
        initial=max(a.initial, b.initial),
        current=(a.current + b.current) / 2,
        half_life_days=min(a.half_life_days, b.half_life_days),
        reinforcements=a.reinforcements + b.reinforcements,
        contradictions=a.contradictions + b.contradictions,
        last_accessed=now or utc_now(),
    )


def refresh_access(metrics: ConfidenceMetrics, now: datetime | None = None) -> ConfidenceMetrics:
    return metrics.model_copy(update={"last_accessed": now or utc_now()})
