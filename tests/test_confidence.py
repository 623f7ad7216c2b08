"""Confidence model and temporal helper tests."""

from __future__ import annotations

from datetime import timedelta

from memory.confidence import (
    apply_contradiction,
    apply_reinforcement,
    calculate_decay,
    calculate_reliability_score,
    create_confidence_metrics,
    get_confidence_level,
    merge_confidence,
    refresh_access,
    should_trigger_validation,
)
from memory.temporal import (
    adjust_half_life,
    apply_temporal_decay,
    calculate_optimal_half_life,
    filter_by_time_range,
    is_stale,
    lifecycle_stage,
    should_cleanup,
    sort_by_recency,
)
from memory.types.memory import Memory, MemoryMetadata, utc_now


def make_memory(current: float = 0.5, **confidence: object) -> Memory:
    metrics = create_confidence_metrics(current).model_copy(update=confidence)
    return Memory(
        id="mem_test",
        kind="semantic",
        content="User prefers tabs",
        confidence=metrics,
        metadata=MemoryMetadata(source="explicit"),
    )


def test_create_clamps_to_valid_range() -> None:
    assert create_confidence_metrics(5.0).current == 1.0
    assert create_confidence_metrics(0.0).current == 0.1
    metrics = create_confidence_metrics(0.7)
    assert metrics.initial == metrics.current == 0.7
    assert metrics.half_life_days == 30


def test_decay_is_monotone_and_floored() -> None:
    now = utc_now()
    metrics = create_confidence_metrics(0.8, now=now)
    assert calculate_decay(metrics, now) == 0.8

    previous = 0.8
    for days in (1, 10, 30, 90, 365, 5000):
        value = calculate_decay(metrics, now + timedelta(days=days))
        assert value <= previous
        assert value >= 0.1
        previous = value
    assert calculate_decay(metrics, now + timedelta(days=30)) == 0.4
    assert calculate_decay(metrics, now + timedelta(days=5000)) == 0.1


def test_three_reinforcements_have_shrinking_steps() -> None:
    metrics = create_confidence_metrics(0.5)
    values = [metrics.current]
    for _ in range(3):
        metrics = apply_reinforcement(metrics)
        values.append(metrics.current)

    deltas = [b - a for a, b in zip(values, values[1:])]
    assert all(d > 0 for d in deltas)
    assert deltas[0] > deltas[1] > deltas[2]
    assert values[-1] < 1.0
    assert metrics.reinforcements == 3


def test_reinforcement_never_exceeds_one() -> None:
    metrics = create_confidence_metrics(0.95)
    for _ in range(20):
        metrics = apply_reinforcement(metrics)
        assert metrics.current <= 1.0
    assert metrics.current == 1.0


def test_contradiction_penalty_grows_and_is_floored() -> None:
    metrics = create_confidence_metrics(1.0)
    first = apply_contradiction(metrics)
    second = apply_contradiction(first)
    assert round(1.0 - first.current, 6) == 0.2
    assert round(first.current - second.current, 6) == 0.25
    for _ in range(10):
        second = apply_contradiction(second)
        assert second.current >= 0.1
    assert second.current == 0.1


def test_updates_return_new_objects() -> None:
    metrics = create_confidence_metrics(0.5)
    reinforced = apply_reinforcement(metrics)
    assert metrics.current == 0.5
    assert metrics.reinforcements == 0
    assert reinforced is not metrics


def test_reliability_blends_feedback_ratio() -> None:
    metrics = create_confidence_metrics(0.5)
    assert calculate_reliability_score(metrics) == 0.5

    mixed = metrics.model_copy(update={"reinforcements": 4, "contradictions": 1})
    # weight = 0.5, ratio = 0.8
    assert round(calculate_reliability_score(mixed), 6) == round(0.5 * 0.5 + 0.8 * 0.5, 6)

    saturated = metrics.model_copy(update={"reinforcements": 10, "contradictions": 0})
    assert calculate_reliability_score(saturated) == 1.0


def test_validation_trigger_and_levels() -> None:
    now = utc_now()
    assert should_trigger_validation(create_confidence_metrics(0.3, now=now), now)
    assert not should_trigger_validation(create_confidence_metrics(0.5, now=now), now)
    contested = create_confidence_metrics(0.5, now=now).model_copy(update={"contradictions": 1})
    assert should_trigger_validation(contested, now)

    assert get_confidence_level(0.7) == "high"
    assert get_confidence_level(0.4) == "medium"
    assert get_confidence_level(0.39) == "low"


def test_merge_confidence() -> None:
    a = create_confidence_metrics(0.4, half_life_days=30).model_copy(update={"reinforcements": 2})
    b = create_confidence_metrics(0.8, half_life_days=10).model_copy(update={"contradictions": 1})
    merged = merge_confidence(a, b)
    assert round(merged.current, 6) == 0.6
    assert merged.initial == 0.8
    assert merged.half_life_days == 10
    assert merged.reinforcements == 2
    assert merged.contradictions == 1


def test_half_life_tuning_and_lifecycle() -> None:
    trusted = make_memory(0.9, reinforcements=6)
    assert calculate_optimal_half_life(trusted) == 180.0
    disputed = make_memory(0.5, contradictions=3, reinforcements=1)
    assert adjust_half_life(disputed).confidence.half_life_days == 14.0

    now = utc_now()
    assert lifecycle_stage(trusted, now) == "new"
    old = trusted.model_copy(
        update={"metadata": trusted.metadata.model_copy(update={"created_at": now - timedelta(days=10)})}
    )
    assert lifecycle_stage(old, now) == "active"


def test_staleness_helpers() -> None:
    now = utc_now()
    fresh = make_memory(0.5)
    stale = make_memory(0.5, last_accessed=now - timedelta(days=200))
    assert not is_stale(fresh, now=now)
    assert is_stale(stale, now=now)
    assert should_cleanup(stale, now=now)
    assert [m.confidence.last_accessed for m in sort_by_recency([stale, fresh])][0] == (
        fresh.confidence.last_accessed
    )


def test_refresh_and_materialized_decay() -> None:
    now = utc_now()
    old = make_memory(0.8, last_accessed=now - timedelta(days=30))
    assert apply_temporal_decay(old, now).confidence.current == 0.4
    assert old.confidence.current == 0.8

    refreshed = refresh_access(old.confidence, now)
    assert refreshed.last_accessed == now
    assert calculate_decay(refreshed, now) == 0.8


def test_filter_by_time_range() -> None:
    now = utc_now()
    recent = make_memory(0.5)
    older = recent.model_copy(
        update={"metadata": recent.metadata.model_copy(update={"created_at": now - timedelta(days=5)})}
    )
    assert filter_by_time_range([recent, older], now - timedelta(days=1)) == [recent]
    assert len(filter_by_time_range([recent, older], now - timedelta(days=10))) == 2
