"""Core memory record models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from memory.types.kinds import AgentType, MemoryKind, MemoryLane, MemorySource

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
DEFAULT_HALF_LIFE_DAYS = 30.0


def utc_now() -> datetime:
    """Return an aware UTC timestamp."""
    return datetime.now(UTC)


def clamp_confidence(value: float) -> float:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))


class ConfidenceMetrics(BaseModel):
    """Trust state of one memory; `current` always sits in [0.1, 1.0]."""

    initial: float = 0.5
    current: float = 0.5
    half_life_days: float = Field(default=DEFAULT_HALF_LIFE_DAYS, gt=0)
    reinforcements: int = 0
    contradictions: int = 0
    last_accessed: datetime = Field(default_factory=utc_now)

    @field_validator("initial", "current")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_confidence(value)


class MemoryMetadata(BaseModel):
    """Provenance and tagging."""

    source: MemorySource
    session_id: str | None = None
    agent_type: AgentType | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Memory(BaseModel):
    """One captured unit of knowledge."""

    id: str
    kind: MemoryKind
    content: str
    embedding: list[float] | None = None
    confidence: ConfidenceMetrics = Field(default_factory=ConfidenceMetrics)
    metadata: MemoryMetadata
    lane: MemoryLane | None = None
    title: str | None = None
    source_excerpt: str | None = None
    reasoning: str | None = None
    observation_count: int = 0
    last_observed: datetime | None = None

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def to_record(self) -> dict[str, Any]:
        """JSON-safe payload for persistence."""
        return self.model_dump(mode="json")


class MemorySearchResult(BaseModel):
    """A candidate produced by text or vector search."""

    memory: Memory
    similarity: float
    relevance: float
