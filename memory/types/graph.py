"""Relation graph models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from memory.types.kinds import RelationType
from memory.types.memory import utc_now


class MemoryEdge(BaseModel):
    """Directed typed relation between two memories."""

    id: str
    source_id: str
    target_id: str
    relation: RelationType
    weight: float = 1.0
    created_at: datetime = Field(default_factory=utc_now)

    def other_end(self, memory_id: str) -> str:
        return self.target_id if self.source_id == memory_id else self.source_id


class MemoryNode(BaseModel):
    """Adjacency entry for one memory id."""

    memory_id: str
    edges: list[str] = Field(default_factory=list)
    in_degree: int = 0
    out_degree: int = 0


class RelatedMemory(BaseModel):
    """Neighbor returned by graph traversal."""

    memory_id: str
    relation: RelationType
    weight: float
