"""Typed memory payload models."""

from memory.types.context import ConversationTurn, ParsedSession
from memory.types.graph import MemoryEdge, MemoryNode, RelatedMemory
from memory.types.learning import ActiveLearningTrigger, FeedbackEvent, MemoryPattern
from memory.types.memory import (
    ConfidenceMetrics,
    Memory,
    MemoryMetadata,
    MemorySearchResult,
    utc_now,
)

__all__ = [
    "ActiveLearningTrigger",
    "ConfidenceMetrics",
    "ConversationTurn",
    "FeedbackEvent",
    "Memory",
    "MemoryEdge",
    "MemoryMetadata",
    "MemoryNode",
    "MemoryPattern",
    "MemorySearchResult",
    "ParsedSession",
    "RelatedMemory",
    "utc_now",
]
