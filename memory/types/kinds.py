"""Literal vocabularies shared across memory records."""

from __future__ import annotations

from typing import Literal, get_args

MemoryKind = Literal["semantic", "episodic", "procedural"]
MemorySource = Literal["explicit", "inferred", "interaction", "feedback"]
AgentType = Literal[
    "Explore",
    "Plan",
    "general-purpose",
    "code-quality",
    "refactor-agent",
    "builder",
    "reviewer",
]
MemoryLane = Literal[
    "correction",
    "decision",
    "commitment",
    "insight",
    "learning",
    "confidence",
    "pattern_seed",
    "cross_agent",
    "workflow_note",
    "gap",
]
RelationType = Literal[
    "reinforces",
    "contradicts",
    "extends",
    "supersedes",
    "related",
    "derived_from",
]
TurnRole = Literal["user", "assistant", "tool_use", "tool_result"]

MEMORY_KINDS: tuple[str, ...] = get_args(MemoryKind)
AGENT_TYPES: tuple[str, ...] = get_args(AgentType)
MEMORY_LANES: tuple[str, ...] = get_args(MemoryLane)
RELATION_TYPES: tuple[str, ...] = get_args(RelationType)

LANE_PRIORITY: dict[str, str] = {
    "correction": "high",
    "decision": "high",
    "commitment": "high",
    "insight": "medium",
    "learning": "medium",
    "confidence": "medium",
    "pattern_seed": "lower",
    "cross_agent": "lower",
    "workflow_note": "lower",
    "gap": "lower",
}
