"""Compiled pattern tables for rule-based and surprise-triggered extraction."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from memory.types.kinds import MemoryKind, MemoryLane

TriggerRole = Literal["user", "assistant", "both"]

_FLAGS = re.IGNORECASE


@dataclass(frozen=True)
class TaggedPattern:
    """A regex paired with the sub-type it detects."""

    pattern: re.Pattern[str]
    type: str


@dataclass(frozen=True)
class SurpriseTrigger:
    """An event category that signals a memorable moment in a conversation."""

    name: str
    role: TriggerRole
    patterns: tuple[re.Pattern[str], ...]
    memory_kind: MemoryKind
    lane: MemoryLane
    confidence_boost: float

    def applies_to(self, role: str) -> bool:
        return self.role == "both" or self.role == role


def _tagged(pattern: str, type_: str) -> TaggedPattern:
    return TaggedPattern(re.compile(pattern, _FLAGS), type_)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


PREFERENCE_PATTERNS: tuple[TaggedPattern, ...] = (
    _tagged(r"(?:i\s+)?prefer\s+(.+?)(?:\.|$)", "preference"),
    _tagged(r"(?:i\s+)?like\s+(?:to\s+)?(.+?)(?:\.|$)", "preference"),
    _tagged(r"(?:don't|do\s+not)\s+(?:use|like)\s+(.+?)(?:\.|$)", "anti-preference"),
    _tagged(r"always\s+(?:use|do)\s+(.+?)(?:\.|$)", "preference"),
    _tagged(r"never\s+(?:use|do)\s+(.+?)(?:\.|$)", "anti-preference"),
)

KNOWLEDGE_PATTERNS: tuple[TaggedPattern, ...] = (
    _tagged(r"(?:the\s+)?project\s+(?:uses?|has)\s+(.+?)(?:\.|$)", "project"),
    _tagged(r"(?:we|i)\s+use\s+(.+?)\s+for\s+(.+?)(?:\.|$)", "stack"),
    _tagged(r"(?:the\s+)?(?:database|db)\s+is\s+(.+?)(?:\.|$)", "infrastructure"),
    _tagged(r"(?:deploy|run)\s+(?:on|to)\s+(.+?)(?:\.|$)", "infrastructure"),
)

FEEDBACK_PATTERNS: tuple[TaggedPattern, ...] = (
    _tagged(r"(?:that's\s+)?(?:correct|right|exactly)", "positive"),
    _tagged(r"(?:no,?\s+)?(?:that's\s+)?(?:wrong|incorrect)", "negative"),
    _tagged(r"(?:actually|instead),?\s+(.+)", "correction"),
)

CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\n([\s\S]*?)```")

TECH_TAG_PATTERN = re.compile(
    r"\b("
    r"typescript|javascript|python|rust|go"
    r"|react|vue|angular|svelte"
    r"|node|bun|deno"
    r"|postgres|mysql|mongodb|redis"
    r"|docker|kubernetes|aws|gcp|azure"
    r")\b",
    _FLAGS,
)

SURPRISE_TRIGGERS: tuple[SurpriseTrigger, ...] = (
    SurpriseTrigger(
        name="recovery",
        role="both",
        patterns=_compile(
            r"(?:I|we)\s+fixed\s+(?:the|this)\s+issue",
            r"that\s+worked",
            r"problem\s+solved",
            r"now\s+it(?:'s)?\s+working",
            r"finally\s+(?:got\s+it|works)",
        ),
        memory_kind="episodic",
        lane="learning",
        confidence_boost=0.2,
    ),
    SurpriseTrigger(
        name="user_correction",
        role="user",
        patterns=_compile(
            r"no,?\s*(?:instead|actually|use|don't)",
            r"that's\s+not\s+(?:what|how|right)",
            r"don't\s+(?:do\s+)?that",
            r"(?:please\s+)?(?:change|modify|fix)\s+(?:it|this|that)\s+to",
            r"wrong[,.]?\s+(?:it\s+should|use)",
        ),
        memory_kind="semantic",
        lane="correction",
        confidence_boost=0.3,
    ),
    SurpriseTrigger(
        name="enthusiasm",
        role="user",
        patterns=_compile(
            r"(?:that's\s+)?(?:perfect|exactly\s+what\s+I\s+(?:wanted|needed))",
            r"(?:this\s+is\s+)?(?:great|awesome|excellent)",
            r"(?:love|like)\s+(?:it|this|that)",
            r"(?:yes|yeah)[!,]\s*(?:that's|this\s+is)",
        ),
        memory_kind="episodic",
        lane="confidence",
        confidence_boost=0.15,
    ),
    SurpriseTrigger(
        name="negative_reaction",
        role="user",
        patterns=_compile(
            r"(?:this\s+is\s+)?(?:wrong|broken|not\s+working)",
            r"(?:don't|never)\s+do\s+(?:this|that)\s+again",
            r"(?:that's\s+)?(?:terrible|awful|bad)",
            r"(?:please\s+)?stop\s+doing",
        ),
        memory_kind="semantic",
        lane="correction",
        confidence_boost=0.25,
    ),
    SurpriseTrigger(
        name="decision",
        role="both",
        patterns=_compile(
            r"(?:I|we)\s+(?:decided|chose|picked)\s+(?:to\s+)?",
            r"(?:let's|we'll)\s+(?:go\s+with|use)\s+",
            r"(?:the\s+)?decision\s+(?:is|was)\s+(?:to\s+)?",
            r"(?:I|we)\s+(?:will|want\s+to)\s+(?:use|go\s+with)",
        ),
        memory_kind="semantic",
        lane="decision",
        confidence_boost=0.2,
    ),
    SurpriseTrigger(
        name="commitment",
        role="user",
        patterns=_compile(
            r"(?:always|usually)\s+(?:use|do|prefer)",
            r"(?:my|our)\s+(?:standard|default|preferred)\s+(?:is|approach)",
            r"(?:I|we)\s+(?:always|never)\s+",
            r"(?:from\s+now\s+on|going\s+forward),?\s+(?:we|I)\s+(?:will|should)",
        ),
        memory_kind="semantic",
        lane="commitment",
        confidence_boost=0.2,
    ),
    SurpriseTrigger(
        name="insight",
        role="both",
        patterns=_compile(
            r"(?:I|we)\s+(?:realized|discovered|found\s+out)",
            r"(?:it\s+)?turns\s+out\s+(?:that\s+)?",
            r"(?:the\s+)?(?:key|trick|secret)\s+(?:is|was)",
            r"(?:interesting|surprisingly),?\s+",
        ),
        memory_kind="semantic",
        lane="insight",
        confidence_boost=0.15,
    ),
    SurpriseTrigger(
        name="gap",
        role="both",
        patterns=_compile(
            r"(?:we\s+)?(?:need|should\s+add|missing)\s+",
            r"(?:there's\s+)?no\s+(?:way\s+to|support\s+for)",
            r"(?:it\s+)?(?:doesn't|can't)\s+(?:handle|support)",
            r"(?:TODO|FIXME|HACK):",
        ),
        memory_kind="semantic",
        lane="gap",
        confidence_boost=0.1,
    ),
    SurpriseTrigger(
        name="workflow_note",
        role="both",
        patterns=_compile(
            r"(?:the\s+)?(?:process|workflow|procedure)\s+(?:is|should\s+be)",
            r"(?:step\s+\d+|first|then|finally)[,:]\s+",
            r"(?:when|before|after)\s+(?:doing|running|executing)",
        ),
        memory_kind="procedural",
        lane="workflow_note",
        confidence_boost=0.1,
    ),
)
