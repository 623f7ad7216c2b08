"""Turn conversation text into candidate memories."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from memory.errors import EmbeddingError
from memory.extraction.patterns import (
    CODE_BLOCK_PATTERN,
    FEEDBACK_PATTERNS,
    KNOWLEDGE_PATTERNS,
    PREFERENCE_PATTERNS,
    SURPRISE_TRIGGERS,
    TECH_TAG_PATTERN,
)
from memory.memory_store import MemoryStore
from memory.stores.vector_store import VectorEngine
from memory.types.context import ConversationTurn
from memory.types.kinds import AgentType, MemoryKind, MemoryLane
from memory.types.memory import Memory

logger = logging.getLogger("mem.extractor")

SURPRISE_BASE_CONFIDENCE = 0.6
EXPLICIT_CONFIDENCE = 0.9


@dataclass
class ExtractionResult:
    """A candidate memory before it is stored."""

    content: str
    kind: MemoryKind
    confidence: float
    tags: list[str] = field(default_factory=list)
    reason: str = ""
    lane: MemoryLane | None = None
    title: str | None = None
    source_excerpt: str | None = None


def extract_from_text(
    text: str, role: str, previous_content: str | None = None
) -> list[ExtractionResult]:
    """Rule-based pass: preferences, project knowledge, feedback and code."""
    results: list[ExtractionResult] = []

    if role == "user":
        for entry in PREFERENCE_PATTERNS:
            match = entry.pattern.search(text)
            if match:
                subject = match.group(1)
                content = (
                    f"User does NOT want: {subject}"
                    if entry.type == "anti-preference"
                    else f"User prefers: {subject}"
                )
                results.append(
                    ExtractionResult(
                        content=content,
                        kind="semantic",
                        confidence=0.7,
                        tags=["preference", entry.type],
                        reason=f"Matched preference pattern: {entry.pattern.pattern[:30]}...",
                    )
                )

        for entry in KNOWLEDGE_PATTERNS:
            match = entry.pattern.search(text)
            if match:
                used_for = match.group(2) if match.re.groups >= 2 else None
                content = (
                    f"{match.group(1)} is used for {used_for}"
                    if used_for
                    else f"Project uses {match.group(1)}"
                )
                results.append(
                    ExtractionResult(
                        content=content,
                        kind="semantic",
                        confidence=0.8,
                        tags=["knowledge", entry.type],
                        reason=f"Matched knowledge pattern: {entry.pattern.pattern[:30]}...",
                    )
                )

        if previous_content:
            for entry in FEEDBACK_PATTERNS:
                match = entry.pattern.search(text)
                if not match:
                    continue
                if entry.type == "positive":
                    results.append(
                        ExtractionResult(
                            content=f"Confirmed: {previous_content[:200]}",
                            kind="episodic",
                            confidence=0.9,
                            tags=["feedback", "confirmation"],
                            reason="User confirmed previous response",
                        )
                    )
                elif entry.type == "correction" and match.group(1):
                    results.append(
                        ExtractionResult(
                            content=f"Correction: {match.group(1)}",
                            kind="semantic",
                            confidence=0.85,
                            tags=["feedback", "correction"],
                            reason="User provided correction",
                        )
                    )

    if role == "assistant":
        block = CODE_BLOCK_PATTERN.search(text)
        if block:
            language = block.group(1) or "code"
            results.append(
                ExtractionResult(
                    content=f"Generated {language} code pattern",
                    kind="procedural",
                    confidence=0.5,
                    tags=["code", language],
                    reason="Detected code generation",
                )
            )

    return results


def extract_surprise_memories(text: str, role: str) -> list[ExtractionResult]:
    """Event-triggered pass: at most one result per trigger category."""
    results: list[ExtractionResult] = []
    for trigger in SURPRISE_TRIGGERS:
        if not trigger.applies_to(role):
            continue
        for pattern in trigger.patterns:
            match = pattern.search(text)
            if not match:
                continue
            start, end = match.start(), match.end()
            excerpt = text[max(0, start - 100) : min(len(text), end + 200)]
            title = text[max(0, start - 20) : min(len(text), end + 50)].strip()
            if len(title) > 100:
                title = title[:100] + "..."
            results.append(
                ExtractionResult(
                    content=excerpt,
                    kind=trigger.memory_kind,
                    confidence=SURPRISE_BASE_CONFIDENCE + trigger.confidence_boost,
                    tags=["surprise", trigger.name, trigger.lane],
                    reason=f"Surprise trigger: {trigger.name} (pattern: {pattern.pattern[:30]}...)",
                    lane=trigger.lane,
                    title=title,
                    source_excerpt=excerpt,
                )
            )
            break
    return results


def extract_candidates(
    turn: ConversationTurn, previous: ConversationTurn | None = None
) -> list[ExtractionResult]:
    """Both extraction passes for one turn; tool turns yield nothing."""
    if turn.is_tool_turn:
        return []
    previous_content = previous.content if previous is not None else None
    return extract_from_text(turn.content, turn.role, previous_content) + extract_surprise_memories(
        turn.content, turn.role
    )


def iter_turn_pairs(
    turns: Sequence[ConversationTurn],
) -> list[tuple[ConversationTurn, ConversationTurn | None]]:
    """Pair each conversational turn with the conversational turn before it."""
    pairs: list[tuple[ConversationTurn, ConversationTurn | None]] = []
    previous: ConversationTurn | None = None
    for turn in turns:
        if turn.is_tool_turn:
            continue
        pairs.append((turn, previous))
        previous = turn
    return pairs


def extract_tags(text: str) -> list[str]:
    """Technology tags in order of first appearance, lowercased and unique."""
    tags: list[str] = []
    for match in TECH_TAG_PATTERN.finditer(text):
        tag = match.group(1).lower()
        if tag not in tags:
            tags.append(tag)
    return tags


class MemoryExtractor:
    """Stores extracted candidates, embedding them on a best-effort basis."""

    def __init__(self, store: MemoryStore, vector: VectorEngine | None = None) -> None:
        self.store = store
        self.vector = vector

    async def embed_or_none(self, text: str) -> list[float] | None:
        if self.vector is None:
            return None
        try:
            return await self.vector.embed(text)
        except EmbeddingError as exc:
            logger.warning("Failed to generate embedding: %s", exc)
            return None

    async def extract_from_conversation(
        self,
        turns: Sequence[ConversationTurn],
        session_id: str | None = None,
        agent_type: AgentType | None = None,
        generate_embeddings: bool = True,
    ) -> list[Memory]:
        extracted: list[Memory] = []
        for turn, previous in iter_turn_pairs(turns):
            for result in extract_candidates(turn, previous):
                embedding = await self.embed_or_none(result.content) if generate_embeddings else None
                memory = await self.store.add(
                    result.content,
                    result.kind,
                    "interaction",
                    embedding=embedding,
                    tags=result.tags,
                    session_id=session_id,
                    agent_type=agent_type,
                    initial_confidence=result.confidence,
                    lane=result.lane,
                    title=result.title,
                    source_excerpt=result.source_excerpt,
                    reasoning=result.reason,
                )
                extracted.append(memory)
                logger.debug("Extracted memory %s: %s", memory.id, result.reason)
        logger.info("Extraction complete: %d memories", len(extracted))
        return extracted

    async def extract_explicit_memory(
        self,
        instruction: str,
        session_id: str | None = None,
        agent_type: AgentType | None = None,
    ) -> Memory:
        embedding = await self.embed_or_none(instruction)
        memory = await self.store.add(
            instruction,
            "semantic",
            "explicit",
            embedding=embedding,
            tags=["explicit", *extract_tags(instruction)],
            session_id=session_id,
            agent_type=agent_type,
            initial_confidence=EXPLICIT_CONFIDENCE,
        )
        logger.info("Created explicit memory %s", memory.id)
        return memory
