"""Clarifying-question triggers and feedback-driven confidence updates."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from core.config import ActiveLearningConfig
from memory.confidence import should_trigger_validation
from memory.memory_store import MemoryStore
from memory.stores.graph_store import MemoryGraph
from memory.types.learning import ActiveLearningTrigger, FeedbackEvent
from memory.types.memory import Memory, utc_now

logger = logging.getLogger("mem.active_learning")

CONTEXT_MATCH_CHARS = 50
NEW_PATTERN_WINDOW_HOURS = 24
CORRECTION_CONFIDENCE = 0.85


@dataclass
class SessionQuestionState:
    count: int
    last_asked: datetime


class ActiveLearning:
    """Decides when to ask the user about uncertain memories and applies answers.

    Question counts are tracked per session in memory only. Once a session has
    been asked `max_questions_per_session` questions, triggers are suppressed
    until the cooldown since the last question has passed.
    """

    def __init__(
        self,
        store: MemoryStore,
        graph: MemoryGraph,
        config: ActiveLearningConfig | None = None,
    ) -> None:
        self.store = store
        self.graph = graph
        self.config = config or ActiveLearningConfig()
        self.sessions: dict[str, SessionQuestionState] = {}

    def _minutes_since_asked(self, state: SessionQuestionState, now: datetime) -> float:
        return (now - state.last_asked).total_seconds() / 60

    def _suppressed(self, session_id: str, now: datetime) -> bool:
        state = self.sessions.get(session_id)
        if state is None:
            return False
        return (
            state.count >= self.config.max_questions_per_session
            and self._minutes_since_asked(state, now) < self.config.cooldown_minutes
        )

    async def check_for_triggers(
        self, session_id: str, context: str, now: datetime | None = None
    ) -> list[ActiveLearningTrigger]:
        now = now or utc_now()
        if self._suppressed(session_id, now):
            logger.debug("Questions suppressed for session %s", session_id)
            return []
        checks: list[tuple[str, Callable[[], Awaitable[ActiveLearningTrigger | None]]]] = [
            ("low_confidence", lambda: self.check_low_confidence(context, now)),
            ("contradiction", lambda: self.check_contradictions(context)),
            ("new_pattern", lambda: self.check_new_patterns(context, now)),
        ]
        triggers: list[ActiveLearningTrigger] = []
        for name, check in checks:
            try:
                trigger = await check()
            except Exception as exc:
                logger.error("Active learning check '%s' failed: %s", name, exc)
                continue
            if trigger is not None:
                triggers.append(trigger)
        return triggers

    async def check_low_confidence(
        self, context: str, now: datetime | None = None
    ) -> ActiveLearningTrigger | None:
        snippet = context.lower()[:CONTEXT_MATCH_CHARS]
        for memory in await self.store.get_all():
            if snippet not in memory.content.lower():
                continue
            if not should_trigger_validation(
                memory.confidence, now, threshold=self.config.low_confidence_threshold
            ):
                continue
            return ActiveLearningTrigger(
                type="low_confidence",
                memory_id=memory.id,
                question=f'I remember that "{memory.content[:100]}..." - is this still accurate?',
                options=["Yes, that's correct", "No, that's outdated", "Partially correct"],
                context=memory.content,
            )
        return None

    async def check_contradictions(self, context: str) -> ActiveLearningTrigger | None:
        for result in await self.store.search(context, limit=10):
            contradictions = await self.graph.find_contradictions(result.memory.id)
            if not contradictions:
                continue
            other = await self.store.get(contradictions[0])
            if other is None:
                continue
            first = result.memory
            return ActiveLearningTrigger(
                type="contradiction",
                memory_id=first.id,
                question=(
                    f'I have conflicting information: "{first.content[:80]}..." vs '
                    f'"{other.content[:80]}..." - which is correct?'
                ),
                options=[
                    "First one",
                    "Second one",
                    "Both are valid in different contexts",
                    "Neither",
                ],
                context=f"{first.content}\n---\n{other.content}",
            )
        return None

    async def check_new_patterns(
        self, context: str, now: datetime | None = None
    ) -> ActiveLearningTrigger | None:
        now = now or utc_now()
        recent: list[Memory] = []
        for result in await self.store.search(context, limit=5):
            hours = (now - result.memory.metadata.created_at).total_seconds() / 3600
            if hours < NEW_PATTERN_WINDOW_HOURS and result.memory.confidence.reinforcements == 0:
                recent.append(result.memory)
        if len(recent) < 2:
            return None
        return ActiveLearningTrigger(
            type="new_pattern",
            question=(
                "I've noticed a new pattern in your requests. "
                "Should I remember this preference going forward?"
            ),
            options=["Yes, remember this", "No, it was just for now", "Ask me again later"],
            context="\n".join(m.content for m in recent),
        )

    def _mark_asked(self, session_id: str) -> None:
        now = utc_now()
        state = self.sessions.get(session_id)
        if state is None:
            self.sessions[session_id] = SessionQuestionState(count=1, last_asked=now)
        else:
            state.count += 1
            state.last_asked = now

    async def handle_response(
        self, trigger: ActiveLearningTrigger, response_index: int, session_id: str
    ) -> None:
        """Apply the user's answer to a previously raised trigger."""
        logger.info("Handling %s response %d", trigger.type, response_index)
        if trigger.type == "low_confidence" and trigger.memory_id:
            if response_index == 0:
                await self.store.reinforce(trigger.memory_id)
            elif response_index == 1:
                await self.store.contradict(trigger.memory_id)
        elif trigger.type == "contradiction" and trigger.memory_id:
            contradictions = await self.graph.find_contradictions(trigger.memory_id)
            if contradictions:
                other_id = contradictions[0]
                if response_index == 0:
                    await self.store.reinforce(trigger.memory_id)
                    await self.store.contradict(other_id)
                elif response_index == 1:
                    await self.store.contradict(trigger.memory_id)
                    await self.store.reinforce(other_id)
                elif response_index == 3:
                    await self.store.contradict(trigger.memory_id)
                    await self.store.contradict(other_id)
        elif trigger.type == "new_pattern" and response_index == 0:
            for result in await self.store.search(trigger.context, limit=3):
                await self.store.reinforce(result.memory.id)
        self._mark_asked(session_id)

    async def process_feedback(self, feedback: FeedbackEvent) -> Memory | None:
        """Apply explicit feedback; returns the corrected memory when one is created."""
        logger.info("Processing %s feedback for %s", feedback.type, feedback.memory_id)
        corrected: Memory | None = None
        if feedback.memory_id:
            if feedback.type == "positive":
                await self.store.reinforce(feedback.memory_id)
            elif feedback.type == "negative":
                await self.store.contradict(feedback.memory_id)
            elif feedback.type == "correction" and feedback.content:
                original = await self.store.contradict(feedback.memory_id)
                if original is not None:
                    corrected = await self.store.add(
                        feedback.content,
                        original.kind,
                        "feedback",
                        tags=[*original.metadata.tags, "corrected"],
                        session_id=feedback.session_id,
                        initial_confidence=CORRECTION_CONFIDENCE,
                    )
                    await self.graph.add_edge(corrected.id, original.id, "supersedes", 1.0)
        self._mark_asked(feedback.session_id)
        return corrected

    def reset_session_state(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    def session_stats(self, session_id: str, now: datetime | None = None) -> dict[str, Any]:
        state = self.sessions.get(session_id)
        if state is None:
            return {"questions_asked": 0, "last_asked": None, "can_ask_more": True}
        now = now or utc_now()
        return {
            "questions_asked": state.count,
            "last_asked": state.last_asked,
            "can_ask_more": not self._suppressed(session_id, now),
        }
