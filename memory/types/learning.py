"""Active learning and pattern models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from memory.types.memory import utc_now

TriggerType = Literal["low_confidence", "contradiction", "new_pattern", "clarification_needed"]
FeedbackType = Literal["positive", "negative", "correction"]


class ActiveLearningTrigger(BaseModel):
    """Clarifying question proposed to the user."""

    type: TriggerType
    question: str
    options: list[str]
    context: str
    memory_id: str | None = None


class FeedbackEvent(BaseModel):
    """User feedback about a response or a specific memory."""

    type: FeedbackType
    session_id: str
    response_id: str = ""
    memory_id: str | None = None
    content: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class MemoryPattern(BaseModel):
    """Recurring tag observed across several memories."""

    id: str
    pattern: str
    frequency: int
    memories: list[str] = Field(default_factory=list)
    confidence: float
    abstracted: bool = False
