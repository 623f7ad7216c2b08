"""Conversation turn models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from memory.types.kinds import TurnRole


class ConversationTurn(BaseModel):
    """Single turn of a transcript."""

    role: TurnRole
    content: str
    timestamp: datetime | None = None

    @property
    def is_tool_turn(self) -> bool:
        return self.role in ("tool_use", "tool_result")


class ParsedSession(BaseModel):
    """Turns of one session as delivered by a transcript source."""

    session_id: str
    project_path: str | None = None
    entries: list[ConversationTurn] = Field(default_factory=list)
    last_modified: datetime | None = None
