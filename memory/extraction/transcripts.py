"""Conversation transcript sources feeding the memory catcher."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from core.event_bus import EventBus
from memory.types.context import ConversationTurn, ParsedSession
from memory.types.memory import utc_now

logger = logging.getLogger("mem.transcripts")

TRANSCRIPT_UPDATED = "transcript.updated"


class TranscriptSource(Protocol):
    """Pull interface over stored conversation sessions."""

    async def latest_sessions(self, since: datetime | None = None) -> list[ParsedSession]:
        ...


def parse_session(payload: dict[str, Any]) -> ParsedSession:
    """Build a session from an event payload or a raw mapping."""
    session = payload.get("session", payload)
    if isinstance(session, ParsedSession):
        return session
    return ParsedSession.model_validate(session)


class InMemoryTranscriptSource:
    """Local stand-in for a transcript store; publishes updates on the event bus."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self.bus = bus
        self._sessions: dict[str, ParsedSession] = {}

    async def publish(
        self,
        session_id: str,
        turns: list[ConversationTurn],
        project_path: str | None = None,
    ) -> ParsedSession:
        existing = self._sessions.get(session_id)
        entries = (existing.entries if existing else []) + list(turns)
        session = ParsedSession(
            session_id=session_id,
            project_path=project_path or (existing.project_path if existing else None),
            entries=entries,
            last_modified=utc_now(),
        )
        self._sessions[session_id] = session
        logger.debug("Session %s now has %d turns", session_id, len(entries))
        if self.bus is not None:
            # Subscribers only receive the newly appended turns.
            delta = session.model_copy(update={"entries": list(turns)})
            await self.bus.emit(TRANSCRIPT_UPDATED, {"session": delta})
        return session

    async def latest_sessions(self, since: datetime | None = None) -> list[ParsedSession]:
        sessions = list(self._sessions.values())
        if since is None:
            return sessions
        return [s for s in sessions if s.last_modified is not None and s.last_modified > since]
