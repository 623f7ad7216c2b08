"""Simple in-process event bus for decoupled event emission."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

EventHandler = Callable[[dict[str, Any]], Awaitable[None] | None]

logger = logging.getLogger("mem.events")


class EventBus:
    """Dispatches events to subscribers by event name.

    Handlers may be plain callables or coroutine functions. A failing handler
    is logged and does not stop delivery to the remaining subscribers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> Callable[[], None]:
        """Register a callback for an event and return an unsubscribe function."""
        self._handlers[event_name].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Emit an event to all subscribers."""
        for handler in list(self._handlers.get(event_name, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Handler for '%s' failed: %s", event_name, exc)

    def subscriber_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))
