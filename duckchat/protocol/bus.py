"""
In-process pub/sub for session events.

The protocol manager, the session and the CLI never call each other for
notifications: they emit on the bus and whoever cares subscribes. Delivery
is sequential and in subscription order, and a handler that raises is
logged without affecting the emitter or the remaining handlers.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .events import EventTypes

EventHandler = Callable[[Any], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._lock = asyncio.Lock()
        self._handlers: Dict[EventTypes, List[EventHandler]] = {}
        self._logger = logging.getLogger(__name__)

    async def subscribe(self, event_type: EventTypes, handler: EventHandler) -> None:
        async with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    async def subscribe_many(self, handlers: Dict[EventTypes, EventHandler]) -> None:
        """Register a table of handlers atomically, in the table's order."""
        async with self._lock:
            for event_type, handler in handlers.items():
                self._handlers.setdefault(event_type, []).append(handler)

    async def unsubscribe(self, event_type: EventTypes, handler: EventHandler) -> None:
        async with self._lock:
            registered = self._handlers.get(event_type)
            if registered and handler in registered:
                registered.remove(handler)

    def subscriber_count(self, event_type: EventTypes) -> int:
        return len(self._handlers.get(event_type, ()))

    async def _is_registered(self, event_type: EventTypes, handler: EventHandler) -> bool:
        async with self._lock:
            return handler in self._handlers.get(event_type, ())

    async def emit(self, event_type: EventTypes, data: Optional[Any] = None) -> None:
        """Deliver ``data`` (an empty dict when omitted) to every handler."""
        async with self._lock:
            pending = list(self._handlers.get(event_type, ()))
        if not pending:
            return

        payload = {} if data is None else data
        for handler in pending:
            # unsubscribed by an earlier handler in this round
            if not await self._is_registered(event_type, handler):
                continue
            try:
                await handler(payload)
            except Exception as e:
                self._logger.error(
                    "%s handler %s failed: %s",
                    event_type.value,
                    getattr(handler, "__qualname__", handler),
                    e,
                    exc_info=True,
                )
