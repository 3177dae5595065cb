"""
In-process publish/subscribe.

Handlers are registered explicitly per event type and run concurrently on
publish. A failing handler is logged and reported back to the publisher;
it never prevents the other handlers from running.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Type

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[Any]]


class EventBus:
    def __init__(self):
        self._handlers: Dict[Type, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__qualname__', handler)} to {event_type.__name__}")

    def handlers_for(self, event_type: Type) -> List[EventHandler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: Any) -> List[BaseException]:
        """
        Dispatch an event to every handler registered for its type.

        Returns the exceptions raised by failing handlers (empty on success).
        """
        handlers = self.handlers_for(type(event))
        if not handlers:
            logger.debug(f"No handlers registered for {type(event).__name__}")
            return []

        results = await asyncio.gather(
            *(handler(event) for handler in handlers),
            return_exceptions=True,
        )

        failures: List[BaseException] = []
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Handler {getattr(handler, '__qualname__', handler)} failed for "
                    f"{type(event).__name__}: {result!r}"
                )
                failures.append(result)
        return failures
