from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """Named channels, each with an ordered handler list.

    Handlers on one channel run in registration order. A handler that raises is
    logged and skipped; the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._channels: dict[str, list[Handler]] = {}

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        self._channels.setdefault(event_name, []).append(handler)
        logger.debug("Handler subscribed event=%s handlers=%s", event_name, len(self._channels[event_name]))

        def unsubscribe() -> None:
            handlers = self._channels.get(event_name)
            if handlers is not None and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    self._channels.pop(event_name, None)

        return unsubscribe

    def handler_count(self, event_name: str) -> int:
        return len(self._channels.get(event_name, []))

    async def publish(self, event_name: str, payload: Any = None) -> int:
        handlers = list(self._channels.get(event_name, []))
        if not handlers:
            logger.debug("No handlers for event=%s", event_name)
            return 0

        delivered = 0
        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("Event handler failed event=%s handler=%r", event_name, handler)
        return delivered
