"""In-process publish/subscribe channel for thinking events.

One EventChannel instance is constructed per application (see app.lifespan) and
handed to the webhook route and the live stream gateway through app.state.
"""

from collections import defaultdict
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)

EventHandler = Callable[[dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class EventChannel:
    """Fan-out bus keyed by foundry id.

    Delivery is synchronous and follows registration order. Nothing is buffered:
    a handler only sees events published while it is registered.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, foundry_id: str, handler: EventHandler) -> Unsubscribe:
        """Register a handler for one foundry.

        Args:
            foundry_id: Routing key
            handler: Callable receiving each published event dict

        Returns:
            Callable that removes the handler; calling it more than once is a no-op
        """
        self._handlers[foundry_id].append(handler)
        logger.debug(
            "events.subscribed",
            foundry_id=foundry_id,
            subscribers=len(self._handlers[foundry_id]),
        )

        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            handlers = self._handlers.get(foundry_id)
            if handlers is None:
                return
            try:
                handlers.remove(handler)
            except ValueError:
                return
            if not handlers:
                del self._handlers[foundry_id]
            logger.debug(
                "events.unsubscribed",
                foundry_id=foundry_id,
                subscribers=len(handlers),
            )

        return unsubscribe

    def publish(self, foundry_id: str, event: dict[str, Any]) -> int:
        """Deliver an event to every current subscriber of a foundry.

        A failing handler is logged and skipped; remaining handlers still run.

        Returns:
            Number of handlers that accepted the event
        """
        # Copy so handlers may unsubscribe while being called
        handlers = list(self._handlers.get(foundry_id, ()))
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "events.handler_failed",
                    foundry_id=foundry_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return delivered

    def subscriber_count(self, foundry_id: str) -> int:
        return len(self._handlers.get(foundry_id, ()))
