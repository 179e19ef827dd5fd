"""In-process publish/subscribe registry.

Decouples the push channel (and pollers) from whoever consumes their events.
Each registration gets its own token, so the same callable can be registered
more than once and every registration is removed independently.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class EventDispatcher:
    """Synchronous, failure-isolated event registry keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, dict[int, Handler]] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, event_name: str, handler: Handler) -> Unsubscribe:
        """Register *handler* for *event_name*.

        Returns a callable removing exactly this registration. Calling it
        more than once is a no-op.
        """
        token = next(self._tokens)
        self._handlers.setdefault(event_name, {})[token] = handler

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_name)
            if handlers is None or handlers.pop(token, None) is None:
                return
            if not handlers:
                self._handlers.pop(event_name, None)

        return unsubscribe

    def publish(self, event_name: str, payload: Any = None) -> int:
        """Invoke every handler registered for *event_name*, in registration order.

        Handlers subscribed while publishing are not called for this event;
        handlers unsubscribed while publishing are skipped.
        A failing handler is logged and skipped. Returns the number of
        handlers that were invoked.
        """
        handlers = self._handlers.get(event_name)
        if not handlers:
            return 0
        delivered = 0
        for token, handler in list(handlers.items()):
            if token not in handlers:
                continue
            delivered += 1
            try:
                handler(payload)
            except Exception:
                _logger.exception("Handler %r (token %s) for %r failed", handler, token, event_name)
        return delivered

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, {}))

    def clear(self) -> None:
        self._handlers.clear()
