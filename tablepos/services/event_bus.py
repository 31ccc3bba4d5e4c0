from __future__ import annotations

import logging
from collections import defaultdict
from threading import Lock
from typing import Any, Callable, DefaultDict, List


Handler = Callable[[str, dict[str, Any]], None]

ANY_EVENT = "*"


class EventBus:
    """In-process publish/subscribe for order lifecycle events.

    Handlers receive ``(event_name, payload)``. A failing handler is logged and
    never breaks the publisher or the other handlers.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = Lock()
        self._logger = logging.getLogger(__name__)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            handlers = [*self._handlers.get(event_name, []), *self._handlers.get(ANY_EVENT, [])]
        if not handlers:
            self._logger.debug("EventBus: no handlers for %s", event_name)
            return
        for handler in handlers:
            try:
                handler(event_name, payload)
            except Exception:
                self._logger.exception("EventBus handler failed for %s", event_name)

    def subscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)


event_bus = EventBus()
