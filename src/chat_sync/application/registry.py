"""Observer registration and in-order dispatch."""
from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
Handler = Callable[..., Any]


class DispatchRegistry(Generic[K]):
    """Ordered handler sets keyed by event kind.

    Dispatch isolates failures per handler so one broken observer cannot stop
    the rest from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[K, list[Handler]] = {}

    def register(self, kind: K, handler: Handler) -> None:
        handlers = self._handlers.setdefault(kind, [])
        if handler not in handlers:
            handlers.append(handler)

    def remove(self, kind: K, handler: Handler) -> None:
        handlers = self._handlers.get(kind)
        if handlers:
            self._handlers[kind] = [h for h in handlers if h != handler]

    def handlers(self, kind: K) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(kind, ()))

    def dispatch(self, kind: K, *args: Any) -> None:
        # Snapshot so handlers may (un)register while we iterate.
        for handler in self.handlers(kind):
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler %r failed for %s", handler, kind)

    def clear(self) -> None:
        self._handlers.clear()
