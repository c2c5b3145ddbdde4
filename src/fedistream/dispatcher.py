"""Per-handle subscription dispatcher.

Routes decoded events to the handlers registered for their kind. Dispatch is
synchronous: a handler that blocks delays later events but never reorders
them. Handler lists are copy-on-write, so ``on()`` may run while a dispatch
is iterating.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from .events import ConnectionState, StreamEvent, StreamEventKind

logger = logging.getLogger(__name__)

# Receives the event payload (or the diagnostic message for errors)
EventHandler = Callable[[Any], None]
StateObserver = Callable[[ConnectionState], None]


class SubscriptionDispatcher:
    """Holds the handlers of one logical stream and invokes them in order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[StreamEventKind, tuple[EventHandler, ...]] = {}
        self._error_handlers: tuple[EventHandler, ...] = ()
        self._state_observers: tuple[StateObserver, ...] = ()

    def on(self, kind: StreamEventKind | str, handler: EventHandler) -> None:
        """Register a handler for an event kind.

        Raises:
            ValueError: If ``kind`` is not a known event kind
        """
        kind = StreamEventKind(kind)
        if kind == StreamEventKind.ERROR:
            self.on_error(handler)
            return
        with self._lock:
            self._handlers[kind] = (*self._handlers.get(kind, ()), handler)

    def on_error(self, handler: EventHandler) -> None:
        """Register a handler for ``error`` events (receives the message)."""
        with self._lock:
            self._error_handlers = (*self._error_handlers, handler)

    def on_state(self, observer: StateObserver) -> None:
        """Register a connectivity observer."""
        with self._lock:
            self._state_observers = (*self._state_observers, observer)

    def handler_count(self, kind: StreamEventKind | str) -> int:
        kind = StreamEventKind(kind)
        if kind == StreamEventKind.ERROR:
            return len(self._error_handlers)
        return len(self._handlers.get(kind, ()))

    def dispatch(self, event: StreamEvent) -> int:
        """Invoke every handler for the event's kind.

        Returns:
            Number of handlers invoked
        """
        if event.is_error():
            handlers = self._error_handlers
            argument: Any = event.message
        else:
            handlers = self._handlers.get(event.kind, ())
            argument = event.payload

        for handler in handlers:
            try:
                handler(argument)
            except Exception:
                logger.exception(f"Error in handler for {event.kind.value}")
        return len(handlers)

    def notify_state(self, state: ConnectionState) -> None:
        for observer in self._state_observers:
            try:
                observer(state)
            except Exception:
                logger.exception(f"Error in state observer for {state.value}")

    def clear(self) -> None:
        """Drop all handlers. Only used when the owning handle is closed."""
        with self._lock:
            self._handlers = {}
            self._error_handlers = ()
            self._state_observers = ()
