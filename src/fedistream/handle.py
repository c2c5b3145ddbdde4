"""Caller-facing handle for one logical stream."""

from __future__ import annotations

from typing import Any

from .dispatcher import EventHandler, StateObserver, SubscriptionDispatcher
from .errors import StreamClosedError
from .events import ConnectionState, StreamEventKind
from .transport.base import BaseStreamTransport, ConnectionParams


class StreamHandle:
    """A live stream: one transport feeding one dispatcher.

    Handlers registered before the caller next yields to the event loop see
    every event from the first connection onwards. Handlers survive
    reconnects. After ``close()`` every method except ``close`` and
    ``wait_closed`` raises StreamClosedError.

    Usage:
        handle = client.tag_stream("python")
        handle.on("update", lambda status: print(status.content))
        handle.on_error(lambda message: print("error:", message))
        ...
        await handle.close()
    """

    def __init__(self, transport: BaseStreamTransport, dispatcher: SubscriptionDispatcher):
        self._transport = transport
        self._dispatcher = dispatcher
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self._transport.state

    @property
    def params(self) -> ConnectionParams:
        return self._transport.params

    @property
    def transport(self) -> BaseStreamTransport:
        return self._transport

    @property
    def closed(self) -> bool:
        return self._closed or self._transport.state == ConnectionState.CLOSED

    def on(self, kind: StreamEventKind | str, handler: EventHandler) -> None:
        """Register a handler for an event kind (``"error"`` included)."""
        self._check_open()
        self._dispatcher.on(kind, handler)

    def on_error(self, handler: EventHandler) -> None:
        self._check_open()
        self._dispatcher.on_error(handler)

    def on_state(self, observer: StateObserver) -> None:
        """Observe connectivity changes (connecting, open, reconnecting, closed)."""
        self._check_open()
        self._dispatcher.on_state(observer)

    async def close(self) -> None:
        """Stop the stream. Safe to call more than once.

        Every call returns only once the transport has reached CLOSED.
        """
        self._closed = True
        await self._transport.close()
        await self._transport.wait_closed()
        self._dispatcher.clear()

    async def wait_closed(self) -> None:
        await self._transport.wait_closed()

    def _check_open(self) -> None:
        if self.closed:
            raise StreamClosedError(f"Stream {self._transport.name} is closed")

    async def __aenter__(self) -> StreamHandle:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# Same surface regardless of transport
SocketHandle = StreamHandle
