"""Streaming transports.

Two variants of one capability (connect, receive loop, close):
- EventStream: chunked HTTP push events (server-sent events)
- SocketStream: WebSocket messages
"""

from .base import (
    Backoff,
    BaseStreamTransport,
    ConnectionParams,
    StreamConfig,
    StreamTransport,
)
from .sse import EventStream, FrameBuffer
from .websocket import SocketStream

__all__ = [
    # Base abstractions
    "Backoff",
    "BaseStreamTransport",
    "ConnectionParams",
    "StreamConfig",
    "StreamTransport",
    # Push-event implementation
    "EventStream",
    "FrameBuffer",
    # WebSocket implementation
    "SocketStream",
]
