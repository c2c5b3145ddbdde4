"""fedistream - real-time streaming for Mastodon-compatible servers.

Opens a long-lived connection over push events (chunked HTTP) or WebSocket,
decodes the pushed events into typed entities and delivers them to
registered handlers in order, reconnecting with backoff on any failure.

Usage:
    client = create_client("https://mastodon.social", access_token="...")
    handle = client.tag_stream("python")
    handle.on("update", lambda status: print(status.content))
"""

from .client import StreamingClient, create_client
from .decoder import EventDecoder
from .dispatcher import SubscriptionDispatcher
from .entities import (
    Account,
    Announcement,
    AnnouncementReaction,
    Conversation,
    Notification,
    Status,
)
from .errors import (
    DecodeError,
    FatalConfigError,
    FramingError,
    StreamClosedError,
    StreamError,
    TransportError,
)
from .events import ConnectionState, StreamEvent, StreamEventKind
from .factory import StreamFactory, StreamName, StreamSelector, TransportKind
from .handle import SocketHandle, StreamHandle
from .transport import ConnectionParams, EventStream, SocketStream, StreamConfig

__version__ = "0.1.0"

__all__ = [
    # Client
    "StreamingClient",
    "create_client",
    "StreamFactory",
    "StreamHandle",
    "SocketHandle",
    "StreamSelector",
    "StreamName",
    "TransportKind",
    # Core
    "EventDecoder",
    "SubscriptionDispatcher",
    "EventStream",
    "SocketStream",
    "ConnectionParams",
    "StreamConfig",
    # Events
    "StreamEvent",
    "StreamEventKind",
    "ConnectionState",
    # Entities
    "Account",
    "Status",
    "Notification",
    "Conversation",
    "Announcement",
    "AnnouncementReaction",
    # Errors
    "StreamError",
    "TransportError",
    "FramingError",
    "DecodeError",
    "FatalConfigError",
    "StreamClosedError",
]
