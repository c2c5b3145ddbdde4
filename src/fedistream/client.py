"""Streaming client - entry point for callers.

Mirrors the streaming surface of the REST client: one method per logical
stream for each transport. Every handle opened through the client is
tracked, so closing the client closes them all.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from .factory import StreamFactory, StreamSelector, TransportKind
from .handle import SocketHandle, StreamHandle
from .transport.base import StreamConfig

logger = logging.getLogger(__name__)


@dataclass
class StreamingClient:
    """Opens streams against one server with one credential."""

    base_url: str
    access_token: str | None = None
    streaming_url: str | None = None
    config: StreamConfig = field(default_factory=StreamConfig)
    http_transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)
    socket_connect: Callable[..., Any] | None = field(default=None, repr=False)
    _factory: StreamFactory | None = field(default=None, init=False, repr=False)
    _handles: list[StreamHandle] = field(default_factory=list, init=False, repr=False)

    @property
    def factory(self) -> StreamFactory:
        if self._factory is None:
            self._factory = StreamFactory(
                self.base_url,
                self.access_token,
                streaming_url=self.streaming_url,
                config=self.config,
                http_transport=self.http_transport,
                socket_connect=self.socket_connect,
            )
        return self._factory

    def open_stream(self, selector: str | StreamSelector) -> StreamHandle:
        """Open a push-event stream for a selector such as ``hashtag:python``."""
        return self._track(self.factory.open(selector, TransportKind.SSE))

    def open_socket(self, selector: str | StreamSelector) -> SocketHandle:
        """Open a WebSocket stream for a selector such as ``list:42``."""
        return self._track(self.factory.open(selector, TransportKind.WEBSOCKET))

    # Push-event streams

    def user_stream(self) -> StreamHandle:
        return self.open_stream("user")

    def public_stream(self) -> StreamHandle:
        return self.open_stream("public")

    def local_stream(self) -> StreamHandle:
        return self.open_stream("local")

    def tag_stream(self, tag: str) -> StreamHandle:
        return self.open_stream(f"hashtag:{tag}")

    def list_stream(self, list_id: str) -> StreamHandle:
        return self.open_stream(f"list:{list_id}")

    def direct_stream(self) -> StreamHandle:
        return self.open_stream("direct")

    # Socket streams

    def user_socket(self) -> SocketHandle:
        return self.open_socket("user")

    def public_socket(self) -> SocketHandle:
        return self.open_socket("public")

    def local_socket(self) -> SocketHandle:
        return self.open_socket("local")

    def tag_socket(self, tag: str) -> SocketHandle:
        return self.open_socket(f"hashtag:{tag}")

    def list_socket(self, list_id: str) -> SocketHandle:
        return self.open_socket(f"list:{list_id}")

    def direct_socket(self) -> SocketHandle:
        return self.open_socket("direct")

    @property
    def handles(self) -> list[StreamHandle]:
        """Handles opened through this client that are still open."""
        return [h for h in self._handles if not h.closed]

    async def close(self) -> None:
        """Close every stream opened through this client."""
        handles, self._handles = self._handles, []
        for handle in handles:
            await handle.close()
        if handles:
            logger.debug(f"Closed {len(handles)} stream(s)")

    def _track(self, handle: StreamHandle) -> StreamHandle:
        self._handles = [h for h in self._handles if not h.closed]
        self._handles.append(handle)
        return handle

    async def __aenter__(self) -> StreamingClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def create_client(
    base_url: str | None = None,
    access_token: str | None = None,
    streaming_url: str | None = None,
    config: StreamConfig | None = None,
) -> StreamingClient:
    """Create a streaming client.

    Arguments left as None are read from ``FEDISTREAM_BASE_URL``,
    ``FEDISTREAM_ACCESS_TOKEN`` and ``FEDISTREAM_STREAMING_URL``; the config
    from ``FEDISTREAM_*`` timing variables.

    Returns:
        StreamingClient ready to open streams
    """
    return StreamingClient(
        base_url=base_url or os.getenv("FEDISTREAM_BASE_URL", "http://localhost:3000"),
        access_token=access_token or os.getenv("FEDISTREAM_ACCESS_TOKEN"),
        streaming_url=streaming_url or os.getenv("FEDISTREAM_STREAMING_URL"),
        config=config or StreamConfig.from_env(),
    )
