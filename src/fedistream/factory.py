"""Stream factory: logical stream names to wire-level connections.

This is the only module that knows the streaming endpoints:

    selector        push events (GET)                    socket (stream=...)
    user            /api/v1/streaming/user               user
    public          /api/v1/streaming/public             public
    local           /api/v1/streaming/public/local       public:local
    hashtag:<tag>   /api/v1/streaming/hashtag?tag=<tag>  hashtag&tag=<tag>
    list:<id>       /api/v1/streaming/list?list=<id>     list&list=<id>
    direct          /api/v1/streaming/direct             direct
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .decoder import EventDecoder
from .dispatcher import SubscriptionDispatcher
from .errors import FatalConfigError
from .handle import SocketHandle, StreamHandle
from .transport.base import BaseStreamTransport, ConnectionParams, StreamConfig
from .transport.sse import EventStream
from .transport.websocket import SocketStream

logger = logging.getLogger(__name__)

STREAMING_PATH = "/api/v1/streaming"


class StreamName(str, Enum):
    """Logical streams. Values are the socket ``stream`` parameter."""

    USER = "user"
    PUBLIC = "public"
    LOCAL = "public:local"
    HASHTAG = "hashtag"
    LIST = "list"
    DIRECT = "direct"


class TransportKind(str, Enum):
    SSE = "sse"
    WEBSOCKET = "websocket"


_SSE_PATHS: dict[StreamName, str] = {
    StreamName.USER: f"{STREAMING_PATH}/user",
    StreamName.PUBLIC: f"{STREAMING_PATH}/public",
    StreamName.LOCAL: f"{STREAMING_PATH}/public/local",
    StreamName.HASHTAG: f"{STREAMING_PATH}/hashtag",
    StreamName.LIST: f"{STREAMING_PATH}/list",
    StreamName.DIRECT: f"{STREAMING_PATH}/direct",
}

# Streams that need an argument, and the query parameter carrying it
_ARGUMENT_PARAMS: dict[StreamName, str] = {
    StreamName.HASHTAG: "tag",
    StreamName.LIST: "list",
}

_ALIASES: dict[str, StreamName] = {
    "local": StreamName.LOCAL,
    "public:local": StreamName.LOCAL,
    "tag": StreamName.HASHTAG,
}

SELECTOR_HELP = "user | public | local | hashtag:<tag> | list:<id> | direct"


@dataclass(frozen=True)
class StreamSelector:
    """A parsed logical stream selector."""

    name: StreamName
    argument: str | None = None

    @classmethod
    def parse(cls, selector: str | StreamSelector) -> StreamSelector:
        """Parse ``user``, ``hashtag:python``, ``list:42`` and friends.

        Raises:
            FatalConfigError: If the selector is unknown or its argument is
                missing or unexpected
        """
        if isinstance(selector, StreamSelector):
            return selector

        text = selector.strip()
        alias = _ALIASES.get(text.lower())
        if alias is not None and alias not in _ARGUMENT_PARAMS:
            return cls(alias)

        head, sep, argument = text.partition(":")
        head = head.lower()
        try:
            name = _ALIASES.get(head) or StreamName(head)
        except ValueError as e:
            raise FatalConfigError(
                f"Unknown stream selector {selector!r} (expected {SELECTOR_HELP})"
            ) from e

        argument = argument.strip()
        if name == StreamName.HASHTAG:
            argument = argument.lstrip("#")

        if name in _ARGUMENT_PARAMS:
            if not argument:
                raise FatalConfigError(f"Stream {name.value!r} needs an argument: {name.value}:<value>")
            return cls(name, argument)
        if sep:
            raise FatalConfigError(f"Stream {name.value!r} takes no argument, got {selector!r}")
        return cls(name)

    @property
    def label(self) -> str:
        if self.argument is None:
            return "local" if self.name == StreamName.LOCAL else self.name.value
        return f"{self.name.value}:{self.argument}"

    def __str__(self) -> str:
        return self.label


def _parse_transport(transport: TransportKind | str) -> TransportKind:
    try:
        return TransportKind(transport)
    except ValueError as e:
        choices = ", ".join(k.value for k in TransportKind)
        raise FatalConfigError(f"Unknown transport {transport!r} (expected {choices})") from e


def _normalize_base_url(url: str, option: str) -> httpx.URL:
    try:
        parsed = httpx.URL(url.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise FatalConfigError(f"Invalid {option}: {url!r}") from e
    if parsed.scheme not in ("http", "https", "ws", "wss") or not parsed.host:
        raise FatalConfigError(f"{option} must be an absolute http(s) or ws(s) URL, got {url!r}")
    return parsed


def _with_scheme(url: httpx.URL, secure: bool, websocket: bool) -> str:
    if websocket:
        scheme = "wss" if secure else "ws"
    else:
        scheme = "https" if secure else "http"
    return str(url.copy_with(scheme=scheme)).rstrip("/")


class StreamFactory:
    """Builds connection parameters and opens stream handles.

    Args:
        base_url: Server URL, e.g. ``https://mastodon.social``
        access_token: Bearer credential, obtained out of band
        streaming_url: Separate streaming host, if the server advertises one
        config: Timing and limits shared by every stream opened here
        decoder: Decoder shared by every stream (it is stateless)
        http_transport: httpx transport for the push-event streams
        socket_connect: Replacement for ``websockets.connect``
    """

    def __init__(
        self,
        base_url: str,
        access_token: str | None,
        *,
        streaming_url: str | None = None,
        config: StreamConfig | None = None,
        decoder: EventDecoder | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        socket_connect: Callable[..., Any] | None = None,
    ):
        self._base_url = _normalize_base_url(base_url, "base_url")
        self._streaming_url = (
            _normalize_base_url(streaming_url, "streaming_url") if streaming_url else None
        )
        self.access_token = access_token
        self.config = config or StreamConfig()
        self.decoder = decoder or EventDecoder()
        self._http_transport = http_transport
        self._socket_connect = socket_connect

    def build_params(
        self,
        selector: str | StreamSelector,
        transport: TransportKind | str = TransportKind.SSE,
    ) -> ConnectionParams:
        """Resolve a selector to connection parameters for one transport."""
        parsed = StreamSelector.parse(selector)
        transport = _parse_transport(transport)
        if not self.access_token:
            raise FatalConfigError("An access token is required to open a stream")

        root = self._streaming_url or self._base_url
        secure = root.scheme in ("https", "wss")

        query: list[tuple[str, str]] = []
        if transport == TransportKind.SSE:
            url = _with_scheme(root, secure, websocket=False) + _SSE_PATHS[parsed.name]
            headers: tuple[tuple[str, str], ...] = (
                ("Authorization", f"Bearer {self.access_token}"),
                ("User-Agent", self.config.user_agent),
            )
        else:
            url = _with_scheme(root, secure, websocket=True) + STREAMING_PATH
            query.append(("access_token", self.access_token))
            query.append(("stream", parsed.name.value))
            headers = ()

        if parsed.name in _ARGUMENT_PARAMS and parsed.argument is not None:
            query.append((_ARGUMENT_PARAMS[parsed.name], parsed.argument))

        return ConnectionParams(
            stream=parsed.label,
            url=url,
            query=tuple(query),
            headers=headers,
        )

    def open(
        self,
        selector: str | StreamSelector,
        transport: TransportKind | str = TransportKind.SSE,
    ) -> StreamHandle:
        """Open a stream; the returned handle is already connecting.

        Raises:
            FatalConfigError: On a bad selector, a missing credential or when
                called outside a running event loop
        """
        transport = _parse_transport(transport)
        params = self.build_params(selector, transport)
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise FatalConfigError("Streams must be opened from a running event loop") from e

        dispatcher = SubscriptionDispatcher()
        stream: BaseStreamTransport
        if transport == TransportKind.SSE:
            stream = EventStream(
                params,
                self.config,
                decoder=self.decoder,
                on_event=dispatcher.dispatch,
                on_state=dispatcher.notify_state,
                http_transport=self._http_transport,
            )
        else:
            stream = SocketStream(
                params,
                self.config,
                decoder=self.decoder,
                on_event=dispatcher.dispatch,
                on_state=dispatcher.notify_state,
                connect=self._socket_connect,
            )

        handle = StreamHandle(stream, dispatcher)
        stream.start()
        logger.debug(f"Opened {transport.value} stream {params.stream}")
        return handle

    def open_stream(self, selector: str | StreamSelector) -> StreamHandle:
        """Open a push-event (chunked HTTP) stream."""
        return self.open(selector, TransportKind.SSE)

    def open_socket(self, selector: str | StreamSelector) -> SocketHandle:
        """Open a WebSocket stream."""
        return self.open(selector, TransportKind.WEBSOCKET)
