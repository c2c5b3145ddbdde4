"""WebSocket transport.

The credential travels as a query parameter because headers cannot always be
set on a socket handshake. Liveness is left to the library keepalive: a ping
is sent every ``ping_interval`` seconds and a missing pong closes the
connection, which then reconnects like any other failure.

Any close, including a normal one, is a failure unless the caller asked for
it first. The server should not end a stream that is still wanted.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import TransportError
from .base import BaseStreamTransport, ConnectionParams, StreamConfig

logger = logging.getLogger(__name__)

NORMAL_CLOSE_CODES = frozenset({1000, 1001})


class SocketStream(BaseStreamTransport):
    """Message-based stream consumer over a persistent WebSocket."""

    def __init__(
        self,
        params: ConnectionParams,
        config: StreamConfig | None = None,
        *,
        connect: Callable[..., Any] | None = None,
        **kwargs,
    ):
        super().__init__(params, config, **kwargs)
        self._connect = connect or websockets.connect
        self._ws: Any = None  # websockets ClientConnection

    async def _open(self) -> None:
        try:
            self._ws = await self._connect(
                self.params.full_url(),
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout,
                open_timeout=self.config.connect_timeout,
                user_agent_header=self.config.user_agent,
            )
        except (WebSocketException, OSError, TimeoutError) as e:
            raise TransportError(f"Handshake failed: {e}") from e

    async def _receive(self) -> AsyncIterator[str]:
        if self._ws is None:
            raise TransportError("Not connected")

        while True:
            try:
                message = await self._ws.recv()
            except ConnectionClosed as e:
                code = e.rcvd.code if e.rcvd is not None else None
                if code in NORMAL_CLOSE_CODES:
                    raise TransportError(
                        f"Server closed the socket (code={code})", close_code=code
                    ) from e
                raise TransportError(f"Socket closed abnormally (code={code})", close_code=code) from e

            if isinstance(message, bytes):
                try:
                    message = message.decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning(f"Dropping binary message that is not UTF-8 on {self.name}")
                    continue
            yield message

    async def _release(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error closing socket: {e}")
