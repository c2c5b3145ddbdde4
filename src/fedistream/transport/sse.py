"""Chunked-HTTP (server-sent events) transport.

Handles:
- Streaming GET with bearer auth and no read timeout
- Assembling frames from arbitrarily split chunks (blank-line boundary)
- Idle timeout: no bytes for ``idle_timeout`` seconds counts as a failure
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import httpx

from ..errors import FramingError, TransportError
from .base import BaseStreamTransport, ConnectionParams, StreamConfig

logger = logging.getLogger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class FrameBuffer:
    """Accumulates bytes and hands back complete frames.

    A frame ends at a blank line (LF or CRLF). A frame larger than
    ``max_frame_bytes`` or not valid UTF-8 is dropped, and assembly resumes
    at the next boundary.
    """

    def __init__(self, max_frame_bytes: int = 1024 * 1024):
        self.max_frame_bytes = max_frame_bytes
        self.dropped = 0
        self._pending = b""  # Incomplete trailing line
        self._lines: list[bytes] = []
        self._size = 0
        self._discarding = False

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the frames it completed."""
        *lines, self._pending = (self._pending + chunk).split(b"\n")
        frames: list[str] = []

        for line in lines:
            if line.endswith(b"\r"):
                line = line[:-1]
            if not line:
                try:
                    frame = self._flush()
                except FramingError as e:
                    self.dropped += 1
                    logger.warning(f"Dropping malformed frame: {e}")
                    continue
                if frame is not None:
                    frames.append(frame)
                continue
            self._append(line)

        if len(self._pending) > self.max_frame_bytes:
            self._pending = b""
            self._start_discarding()
        return frames

    def _append(self, line: bytes) -> None:
        if self._discarding:
            return
        self._size += len(line) + 1
        if self._size > self.max_frame_bytes:
            self._start_discarding()
            return
        self._lines.append(line)

    def _start_discarding(self) -> None:
        self._lines = []
        self._size = 0
        self._discarding = True

    def _flush(self) -> str | None:
        lines, self._lines = self._lines, []
        discarding, self._discarding = self._discarding, False
        self._size = 0

        if discarding:
            raise FramingError(f"frame exceeds {self.max_frame_bytes} bytes")
        if not lines:
            return None
        try:
            return b"\n".join(lines).decode("utf-8")
        except UnicodeDecodeError as e:
            raise FramingError(f"frame is not valid UTF-8: {e}") from e


class EventStream(BaseStreamTransport):
    """Push-event stream consumer over a long-lived HTTP response."""

    def __init__(
        self,
        params: ConnectionParams,
        config: StreamConfig | None = None,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ):
        super().__init__(params, config, **kwargs)
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._response: httpx.Response | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure client is initialized. Reused across reconnects."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.connect_timeout, read=None),
                headers={"Accept": EVENT_STREAM_CONTENT_TYPE, "Cache-Control": "no-cache"},
                transport=self._http_transport,
            )
        return self._client

    async def _open(self) -> None:
        client = self._ensure_client()
        request = client.build_request(
            "GET",
            self.params.url,
            params=self.params.query_dict(),
            headers=self.params.headers_dict(),
        )
        try:
            self._response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Connect failed: {e}") from e

        response = self._response
        if not response.is_success:
            raise TransportError(
                f"Unexpected status {response.status_code}", status_code=response.status_code
            )
        content_type = response.headers.get("content-type")
        if content_type and EVENT_STREAM_CONTENT_TYPE not in content_type:
            raise TransportError(f"Unexpected content type {content_type!r}")

    async def _receive(self) -> AsyncIterator[str]:
        if self._response is None:
            raise TransportError("Not connected")

        buffer = FrameBuffer(self.config.max_frame_bytes)
        chunks = aiter(self._response.aiter_bytes())
        while True:
            try:
                # Any byte resets the idle timer
                async with asyncio.timeout(self.config.idle_timeout):
                    chunk = await anext(chunks)
            except StopAsyncIteration:
                return
            except TimeoutError as e:
                raise TransportError(f"No data for {self.config.idle_timeout}s") from e
            except httpx.HTTPError as e:
                raise TransportError(f"Read failed: {e}") from e

            for frame in buffer.feed(chunk):
                yield frame

    async def _release(self) -> None:
        response, self._response = self._response, None
        if response is None:
            return
        try:
            await response.aclose()
        except httpx.HTTPError as e:
            logger.debug(f"Error closing response: {e}")

    async def _shutdown(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
