"""Transport abstraction shared by the push-event and socket transports.

A transport owns one connection at a time and runs a single receive loop:

    idle -> connecting -> open -> (reconnecting -> connecting)* -> closed

Subclasses only implement how to open a connection, how to read raw frames
from it and how to release it. Reconnection, backoff, decoding and handing
events to the sink live here, so both variants behave identically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import random
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, fields
from typing import Protocol, runtime_checkable

import httpx

from ..decoder import EventDecoder
from ..errors import FatalConfigError, StreamClosedError, TransportError
from ..events import ConnectionState, StreamEvent

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "fedistream/0.1.0"
ENV_PREFIX = "FEDISTREAM_"

EventSink = Callable[[StreamEvent], object]
StateSink = Callable[[ConnectionState], None]


@dataclass
class StreamConfig:
    """Timing and limits for streaming connections."""

    # Connection settings
    connect_timeout: float = 10.0
    idle_timeout: float = 60.0  # Push-event transport only

    # Reconnection settings
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 60.0
    reconnect_backoff: float = 2.0
    reconnect_jitter: float = 0.25  # Fraction, 0..1
    stability_window: float = 30.0  # Open this long and the backoff resets

    # Socket keepalive
    ping_interval: float = 20.0
    ping_timeout: float = 20.0

    max_frame_bytes: int = 1024 * 1024
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        for name in ("connect_timeout", "idle_timeout", "reconnect_delay", "ping_interval"):
            if getattr(self, name) <= 0:
                raise FatalConfigError(f"{name} must be positive")
        if self.max_reconnect_delay < self.reconnect_delay:
            raise FatalConfigError("max_reconnect_delay must be >= reconnect_delay")
        if self.reconnect_backoff < 1:
            raise FatalConfigError("reconnect_backoff must be >= 1")
        if not 0 <= self.reconnect_jitter <= 1:
            raise FatalConfigError("reconnect_jitter must be between 0 and 1")
        if self.max_frame_bytes <= 0:
            raise FatalConfigError("max_frame_bytes must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StreamConfig:
        """Build a config from ``FEDISTREAM_<FIELD>`` environment variables.

        Unset variables keep their defaults.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            convert = type(f.default)
            try:
                values[f.name] = convert(raw)
            except ValueError as e:
                raise FatalConfigError(
                    f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}"
                ) from e
        return cls(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class ConnectionParams:
    """Everything needed to (re)dial one logical stream.

    Immutable so every reconnect attempt sees the same credential.
    """

    stream: str  # Logical stream identity, e.g. "hashtag:python"
    url: str
    query: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()

    def query_dict(self) -> dict[str, str]:
        return dict(self.query)

    def headers_dict(self) -> dict[str, str]:
        return dict(self.headers)

    def full_url(self) -> str:
        """URL including the query string."""
        return str(httpx.URL(self.url, params=self.query_dict()))

    def redacted_url(self) -> str:
        """URL safe for logging (credential removed)."""
        query = {k: ("***" if k == "access_token" else v) for k, v in self.query}
        return str(httpx.URL(self.url, params=query))


class Backoff:
    """Exponential reconnect delay with a cap and upward jitter.

    Consecutive delays never decrease until ``reset()`` is called.
    """

    def __init__(
        self,
        initial: float = 1.0,
        maximum: float = 60.0,
        factor: float = 2.0,
        jitter: float = 0.0,
        rng: random.Random | None = None,
    ):
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._base = initial
        self._last = 0.0

    @classmethod
    def from_config(cls, config: StreamConfig, rng: random.Random | None = None) -> Backoff:
        return cls(
            initial=config.reconnect_delay,
            maximum=config.max_reconnect_delay,
            factor=config.reconnect_backoff,
            jitter=config.reconnect_jitter,
            rng=rng,
        )

    def next_delay(self) -> float:
        delay = min(self._base * (1 + self.jitter * self._rng.random()), self.maximum)
        delay = max(delay, self._last)
        self._last = delay
        self._base = min(self._base * self.factor, self.maximum)
        return delay

    def reset(self) -> None:
        self._base = self.initial
        self._last = 0.0


@runtime_checkable
class StreamTransport(Protocol):
    """Capability the stream handle depends on."""

    @property
    def state(self) -> ConnectionState: ...

    def start(self) -> None: ...

    async def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class BaseStreamTransport(ABC):
    """Reconnecting receive loop shared by both transports.

    Provides:
    - State machine and state notifications
    - Backoff between attempts, reset after a stable connection
    - Decoding of raw frames and delivery to the event sink
    - Cancellation on close
    """

    def __init__(
        self,
        params: ConnectionParams,
        config: StreamConfig | None = None,
        *,
        decoder: EventDecoder | None = None,
        on_event: EventSink | None = None,
        on_state: StateSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self.params = params
        self.config = config or StreamConfig()
        self._decoder = decoder or EventDecoder()
        self._on_event = on_event
        self._on_state = on_state
        self._clock = clock
        self._backoff = Backoff.from_config(self.config, rng)
        self._state = ConnectionState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._closing = False
        self.connect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def name(self) -> str:
        return self.params.stream

    def start(self) -> None:
        """Start the receive loop. Must be called from a running event loop."""
        if self._closing or self._state == ConnectionState.CLOSED:
            raise StreamClosedError(f"Stream {self.name} is closed")
        if self._task is not None:
            return

        loop = asyncio.get_running_loop()
        self._set_state(ConnectionState.CONNECTING)
        self._task = loop.create_task(self._run(), name=f"fedistream:{self.name}")
        self._task.add_done_callback(self._on_task_done)

    async def close(self) -> None:
        """Stop reconnecting and release the connection."""
        if self._state == ConnectionState.CLOSED:
            return
        already_closing, self._closing = self._closing, True

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            # A second caller waits for the first one's cleanup instead of interrupting it
            if not already_closing:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._set_state(ConnectionState.CLOSED)

    async def wait_closed(self) -> None:
        """Wait until the receive loop has finished."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _run(self) -> None:
        try:
            while not self._closing:
                await self._connect_once()
                if self._closing:
                    break

                self._set_state(ConnectionState.RECONNECTING)
                delay = self._backoff.next_delay()
                logger.info(f"Reconnecting to {self.name} in {delay:.2f}s")
                await asyncio.sleep(delay)
        finally:
            self._closing = True
            await self._shutdown()
            self._set_state(ConnectionState.CLOSED)

    async def _connect_once(self) -> None:
        """One connection attempt, returning when it has failed or was closed."""
        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1
        opened_at: float | None = None

        try:
            logger.debug(f"Connecting to {self.params.redacted_url()}")
            await self._open()
            opened_at = self._clock()
            self._set_state(ConnectionState.OPEN)

            async with contextlib.aclosing(self._receive()) as frames:
                async for frame in frames:
                    self._handle_frame(frame)
                    if self._closing:
                        return
            raise TransportError("Server ended the stream")

        except TransportError as e:
            if self._closing:
                return
            if opened_at is not None and self._clock() - opened_at >= self.config.stability_window:
                self._backoff.reset()
            logger.warning(f"Stream {self.name} failed: {e}")

        finally:
            await self._release()

    def _handle_frame(self, frame: str) -> None:
        event = self._decoder.decode(frame)
        if event is None:
            return
        if event.is_error():
            logger.debug(f"Decode error on {self.name}: {event.message}")
        if self._on_event is not None:
            self._on_event(event)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug(f"{self.name}: {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state is not None:
            self._on_state(state)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Receive loop for {self.name} crashed", exc_info=exc)

    # Implementation hooks

    @abstractmethod
    async def _open(self) -> None:
        """Open the connection. Raise TransportError on failure."""
        ...

    @abstractmethod
    def _receive(self) -> AsyncIterator[str]:
        """Yield complete raw frames. Must be an async generator."""
        ...

    @abstractmethod
    async def _release(self) -> None:
        """Release the current connection, if any. Must not raise."""
        ...

    async def _shutdown(self) -> None:
        """Release long-lived resources once the loop has ended."""
        return None
