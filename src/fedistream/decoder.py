"""Event decoder shared by both transports.

A frame is either the push-event shape::

    event: update
    data: {"id": "1", ...}

or, as sent over the socket transport by Mastodon-compatible servers, a
JSON envelope::

    {"stream": ["user"], "event": "update", "payload": "{\\"id\\": \\"1\\"}"}

Decoding never raises and performs no I/O. Anything that cannot be turned
into a domain event becomes an ``error`` event.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from .entities import PAYLOAD_PARSERS, PayloadParser
from .errors import DecodeError
from .events import StreamEvent, StreamEventKind

logger = logging.getLogger(__name__)


class EventDecoder:
    """Turns raw frames into StreamEvents using a per-kind parse table."""

    def __init__(self, parsers: Mapping[StreamEventKind, PayloadParser] | None = None):
        self._parsers: dict[StreamEventKind, PayloadParser] = dict(
            PAYLOAD_PARSERS if parsers is None else parsers
        )

    def decode(self, raw_frame: str) -> StreamEvent | None:
        """Decode one complete frame.

        Returns None when the frame holds nothing but comments or blank
        lines.
        """
        if raw_frame.lstrip().startswith("{"):
            return self._decode_envelope(raw_frame)

        kind_name: str | None = None
        data_lines: list[str] = []
        for line in raw_frame.splitlines():
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "event":
                kind_name = value.strip()
            elif field == "data":
                data_lines.append(value)
            # id:, retry: and unknown fields are ignored

        if kind_name is None:
            if not data_lines:
                return None
            return StreamEvent.error("Frame has data but no event kind")

        return self._build(kind_name, "\n".join(data_lines))

    def _decode_envelope(self, raw_frame: str) -> StreamEvent:
        try:
            envelope = json.loads(raw_frame)
        except json.JSONDecodeError as e:
            return StreamEvent.error(f"Malformed message envelope: {e}")
        if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
            return StreamEvent.error("Message envelope has no event kind")

        payload: Any = envelope.get("payload")
        if payload is None:
            data = ""
        elif isinstance(payload, str):
            data = payload
        else:
            data = json.dumps(payload)
        return self._build(envelope["event"], data)

    def _build(self, kind_name: str, data: str) -> StreamEvent:
        kind = StreamEventKind.from_wire(kind_name)
        if kind is None:
            logger.debug(f"Unknown event kind: {kind_name!r}")
            return StreamEvent.error(f"Unknown event kind: {kind_name}", raw_kind=kind_name)

        if kind == StreamEventKind.KEEP_ALIVE:
            return StreamEvent.keep_alive()
        if kind == StreamEventKind.ERROR:
            return StreamEvent.error(data.strip() or "Server reported an error")

        parser = self._parsers.get(kind)
        if parser is None:
            return StreamEvent.error(f"No parser registered for {kind.value}", raw_kind=kind_name)

        try:
            payload = parser(data)
        except (DecodeError, ValueError) as e:
            # Supplied parsers may raise json or pydantic errors directly
            return StreamEvent.error(f"Failed to decode {kind.value}: {e}", raw_kind=kind_name)
        except Exception as e:
            logger.debug(f"Parser for {kind.value} raised {type(e).__name__}", exc_info=True)
            return StreamEvent.error(
                f"Failed to decode {kind.value}: {type(e).__name__}: {e}", raw_kind=kind_name
            )
        return StreamEvent(kind=kind, payload=payload)
