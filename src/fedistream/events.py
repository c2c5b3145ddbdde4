"""Stream event types.

Every message pushed by the server becomes one StreamEvent. Keep-alives and
decode failures are variants of the same type, so they travel the same
dispatch path as real domain events and keep their position in the stream.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class StreamEventKind(str, Enum):
    """All event kinds. Values are the names used on the wire."""

    UPDATE = "update"  # New status
    NOTIFICATION = "notification"
    DELETE = "delete"  # Status id
    STATUS_UPDATE = "status.update"  # Edited status
    CONVERSATION = "conversation"
    FILTERS_CHANGED = "filters_changed"
    ANNOUNCEMENT = "announcement"
    ANNOUNCEMENT_REACTION = "announcement.reaction"
    ANNOUNCEMENT_DELETE = "announcement.delete"  # Announcement id

    # Pseudo events
    KEEP_ALIVE = "heartbeat"
    ERROR = "error"

    @classmethod
    def from_wire(cls, name: str) -> StreamEventKind | None:
        """Look up a kind by wire name, None if unknown."""
        try:
            return cls(name)
        except ValueError:
            return None


class ConnectionState(str, Enum):
    """Connection state machine of one transport."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class StreamEvent(BaseModel):
    """A decoded event.

    Domain kinds carry their typed entity in ``payload``. ``heartbeat`` has no
    payload. ``error`` carries a diagnostic in ``message`` and, for unknown
    kinds, the offending wire name in ``raw_kind``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: StreamEventKind
    payload: Any = None
    message: str | None = None
    raw_kind: str | None = None

    @classmethod
    def keep_alive(cls) -> StreamEvent:
        return cls(kind=StreamEventKind.KEEP_ALIVE)

    @classmethod
    def error(cls, message: str, raw_kind: str | None = None) -> StreamEvent:
        return cls(kind=StreamEventKind.ERROR, message=message, raw_kind=raw_kind)

    def is_error(self) -> bool:
        return self.kind == StreamEventKind.ERROR

    def is_keep_alive(self) -> bool:
        return self.kind == StreamEventKind.KEEP_ALIVE
