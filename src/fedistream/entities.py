"""Entity schemas for streamed payloads.

These mirror the REST API entities closely enough to type the streaming
payloads. Unknown fields are kept (``extra="allow"``) so that newer servers
do not break parsing.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import DecodeError
from .events import StreamEventKind


class Entity(BaseModel):
    """Base for all API entities."""

    model_config = ConfigDict(extra="allow")


class Emoji(Entity):
    shortcode: str
    url: str | None = None
    static_url: str | None = None
    visible_in_picker: bool = True


class Account(Entity):
    """A user account."""

    id: str
    username: str
    acct: str
    display_name: str = ""
    locked: bool = False
    bot: bool = False
    url: str | None = None
    avatar: str | None = None
    note: str = ""
    created_at: str | None = None
    followers_count: int = 0
    following_count: int = 0
    statuses_count: int = 0
    emojis: list[Emoji] = []


class Mention(Entity):
    id: str
    username: str
    acct: str
    url: str | None = None


class Tag(Entity):
    name: str
    url: str | None = None


class Attachment(Entity):
    id: str
    type: str
    url: str | None = None
    preview_url: str | None = None
    description: str | None = None


class Status(Entity):
    """A post, as delivered by ``update`` and ``status.update``."""

    id: str
    uri: str | None = None
    url: str | None = None
    account: Account | None = None
    in_reply_to_id: str | None = None
    in_reply_to_account_id: str | None = None
    reblog: Status | None = None
    content: str = ""
    created_at: str | None = None
    edited_at: str | None = None
    visibility: str = "public"
    sensitive: bool = False
    spoiler_text: str = ""
    language: str | None = None
    replies_count: int = 0
    reblogs_count: int = 0
    favourites_count: int = 0
    media_attachments: list[Attachment] = []
    mentions: list[Mention] = []
    tags: list[Tag] = []
    emojis: list[Emoji] = []


class Notification(Entity):
    id: str
    type: str
    created_at: str | None = None
    account: Account | None = None
    status: Status | None = None


class Conversation(Entity):
    """A direct-message thread."""

    id: str
    accounts: list[Account] = []
    unread: bool = False
    last_status: Status | None = None


class AnnouncementReaction(Entity):
    name: str
    count: int = 0
    me: bool | None = None
    url: str | None = None
    static_url: str | None = None
    # Only present on streamed reactions
    announcement_id: str | None = None


class Announcement(Entity):
    id: str
    content: str = ""
    starts_at: str | None = None
    ends_at: str | None = None
    all_day: bool = False
    published_at: str | None = None
    updated_at: str | None = None
    read: bool | None = None
    mentions: list[Mention] = []
    tags: list[Tag] = []
    emojis: list[Emoji] = []
    reactions: list[AnnouncementReaction] = []


# Parse function for one payload: takes the raw data body, returns the entity
PayloadParser = Callable[[str], Any]


def model_parser(model: type[Entity]) -> PayloadParser:
    """Build a parser that validates a JSON body against ``model``."""

    def parse(data: str) -> Any:
        try:
            return model.model_validate_json(data)
        except ValidationError as e:
            raise DecodeError(
                f"{model.__name__} payload failed validation: {e.error_count()} error(s), "
                f"first: {e.errors()[0]['msg']}"
            ) from e

    parse.__name__ = f"parse_{model.__name__.lower()}"
    return parse


def parse_identifier(data: str) -> str:
    """Parse a bare identifier payload (``delete``, ``announcement.delete``).

    Servers send the id either bare (``data: 1234``) or JSON-encoded.
    """
    text = data.strip()
    if not text:
        raise DecodeError("Empty identifier payload")
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(value, str | int) and not isinstance(value, bool):
        return str(value)
    raise DecodeError(f"Identifier payload must be a string, got {type(value).__name__}")


def parse_nothing(data: str) -> None:
    """``filters_changed`` carries no payload; whatever is sent is ignored."""
    return None


PAYLOAD_PARSERS: dict[StreamEventKind, PayloadParser] = {
    StreamEventKind.UPDATE: model_parser(Status),
    StreamEventKind.STATUS_UPDATE: model_parser(Status),
    StreamEventKind.NOTIFICATION: model_parser(Notification),
    StreamEventKind.DELETE: parse_identifier,
    StreamEventKind.CONVERSATION: model_parser(Conversation),
    StreamEventKind.FILTERS_CHANGED: parse_nothing,
    StreamEventKind.ANNOUNCEMENT: model_parser(Announcement),
    StreamEventKind.ANNOUNCEMENT_REACTION: model_parser(AnnouncementReaction),
    StreamEventKind.ANNOUNCEMENT_DELETE: parse_identifier,
}
