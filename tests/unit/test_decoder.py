"""Unit tests for EventDecoder.

Covers both frame shapes (two-line push events and the JSON envelope used
over sockets), keep-alives, and every way a frame can fail to decode.
"""

from __future__ import annotations

import json
from typing import Any

import pytest
from conftest import make_frame, make_status

from fedistream.decoder import EventDecoder
from fedistream.entities import (
    Announcement,
    AnnouncementReaction,
    Conversation,
    Notification,
    Status,
)
from fedistream.errors import DecodeError
from fedistream.events import StreamEventKind


@pytest.fixture
def decoder() -> EventDecoder:
    return EventDecoder()


# =============================================================================
# Well-formed frames
# =============================================================================


class TestDecodeKnownKinds:
    """Known kinds decode into their typed payloads."""

    def test_update_decodes_status(self, decoder: EventDecoder) -> None:
        event = decoder.decode(make_frame("update", make_status("1", "<p>hi</p>")))

        assert event is not None
        assert event.kind == StreamEventKind.UPDATE
        assert isinstance(event.payload, Status)
        assert event.payload.id == "1"
        assert event.payload.content == "<p>hi</p>"
        assert event.payload.account is not None
        assert event.payload.account.acct == "alice"

    def test_status_update_decodes_status(self, decoder: EventDecoder) -> None:
        payload = make_status("7", edited_at="2024-01-01T00:00:00Z")
        event = decoder.decode(make_frame("status.update", payload))

        assert event is not None
        assert event.kind == StreamEventKind.STATUS_UPDATE
        assert event.payload.edited_at == "2024-01-01T00:00:00Z"

    def test_reblog_is_nested_status(self, decoder: EventDecoder) -> None:
        payload = make_status("2", reblog=make_status("1"))
        event = decoder.decode(make_frame("update", payload))

        assert event is not None
        assert isinstance(event.payload.reblog, Status)
        assert event.payload.reblog.id == "1"

    def test_notification(self, decoder: EventDecoder) -> None:
        payload = {
            "id": "n1",
            "type": "mention",
            "account": {"id": "5", "username": "bob", "acct": "bob@remote.example"},
            "status": make_status("3"),
        }
        event = decoder.decode(make_frame("notification", payload))

        assert event is not None
        assert event.kind == StreamEventKind.NOTIFICATION
        assert isinstance(event.payload, Notification)
        assert event.payload.type == "mention"
        assert event.payload.status.id == "3"

    def test_delete_with_bare_id(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: delete\ndata: 109876")

        assert event is not None
        assert event.kind == StreamEventKind.DELETE
        assert event.payload == "109876"

    def test_delete_with_json_string_id(self, decoder: EventDecoder) -> None:
        event = decoder.decode('event: delete\ndata: "109876"')

        assert event is not None
        assert event.payload == "109876"

    def test_conversation(self, decoder: EventDecoder) -> None:
        payload = {
            "id": "c1",
            "unread": True,
            "accounts": [{"id": "5", "username": "bob", "acct": "bob"}],
            "last_status": make_status("9"),
        }
        event = decoder.decode(make_frame("conversation", payload))

        assert event is not None
        assert isinstance(event.payload, Conversation)
        assert event.payload.unread is True
        assert event.payload.accounts[0].username == "bob"

    def test_filters_changed_has_no_payload(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: filters_changed\ndata: undefined")

        assert event is not None
        assert event.kind == StreamEventKind.FILTERS_CHANGED
        assert event.payload is None
        assert event.is_error() is False

    def test_announcement(self, decoder: EventDecoder) -> None:
        payload = {
            "id": "a1",
            "content": "<p>maintenance</p>",
            "reactions": [{"name": "👍", "count": 3}],
        }
        event = decoder.decode(make_frame("announcement", payload))

        assert event is not None
        assert isinstance(event.payload, Announcement)
        assert event.payload.reactions[0].count == 3

    def test_announcement_reaction(self, decoder: EventDecoder) -> None:
        payload = {"name": "tada", "count": 2, "announcement_id": "a1"}
        event = decoder.decode(make_frame("announcement.reaction", payload))

        assert event is not None
        assert isinstance(event.payload, AnnouncementReaction)
        assert event.payload.announcement_id == "a1"

    def test_announcement_delete(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: announcement.delete\ndata: a1")

        assert event is not None
        assert event.kind == StreamEventKind.ANNOUNCEMENT_DELETE
        assert event.payload == "a1"

    def test_unknown_fields_are_kept(self, decoder: EventDecoder) -> None:
        payload = make_status("1", quote_id="99")
        event = decoder.decode(make_frame("update", payload))

        assert event is not None
        assert event.payload.model_extra["quote_id"] == "99"


class TestFrameShape:
    """Line handling inside one frame."""

    def test_comment_only_frame_yields_nothing(self, decoder: EventDecoder) -> None:
        assert decoder.decode(":thump") is None

    def test_blank_frame_yields_nothing(self, decoder: EventDecoder) -> None:
        assert decoder.decode("\n\n") is None

    def test_comments_and_extra_fields_are_ignored(self, decoder: EventDecoder) -> None:
        frame = ":comment\nid: 42\nretry: 1000\n" + make_frame("delete", raw="5")
        event = decoder.decode(frame)

        assert event is not None
        assert event.kind == StreamEventKind.DELETE
        assert event.payload == "5"

    def test_multiple_data_lines_are_joined(self, decoder: EventDecoder) -> None:
        frame = 'event: update\ndata: {"id": "1",\ndata: "content": "x"}'
        event = decoder.decode(frame)

        assert event is not None
        assert event.kind == StreamEventKind.UPDATE
        assert event.payload.content == "x"

    def test_no_space_after_colon(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event:delete\ndata:77")

        assert event is not None
        assert event.payload == "77"

    def test_crlf_lines(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: delete\r\ndata: 77")

        assert event is not None
        assert event.payload == "77"

    def test_heartbeat_is_keep_alive(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: heartbeat\ndata:")

        assert event is not None
        assert event.is_keep_alive()
        assert event.payload is None


# =============================================================================
# Failures become error events
# =============================================================================


class TestDecodeFailures:
    """Decoding never raises; failures are surfaced as error events."""

    def test_unknown_kind(self, decoder: EventDecoder) -> None:
        event = decoder.decode('event: notification.grouped\ndata: {"id": "1"}')

        assert event is not None
        assert event.is_error()
        assert event.raw_kind == "notification.grouped"
        assert "notification.grouped" in event.message
        assert event.payload is None

    def test_invalid_json(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: update\ndata: {not json")

        assert event is not None
        assert event.is_error()
        assert "update" in event.message

    def test_schema_mismatch(self, decoder: EventDecoder) -> None:
        event = decoder.decode(make_frame("update", {"content": "missing id"}))

        assert event is not None
        assert event.is_error()
        assert "Status" in event.message

    def test_empty_payload_for_payload_kind(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: notification\ndata:")

        assert event is not None
        assert event.is_error()

    def test_data_without_kind(self, decoder: EventDecoder) -> None:
        event = decoder.decode('data: {"id": "1"}')

        assert event is not None
        assert event.is_error()

    def test_delete_with_object_payload(self, decoder: EventDecoder) -> None:
        event = decoder.decode('event: delete\ndata: {"id": "1"}')

        assert event is not None
        assert event.is_error()

    def test_server_error_kind_carries_message(self, decoder: EventDecoder) -> None:
        event = decoder.decode("event: error\ndata: Missing access token")

        assert event is not None
        assert event.is_error()
        assert event.message == "Missing access token"

    def test_parser_raising_value_error(self) -> None:
        def broken(data: str) -> None:
            raise ValueError("nope")

        decoder = EventDecoder(parsers={StreamEventKind.UPDATE: broken})
        event = decoder.decode(make_frame("update", make_status()))

        assert event is not None
        assert event.is_error()
        assert "nope" in event.message

    @pytest.mark.parametrize(
        "parser",
        [
            lambda data: json.loads(data)["missing"],
            lambda data: json.loads(data)["id"] + 1,
            lambda data: json.loads(data).missing,
        ],
        ids=["key-error", "type-error", "attribute-error"],
    )
    def test_parser_raising_anything_becomes_error_event(self, parser: Any) -> None:
        decoder = EventDecoder(parsers={StreamEventKind.UPDATE: parser})
        event = decoder.decode(make_frame("update", make_status()))

        assert event is not None
        assert event.is_error()
        assert event.raw_kind == "update"
        assert event.message.startswith("Failed to decode update")

    def test_missing_parser(self) -> None:
        decoder = EventDecoder(parsers={})
        event = decoder.decode(make_frame("update", make_status()))

        assert event is not None
        assert event.is_error()


# =============================================================================
# JSON envelope (socket transport)
# =============================================================================


class TestEnvelope:
    """Socket messages wrapped as {stream, event, payload}."""

    def test_payload_as_json_string(self, decoder: EventDecoder) -> None:
        message = json.dumps(
            {"stream": ["user"], "event": "update", "payload": json.dumps(make_status("4"))}
        )
        event = decoder.decode(message)

        assert event is not None
        assert event.kind == StreamEventKind.UPDATE
        assert event.payload.id == "4"

    def test_payload_as_inline_object(self, decoder: EventDecoder) -> None:
        message = json.dumps({"event": "update", "payload": make_status("5")})
        event = decoder.decode(message)

        assert event is not None
        assert event.payload.id == "5"

    def test_delete_payload(self, decoder: EventDecoder) -> None:
        event = decoder.decode(json.dumps({"event": "delete", "payload": "123"}))

        assert event is not None
        assert event.kind == StreamEventKind.DELETE
        assert event.payload == "123"

    def test_filters_changed_without_payload(self, decoder: EventDecoder) -> None:
        event = decoder.decode(json.dumps({"event": "filters_changed"}))

        assert event is not None
        assert event.kind == StreamEventKind.FILTERS_CHANGED

    def test_malformed_envelope(self, decoder: EventDecoder) -> None:
        event = decoder.decode('{"event": "update", ')

        assert event is not None
        assert event.is_error()

    def test_envelope_without_event(self, decoder: EventDecoder) -> None:
        event = decoder.decode(json.dumps({"payload": "1"}))

        assert event is not None
        assert event.is_error()

    def test_unknown_kind_in_envelope(self, decoder: EventDecoder) -> None:
        event = decoder.decode(json.dumps({"event": "encrypted_message", "payload": "{}"}))

        assert event is not None
        assert event.is_error()
        assert event.raw_kind == "encrypted_message"


class TestIdentifierParser:
    """parse_identifier accepts bare and JSON ids."""

    def test_rejects_empty(self) -> None:
        from fedistream.entities import parse_identifier

        with pytest.raises(DecodeError):
            parse_identifier("  ")

    def test_numeric_json(self) -> None:
        from fedistream.entities import parse_identifier

        assert parse_identifier("42") == "42"
