"""Tests for the fedistream CLI."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from click.testing import CliRunner
from conftest import make_frame, make_status

from fedistream import cli
from fedistream.client import StreamingClient


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FEDISTREAM_BASE_URL", "FEDISTREAM_ACCESS_TOKEN", "FEDISTREAM_STREAMING_URL"):
        monkeypatch.delenv(name, raising=False)


def serve_frames(*frames: str) -> httpx.MockTransport:
    body = "".join(f"{frame}\n\n" for frame in frames).encode()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def fake_server(monkeypatch: pytest.MonkeyPatch):
    """Point the CLI at a scripted server; returns the create_client kwargs seen."""
    seen: dict[str, Any] = {}

    def install(*frames: str) -> dict[str, Any]:
        def factory(**kwargs: Any) -> StreamingClient:
            seen.update(kwargs)
            return StreamingClient(
                base_url=kwargs["base_url"] or "https://example.social",
                access_token=kwargs["access_token"],
                http_transport=serve_frames(*frames),
            )

        monkeypatch.setattr(cli, "create_client", factory)
        return seen

    return install


class TestSelectorsCommand:
    def test_lists_selectors(self, runner: CliRunner) -> None:
        result = runner.invoke(cli.main, ["selectors"])

        assert result.exit_code == 0
        assert "hashtag:<tag>" in result.output
        assert "public:local" in result.output


class TestWatchCommand:
    def test_prints_json_lines_until_limit(self, runner: CliRunner, fake_server) -> None:
        seen = fake_server(
            make_frame("update", make_status("1")),
            make_frame("delete", raw="7"),
            make_frame("update", make_status("2")),
        )

        result = runner.invoke(
            cli.main, ["watch", "user", "--token", "tok", "--base-url", "https://example.social", "--limit", "2"]
        )

        assert result.exit_code == 0, result.output
        lines = [json.loads(line) for line in result.output.splitlines()]
        assert lines[0]["event"] == "update"
        assert lines[0]["payload"]["id"] == "1"
        assert lines[0]["payload"]["account"]["acct"] == "alice"
        assert lines[1] == {"event": "delete", "payload": "7"}
        assert seen["access_token"] == "tok"

    def test_kind_filter(self, runner: CliRunner, fake_server) -> None:
        fake_server(
            make_frame("update", make_status("1")),
            make_frame("delete", raw="7"),
            make_frame("delete", raw="8"),
        )

        result = runner.invoke(
            cli.main, ["watch", "public", "--token", "tok", "--kind", "delete", "--limit", "2"]
        )

        assert result.exit_code == 0, result.output
        events = [json.loads(line)["event"] for line in result.output.splitlines()]
        assert events == ["delete", "delete"]

    def test_token_from_environment(
        self, runner: CliRunner, fake_server, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen = fake_server(make_frame("delete", raw="1"))
        monkeypatch.setenv("FEDISTREAM_ACCESS_TOKEN", "env-token")

        result = runner.invoke(cli.main, ["watch", "direct", "--limit", "1"])

        assert result.exit_code == 0, result.output
        assert seen["access_token"] == "env-token"

    def test_bad_selector_is_usage_error(self, runner: CliRunner, fake_server) -> None:
        fake_server()

        result = runner.invoke(cli.main, ["watch", "hashtag", "--token", "tok"])

        assert result.exit_code == 2
        assert "needs an argument" in result.output

    def test_missing_token_is_usage_error(self, runner: CliRunner, fake_server) -> None:
        fake_server()

        result = runner.invoke(cli.main, ["watch", "user"])

        assert result.exit_code == 2
        assert "access token" in result.output

    def test_unknown_kind_rejected(self, runner: CliRunner) -> None:
        result = runner.invoke(cli.main, ["watch", "user", "--kind", "reblog"])

        assert result.exit_code == 2


class TestFormatEvent:
    def test_model_payload_drops_unset_fields(self) -> None:
        from fedistream.entities import Status

        line = cli.format_event("update", Status.model_validate(make_status("5")))

        data = json.loads(line)
        assert data["payload"]["id"] == "5"
        assert "reblog" not in data["payload"]

    def test_plain_payload(self) -> None:
        assert json.loads(cli.format_event("delete", "9")) == {"event": "delete", "payload": "9"}
