"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from typing import Any

import pytest


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


def make_status(status_id: str = "1", content: str = "<p>hello</p>", **extra: Any) -> dict[str, Any]:
    """Minimal status document as a server would push it."""
    return {
        "id": status_id,
        "uri": f"https://example.social/users/alice/statuses/{status_id}",
        "content": content,
        "visibility": "public",
        "account": {"id": "100", "username": "alice", "acct": "alice"},
        **extra,
    }


def make_frame(kind: str, payload: Any = None, *, raw: str | None = None) -> str:
    """Two-line push-event frame, without the trailing blank line."""
    if raw is not None:
        data = raw
    elif payload is None:
        data = ""
    else:
        data = json.dumps(payload)
    return f"event: {kind}\ndata: {data}"


@pytest.fixture
def status_payload() -> dict[str, Any]:
    return make_status()
