"""fedistream CLI.

Usage:
    fedistream watch user                     # Push-event stream, JSON lines on stdout
    fedistream watch hashtag:python --socket  # Same over WebSocket
    fedistream watch local --kind update      # Only print some kinds
    fedistream watch list:42 --limit 10       # Exit after 10 events
    fedistream selectors                      # List accepted selectors

Connection settings come from options or FEDISTREAM_BASE_URL,
FEDISTREAM_ACCESS_TOKEN and FEDISTREAM_STREAMING_URL.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
from pydantic import BaseModel

from .client import create_client
from .errors import FatalConfigError
from .events import ConnectionState, StreamEventKind
from .factory import SELECTOR_HELP, StreamSelector

logger = logging.getLogger(__name__)

DOMAIN_KINDS = [
    k.value
    for k in StreamEventKind
    if k not in (StreamEventKind.ERROR, StreamEventKind.KEEP_ALIVE)
]


def format_event(kind: str, payload: Any) -> str:
    """Render one event as a JSON line."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", exclude_none=True)
    return json.dumps({"event": kind, "payload": payload}, ensure_ascii=False)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log connection details to stderr")
def main(verbose: bool) -> None:
    """Follow the real-time streams of a Mastodon-compatible server."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


@main.command()
@click.argument("selector")
@click.option("--base-url", envvar="FEDISTREAM_BASE_URL", help="Server URL")
@click.option("--token", envvar="FEDISTREAM_ACCESS_TOKEN", help="Access token")
@click.option("--streaming-url", envvar="FEDISTREAM_STREAMING_URL", help="Streaming host")
@click.option("--socket", "use_socket", is_flag=True, help="Use the WebSocket transport")
@click.option(
    "--kind",
    "kinds",
    multiple=True,
    type=click.Choice(DOMAIN_KINDS),
    help="Only print these event kinds (repeatable)",
)
@click.option("--limit", type=click.IntRange(min=1), help="Exit after this many events")
def watch(
    selector: str,
    base_url: str | None,
    token: str | None,
    streaming_url: str | None,
    use_socket: bool,
    kinds: tuple[str, ...],
    limit: int | None,
) -> None:
    """Print events from SELECTOR as JSON lines."""
    try:
        asyncio.run(
            _watch(selector, base_url, token, streaming_url, use_socket, kinds or DOMAIN_KINDS, limit)
        )
    except FatalConfigError as e:
        raise click.UsageError(str(e)) from e
    except KeyboardInterrupt:
        pass


async def _watch(
    selector: str,
    base_url: str | None,
    token: str | None,
    streaming_url: str | None,
    use_socket: bool,
    kinds: tuple[str, ...] | list[str],
    limit: int | None,
) -> None:
    client = create_client(base_url=base_url, access_token=token, streaming_url=streaming_url)
    done = asyncio.Event()
    count = 0

    def printer(kind: str):
        def handle(payload: Any) -> None:
            nonlocal count
            if done.is_set():
                return
            click.echo(format_event(kind, payload))
            count += 1
            if limit is not None and count >= limit:
                done.set()

        return handle

    def on_state(state: ConnectionState) -> None:
        logger.info(f"Stream {selector}: {state.value}")
        if state == ConnectionState.CLOSED:
            done.set()

    async with client:
        handle = client.open_socket(selector) if use_socket else client.open_stream(selector)
        for kind in kinds:
            handle.on(kind, printer(kind))
        handle.on_error(lambda message: click.echo(f"error: {message}", err=True))
        handle.on_state(on_state)
        await done.wait()


@main.command()
def selectors() -> None:
    """List the accepted stream selectors."""
    click.echo(SELECTOR_HELP)
    for example in ("user", "public", "local", "hashtag:python", "list:42", "direct"):
        parsed = StreamSelector.parse(example)
        click.echo(f"  {example:<16} {parsed.name.value}")


if __name__ == "__main__":
    main()
