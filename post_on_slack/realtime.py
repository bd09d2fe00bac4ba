"""Slack real-time messaging session over a websocket."""

import asyncio
import enum
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from typing import IO, Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from post_on_slack.errors import (NoSessionUrlError, SessionClosedError,
                                  SlackNetworkError, WaitTimeoutError)
from post_on_slack.slack_api import SlackClient

logger = logging.getLogger(__name__)

HANDSHAKE_METHOD = "rtm.connect"

Connect = Callable[[str], Awaitable[Any]]
EventHandler = Callable[[dict[str, Any]], bool]


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"
    ERROR = "error"


def _default_connect(url: str) -> Awaitable[Any]:
    return websockets.connect(url)


def decode_event(raw: str | bytes) -> dict[str, Any] | None:
    """Decode a websocket frame into an event, or None if it carries none.

    Only text frames carry JSON events; binary frames are ignored.
    """
    if isinstance(raw, bytes):
        return None
    try:
        event = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug(f"Ignoring non-JSON frame: {raw[:80]!r}")
        return None
    if not isinstance(event, dict):
        return None
    return event


class RealtimeSession:
    """A single RTM websocket connection.

    The session is single-use: open it with one of ``wait_for_text`` or
    ``read``; it is closed when that call returns or raises.
    """

    def __init__(self, client: SlackClient, *, connect: Connect | None = None) -> None:
        self.client = client
        self.state = SessionState.CONNECTING
        self._connect = connect or _default_connect
        self._ws: Any = None
        self._closed = False

    async def open(self) -> None:
        """Run the RTM handshake and connect to the returned websocket URL.

        Raises:
            NoSessionUrlError: If the handshake does not return a URL.
            SlackNetworkError: If the websocket cannot be opened.
        """
        body = await self.client.call(HANDSHAKE_METHOD)
        url = body.get("url")
        logger.debug(f"{HANDSHAKE_METHOD} url={url}")
        if not url:
            self.state = SessionState.ERROR
            reason = body.get("error")
            raise NoSessionUrlError(
                f"wss not found{f' ({reason})' if reason else ''}"
            )

        try:
            self._ws = await self._connect(url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.state = SessionState.ERROR
            logger.error(f"Cannot connect to {url}: {e}")
            raise SlackNetworkError(f"Cannot connect to {url}: {e}") from e
        self.state = SessionState.OPEN
        logger.debug("Realtime session open")

    async def close(self) -> None:
        """Close the websocket. Safe to call more than once."""
        if self._ws is None or self._closed:
            return
        self._closed = True
        await self._ws.close()
        logger.debug("Realtime session closed")

    async def _listen(self, handle: EventHandler) -> dict[str, Any] | None:
        """Feed events to ``handle`` until it accepts one.

        Returns the accepted event, or None once the remote side closes.
        """
        try:
            async for raw in self._ws:
                event = decode_event(raw)
                if event is None:
                    continue
                logger.debug(f"Event: {event}")
                if handle(event):
                    return event
        except ConnectionClosed as e:
            logger.debug(f"Connection closed: {e}")
        except (OSError, WebSocketException) as e:
            raise SlackNetworkError(f"Realtime connection failed: {e}") from e
        return None

    async def wait_for_text(self, text: str, timeout: float) -> dict[str, Any]:
        """Block until a ``message`` event with exactly ``text`` arrives.

        Returns:
            The matching event.

        Raises:
            WaitTimeoutError: If ``timeout`` seconds pass without a match.
            SessionClosedError: If Slack closes the connection first.
        """
        await self.open()

        def matches(event: dict[str, Any]) -> bool:
            return event.get("type") == "message" and event.get("text") == text

        listener = asyncio.create_task(self._listen(matches))
        timer = asyncio.create_task(asyncio.sleep(timeout))
        try:
            done, _ = await asyncio.wait({listener, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Only the loser is still pending here; cancelling a finished task is a no-op.
            for waiter in (listener, timer):
                waiter.cancel()
            await asyncio.gather(listener, timer, return_exceptions=True)
            await self.close()

        if listener in done:
            try:
                event = listener.result()
            except Exception:
                self.state = SessionState.ERROR
                raise
            if event is None:
                self.state = SessionState.CLOSED
                raise SessionClosedError("connection closed before the text arrived")
            self.state = SessionState.MATCHED
            logger.info(f"Received awaited text: {text}")
            return event

        self.state = SessionState.TIMED_OUT
        raise WaitTimeoutError(f"timeout after {timeout:g}s waiting for {text!r}")

    async def read(self, channel_id: str, out: IO[str] | None = None) -> None:
        """Print the text of every message posted to ``channel_id``.

        Runs until Slack closes the connection or the reader of ``out`` goes
        away. Events for other destinations are dropped.
        """
        stream = out if out is not None else sys.stdout
        await self.open()
        output_closed = False

        def echo(event: dict[str, Any]) -> bool:
            nonlocal output_closed
            if event.get("type") != "message" or event.get("channel") != channel_id:
                return False
            try:
                stream.write(f"{event.get('text', '')}\n")
                stream.flush()
            except BrokenPipeError:
                output_closed = True
                return True
            return False

        try:
            await self._listen(echo)
        finally:
            await self.close()
        self.state = SessionState.CLOSED

        if output_closed:
            logger.debug("Output closed by reader, stopping")
            if stream is sys.stdout:
                # The interpreter flushes stdout again at exit.
                os.dup2(os.open(os.devnull, os.O_WRONLY), sys.stdout.fileno())
            return
        logger.info("Realtime connection closed by Slack")
