"""Leaf tasks of a run and the graph that wires them together."""

import asyncio
import codecs
import functools
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import IO, Any

from post_on_slack.config import RunConfig
from post_on_slack.errors import (ConfigurationError, FileUnreadableError,
                                  SlackAPIError)
from post_on_slack.models import SentMessage, UploadedFile
from post_on_slack.realtime import Connect, RealtimeSession
from post_on_slack.resolver import fetch_selected_listing, find_selected_id
from post_on_slack.slack_api import SlackClient
from post_on_slack.tasks import Pipe, Task, TaskGraph

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
DESTINATION_TASKS = ("group_id", "channel_id")


async def post_message(
    client: SlackClient, config: RunConfig, channel: str, text: str
) -> SentMessage:
    """Post ``text`` to ``channel`` with the run's identity options."""
    data = {"channel": channel, "text": text, **config.post_options()}
    body = await client.request("chat.postMessage", data=data)
    if not body.get("ts"):
        raise SlackAPIError("chat.postMessage", "missing_ts")
    return SentMessage.from_response(body, channel)


async def upload_file(client: SlackClient, config: RunConfig, channel: str) -> UploadedFile:
    """Stream the configured file to Slack as multipart form content.

    Raises:
        FileUnreadableError: If the file cannot be opened.
    """
    path = config.file
    if path is None:
        raise FileUnreadableError("no file configured")
    try:
        handle = path.open("rb")
    except OSError as e:
        logger.error(f"Cannot open {path}: {e}")
        raise FileUnreadableError(f"Cannot read {path}: {e.strerror or e}") from e

    with handle:
        body = await client.request(
            "files.upload",
            data={"channels": channel, "filename": path.name},
            files={"file": (path.name, handle)},
        )
    if not (body.get("file") or {}).get("permalink"):
        raise SlackAPIError("files.upload", "missing_permalink")
    return UploadedFile.from_response(body, channel)


def file_announcement(uploaded: UploadedFile, label: str) -> str:
    """Slack markup linking to the private and public permalinks of a file."""
    text = f"<{uploaded.permalink}|{label}>"
    if uploaded.permalink_public:
        text += f" (<{uploaded.permalink_public}|Public Permalink>)"
    return text


class LineBuffer:
    """Accumulate streamed text and hand out complete lines."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def flush(self) -> str:
        rest, self._pending = self._pending, ""
        return rest.removesuffix("\r")


async def relay_lines(
    stream: IO[Any], send: Callable[[str], Awaitable[Any]]
) -> int:
    """Send each line of ``stream`` as soon as it is complete.

    The unterminated tail, if any, is sent when the stream ends. Blank lines
    are skipped. Returns the number of lines sent.
    """
    loop = asyncio.get_running_loop()
    read = functools.partial(getattr(stream, "read1", stream.read), READ_CHUNK_SIZE)
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = LineBuffer()
    sent = 0

    async def send_lines(lines: list[str]) -> None:
        nonlocal sent
        for line in lines:
            if not line.strip():
                continue
            await send(line)
            sent += 1

    while True:
        chunk = await loop.run_in_executor(None, read)
        if not chunk:
            break
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        await send_lines(buffer.feed(text))

    await send_lines(buffer.feed(decoder.decode(b"", final=True)) + [buffer.flush()])
    return sent


def build_graph(
    config: RunConfig,
    client: SlackClient,
    *,
    stdin: IO[Any] | None = None,
    stdout: IO[str] | None = None,
    connect: Connect | None = None,
) -> TaskGraph:
    """Wire the run's tasks for ``config``.

    Every action waits for both destination tasks; only one of them resolves
    anything, the other is skipped.
    """

    async def check_args(pipe: Pipe) -> None:
        logger.debug("Checking arguments")
        config.check()

    async def groups(pipe: Pipe) -> list[dict[str, Any]] | None:
        return await fetch_selected_listing(client, "group", config.group)

    async def group_id(pipe: Pipe) -> str | None:
        return find_selected_id(pipe.groups, config.group, "group")

    async def channels(pipe: Pipe) -> list[dict[str, Any]] | None:
        return await fetch_selected_listing(client, "channel", config.channel)

    async def channel_id(pipe: Pipe) -> str | None:
        return find_selected_id(pipe.channels, config.channel, "channel")

    def destination(pipe: Pipe) -> str:
        if pipe.destination is None:
            raise ConfigurationError("destination not found", code="destination_not_found")
        return pipe.destination

    async def send_message(pipe: Pipe) -> SentMessage | None:
        if not config.message or config.file:
            logger.debug("No message to send")
            return None
        sent = await post_message(client, config, destination(pipe), config.message)
        logger.info(f"Message sent to {sent.channel} ({sent.ts})")
        return sent

    async def pin(pipe: Pipe) -> bool | None:
        if not config.pin or pipe.send_message is None:
            logger.debug("Nothing to pin")
            return None
        sent = pipe.send_message
        await client.request("pins.add", data={"channel": sent.channel, "timestamp": sent.ts})
        logger.info(f"Pinned message {sent.ts}")
        return True

    async def upload(pipe: Pipe) -> UploadedFile | None:
        if config.file is None:
            logger.debug("No file to upload")
            return None
        uploaded = await upload_file(client, config, destination(pipe))
        logger.info(f"Uploaded {uploaded.name or config.file.name} ({uploaded.id})")
        return uploaded

    async def send_file_message(pipe: Pipe) -> SentMessage | None:
        uploaded = pipe.upload_file
        if uploaded is None:
            logger.debug("No uploaded file to announce")
            return None
        label = config.message or (config.file.name if config.file else uploaded.name)
        sent = await post_message(
            client, config, uploaded.channel, file_announcement(uploaded, label)
        )
        logger.info(f"File announcement sent to {sent.channel} ({sent.ts})")
        return sent

    async def send_console_message(pipe: Pipe) -> int | None:
        if not config.console:
            return None
        channel = destination(pipe)
        source = stdin if stdin is not None else _default_stdin()

        async def send(line: str) -> None:
            await post_message(client, config, channel, line)

        sent = await relay_lines(source, send)
        logger.info(f"Relayed {sent} line{'s' if sent != 1 else ''} from console")
        return sent

    async def wait_for_text(pipe: Pipe) -> dict[str, Any] | None:
        if not config.wait_for_text:
            return None
        session = RealtimeSession(client, connect=connect)
        return await session.wait_for_text(config.wait_for_text, config.timeout)

    async def read(pipe: Pipe) -> None:
        if not config.read:
            return None
        session = RealtimeSession(client, connect=connect)
        await session.read(destination(pipe), stdout)
        return None

    return TaskGraph(
        [
            Task("check_args", check_args),
            Task("groups", groups, ("check_args",)),
            Task("group_id", group_id, ("groups",)),
            Task("channels", channels, ("check_args",)),
            Task("channel_id", channel_id, ("channels",)),
            Task("send_message", send_message, DESTINATION_TASKS),
            Task("pin", pin, ("send_message",)),
            Task("upload_file", upload, DESTINATION_TASKS),
            Task("send_file_message", send_file_message, ("upload_file",)),
            Task("send_console_message", send_console_message, DESTINATION_TASKS),
            Task("wait_for_text", wait_for_text, DESTINATION_TASKS),
            Task("read", read, DESTINATION_TASKS),
        ]
    )


def _default_stdin() -> IO[Any]:
    return getattr(sys.stdin, "buffer", sys.stdin)


async def run(
    config: RunConfig,
    *,
    client: SlackClient | None = None,
    stdin: IO[Any] | None = None,
    stdout: IO[str] | None = None,
    connect: Connect | None = None,
) -> Pipe:
    """Execute every task configured for this run.

    Raises:
        PostOnSlackError: The first failure of any task.
    """
    owned = client is None
    slack = client if client is not None else SlackClient(config.token or "")
    try:
        graph = build_graph(config, slack, stdin=stdin, stdout=stdout, connect=connect)
        return await graph.run()
    finally:
        if owned:
            await slack.aclose()
