#!/usr/bin/env python3
"""Post on Slack - CLI entry point."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from post_on_slack import __version__
from post_on_slack.config import DEFAULT_TIMEOUT, load_config
from post_on_slack.errors import ConfigurationError, PostOnSlackError, explain

# Logs and errors go to stderr; stdout carries messages in --read mode.
console = Console(stderr=True)

logger = logging.getLogger("post_on_slack")

NOISY_LOGGERS = ("httpx", "httpcore", "websockets")


def configure_logging(verbose: bool = False) -> None:
    """Route logging through rich, honouring LOG_LEVEL and --verbose."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.DEBUG if verbose else getattr(logging, log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_path=False,
                show_time=verbose,
            )
        ],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="post-on-slack",
        description="Send messages, files and console output to a Slack channel or group",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  # Post a message to a channel
  pos -c general -m "deploy finished"

  # Upload a file and announce it with a label
  pos -g ops -f build.log -m "nightly build log"

  # Post and pin a message as yourself
  pos -c general -m "release freeze starts now" --as-user --pin

  # Relay command output line by line
  tail -f app.log | pos -c alerts --console

  # Wait up to 60s for someone to say "go"
  pos -c deploys -w go -s 60

  # Print everything posted to a channel
  pos -c general --read
""",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version and exit")
    parser.add_argument("--message", "-m", type=str, help="Text of the message to send")
    parser.add_argument("--group", "-g", type=str, help="Private group name")
    parser.add_argument("--channel", "-c", type=str, help="Channel name")
    parser.add_argument("--file", "-f", type=Path, help="File to upload")
    parser.add_argument(
        "--token", "-t", type=str, help="Slack API token (default: $SLACK_TOKEN)"
    )
    parser.add_argument(
        "--console",
        "-i",
        action="store_true",
        help="Read standard input and post each line as a message",
    )
    parser.add_argument(
        "--wait-for-text",
        "-w",
        type=str,
        help="Wait until a message with exactly this text arrives",
    )
    parser.add_argument(
        "--timeout",
        "-s",
        type=float,
        help=f"Seconds to wait with --wait-for-text (default: {DEFAULT_TIMEOUT:g})",
    )
    parser.add_argument(
        "--as-user", "-u", action="store_true", help="Post as the user owning the token"
    )
    parser.add_argument(
        "--link-names",
        "-l",
        action="store_true",
        help="Turn @user and #channel names into links",
    )
    parser.add_argument("--pin", "-p", action="store_true", help="Pin the sent message")
    parser.add_argument(
        "--read",
        "-r",
        action="store_true",
        help="Print incoming messages of the destination until interrupted",
    )
    parser.add_argument("--username", type=str, help="Bot display name")
    parser.add_argument("--icon-url", type=str, help="Bot icon URL")
    parser.add_argument("--icon-emoji", type=str, help="Bot icon emoji, e.g. :robot_face:")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: ./.pos.yaml or ~/.config/post-on-slack/config.yaml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser


def options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed arguments onto RunConfig field names."""
    return {
        "token": args.token,
        "group": args.group,
        "channel": args.channel,
        "message": args.message,
        "file": args.file,
        "console": args.console,
        "wait_for_text": args.wait_for_text,
        "timeout": args.timeout,
        "as_user": args.as_user,
        "link_names": args.link_names,
        "pin": args.pin,
        "read": args.read,
        "username": args.username,
        "icon_url": args.icon_url,
        "icon_emoji": args.icon_emoji,
    }


def report_error(error: PostOnSlackError) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    explanation = explain(error)
    if explanation:
        console.print(f"  [yellow]{explanation}[/yellow]")


def cmd_version() -> int:
    """Print version information."""
    print(f"post-on-slack {__version__}")
    return 0


def run_cli(argv: list[str] | None = None) -> int:
    """Parse ``argv``, run the configured tasks and return the exit code."""
    args = build_parser().parse_args(argv)

    if args.version:
        return cmd_version()

    configure_logging(args.verbose)

    # Imported here to keep --help and --version fast.
    from post_on_slack.actions import run

    try:
        config = load_config(options_from_args(args), args.config)
    except ConfigurationError as e:
        report_error(e)
        return 1

    try:
        asyncio.run(run(config))
    except PostOnSlackError as e:
        logger.debug("Run failed", exc_info=True)
        report_error(e)
        return 1
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        return 130
    return 0


def main() -> None:
    """Main CLI entry point."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
