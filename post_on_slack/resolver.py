"""Resolve group and channel names to Slack identifiers."""

import logging
from typing import Any, Literal

from post_on_slack.errors import ConfigurationError, DestinationNotFoundError
from post_on_slack.slack_api import SlackClient

logger = logging.getLogger(__name__)

DestinationKind = Literal["group", "channel"]

# kind -> (list method, key holding the listing in the response)
LISTING_METHODS: dict[str, tuple[str, str]] = {
    "group": ("groups.list", "groups"),
    "channel": ("channels.list", "channels"),
}


async def fetch_listing(client: SlackClient, kind: DestinationKind) -> list[dict[str, Any]]:
    """Fetch every group or channel visible to the token."""
    method, key = LISTING_METHODS[kind]
    body = await client.request(method)
    listing = body.get(key) or []
    logger.debug(f"Fetched {len(listing)} {key}")
    return list(listing)


def find_destination_id(
    listing: list[dict[str, Any]], name: str, kind: DestinationKind
) -> str:
    """Return the id of the first entry whose name is exactly ``name``.

    Raises:
        DestinationNotFoundError: If nothing in the listing matches.
    """
    for entry in listing:
        if entry.get("name") == name and entry.get("id"):
            logger.debug(f"{kind} {name} -> {entry['id']}")
            return str(entry["id"])
    logger.error(f"{kind} {name} not found")
    raise DestinationNotFoundError(name, kind)


def select_destination(
    *, group: str | None = None, channel: str | None = None
) -> tuple[DestinationKind, str]:
    """Pick the one destination a run targets.

    Raises:
        ConfigurationError: If both or neither names are given.
    """
    if group and channel:
        raise ConfigurationError(
            "both group and channel specified", code="destination_conflict"
        )
    if group:
        return "group", group
    if channel:
        return "channel", channel
    raise ConfigurationError("destination not found", code="destination_not_found")


async def fetch_selected_listing(
    client: SlackClient, kind: DestinationKind, name: str | None
) -> list[dict[str, Any]] | None:
    """Fetch the ``kind`` listing, or None when the run does not target that kind."""
    if not name:
        return None
    return await fetch_listing(client, kind)


def find_selected_id(
    listing: list[dict[str, Any]] | None, name: str | None, kind: DestinationKind
) -> str | None:
    if listing is None or not name:
        return None
    return find_destination_id(listing, name, kind)


async def resolve_destination(
    client: SlackClient, *, group: str | None = None, channel: str | None = None
) -> str:
    """Resolve exactly one of ``group`` or ``channel`` to its identifier.

    Only the listing for the selected kind is fetched.

    Raises:
        ConfigurationError: If both or neither names are given. No request
            is made in that case.
        DestinationNotFoundError: If the name is not in the listing.
    """
    kind, name = select_destination(group=group, channel=channel)
    listing = await fetch_listing(client, kind)
    return find_destination_id(listing, name, kind)
