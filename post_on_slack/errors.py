"""Exceptions raised while running post-on-slack tasks."""


class PostOnSlackError(Exception):
    """Base exception for all post-on-slack failures.

    Each subclass carries a stable ``code`` used to look up a human-readable
    explanation in ``ERROR_MESSAGES``.
    """

    code = "error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ConfigurationError(PostOnSlackError, ValueError):
    """Raised when the resolved options cannot describe a valid run."""

    code = "invalid_option"


class DestinationNotFoundError(PostOnSlackError):
    """Raised when no group or channel matches the configured name."""

    code = "destination_unresolved"

    def __init__(self, name: str, kind: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.name = name
        self.kind = kind


class SlackAPIError(PostOnSlackError):
    """Raised when Slack answers with ``ok: false``."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API error on {method}: {error}", code=error)
        self.method = method
        self.error = error


class SlackRateLimitError(SlackAPIError):
    """Raised when Slack API rate limit is hit."""

    def __init__(self, method: str, retry_after: str | None = None) -> None:
        super().__init__(method, "ratelimited")
        self.retry_after = retry_after


class SlackNetworkError(PostOnSlackError):
    """Raised when network connection fails."""

    code = "network_error"


class FileUnreadableError(PostOnSlackError):
    """Raised when the file to upload cannot be opened."""

    code = "file_unreadable"


class NoSessionUrlError(PostOnSlackError):
    """Raised when the realtime handshake does not return a websocket URL."""

    code = "no_session_url"


class WaitTimeoutError(PostOnSlackError):
    """Raised when the awaited text does not arrive in time."""

    code = "timeout"


class SessionClosedError(PostOnSlackError):
    """Raised when Slack closes the realtime connection before a match."""

    code = "connection_closed"


ERROR_MESSAGES: dict[str, str] = {
    "token_not_found": (
        "Please either set environment variable SLACK_TOKEN or specify token using --token."
    ),
    "destination_not_found": "Please specify a destination using --channel or --group.",
    "destination_conflict": "Please specify either --channel or --group, not both.",
    "nothing_to_do": (
        "Please specify either message, file name, console mode, --wait-for-text or --read."
    ),
    "destination_unresolved": (
        "Check the spelling; names are case-sensitive and the token must have access to it."
    ),
    "file_unreadable": "Check that the file exists and is readable.",
    "no_session_url": "Slack did not start a realtime session; check the token scopes.",
    "timeout": "The awaited message did not arrive; raise it with --timeout.",
    "connection_closed": "Slack closed the realtime connection.",
    "network_error": "Could not reach Slack; check your network connection.",
    "ratelimited": "Slack rate limited the request; wait a moment and try again.",
    "invalid_auth": "The Slack token is invalid.",
    "not_authed": "No Slack token was sent.",
    "token_revoked": "The Slack token has been revoked.",
    "channel_not_found": "The destination does not exist or the token cannot see it.",
    "not_in_channel": "The token owner is not a member of the destination.",
}


def explain(error: PostOnSlackError) -> str | None:
    """Return the human-readable explanation for an error, if one exists."""
    return ERROR_MESSAGES.get(error.code)
