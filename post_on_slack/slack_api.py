"""Thin async client for the Slack Web API."""

import json
import logging
from types import TracebackType
from typing import Any

import httpx

from post_on_slack.errors import (SlackAPIError, SlackNetworkError,
                                  SlackRateLimitError)

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api/"
DEFAULT_HTTP_TIMEOUT = 30.0


class SlackClient:
    """Issue authenticated requests against the Slack Web API.

    The token is sent as the ``token`` query parameter on every request.
    Requests are made exactly once; nothing is retried.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = SLACK_API_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            params={"token": token},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SlackClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(
        self, method: str, data: dict[str, str] | None, files: dict[str, Any] | None
    ) -> httpx.Response:
        logger.debug(f"POST {method} data={data or {}} files={sorted(files or {})}")
        try:
            return await self._client.post(method, data=data, files=files)
        except httpx.TransportError as e:
            logger.error(f"Network error calling {method}: {e}")
            raise SlackNetworkError(f"Network error calling {method}: {e}") from e

    async def call(
        self,
        method: str,
        data: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call a Web API method and return the decoded body.

        The body is returned whether or not Slack reports ``ok``; callers
        that need success must inspect it (or use ``request``).

        Raises:
            SlackNetworkError: If the request fails at the transport level.
            SlackAPIError: If the response body is not a JSON object.
        """
        response = await self._post(method, data, files)
        body = self._decode(method, response)
        logger.debug(f"{method} -> HTTP {response.status_code} ok={body.get('ok')}")
        return body

    async def request(
        self,
        method: str,
        data: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call a Web API method and require ``ok: true``.

        Raises:
            SlackNetworkError: If the request fails at the transport level.
            SlackRateLimitError: If Slack rate limited the request.
            SlackAPIError: If Slack rejected the request.
        """
        response = await self._post(method, data, files)
        if response.status_code == 429:
            self._raise_rate_limited(method, response)
        body = self._decode(method, response)

        if body.get("ok"):
            logger.debug(f"{method} -> ok")
            return body

        error = str(body.get("error") or "unknown_error")
        if error == "ratelimited":
            self._raise_rate_limited(method, response)

        logger.debug(f"{method} -> error {error}")
        raise SlackAPIError(method, error)

    @staticmethod
    def _raise_rate_limited(method: str, response: httpx.Response) -> None:
        retry_after = response.headers.get("Retry-After")
        logger.warning(f"Rate limited on {method}, retry after {retry_after or '?'}s")
        raise SlackRateLimitError(method, retry_after)

    @staticmethod
    def _decode(method: str, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to parse Slack API response for {method}: {e}")
            raise SlackAPIError(method, "invalid_response") from e
        if not isinstance(body, dict):
            raise SlackAPIError(method, "invalid_response")
        return body
