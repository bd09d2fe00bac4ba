"""Mock tests for Slack API interactions."""

import httpx
import pytest

from post_on_slack.errors import (SlackAPIError, SlackNetworkError,
                                  SlackRateLimitError)
from post_on_slack.slack_api import SlackClient


class TestSlackClientCall:
    """Test suite for SlackClient.call."""

    @pytest.mark.asyncio
    async def test_call_builds_url_with_method_and_token(self, slack):
        """Test the request targets the API base, method name and token."""
        async with slack.client("xoxb-abc") as client:
            await client.call("chat.postMessage", data={"channel": "C1", "text": "hi"})

        request = slack.requests[0]
        assert request.method == "POST"
        assert request.url.host == "slack.com"
        assert request.url.path == "/api/chat.postMessage"
        assert request.url.params["token"] == "xoxb-abc"

    @pytest.mark.asyncio
    async def test_call_sends_form_fields(self, slack):
        """Test form data is sent urlencoded."""
        async with slack.client() as client:
            await client.call("chat.postMessage", data={"channel": "C1", "text": "a & b"})

        assert slack.calls == [("chat.postMessage", {"channel": "C1", "text": "a & b"})]

    @pytest.mark.asyncio
    async def test_call_returns_failed_body_without_raising(self, slack):
        """Test API-level failures are returned for the caller to inspect."""
        slack.responses["rtm.connect"] = {"ok": False, "error": "not_allowed_token_type"}

        async with slack.client() as client:
            body = await client.call("rtm.connect")

        assert body == {"ok": False, "error": "not_allowed_token_type"}

    @pytest.mark.asyncio
    async def test_call_network_error(self):
        """Test transport failures surface as SlackNetworkError."""

        def handler(request):
            raise httpx.ConnectError("Connection failed")

        async with SlackClient("t", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(SlackNetworkError, match="Network error calling groups.list"):
                await client.call("groups.list")

    @pytest.mark.asyncio
    async def test_call_timeout(self):
        """Test timeouts are transport failures too."""

        def handler(request):
            raise httpx.ReadTimeout("Request timed out")

        async with SlackClient("t", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(SlackNetworkError):
                await client.call("groups.list")

    @pytest.mark.asyncio
    async def test_call_is_not_retried(self):
        """Test a failing request is attempted exactly once."""
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("Connection failed")

        async with SlackClient("t", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(SlackNetworkError):
                await client.call("chat.postMessage", data={"channel": "C1", "text": "x"})

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_call_invalid_json(self, slack):
        """Test a non-JSON body is reported as an API error."""
        slack.responses["groups.list"] = httpx.Response(200, text="<html>oops</html>")

        async with slack.client() as client:
            with pytest.raises(SlackAPIError) as exc_info:
                await client.call("groups.list")

        assert exc_info.value.error == "invalid_response"


class TestSlackClientRequest:
    """Test suite for SlackClient.request."""

    @pytest.mark.asyncio
    async def test_request_success(self, slack):
        """Test ok responses are returned."""
        async with slack.client() as client:
            body = await client.request("pins.add", data={"channel": "C1", "timestamp": "1.2"})

        assert body["ok"] is True

    @pytest.mark.asyncio
    async def test_request_rejected(self, slack):
        """Test ok: false raises SlackAPIError with Slack's error code."""
        slack.responses["chat.postMessage"] = {"ok": False, "error": "channel_not_found"}

        async with slack.client() as client:
            with pytest.raises(SlackAPIError, match="channel_not_found") as exc_info:
                await client.request("chat.postMessage", data={"channel": "C0", "text": "x"})

        assert exc_info.value.code == "channel_not_found"
        assert exc_info.value.method == "chat.postMessage"

    @pytest.mark.asyncio
    async def test_request_rate_limited(self, slack):
        """Test rate limiting is reported with the Retry-After header."""
        slack.responses["chat.postMessage"] = httpx.Response(
            429, headers={"Retry-After": "30"}, json={"ok": False, "error": "ratelimited"}
        )

        async with slack.client() as client:
            with pytest.raises(SlackRateLimitError) as exc_info:
                await client.request("chat.postMessage", data={"channel": "C1", "text": "x"})

        assert exc_info.value.retry_after == "30"
        assert exc_info.value.code == "ratelimited"

    @pytest.mark.asyncio
    async def test_request_rate_limited_without_json_body(self, slack):
        """Test a bare 429 still raises SlackRateLimitError."""
        slack.responses["groups.list"] = httpx.Response(429, text="Too Many Requests")

        async with slack.client() as client:
            with pytest.raises(SlackRateLimitError):
                await client.request("groups.list")

    @pytest.mark.asyncio
    async def test_request_missing_error_field(self, slack):
        """Test ok: false without an error still raises."""
        slack.responses["pins.add"] = {"ok": False}

        async with slack.client() as client:
            with pytest.raises(SlackAPIError, match="unknown_error"):
                await client.request("pins.add")
