"""
Tests for the LINE Messaging API providers.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from segment_blast.core.exceptions import ConfigurationError
from segment_blast.services.line_providers import (
    MULTICAST_MAX_RECIPIENTS,
    MulticastProvider,
    ProviderType,
    PushProvider,
    get_provider,
)
from segment_blast.services.line_providers.messaging_api import _MessagingApiProvider
from tests.fakes import make_http_client, make_http_response, user_id

HTTP_CLIENT = "segment_blast.services.line_providers.messaging_api.get_http_client"
MESSAGES = [{"type": "text", "text": "hi"}]


@pytest.fixture
def multicast():
    return MulticastProvider(access_token="test_token", base_url="https://line.test/v2/bot/message")


@pytest.fixture
def push():
    return PushProvider(access_token="test_token", base_url="https://line.test/v2/bot/message/")


class TestProviderSetup:
    """Provider attributes."""

    def test_multicast_limits(self, multicast):
        """Multicast accepts 500 recipients on the multicast endpoint."""
        assert multicast.provider_type == ProviderType.MULTICAST
        assert multicast.max_recipients == MULTICAST_MAX_RECIPIENTS == 500
        assert multicast.url == "https://line.test/v2/bot/message/multicast"

    def test_push_limits(self, push):
        """Push accepts one recipient on the push endpoint."""
        assert push.provider_type == ProviderType.PUSH
        assert push.max_recipients == 1
        assert push.url == "https://line.test/v2/bot/message/push"

    def test_get_provider_requires_token(self):
        """A missing channel token is a configuration error."""
        with patch("segment_blast.services.line_providers.settings") as mock_settings:
            mock_settings.LINE_CHANNEL_ACCESS_TOKEN = ""
            with pytest.raises(ConfigurationError):
                get_provider("multicast")

    def test_get_provider_rejects_unknown_type(self):
        """Unknown provider types are configuration errors."""
        with pytest.raises(ConfigurationError, match="Unknown provider"):
            get_provider("broadcast", access_token="t")

    def test_get_provider_builds_requested_type(self):
        """The factory returns the requested provider."""
        assert isinstance(get_provider("push", access_token="t"), PushProvider)
        assert isinstance(get_provider(ProviderType.MULTICAST, access_token="t"), MulticastProvider)

    def test_endpoint_without_payload_builder_cannot_be_created(self):
        """A Messaging API provider must define its request body."""
        class Incomplete(_MessagingApiProvider):
            endpoint = "narrowcast"

        with pytest.raises(TypeError):
            Incomplete(access_token="t")


class TestMulticastSend:
    """Multicast calls."""

    @pytest.mark.asyncio
    async def test_success(self, multicast):
        """A 200 response is a success with the request id."""
        client = make_http_client(make_http_response(200, {}, headers={"x-line-request-id": "req-1"}))
        ids = [user_id(1), user_id(2)]

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await multicast.send(ids, MESSAGES, retry_key="rk-1")

        assert result.success is True
        assert result.status_code == 200
        assert result.request_id == "req-1"
        assert result.provider == "multicast"

        call = client.post.call_args
        assert call.args[0] == "https://line.test/v2/bot/message/multicast"
        assert call.kwargs["json"] == {"to": ids, "messages": MESSAGES}
        assert call.kwargs["headers"]["Authorization"] == "Bearer test_token"
        assert call.kwargs["headers"]["X-Line-Retry-Key"] == "rk-1"

    @pytest.mark.asyncio
    async def test_no_retry_header_without_key(self, multicast):
        """No retry key means no X-Line-Retry-Key header."""
        client = make_http_client(make_http_response(200, {}))

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            await multicast.send([user_id(1)], MESSAGES)

        assert "X-Line-Retry-Key" not in client.post.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_http_error_is_reported_not_raised(self, multicast):
        """HTTP errors come back as a failed result with the body."""
        client = make_http_client(make_http_response(400, text='{"message":"The request body has 1 error(s)"}'))

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await multicast.send([user_id(1)], MESSAGES)

        assert result.success is False
        assert result.status_code == 400
        assert result.error.startswith("LINE multicast failed: 400")
        assert "request body" in result.error

    @pytest.mark.asyncio
    async def test_timeout(self, multicast):
        """Timeouts come back as line_timeout."""
        client = make_http_client(side_effect=httpx.ReadTimeout("slow"))

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await multicast.send([user_id(1)], MESSAGES)

        assert result.success is False
        assert result.error == "line_timeout"

    @pytest.mark.asyncio
    async def test_connect_error(self, multicast):
        """Connection errors come back as line_connect_error."""
        client = make_http_client(side_effect=httpx.ConnectError("refused"))

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await multicast.send([user_id(1)], MESSAGES)

        assert result.success is False
        assert result.error == "line_connect_error"

    @pytest.mark.asyncio
    async def test_malformed_body(self, multicast):
        """A non-JSON body is a failed result."""
        client = make_http_client(make_http_response(200, text="<html>oops</html>"))

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await multicast.send([user_id(1)], MESSAGES)

        assert result.success is False
        assert result.error.startswith("line_malformed_response")

    @pytest.mark.asyncio
    async def test_rejects_oversized_chunk_without_calling(self, multicast):
        """Oversized chunks fail without an HTTP call."""
        client = make_http_client(make_http_response(200, {}))
        ids = [user_id(i) for i in range(501)]

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await multicast.send(ids, MESSAGES)

        assert result.success is False
        assert "too many recipients" in result.error
        client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejects_empty_chunk(self, multicast):
        """Empty chunks fail."""
        result = await multicast.send([], MESSAGES)
        assert result.success is False


class TestPushSend:
    """Push calls."""

    @pytest.mark.asyncio
    async def test_payload_uses_single_recipient(self, push):
        """Push sends "to" as a single id."""
        client = make_http_client(make_http_response(200, {}))

        with patch(HTTP_CLIENT, AsyncMock(return_value=client)):
            result = await push.send([user_id(7)], MESSAGES)

        assert result.success is True
        assert client.post.call_args.kwargs["json"] == {"to": user_id(7), "messages": MESSAGES}

    @pytest.mark.asyncio
    async def test_more_than_one_recipient_rejected(self, push):
        """Push refuses more than one recipient."""
        result = await push.send([user_id(1), user_id(2)], MESSAGES)
        assert result.success is False
