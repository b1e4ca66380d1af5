"""
Dispatcher Tests

Tests for the provider client with mocked SDK clients and canned HTTP
responses. Validates response decoding, streaming, error classification
and timeouts.

Test Categories:
1. TestChatCompletions - OpenAI-compatible and Groq families (mocked SDK)
2. TestAnthropic - Messages API over httpx.MockTransport
3. TestGoogle - Gemini API over httpx.MockTransport
4. TestErrorClassification - status codes and transport errors
5. TestCredentials - missing keys never reach the network
"""

import asyncio
import json

import httpx
import pytest
from unittest.mock import AsyncMock

from cai.dispatcher.builder import build
from cai.dispatcher.handlers import ProviderClients, call
from cai.registry.models import ProviderKind
from cai.schemas.prompt import ErrorKind, Failure, Success
from fixtures import (
    MockChunkStream,
    anthropic_delta,
    gemini_chunk,
    make_chat_chunk,
    make_chat_response,
    sse,
)


# =============================================================================
# TEST CHAT COMPLETIONS (OPENAI-COMPATIBLE / GROQ)
# =============================================================================


class TestChatCompletions:
    """Tests for the SDK-backed families."""

    @pytest.mark.asyncio
    async def test_groq_success(self, groq_llama, make_prompt, mock_provider_clients):
        """Groq models go through the Groq SDK client."""
        wire = build(groq_llama, make_prompt("capital of Australia"))

        result = await call(wire, "key", mock_provider_clients)

        assert isinstance(result, Success)
        assert result.text == "Canberra"
        assert result.model_ref == groq_llama
        assert result.elapsed_ms >= 0
        mock_provider_clients.groq.assert_called_once_with("key")

    @pytest.mark.asyncio
    async def test_openai_compatible_uses_provider(self, deepseek_chat, make_prompt, mock_provider_clients):
        """OpenAI-compatible providers get an OpenAI client for their base URL."""
        wire = build(deepseek_chat, make_prompt("hi"))

        result = await call(wire, "key", mock_provider_clients)

        assert result.success
        mock_provider_clients.openai.assert_called_once_with(ProviderKind.DEEPSEEK, "key")

    @pytest.mark.asyncio
    async def test_payload_sent_as_keyword_arguments(
        self, groq_llama, make_prompt, mock_provider_clients, mock_groq_client
    ):
        wire = build(groq_llama, make_prompt("q", json_mode=True))

        await call(wire, "key", mock_provider_clients)

        call_kwargs = mock_groq_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["model"] == "llama-3.1-8b-instant"
        assert call_kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_client_closed_after_call(
        self, groq_llama, make_prompt, mock_provider_clients, mock_groq_client
    ):
        await call(build(groq_llama, make_prompt("q")), "key", mock_provider_clients)

        mock_groq_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_content_is_malformed(
        self, openai_gpt4o, make_prompt, mock_provider_clients, mock_openai_client
    ):
        mock_openai_client.chat.completions.create = AsyncMock(return_value=make_chat_response(None))

        result = await call(build(openai_gpt4o, make_prompt("q")), "key", mock_provider_clients)

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    async def test_stream_chunks_joined(
        self, groq_llama, make_prompt, mock_provider_clients, mock_groq_client
    ):
        """Streaming is internal: the result holds the full text."""
        chunks = [make_chat_chunk("Can"), make_chat_chunk(None), make_chat_chunk("berra")]
        mock_groq_client.chat.completions.create = AsyncMock(return_value=MockChunkStream(chunks))

        result = await call(build(groq_llama, make_prompt("q", stream=True)), "key", mock_provider_clients)

        assert isinstance(result, Success)
        assert result.text == "Canberra"

    @pytest.mark.asyncio
    async def test_stream_error_keeps_partial_text(
        self, groq_llama, make_prompt, mock_provider_clients, mock_groq_client
    ):
        """Text received before a mid-stream failure survives in the Failure."""
        stream = MockChunkStream(
            [make_chat_chunk("Hello "), make_chat_chunk("wor")],
            error=httpx.ReadError("connection reset"),
        )
        mock_groq_client.chat.completions.create = AsyncMock(return_value=stream)

        result = await call(build(groq_llama, make_prompt("q", stream=True)), "key", mock_provider_clients)

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.NETWORK
        assert result.text == "Hello wor"

    @pytest.mark.asyncio
    async def test_timeout(self, groq_llama, make_prompt, mock_provider_clients, mock_groq_client):
        async def slow(**kwargs):
            await asyncio.sleep(10)

        mock_groq_client.chat.completions.create = slow

        result = await call(build(groq_llama, make_prompt("q")), "key", mock_provider_clients, timeout=0.05)

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.TIMEOUT


# =============================================================================
# TEST ANTHROPIC
# =============================================================================


class TestAnthropic:
    """Tests for the Messages API handler."""

    @pytest.mark.asyncio
    async def test_success(self, anthropic_sonnet, make_prompt, http_clients):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"content": [{"type": "text", "text": "Canberra"}], "stop_reason": "end_turn"},
            )

        result = await call(build(anthropic_sonnet, make_prompt("capital?")), "ant-key", http_clients(handler))

        assert isinstance(result, Success)
        assert result.text == "Canberra"
        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["headers"]["x-api-key"] == "ant-key"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["model"] == "claude-3-7-sonnet-latest"

    @pytest.mark.asyncio
    async def test_stream(self, anthropic_sonnet, make_prompt, http_clients):
        body = sse(
            {"type": "message_start", "message": {}},
            anthropic_delta("Can"),
            anthropic_delta("berra"),
            {"type": "message_stop"},
        )

        def handler(request):
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        result = await call(
            build(anthropic_sonnet, make_prompt("q", stream=True)), "key", http_clients(handler)
        )

        assert isinstance(result, Success)
        assert result.text == "Canberra"

    @pytest.mark.asyncio
    async def test_stream_error_event_keeps_partial_text(self, anthropic_sonnet, make_prompt, http_clients):
        body = sse(
            anthropic_delta("Partial"),
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )

        def handler(request):
            return httpx.Response(200, content=body)

        result = await call(
            build(anthropic_sonnet, make_prompt("q", stream=True)), "key", http_clients(handler)
        )

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.PROVIDER_ERROR
        assert result.text == "Partial"
        assert "Overloaded" in result.message

    @pytest.mark.asyncio
    async def test_stream_timeout_keeps_partial_text(self, anthropic_sonnet, make_prompt, http_clients):
        """A stream that stalls after some text fails with Timeout and keeps the text."""

        async def stalled_body():
            yield sse(anthropic_delta("Half an "))
            await asyncio.sleep(10)
            yield sse(anthropic_delta("answer"))

        def handler(request):
            return httpx.Response(200, content=stalled_body())

        result = await call(
            build(anthropic_sonnet, make_prompt("q", stream=True)), "key", http_clients(handler), timeout=0.2
        )

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.TIMEOUT
        assert result.text == "Half an "

    @pytest.mark.asyncio
    async def test_missing_content_is_malformed(self, anthropic_sonnet, make_prompt, http_clients):
        def handler(request):
            return httpx.Response(200, json={"id": "msg_1"})

        result = await call(build(anthropic_sonnet, make_prompt("q")), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.MALFORMED_RESPONSE


# =============================================================================
# TEST GOOGLE
# =============================================================================


class TestGoogle:
    """Tests for the Gemini handler."""

    @pytest.mark.asyncio
    async def test_success(self, google_flash, make_prompt, http_clients):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            return httpx.Response(200, json=gemini_chunk("Canberra"))

        result = await call(build(google_flash, make_prompt("capital?")), "g-key", http_clients(handler))

        assert isinstance(result, Success)
        assert result.text == "Canberra"
        assert seen["url"] == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
        )
        assert seen["key"] == "g-key"

    @pytest.mark.asyncio
    async def test_stream(self, google_flash, make_prompt, http_clients):
        seen = {}

        def handler(request):
            seen["query"] = request.url.params.get("alt")
            return httpx.Response(200, content=sse(gemini_chunk("Can"), gemini_chunk("berra")))

        result = await call(build(google_flash, make_prompt("q", stream=True)), "key", http_clients(handler))

        assert result.text == "Canberra"
        assert seen["query"] == "sse"

    @pytest.mark.asyncio
    async def test_stream_error_event_keeps_partial_text(self, google_flash, make_prompt, http_clients):
        """An error event after a 200 stream start is a Failure, not a short Success."""

        def handler(request):
            error = {"error": {"code": 503, "status": "UNAVAILABLE", "message": "overloaded"}}
            return httpx.Response(200, content=sse(gemini_chunk("Can"), error))

        result = await call(build(google_flash, make_prompt("q", stream=True)), "key", http_clients(handler))

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.PROVIDER_ERROR
        assert result.text == "Can"
        assert "UNAVAILABLE: overloaded" in result.message

    @pytest.mark.asyncio
    async def test_stream_error_event_status_code_classified(self, google_flash, make_prompt, http_clients):
        def handler(request):
            error = {"error": {"code": 429, "message": "quota exceeded"}}
            return httpx.Response(200, content=sse(error))

        result = await call(build(google_flash, make_prompt("q", stream=True)), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_blocked_prompt(self, google_flash, make_prompt, http_clients):
        def handler(request):
            return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

        result = await call(build(google_flash, make_prompt("q")), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.PROVIDER_ERROR
        assert "SAFETY" in result.message

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self, google_flash, make_prompt, http_clients):
        def handler(request):
            return httpx.Response(200, content=b"<html>not json</html>")

        result = await call(build(google_flash, make_prompt("q")), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.MALFORMED_RESPONSE


# =============================================================================
# TEST ERROR CLASSIFICATION
# =============================================================================


class TestErrorClassification:
    """Status codes and transport errors map to distinct error kinds."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,kind",
        [
            (401, ErrorKind.AUTH),
            (403, ErrorKind.AUTH),
            (429, ErrorKind.RATE_LIMITED),
            (500, ErrorKind.PROVIDER_ERROR),
            (529, ErrorKind.PROVIDER_ERROR),
        ],
    )
    async def test_status_codes(self, anthropic_sonnet, make_prompt, http_clients, status, kind):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "nope"}})

        result = await call(build(anthropic_sonnet, make_prompt("q")), "key", http_clients(handler))

        assert result.error_kind == kind
        assert f"HTTP {status}" in result.message

    @pytest.mark.asyncio
    async def test_status_error_on_stream(self, google_flash, make_prompt, http_clients):
        def handler(request):
            return httpx.Response(429, text="quota exceeded")

        result = await call(build(google_flash, make_prompt("q", stream=True)), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.RATE_LIMITED
        assert "quota exceeded" in result.message

    @pytest.mark.asyncio
    async def test_connection_error_is_network(self, google_flash, make_prompt, http_clients):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await call(build(google_flash, make_prompt("q")), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_undecodable_body_is_malformed(self, anthropic_sonnet, make_prompt, http_clients):
        def handler(request):
            raise httpx.DecodingError("invalid gzip data", request=request)

        result = await call(build(anthropic_sonnet, make_prompt("q")), "key", http_clients(handler))

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.MALFORMED_RESPONSE
        assert "invalid gzip data" in result.message

    @pytest.mark.asyncio
    async def test_httpx_timeout_is_timeout(self, anthropic_sonnet, make_prompt, http_clients):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        result = await call(build(anthropic_sonnet, make_prompt("q")), "key", http_clients(handler))

        assert result.error_kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_sdk_errors_classified(self, settings, groq_llama, openai_gpt4o, make_prompt):
        """The real SDK clients map HTTP status codes through their exceptions."""

        def handler(request):
            if "groq" in request.url.host:
                return httpx.Response(401, json={"error": {"message": "invalid key"}})
            return httpx.Response(429, json={"error": {"message": "slow down"}})

        clients = ProviderClients(settings, transport=httpx.MockTransport(handler))

        groq_result = await call(build(groq_llama, make_prompt("q")), "key", clients)
        openai_result = await call(build(openai_gpt4o, make_prompt("q")), "key", clients)

        assert groq_result.error_kind == ErrorKind.AUTH
        assert openai_result.error_kind == ErrorKind.RATE_LIMITED


# =============================================================================
# TEST CREDENTIALS
# =============================================================================


class TestCredentials:
    """A missing key fails the unit without touching the network."""

    @pytest.mark.asyncio
    async def test_missing_key_is_auth_failure(self, anthropic_sonnet, make_prompt, http_clients):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"content": []})

        result = await call(build(anthropic_sonnet, make_prompt("q")), None, http_clients(handler))

        assert isinstance(result, Failure)
        assert result.error_kind == ErrorKind.AUTH
        assert "ANTHROPIC_API_KEY" in result.message
        assert requests == []
