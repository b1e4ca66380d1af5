"""
Dispatcher Handlers - Provider-specific call execution.

This module performs the actual API call for one WireRequest and turns
whatever happens into a ProviderCallResult. Provider differences stay
behind a single call() entry point:

- OPENAI_COMPATIBLE: AsyncOpenAI pointed at the provider's base URL
  (OpenAI, Cerebras, DeepSeek, xAI, Ollama, Llamafile)
- GROQ: AsyncGroq
- ANTHROPIC: Messages API over httpx
- GOOGLE: Gemini generateContent over httpx

Every call makes exactly one HTTP request (SDK clients are built with
max_retries=0) under one bounded timeout. Errors never escape as
exceptions: they become Failure values with a distinct ErrorKind.
Streaming responses are drained into a per-call buffer so that text
received before a mid-stream error or timeout survives in the Failure.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import groq
import httpx
import openai
from groq import AsyncGroq
from openai import AsyncOpenAI

from cai.config import Settings, get_settings, missing_key_message
from cai.dispatcher.builder import WireRequest
from cai.registry.models import ProviderFamily, ProviderKind
from cai.schemas.prompt import ErrorKind, Failure, ProviderCallResult, Success

logger = logging.getLogger(__name__)


PROVIDER_BASE_URLS: dict[ProviderKind, str] = {
    ProviderKind.CEREBRAS: "https://api.cerebras.ai/v1",
    ProviderKind.DEEPSEEK: "https://api.deepseek.com",
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.XAI: "https://api.x.ai/v1",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com",
    ProviderKind.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
}

ANTHROPIC_VERSION = "2023-06-01"


class ProviderCallError(Exception):
    """A classified failure raised inside a handler and caught by call()."""

    def __init__(self, error_kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.error_kind = error_kind
        self.message = message


class ProviderClients:
    """
    Factory for per-call provider clients.

    A fresh client is built for every call and closed right after it, so
    concurrent units never share connection state.

    Args:
        settings: Source of local server URLs and the client timeout.
        transport: Optional httpx transport injected into every client
                   (used by tests to serve canned responses).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self._settings.request_timeout_seconds

    def base_url(self, provider: ProviderKind) -> str | None:
        """Endpoint root for a provider (None means the SDK default)."""
        match provider:
            case ProviderKind.OLLAMA:
                return self._settings.ollama_base_url
            case ProviderKind.LLAMAFILE:
                return self._settings.llamafile_base_url
            case _:
                return PROVIDER_BASE_URLS.get(provider)

    def _sdk_http_client(self) -> httpx.AsyncClient | None:
        if self._transport is None:
            return None
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    def openai(self, provider: ProviderKind, api_key: str) -> AsyncOpenAI:
        """OpenAI SDK client for any OpenAI-compatible provider."""
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url(provider),
            timeout=self.timeout,
            max_retries=0,
            http_client=self._sdk_http_client(),
        )

    def groq(self, api_key: str) -> AsyncGroq:
        """Groq SDK client."""
        return AsyncGroq(
            api_key=api_key,
            timeout=self.timeout,
            max_retries=0,
            http_client=self._sdk_http_client(),
        )

    def http(self, provider: ProviderKind, api_key: str) -> httpx.AsyncClient:
        """Plain httpx client with the provider's auth headers."""
        match provider:
            case ProviderKind.ANTHROPIC:
                headers = {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
            case ProviderKind.GOOGLE:
                headers = {"x-goog-api-key": api_key}
            case _:
                headers = {"Authorization": f"Bearer {api_key}"}

        return httpx.AsyncClient(
            base_url=self.base_url(provider) or "",
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )


# =============================================================================
# RESPONSE DECODING HELPERS
# =============================================================================


def _classify_status(status_code: int) -> ErrorKind:
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    return ErrorKind.PROVIDER_ERROR


def _status_error(response: httpx.Response) -> ProviderCallError:
    """Build a classified error from a non-2xx response (body must be read)."""
    try:
        body = json.dumps(response.json(), indent=2)
    except ValueError:
        body = response.text
    return ProviderCallError(
        _classify_status(response.status_code),
        f"HTTP {response.status_code}: {body}",
    )


def _json_body(response: httpx.Response) -> dict[str, Any]:
    if response.is_error:
        raise _status_error(response)
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderCallError(
            ErrorKind.MALFORMED_RESPONSE, f"Response is not valid JSON: {e}"
        ) from e
    if not isinstance(data, dict):
        raise ProviderCallError(
            ErrorKind.MALFORMED_RESPONSE, "Response JSON is not an object"
        )
    return data


async def _iter_sse(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield the JSON payload of every server-sent `data:` line."""
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            raise ProviderCallError(
                ErrorKind.MALFORMED_RESPONSE, f"Invalid stream event: {data[:200]}"
            ) from e
        if isinstance(event, dict):
            yield event


def _classify_sdk_error(exc: Exception) -> ErrorKind:
    """Map openai/groq SDK exceptions to error kinds (same hierarchy in both)."""
    match exc:
        case openai.APITimeoutError() | groq.APITimeoutError():
            return ErrorKind.TIMEOUT
        case openai.APIConnectionError() | groq.APIConnectionError():
            return ErrorKind.NETWORK
        case (
            openai.AuthenticationError()
            | openai.PermissionDeniedError()
            | groq.AuthenticationError()
            | groq.PermissionDeniedError()
        ):
            return ErrorKind.AUTH
        case openai.RateLimitError() | groq.RateLimitError():
            return ErrorKind.RATE_LIMITED
        case openai.APIResponseValidationError() | groq.APIResponseValidationError():
            return ErrorKind.MALFORMED_RESPONSE
        case _:
            return ErrorKind.PROVIDER_ERROR


# =============================================================================
# FAMILY HANDLERS
# =============================================================================


async def _call_chat_completions(
    client: AsyncOpenAI | AsyncGroq, wire: WireRequest, chunks: list[str]
) -> str:
    """Chat completions call shared by the OpenAI and Groq SDKs."""
    if wire.stream:
        stream = await client.chat.completions.create(**wire.payload)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                chunks.append(delta)
        return "".join(chunks)

    response = await client.chat.completions.create(**wire.payload)
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError) as e:
        raise ProviderCallError(
            ErrorKind.MALFORMED_RESPONSE, f"Unexpected completion shape: {e}"
        ) from e
    if content is None:
        raise ProviderCallError(
            ErrorKind.MALFORMED_RESPONSE, "Completion contained no message content"
        )
    return content


async def _call_anthropic(
    http: httpx.AsyncClient, wire: WireRequest, chunks: list[str]
) -> str:
    """Anthropic Messages API (https://docs.anthropic.com/claude/reference/messages_post)."""
    if wire.stream:
        async with http.stream("POST", wire.path, json=wire.payload) as response:
            if response.is_error:
                await response.aread()
                raise _status_error(response)
            async for event in _iter_sse(response):
                match event.get("type"):
                    case "content_block_delta":
                        text = event.get("delta", {}).get("text")
                        if text:
                            chunks.append(text)
                    case "error":
                        error = event.get("error") or {}
                        raise ProviderCallError(
                            ErrorKind.PROVIDER_ERROR,
                            f"{error.get('type', 'error')}: {error.get('message', event)}",
                        )
        return "".join(chunks)

    data = _json_body(await http.post(wire.path, json=wire.payload))
    blocks = data.get("content")
    if not isinstance(blocks, list):
        raise ProviderCallError(
            ErrorKind.MALFORMED_RESPONSE, "Response has no 'content' list"
        )
    return "".join(
        block.get("text", "")
        for block in blocks
        if isinstance(block, dict) and block.get("type") == "text"
    )


def _gemini_text(data: dict[str, Any], allow_empty: bool = False) -> str:
    candidates = data.get("candidates")
    if not candidates:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise ProviderCallError(
                ErrorKind.PROVIDER_ERROR, f"Prompt was blocked: {block_reason}"
            )
        if allow_empty:
            return ""
        raise ProviderCallError(ErrorKind.MALFORMED_RESPONSE, "Response has no candidates")

    try:
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(part.get("text", "") for part in parts)
    except (AttributeError, IndexError, TypeError) as e:
        raise ProviderCallError(
            ErrorKind.MALFORMED_RESPONSE, f"Unexpected candidate shape: {e}"
        ) from e


def _gemini_stream_error(error: Any) -> ProviderCallError:
    """Build a classified error from an in-band stream error event."""
    if not isinstance(error, dict):
        return ProviderCallError(ErrorKind.PROVIDER_ERROR, f"Stream error: {error}")
    code = error.get("code")
    error_kind = _classify_status(code) if isinstance(code, int) else ErrorKind.PROVIDER_ERROR
    status = error.get("status") or code or "error"
    return ProviderCallError(error_kind, f"{status}: {error.get('message', error)}")


async def _call_google(
    http: httpx.AsyncClient, wire: WireRequest, chunks: list[str]
) -> str:
    """Gemini generateContent / streamGenerateContent."""
    if wire.stream:
        async with http.stream("POST", wire.path, json=wire.payload) as response:
            if response.is_error:
                await response.aread()
                raise _status_error(response)
            async for event in _iter_sse(response):
                error = event.get("error")
                if error:
                    raise _gemini_stream_error(error)
                text = _gemini_text(event, allow_empty=True)
                if text:
                    chunks.append(text)
        return "".join(chunks)

    data = _json_body(await http.post(wire.path, json=wire.payload))
    return _gemini_text(data)


async def _execute(
    wire: WireRequest, api_key: str, clients: ProviderClients, chunks: list[str]
) -> str:
    """Run the family handler for a wire request and return the full text."""
    provider = wire.model_ref.provider

    match wire.family:
        case ProviderFamily.OPENAI_COMPATIBLE:
            client = clients.openai(provider, api_key)
            try:
                return await _call_chat_completions(client, wire, chunks)
            finally:
                await client.close()
        case ProviderFamily.GROQ:
            client = clients.groq(api_key)
            try:
                return await _call_chat_completions(client, wire, chunks)
            finally:
                await client.close()
        case ProviderFamily.ANTHROPIC:
            async with clients.http(provider, api_key) as http:
                return await _call_anthropic(http, wire, chunks)
        case ProviderFamily.GOOGLE:
            async with clients.http(provider, api_key) as http:
                return await _call_google(http, wire, chunks)


async def call(
    wire: WireRequest,
    credential: str | None,
    clients: ProviderClients,
    timeout: float | None = None,
) -> ProviderCallResult:
    """
    Execute one provider call.

    This is the main entry point of the provider client. It never raises
    for provider-side problems; they are returned as Failure values.

    Args:
        wire: Request built for the target model.
        credential: API key, or None if none is configured.
        clients: Client factory.
        timeout: Bound for the whole call in seconds (default: clients.timeout).

    Returns:
        Success with the full text, or Failure with a classified error kind
        and any partial streamed text.
    """
    model_ref = wire.model_ref
    timeout = timeout or clients.timeout

    if credential is None:
        logger.warning(f"No API key configured for {model_ref.provider.value}")
        return Failure(
            model_ref=model_ref,
            error_kind=ErrorKind.AUTH,
            message=missing_key_message(model_ref.provider),
        )

    logger.info(f"Dispatching to {model_ref} (stream={wire.stream})")
    start_time = time.perf_counter()
    chunks: list[str] = []

    def failure(error_kind: ErrorKind, message: str) -> Failure:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.error(f"{model_ref} failed after {elapsed_ms:.0f}ms: {error_kind.value}: {message}")
        return Failure(
            model_ref=model_ref,
            error_kind=error_kind,
            message=message,
            text="".join(chunks),
            elapsed_ms=elapsed_ms,
        )

    try:
        text = await asyncio.wait_for(
            _execute(wire, credential, clients, chunks), timeout=timeout
        )
    except asyncio.TimeoutError:
        return failure(ErrorKind.TIMEOUT, f"No complete response within {timeout:g}s")
    except ProviderCallError as e:
        return failure(e.error_kind, e.message)
    except (openai.APIError, groq.APIError) as e:
        return failure(_classify_sdk_error(e), str(e))
    except httpx.TimeoutException as e:
        return failure(ErrorKind.TIMEOUT, f"Request timed out: {e}")
    except httpx.TransportError as e:
        return failure(ErrorKind.NETWORK, f"{type(e).__name__}: {e}")
    except httpx.DecodingError as e:
        return failure(ErrorKind.MALFORMED_RESPONSE, f"Undecodable response body: {e}")
    except httpx.RequestError as e:
        return failure(ErrorKind.NETWORK, f"{type(e).__name__}: {e}")

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.info(f"{model_ref} completed: latency={elapsed_ms:.0f}ms, chars={len(text)}")
    return Success(model_ref=model_ref, text=text, elapsed_ms=elapsed_ms)
