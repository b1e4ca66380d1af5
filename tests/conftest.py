"""
Pytest configuration and shared fixtures.

Provides test settings, mock SDK clients, canned HTTP transports and
result factories for the cai test suite.

IMPORTANT: Environment variables must be set BEFORE importing cai modules
that use pydantic-settings, so no developer key or config file leaks
into a test run.
"""

import os

# Set test environment variables before importing cai modules
for _provider in ("GROQ", "CEREBRAS", "DEEPSEEK", "OPENAI", "ANTHROPIC", "GOOGLE", "XAI"):
    os.environ.pop(f"CAI_{_provider}_API_KEY", None)
    os.environ.pop(f"{_provider}_API_KEY", None)
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("CAI_DEFAULT_MODEL", None)
os.environ["CAI_LOG_LEVEL"] = "WARNING"
os.environ["XDG_CONFIG_HOME"] = os.path.join(os.path.dirname(__file__), ".no-config")

# Now safe to import everything else
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from cai.config import CredentialSource, Settings, get_settings
from cai.dispatcher.handlers import ProviderClients
from cai.registry.models import AliasRegistry, ModelRef
from cai.schemas.prompt import ErrorKind, Failure, PromptRequest, Success
from fixtures import make_chat_response


TEST_KEY = "test-key-not-real"


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "asyncio: mark test as async")


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """
    Clear the cached settings between tests.

    This ensures each test starts with a clean state.
    """
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings with a fake key for every hosted provider and no .env files."""
    return Settings(
        _env_file=None,
        groq_api_key=TEST_KEY,
        cerebras_api_key=TEST_KEY,
        deepseek_api_key=TEST_KEY,
        openai_api_key=TEST_KEY,
        anthropic_api_key=TEST_KEY,
        google_api_key=TEST_KEY,
        xai_api_key=TEST_KEY,
        request_timeout_seconds=5.0,
        max_retries=0,
    )


@pytest.fixture
def keyless_settings():
    """Settings without any API key configured."""
    return Settings(_env_file=None, request_timeout_seconds=5.0)


@pytest.fixture
def credentials(settings):
    return CredentialSource(settings)


@pytest.fixture
def registry():
    """A registry with the built-in default model."""
    return AliasRegistry()


@pytest.fixture
def groq_llama(registry) -> ModelRef:
    """Groq Llama 3.1 8B (text + JSON)."""
    return registry.resolve("groq/llama")


@pytest.fixture
def openai_gpt4o(registry) -> ModelRef:
    """OpenAI GPT-4o (vision + JSON)."""
    return registry.resolve("gp")


@pytest.fixture
def anthropic_sonnet(registry) -> ModelRef:
    """Claude Sonnet (vision, no JSON mode)."""
    return registry.resolve("so")


@pytest.fixture
def google_flash(registry) -> ModelRef:
    """Gemini Flash (multimodal + JSON)."""
    return registry.resolve("fl")


@pytest.fixture
def deepseek_chat(registry) -> ModelRef:
    """DeepSeek chat (text only)."""
    return registry.resolve("deepseek")


@pytest.fixture
def make_prompt():
    """
    Factory fixture for creating PromptRequest objects.

    Usage:
        prompt = make_prompt("capital of Australia", output_mode=OutputMode.RAW)
    """

    def _create(text: str = "test prompt", **kwargs) -> PromptRequest:
        return PromptRequest(text=text, **kwargs)

    return _create


@pytest.fixture
def make_success(groq_llama):
    """
    Factory fixture for creating Success results.

    Usage:
        result = make_success("Canberra", elapsed_ms=120.0)
    """

    def _create(text: str = "answer", model_ref: ModelRef | None = None, elapsed_ms: float = 150.0):
        return Success(model_ref=model_ref or groq_llama, text=text, elapsed_ms=elapsed_ms)

    return _create


@pytest.fixture
def make_failure(groq_llama):
    """
    Factory fixture for creating Failure results.

    Usage:
        result = make_failure(ErrorKind.TIMEOUT, "No complete response")
    """

    def _create(
        error_kind: ErrorKind = ErrorKind.PROVIDER_ERROR,
        message: str = "something went wrong",
        model_ref: ModelRef | None = None,
        text: str = "",
        elapsed_ms: float = 0.0,
    ):
        return Failure(
            model_ref=model_ref or groq_llama,
            error_kind=error_kind,
            message=message,
            text=text,
            elapsed_ms=elapsed_ms,
        )

    return _create


@pytest.fixture
def mock_groq_client():
    """Create a fully mocked AsyncGroq client."""
    mock = AsyncMock()
    mock.chat = MagicMock()
    mock.chat.completions = MagicMock()
    mock.chat.completions.create = AsyncMock(return_value=make_chat_response("Canberra"))
    return mock


@pytest.fixture
def mock_openai_client():
    """Create a fully mocked AsyncOpenAI client."""
    mock = AsyncMock()
    mock.chat = MagicMock()
    mock.chat.completions = MagicMock()
    mock.chat.completions.create = AsyncMock(return_value=make_chat_response("Canberra"))
    return mock


@pytest.fixture
def mock_provider_clients(mock_groq_client, mock_openai_client):
    """
    Create a mocked ProviderClients instance.

    The SDK factories return the mocked Groq and OpenAI clients.
    """
    mock_clients = MagicMock(spec=ProviderClients)
    mock_clients.timeout = 5.0
    mock_clients.groq = MagicMock(return_value=mock_groq_client)
    mock_clients.openai = MagicMock(return_value=mock_openai_client)
    return mock_clients


@pytest.fixture
def http_clients(settings):
    """
    Factory fixture for ProviderClients served by an httpx.MockTransport.

    Usage:
        clients = http_clients(lambda request: httpx.Response(200, json={...}))
    """

    def _create(handler) -> ProviderClients:
        return ProviderClients(settings, transport=httpx.MockTransport(handler))

    return _create

