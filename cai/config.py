"""
cai Configuration Module

This module manages application settings and environment variables using
pydantic-settings for type-safe configuration management.

Settings are loaded (in order of precedence) from:
1. Environment variables (CAI_* or the provider's generic *_API_KEY name)
2. A .env file in the working directory
3. The per-user config file (e.g. ~/.config/cai/.env)

All API keys use SecretStr to prevent accidental logging. The
CredentialSource wraps the settings and answers the only question the
dispatcher asks about credentials: "which key do I send to this provider?"
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal
import logging
import os
import sys

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cai.registry.models import ProviderKind

# Sent to local OpenAI-compatible servers, which ignore authentication
LOCAL_API_KEY = "DUMMY_KEY"


def get_user_config_dir() -> Path:
    """Per-user configuration directory (XDG on Linux, native elsewhere)."""
    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "cai"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "cai"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "cai"
    return Path.home() / ".config" / "cai"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _api_key_field(provider: str, *extra_env_names: str):
    """Declare an optional API key readable from CAI_<P>_API_KEY or <P>_API_KEY."""
    upper = provider.upper()
    return Field(
        default=None,
        validation_alias=AliasChoices(
            f"cai_{provider}_api_key",
            f"{provider}_api_key",
            *extra_env_names,
        ),
        description=f"API key for {upper} (CAI_{upper}_API_KEY or {upper}_API_KEY)",
    )


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every API key is optional: a missing key only fails the providers that
    need it, never the whole invocation.
    """

    model_config = SettingsConfigDict(
        env_prefix="CAI_",
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    groq_api_key: SecretStr | None = _api_key_field("groq")
    cerebras_api_key: SecretStr | None = _api_key_field("cerebras")
    deepseek_api_key: SecretStr | None = _api_key_field("deepseek")
    openai_api_key: SecretStr | None = _api_key_field("openai")
    anthropic_api_key: SecretStr | None = _api_key_field("anthropic")
    google_api_key: SecretStr | None = _api_key_field("google", "gemini_api_key")
    xai_api_key: SecretStr | None = _api_key_field("xai")

    ollama_base_url: str = Field(
        default="http://localhost:11434/v1",
        description="OpenAI-compatible endpoint of the local Ollama server",
    )

    llamafile_base_url: str = Field(
        default="http://localhost:8080/v1",
        description="OpenAI-compatible endpoint of the local Llamafile server",
    )

    default_model: str | None = Field(
        default=None,
        description="Alias token used when no model is given (default: Groq Llama 3.1 8B)",
    )

    request_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for a single provider call, streaming included",
    )

    max_retries: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Fan-out retries for transient failures (network, rate limit, timeout)",
    )

    max_tokens: int = Field(
        default=4096,
        gt=0,
        description="Maximum number of output tokens requested from a provider",
    )

    stream: bool = Field(
        default=False, description="Request incremental responses where supported"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Application log level"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return v.upper() if isinstance(v, str) else v


@lru_cache
def get_settings() -> Settings:
    """
    Returns cached settings instance.

    Using lru_cache ensures settings are loaded once per process,
    avoiding repeated file reads and environment parsing.

    Returns:
        Settings: The application settings singleton.
    """
    return Settings()


class CredentialSource:
    """
    Supplies the API key for each provider.

    Local providers (Ollama, Llamafile) always get a placeholder key.
    Hosted providers get their configured key, or None when it is missing.
    """

    LOCAL_PROVIDERS = frozenset({ProviderKind.OLLAMA, ProviderKind.LLAMAFILE})

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_key(self, provider: ProviderKind) -> str | None:
        """
        Look up the API key for a provider.

        Args:
            provider: The provider about to be called.

        Returns:
            The key, a placeholder for local providers, or None if the
            provider needs a key and none is configured.
        """
        if provider in self.LOCAL_PROVIDERS:
            return LOCAL_API_KEY

        secret: SecretStr | None = getattr(self._settings, f"{provider.value}_api_key")
        if secret is None:
            return None
        value = secret.get_secret_value().strip()
        return value or None


def missing_key_message(provider: ProviderKind) -> str:
    """Setup hint shown when a provider's API key is not configured."""
    upper = provider.value.upper()
    return (
        f"An API key for {provider.display_name} must be provided. Either:\n"
        f"  1. set CAI_{upper}_API_KEY or {upper}_API_KEY in the environment, or\n"
        f"  2. add {upper}_API_KEY=... to {get_user_env_file()}"
    )


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """
    Configure application logging based on settings.

    Logs go to stderr so that stdout only ever carries model output.
    Noise from third-party HTTP libraries is reduced.

    Args:
        settings: The application settings instance.
        verbose: Lower the level to INFO if the configured level is higher.
    """
    level = getattr(logging, settings.log_level)
    if verbose:
        level = min(level, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("groq").setLevel(logging.WARNING)
