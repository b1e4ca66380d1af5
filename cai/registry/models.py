"""
Alias Registry

This module defines every provider cai can talk to and the short tokens
users type to pick a model:

- Global shortcuts ("ll", "gp", "so", ...) jump straight to one model
- Provider names ("openai", "op", ...) pick that provider's default model
- Qualified tokens ("groq/ll70", "anthropic/haiku") pick a provider's alias

Lookup is exact and case-sensitive. An unknown token is an error, never a
silent fallback to some default model.

Each entry carries a capability set (streaming, JSON schema, vision and
audio input) which the request builder checks before anything is sent.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProviderFamily(str, Enum):
    """Wire protocol spoken by a provider."""

    OPENAI_COMPATIBLE = "openai_compatible"  # openai SDK with a base URL
    GROQ = "groq"  # groq SDK
    ANTHROPIC = "anthropic"  # Messages API over httpx
    GOOGLE = "google"  # Gemini generateContent over httpx


class ProviderKind(str, Enum):
    """Supported inference providers."""

    GROQ = "groq"
    CEREBRAS = "cerebras"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    XAI = "xai"
    OLLAMA = "ollama"
    LLAMAFILE = "llamafile"

    @property
    def display_name(self) -> str:
        """Human-readable provider name used in output headers."""
        return _DISPLAY_NAMES[self]

    @property
    def family(self) -> ProviderFamily:
        """The wire family used to reach this provider."""
        match self:
            case ProviderKind.GROQ:
                return ProviderFamily.GROQ
            case ProviderKind.ANTHROPIC:
                return ProviderFamily.ANTHROPIC
            case ProviderKind.GOOGLE:
                return ProviderFamily.GOOGLE
            case (
                ProviderKind.CEREBRAS
                | ProviderKind.DEEPSEEK
                | ProviderKind.OPENAI
                | ProviderKind.XAI
                | ProviderKind.OLLAMA
                | ProviderKind.LLAMAFILE
            ):
                return ProviderFamily.OPENAI_COMPATIBLE


_DISPLAY_NAMES: dict[ProviderKind, str] = {
    ProviderKind.GROQ: "Groq",
    ProviderKind.CEREBRAS: "Cerebras",
    ProviderKind.DEEPSEEK: "DeepSeek",
    ProviderKind.OPENAI: "OpenAI",
    ProviderKind.ANTHROPIC: "Anthropic",
    ProviderKind.GOOGLE: "Google",
    ProviderKind.XAI: "xAI",
    ProviderKind.OLLAMA: "Ollama",
    ProviderKind.LLAMAFILE: "Llamafile",
}


class Capabilities(BaseModel):
    """Features a model declares support for."""

    model_config = ConfigDict(frozen=True)

    streaming: bool = Field(default=True, description="Incremental responses")
    json_schema: bool = Field(
        default=False, description="JSON mode and schema-constrained output"
    )
    vision_input: bool = Field(default=False, description="Image attachments")
    audio_input: bool = Field(default=False, description="Audio attachments")


TEXT = Capabilities()
TEXT_JSON = Capabilities(json_schema=True)
VISION = Capabilities(vision_input=True)
VISION_JSON = Capabilities(json_schema=True, vision_input=True)
AUDIO = Capabilities(audio_input=True)
MULTIMODAL = Capabilities(json_schema=True, vision_input=True, audio_input=True)


class ModelRef(BaseModel):
    """
    A fully resolved model: provider, canonical model id and capabilities.

    Produced once at startup and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    provider: ProviderKind = Field(..., description="Provider serving the model")
    model_id: str = Field(..., description="Model name used in provider API calls")
    capabilities: Capabilities = Field(default_factory=Capabilities)

    def __str__(self) -> str:
        if not self.model_id:
            return self.provider.display_name
        return f"{self.provider.display_name} {self.model_id}"


class UnknownAlias(LookupError):
    """Raised when a token does not name any known model or provider."""

    def __init__(self, token: str) -> None:
        super().__init__(f"Unknown model alias: '{token}'")
        self.token = token


class AliasRegistry:
    """
    Immutable lookup table from user tokens to ModelRefs.

    Construct it once at startup and pass it to whoever needs it. The
    public API only reads; the tables are filled in __init__.

    Attributes:
        _aliases: provider -> alias -> ModelRef
        _provider_defaults: provider -> default alias
        _provider_tokens: provider name or visible alias -> provider
        _shortcuts: global shortcut -> (provider, alias)
    """

    # Fan-out order for `cai all`
    CANONICAL_ORDER: tuple[ProviderKind, ...] = (
        ProviderKind.GROQ,
        ProviderKind.CEREBRAS,
        ProviderKind.DEEPSEEK,
        ProviderKind.OPENAI,
        ProviderKind.ANTHROPIC,
        ProviderKind.GOOGLE,
        ProviderKind.XAI,
        ProviderKind.OLLAMA,
        ProviderKind.LLAMAFILE,
    )

    # Capabilities assumed for a model id that is not in the alias table
    BASELINE: dict[ProviderKind, Capabilities] = {
        ProviderKind.GROQ: TEXT_JSON,
        ProviderKind.CEREBRAS: TEXT_JSON,
        ProviderKind.DEEPSEEK: TEXT,
        ProviderKind.OPENAI: TEXT_JSON,
        ProviderKind.ANTHROPIC: TEXT,
        ProviderKind.GOOGLE: TEXT_JSON,
        ProviderKind.XAI: TEXT_JSON,
        ProviderKind.OLLAMA: TEXT_JSON,
        ProviderKind.LLAMAFILE: TEXT,
    }

    def __init__(self, default_token: str | None = None) -> None:
        self._aliases: dict[ProviderKind, dict[str, ModelRef]] = {
            provider: {} for provider in ProviderKind
        }
        self._provider_defaults: dict[ProviderKind, str] = {}
        self._provider_tokens: dict[str, ProviderKind] = {}
        self._shortcuts: dict[str, tuple[ProviderKind, str]] = {}
        self._initialize_models()
        self._initialize_provider_tokens()
        self._initialize_shortcuts()

        if default_token:
            self._default = self.resolve(default_token)
        else:
            self._default = self._aliases[ProviderKind.GROQ]["llama"]

    def _initialize_models(self) -> None:
        """Register all model aliases, one default per provider."""
        groq = ProviderKind.GROQ
        self._register(groq, ("llama", "ll"), "llama-3.1-8b-instant", TEXT_JSON, default=True)
        self._register(groq, ("llama-70", "ll70"), "llama-3.3-70b-versatile", TEXT_JSON)
        self._register(
            groq,
            ("maverick", "mav"),
            "meta-llama/llama-4-maverick-17b-128e-instruct",
            VISION_JSON,
        )
        self._register(groq, ("gemma", "ge"), "gemma2-9b-it", TEXT_JSON)

        cerebras = ProviderKind.CEREBRAS
        self._register(cerebras, ("llama", "ll"), "llama3.1-8b", TEXT_JSON, default=True)
        self._register(cerebras, ("llama-70", "ll70"), "llama-3.3-70b", TEXT_JSON)

        deepseek = ProviderKind.DEEPSEEK
        self._register(deepseek, ("chat", "ch"), "deepseek-chat", TEXT, default=True)
        self._register(deepseek, ("reasoner", "re"), "deepseek-reasoner", TEXT)

        openai = ProviderKind.OPENAI
        self._register(openai, ("gpt-4o-mini", "mini", "gm"), "gpt-4o-mini", VISION_JSON, default=True)
        self._register(openai, ("gpt-4o", "gpt", "gp"), "gpt-4o", VISION_JSON)
        self._register(openai, ("gpt-4.1", "4.1"), "gpt-4.1", VISION_JSON)
        self._register(openai, ("audio", "au"), "gpt-4o-audio-preview", AUDIO)

        anthropic = ProviderKind.ANTHROPIC
        self._register(anthropic, ("sonnet", "so"), "claude-3-7-sonnet-latest", VISION, default=True)
        self._register(anthropic, ("opus", "op"), "claude-3-opus-latest", VISION)
        self._register(anthropic, ("haiku", "ha"), "claude-3-5-haiku-latest", VISION)

        google = ProviderKind.GOOGLE
        self._register(google, ("flash", "fl"), "gemini-2.0-flash", MULTIMODAL, default=True)
        self._register(google, ("pro",), "gemini-2.5-pro", MULTIMODAL)

        xai = ProviderKind.XAI
        self._register(xai, ("grok", "gr"), "grok-2-latest", TEXT_JSON, default=True)
        self._register(xai, ("grok-vision", "grv"), "grok-2-vision-latest", VISION_JSON)

        ollama = ProviderKind.OLLAMA
        self._register(ollama, ("llama", "ll"), "llama3.2", TEXT_JSON, default=True)
        self._register(ollama, ("mistral", "mis"), "mistral", TEXT_JSON)
        self._register(ollama, ("gemma", "ge"), "gemma3", TEXT_JSON)
        self._register(ollama, ("llava", "lv"), "llava", VISION_JSON)

        # Llamafile serves whatever model it was started with
        self._register(ProviderKind.LLAMAFILE, ("local", "lo"), "", TEXT, default=True)

    def _initialize_provider_tokens(self) -> None:
        """Map provider names and their visible aliases to providers."""
        visible_aliases = {
            ProviderKind.GROQ: ("gr",),
            ProviderKind.CEREBRAS: ("ce",),
            ProviderKind.DEEPSEEK: ("de",),
            ProviderKind.OPENAI: ("op",),
            ProviderKind.ANTHROPIC: ("an",),
            ProviderKind.GOOGLE: ("gemini", "gg"),
            ProviderKind.XAI: (),
            ProviderKind.OLLAMA: ("ol",),
            ProviderKind.LLAMAFILE: ("lf",),
        }
        for provider, extra in visible_aliases.items():
            for token in (provider.value, *extra):
                self._provider_tokens[token] = provider

    def _initialize_shortcuts(self) -> None:
        """Map global one-word shortcuts to provider aliases."""
        self._shortcuts = {
            "ll": (ProviderKind.GROQ, "llama"),
            # Groq retired Mixtral; its recommended replacement.
            "mi": (ProviderKind.GROQ, "llama-70"),
            "gp": (ProviderKind.OPENAI, "gpt-4o"),
            "gm": (ProviderKind.OPENAI, "gpt-4o-mini"),
            "cl": (ProviderKind.ANTHROPIC, "opus"),
            "so": (ProviderKind.ANTHROPIC, "sonnet"),
            "ha": (ProviderKind.ANTHROPIC, "haiku"),
            "fl": (ProviderKind.GOOGLE, "flash"),
            "grok": (ProviderKind.XAI, "grok"),
        }

    def _register(
        self,
        provider: ProviderKind,
        aliases: tuple[str, ...],
        model_id: str,
        capabilities: Capabilities,
        default: bool = False,
    ) -> None:
        """Register one model under every alias in `aliases`."""
        ref = ModelRef(provider=provider, model_id=model_id, capabilities=capabilities)
        for alias in aliases:
            self._aliases[provider][alias] = ref
        if default:
            self._provider_defaults[provider] = aliases[0]

    def resolve(self, token: str) -> ModelRef:
        """
        Resolve a user token to a model.

        Args:
            token: Shortcut ("gp"), provider name ("openai") or
                   qualified alias ("openai/gpt-4o").

        Returns:
            The ModelRef the token names.

        Raises:
            UnknownAlias: If the token matches nothing exactly.
        """
        if token in self._shortcuts:
            provider, alias = self._shortcuts[token]
            return self._aliases[provider][alias]

        if token in self._provider_tokens:
            return self.provider_default(self._provider_tokens[token])

        provider_token, sep, alias = token.partition("/")
        if sep and provider_token in self._provider_tokens:
            ref = self._aliases[self._provider_tokens[provider_token]].get(alias)
            if ref is not None:
                return ref

        raise UnknownAlias(token)

    def resolve_explicit(self, provider_token: str, model: str) -> ModelRef:
        """
        Resolve an explicit provider + model pair.

        The model is first looked up in the provider's alias table; any
        other value is used verbatim as the provider's model id, with the
        provider's baseline capabilities.

        Raises:
            UnknownAlias: If `provider_token` is not a provider.
        """
        provider = self.get_provider(provider_token)
        if provider is None:
            raise UnknownAlias(provider_token)

        ref = self._aliases[provider].get(model)
        if ref is not None:
            return ref
        return ModelRef(
            provider=provider,
            model_id=model,
            capabilities=self.BASELINE[provider],
        )

    def get_provider(self, token: str) -> ProviderKind | None:
        """Return the provider a name or visible alias refers to."""
        return self._provider_tokens.get(token)

    def is_shortcut(self, token: str) -> bool:
        """Whether `token` is a global one-word model shortcut."""
        return token in self._shortcuts

    def default_model(self) -> ModelRef:
        """The model used when the user names no provider or model."""
        return self._default

    def provider_default(self, provider: ProviderKind) -> ModelRef:
        """The designated default model of a provider."""
        return self._aliases[provider][self._provider_defaults[provider]]

    def all_default_models(self) -> list[ModelRef]:
        """
        One model per supported provider, in canonical output order.

        Returns:
            List of ModelRefs used by `cai all`.
        """
        return [self.provider_default(p) for p in self.CANONICAL_ORDER]

    def list_aliases(self, provider: ProviderKind) -> dict[str, ModelRef]:
        """Return a copy of a provider's alias table."""
        return dict(self._aliases[provider])

    def describe_aliases(self, provider: ProviderKind) -> str:
        """Pretty "alias → model id" listing for help output."""
        lines = []
        default_alias = self._provider_defaults[provider]
        for alias, ref in self._aliases[provider].items():
            marker = " (default)" if alias == default_alias else ""
            lines.append(f"  {alias: <11} → {ref.model_id or '(server model)'}{marker}")
        return "\n".join(lines)
