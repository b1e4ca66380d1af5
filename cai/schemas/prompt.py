"""
Prompt and Result Schemas

This module defines the unified data shapes that flow through the
dispatch pipeline:
- PromptRequest: what the user asked, with attachments and output options
- Success / Failure: the outcome of one provider call
- FanoutResult: every outcome of one invocation, in request order

Requests are Pydantic models (validated once at the CLI boundary);
results are plain dataclasses produced by the dispatcher.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cai.registry.models import ModelRef


# =============================================================================
# ENUMERATIONS
# =============================================================================


class OutputMode(str, Enum):
    """
    How results are printed.

    RAW: Only the model's text, for exactly one model
    ANNOTATED: A header with provider/model and elapsed time per result
    """

    RAW = "raw"
    ANNOTATED = "annotated"


class AttachmentKind(str, Enum):
    """Kind of file attached to a prompt."""

    IMAGE = "image"
    AUDIO = "audio"
    TEXT = "text"


class ErrorKind(str, Enum):
    """
    Why a provider call produced no usable result.

    Pre-flight kinds are detected before any network call is made;
    the rest come from the provider client or the output formatter.
    """

    # Pre-flight
    UNKNOWN_ALIAS = "UnknownAlias"
    CAPABILITY_MISMATCH = "CapabilityMismatch"
    SCHEMA_UNSUPPORTED = "SchemaUnsupported"
    # Provider call
    NETWORK = "Network"
    AUTH = "Auth"
    RATE_LIMITED = "RateLimited"
    TIMEOUT = "Timeout"
    MALFORMED_RESPONSE = "MalformedResponse"
    PROVIDER_ERROR = "ProviderError"
    # Output
    SCHEMA_VALIDATION_FAILED = "SchemaValidationFailed"


TRANSIENT_ERRORS = frozenset({ErrorKind.NETWORK, ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT})


class UsageError(ValueError):
    """Raised when an invocation is invalid before anything is dispatched."""


# =============================================================================
# REQUEST MODELS
# =============================================================================


class Attachment(BaseModel):
    """A file sent along with the prompt."""

    model_config = ConfigDict(frozen=True)

    kind: AttachmentKind
    data: bytes = Field(..., description="Raw file content")
    mime_type: str = Field(
        default="application/octet-stream",
        description="MIME type used when the provider needs one",
    )
    name: str | None = Field(default=None, description="Original file name")

    def as_text(self) -> str:
        """Decode a text attachment, replacing undecodable bytes."""
        return self.data.decode("utf-8", errors="replace")


class PromptRequest(BaseModel):
    """
    Unified prompt descriptor shared by every dispatched model.

    Built once per invocation from CLI input; piped stdin content is
    appended after the explicit prompt text, never before it.

    Example:
        PromptRequest(text="capital of Australia", output_mode=OutputMode.RAW)
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="The prompt text")

    attachments: tuple[Attachment, ...] = Field(
        default=(), description="Files in the order the user gave them"
    )

    output_mode: OutputMode = Field(default=OutputMode.ANNOTATED)

    json_schema: dict[str, Any] | None = Field(
        default=None,
        description="Schema the response must satisfy (validated after the call)",
    )

    json_mode: bool = Field(
        default=False, description="Ask the provider for a JSON object response"
    )

    system_prompt: str | None = Field(
        default=None, description="Instructions placed in the provider's system slot"
    )

    stream: bool = Field(
        default=False, description="Request incremental responses where supported"
    )

    max_tokens: int = Field(default=4096, gt=0)

    @field_validator("text")
    @classmethod
    def validate_text_not_whitespace(cls, v: str) -> str:
        """Ensure there is something to send."""
        if not v.strip():
            raise ValueError("No prompt was provided")
        return v

    @property
    def wants_json(self) -> bool:
        """Whether any JSON output constraint is requested."""
        return self.json_mode or self.json_schema is not None


# =============================================================================
# RESULT MODELS
# =============================================================================


def _label(model_ref: ModelRef | None, token: str | None) -> str:
    if model_ref is not None:
        return str(model_ref)
    return token or "unknown"


@dataclass(frozen=True)
class Success:
    """
    A provider call that returned text.

    Attributes:
        model_ref: The model that answered
        text: Complete response text (stream chunks already joined)
        elapsed_ms: Wall time of the call in milliseconds
    """

    model_ref: ModelRef
    text: str
    elapsed_ms: float

    @property
    def success(self) -> bool:
        return True

    @property
    def label(self) -> str:
        """Provider and model id, e.g. "OpenAI gpt-4o"."""
        return _label(self.model_ref, None)


@dataclass(frozen=True)
class Failure:
    """
    A provider call (or pre-flight step) that failed.

    Attributes:
        model_ref: The model that was attempted, None if the token never resolved
        error_kind: Classified reason
        message: Human-readable detail
        text: Output received before the failure (partial stream), may be empty
        elapsed_ms: Wall time until the failure in milliseconds
        token: The user token, kept for failures without a model_ref
    """

    model_ref: ModelRef | None
    error_kind: ErrorKind
    message: str
    text: str = ""
    elapsed_ms: float = 0.0
    token: str | None = None

    @property
    def success(self) -> bool:
        return False

    @property
    def label(self) -> str:
        return _label(self.model_ref, self.token)


ProviderCallResult = Success | Failure


@dataclass(frozen=True)
class FanoutResult:
    """
    Outcomes of one invocation, one per requested model, in request order.

    The order is that of the request, not of completion, so output is
    deterministic regardless of network latency.
    """

    results: tuple[ProviderCallResult, ...]

    def __iter__(self) -> Iterator[ProviderCallResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> ProviderCallResult:
        return self.results[index]

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and not any(r.success for r in self.results)

    @property
    def failures(self) -> list[Failure]:
        return [r for r in self.results if isinstance(r, Failure)]


def split_json_schema(document: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Separate a schema document into (name, schema).

    Accepts either a bare JSON schema or the wrapped form used by
    OpenAI-style structured outputs: {"name": ..., "schema": {...}}.

    Returns:
        Tuple of schema name ("response" if unnamed) and the bare schema.
    """
    inner = document.get("schema")
    if isinstance(inner, dict):
        return str(document.get("name") or "response"), inner
    return "response", document
