"""
Request Builder - Unified prompt to provider wire payload.

Turns a PromptRequest into the request body a provider family expects.
Building is pure: no I/O, no credentials, no clients. Anything the target
model cannot handle is rejected here, before a network call is made:

- Image/audio attachments need vision_input/audio_input
- JSON mode and JSON schemas need the json_schema capability

Payload shapes per family:
- OPENAI_COMPATIBLE / GROQ: chat.completions.create() keyword arguments
- ANTHROPIC: Messages API body (POST /v1/messages)
- GOOGLE: Gemini generateContent body (POST /models/{id}:generateContent)
"""

import base64
from dataclasses import dataclass
from typing import Any

from cai.registry.models import ModelRef, ProviderFamily
from cai.schemas.prompt import (
    Attachment,
    AttachmentKind,
    ErrorKind,
    PromptRequest,
    split_json_schema,
)


class BuildError(ValueError):
    """A prompt cannot be sent to a model; raised before any network call."""

    error_kind: ErrorKind = ErrorKind.PROVIDER_ERROR


class CapabilityMismatch(BuildError):
    """An attachment kind is not supported by the target model."""

    error_kind = ErrorKind.CAPABILITY_MISMATCH


class SchemaUnsupported(BuildError):
    """JSON output was requested from a model that cannot produce it."""

    error_kind = ErrorKind.SCHEMA_UNSUPPORTED


@dataclass(frozen=True)
class WireRequest:
    """
    A provider-specific request, ready for the provider client.

    Attributes:
        model_ref: The model the request targets
        payload: JSON body (or SDK keyword arguments) for the provider
        stream: Whether incremental-response mode was requested
        path: URL path relative to the provider base URL (HTTP families only)
    """

    model_ref: ModelRef
    payload: dict[str, Any]
    stream: bool = False
    path: str | None = None

    @property
    def family(self) -> ProviderFamily:
        return self.model_ref.provider.family


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _audio_format(mime_type: str) -> str:
    """Map an audio MIME type to the short format name OpenAI expects."""
    subtype = mime_type.split("/", 1)[-1].lower()
    if subtype in ("x-wav", "wave", "vnd.wave"):
        return "wav"
    if subtype in ("mpeg", "mpeg3", "x-mpeg-3"):
        return "mp3"
    return subtype


def _text_block(attachment: Attachment) -> str:
    if attachment.name:
        return f"{attachment.name}:\n{attachment.as_text()}"
    return attachment.as_text()


def check_capabilities(model_ref: ModelRef, prompt: PromptRequest) -> None:
    """
    Reject prompts the model cannot accept.

    Raises:
        CapabilityMismatch: For image/audio attachments without support.
        SchemaUnsupported: For JSON mode or a schema without support.
    """
    caps = model_ref.capabilities

    for attachment in prompt.attachments:
        if attachment.kind == AttachmentKind.IMAGE and not caps.vision_input:
            raise CapabilityMismatch(
                f"{model_ref} does not accept image input "
                f"({attachment.name or 'attachment'})"
            )
        if attachment.kind == AttachmentKind.AUDIO and not caps.audio_input:
            raise CapabilityMismatch(
                f"{model_ref} does not accept audio input "
                f"({attachment.name or 'attachment'})"
            )

    if prompt.wants_json and not caps.json_schema:
        mode = "JSON schema" if prompt.json_schema is not None else "JSON"
        raise SchemaUnsupported(f"{model_ref} doesn't support a {mode} mode")


# =============================================================================
# OPENAI-COMPATIBLE (also used for Groq)
# =============================================================================


def _openai_content(prompt: PromptRequest) -> str | list[dict[str, Any]]:
    if not prompt.attachments:
        return prompt.text

    parts: list[dict[str, Any]] = [{"type": "text", "text": prompt.text}]
    for attachment in prompt.attachments:
        match attachment.kind:
            case AttachmentKind.TEXT:
                parts.append({"type": "text", "text": _text_block(attachment)})
            case AttachmentKind.IMAGE:
                url = f"data:{attachment.mime_type};base64,{_b64(attachment.data)}"
                parts.append({"type": "image_url", "image_url": {"url": url}})
            case AttachmentKind.AUDIO:
                parts.append(
                    {
                        "type": "input_audio",
                        "input_audio": {
                            "data": _b64(attachment.data),
                            "format": _audio_format(attachment.mime_type),
                        },
                    }
                )
    return parts


def _build_openai(model_ref: ModelRef, prompt: PromptRequest, stream: bool) -> WireRequest:
    messages: list[dict[str, Any]] = []
    if prompt.system_prompt:
        messages.append({"role": "system", "content": prompt.system_prompt})
    messages.append({"role": "user", "content": _openai_content(prompt)})

    payload: dict[str, Any] = {
        "model": model_ref.model_id,
        "messages": messages,
        "max_tokens": prompt.max_tokens,
    }

    if prompt.json_schema is not None:
        name, schema = split_json_schema(prompt.json_schema)
        wrapped = dict(prompt.json_schema) if "schema" in prompt.json_schema else {}
        wrapped.update({"name": name, "schema": schema})
        payload["response_format"] = {"type": "json_schema", "json_schema": wrapped}
    elif prompt.json_mode:
        payload["response_format"] = {"type": "json_object"}

    if stream:
        payload["stream"] = True

    return WireRequest(model_ref=model_ref, payload=payload, stream=stream)


# =============================================================================
# ANTHROPIC
# =============================================================================


def _anthropic_content(prompt: PromptRequest) -> str | list[dict[str, Any]]:
    if not prompt.attachments:
        return prompt.text

    blocks: list[dict[str, Any]] = [{"type": "text", "text": prompt.text}]
    for attachment in prompt.attachments:
        match attachment.kind:
            case AttachmentKind.TEXT:
                blocks.append({"type": "text", "text": _text_block(attachment)})
            case AttachmentKind.IMAGE:
                blocks.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": attachment.mime_type,
                            "data": _b64(attachment.data),
                        },
                    }
                )
            case AttachmentKind.AUDIO:
                raise CapabilityMismatch("The Anthropic Messages API does not accept audio input")
    return blocks


def _build_anthropic(model_ref: ModelRef, prompt: PromptRequest, stream: bool) -> WireRequest:
    payload: dict[str, Any] = {
        "model": model_ref.model_id,
        "max_tokens": prompt.max_tokens,
        "messages": [{"role": "user", "content": _anthropic_content(prompt)}],
    }
    if prompt.system_prompt:
        payload["system"] = prompt.system_prompt
    if stream:
        payload["stream"] = True

    return WireRequest(model_ref=model_ref, payload=payload, stream=stream, path="/v1/messages")


# =============================================================================
# GOOGLE GEMINI
# =============================================================================


def _google_parts(prompt: PromptRequest) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = [{"text": prompt.text}]
    for attachment in prompt.attachments:
        if attachment.kind == AttachmentKind.TEXT:
            parts.append({"text": _text_block(attachment)})
        else:
            parts.append(
                {
                    "inlineData": {
                        "mimeType": attachment.mime_type,
                        "data": _b64(attachment.data),
                    }
                }
            )
    return parts


def _build_google(model_ref: ModelRef, prompt: PromptRequest, stream: bool) -> WireRequest:
    generation_config: dict[str, Any] = {"maxOutputTokens": prompt.max_tokens}
    if prompt.wants_json:
        generation_config["responseMimeType"] = "application/json"
    if prompt.json_schema is not None:
        _, schema = split_json_schema(prompt.json_schema)
        generation_config["responseSchema"] = schema

    payload: dict[str, Any] = {
        "contents": [{"role": "user", "parts": _google_parts(prompt)}],
        "generationConfig": generation_config,
    }
    if prompt.system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": prompt.system_prompt}]}

    if stream:
        path = f"/models/{model_ref.model_id}:streamGenerateContent?alt=sse"
    else:
        path = f"/models/{model_ref.model_id}:generateContent"

    return WireRequest(model_ref=model_ref, payload=payload, stream=stream, path=path)


def build(model_ref: ModelRef, prompt: PromptRequest) -> WireRequest:
    """
    Build the provider-specific request for one model.

    Args:
        model_ref: Resolved target model.
        prompt: The unified prompt shared by all dispatched models.

    Returns:
        WireRequest ready for the provider client.

    Raises:
        CapabilityMismatch: If an attachment kind is unsupported.
        SchemaUnsupported: If JSON output is requested but unsupported.
    """
    check_capabilities(model_ref, prompt)
    stream = prompt.stream and model_ref.capabilities.streaming

    match model_ref.provider.family:
        case ProviderFamily.OPENAI_COMPATIBLE | ProviderFamily.GROQ:
            return _build_openai(model_ref, prompt, stream)
        case ProviderFamily.ANTHROPIC:
            return _build_anthropic(model_ref, prompt, stream)
        case ProviderFamily.GOOGLE:
            return _build_google(model_ref, prompt, stream)
