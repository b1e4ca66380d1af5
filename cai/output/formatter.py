"""
Output Formatter

Turns a FanoutResult into the text printed by the CLI:

- RAW: exactly one result, the model's text verbatim
- ANNOTATED: per result a header line with elapsed time and model,
  followed by the text (or the failure kind and message)

When a JSON schema was requested, every Success is parsed as JSON and
validated with jsonschema first. A response that does not satisfy the
schema becomes a SchemaValidationFailed Failure carrying the raw text;
nothing is retried and nothing invalid is passed through.

Rendering is pure: the same FanoutResult always renders the same text.
"""

import json
import logging
from typing import Any

import jsonschema

from cai.schemas.prompt import (
    ErrorKind,
    FanoutResult,
    Failure,
    OutputMode,
    ProviderCallResult,
    Success,
    UsageError,
    split_json_schema,
)

logger = logging.getLogger(__name__)


EXIT_SUCCESS = 0
EXIT_ALL_FAILED = 1
EXIT_USAGE = 2
EXIT_PARTIAL_FAILURE = 3
EXIT_INTERRUPTED = 130


def validate_json(text: str, json_schema: dict[str, Any]) -> str | None:
    """
    Check a response text against a schema.

    Returns:
        None if the text is JSON satisfying the schema, else the reason.
    """
    _, schema = split_json_schema(json_schema)

    try:
        instance = json.loads(text)
    except json.JSONDecodeError as e:
        return f"Response is not valid JSON: {e}"

    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as e:
        return f"Response does not match the JSON schema: {e.message}"
    except jsonschema.SchemaError as e:
        return f"The JSON schema itself is invalid: {e.message}"
    return None


def apply_json_schema(
    result: FanoutResult, json_schema: dict[str, Any] | None
) -> FanoutResult:
    """
    Validate every Success against the schema.

    Failures pass through unchanged. A Success that does not validate is
    replaced by Failure{SchemaValidationFailed} keeping its text and timing.
    """
    if json_schema is None:
        return result

    checked: list[ProviderCallResult] = []
    for item in result:
        if isinstance(item, Success):
            reason = validate_json(item.text, json_schema)
            if reason is not None:
                logger.warning(f"{item.label}: {reason}")
                item = Failure(
                    model_ref=item.model_ref,
                    error_kind=ErrorKind.SCHEMA_VALIDATION_FAILED,
                    message=reason,
                    text=item.text,
                    elapsed_ms=item.elapsed_ms,
                )
        checked.append(item)

    return FanoutResult(results=tuple(checked))


def format_header(item: ProviderCallResult) -> str:
    """Header line shown above each result in annotated mode."""
    if isinstance(item, Success):
        return f"⏱️ {item.elapsed_ms:>5.0f} ms | 🧠 {item.label}"
    return f"❌ {item.error_kind.value} | 🧠 {item.label}"


def _render_annotated_item(item: ProviderCallResult) -> str:
    header = format_header(item)
    if isinstance(item, Success):
        return f"{header}\n\n{item.text}\n"

    body = f"{header}\n\n{item.message}\n"
    if item.text:
        label = "Response" if item.error_kind == ErrorKind.SCHEMA_VALIDATION_FAILED else "Partial output"
        body += f"\n{label}:\n{item.text}\n"
    return body


def render_raw(item: ProviderCallResult) -> str:
    if isinstance(item, Success):
        return item.text
    return f"ERROR [{item.error_kind.value}]: {item.message}"


def render(
    result: FanoutResult,
    mode: OutputMode,
    json_schema: dict[str, Any] | None = None,
) -> str:
    """
    Render all results of one invocation.

    Args:
        result: Outcomes in request order.
        mode: RAW or ANNOTATED.
        json_schema: Optional schema every Success must satisfy.

    Returns:
        The text to print.

    Raises:
        UsageError: If RAW mode is asked to render more than one result.
    """
    if mode == OutputMode.RAW and len(result) != 1:
        raise UsageError(
            f"Raw output is defined for exactly one result, got {len(result)}"
        )

    result = apply_json_schema(result, json_schema)

    if mode == OutputMode.RAW:
        return render_raw(result[0])

    return "\n".join(_render_annotated_item(item) for item in result)


def exit_code(result: FanoutResult) -> int:
    """0 if everything succeeded, 1 if everything failed, 3 otherwise."""
    if result.all_succeeded:
        return EXIT_SUCCESS
    if result.all_failed:
        return EXIT_ALL_FAILED
    return EXIT_PARTIAL_FAILURE
